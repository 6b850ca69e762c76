from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from carebook.auth.dependencies import require_roles
from carebook.core.errors import NotFoundError
from carebook.core.responses import ApiResponse, envelope
from carebook.database import database_guard, get_db
from carebook.models.user import ADMIN_ROLE, PATIENT_ROLE, User
from carebook.routes.user_routes import UpdateUserRequest, UserResponse, apply_user_update

router = APIRouter(tags=['patients'])


@router.get('', response_model=ApiResponse[list[UserResponse]])
def list_patients(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ADMIN_ROLE)),
):
    with database_guard(db, 'listing patients'):
        patients = (
            db.query(User)
            .filter(User.role == PATIENT_ROLE)
            .order_by(User.last_name.asc(), User.first_name.asc())
            .all()
        )
    return envelope([UserResponse.model_validate(patient) for patient in patients])


@router.put('/{patient_id}', response_model=ApiResponse[UserResponse])
def update_patient(
    patient_id: str,
    data: UpdateUserRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ADMIN_ROLE)),
):
    patient = db.query(User).filter(User.id == patient_id, User.role == PATIENT_ROLE).first()
    if patient is None:
        raise NotFoundError('Patient not found')
    return envelope(UserResponse.model_validate(apply_user_update(db, patient, data)))
