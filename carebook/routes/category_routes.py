from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.orm import Session

from carebook.auth.dependencies import require_roles
from carebook.core.errors import ConflictError, NotFoundError, ValidationError
from carebook.core.responses import ApiResponse, MessageResponse, envelope
from carebook.database import database_guard, get_db
from carebook.models.category import Category
from carebook.models.user import ADMIN_ROLE, User

router = APIRouter(tags=['categories'])

DUPLICATE_CATEGORY = 'Category name already exists'


def normalize_category_name(value: str) -> str:
    normalized = value.strip()
    if not 2 <= len(normalized) <= 100:
        raise ValueError('Category name must be between 2 and 100 characters.')
    return normalized


class CreateCategoryRequest(BaseModel):
    name: str
    description: str | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        return normalize_category_name(value)


class UpdateCategoryRequest(BaseModel):
    name: str | None = None
    description: str | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str | None) -> str | None:
        return None if value is None else normalize_category_name(value)


class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


def ensure_name_available(db: Session, name: str, exclude_id: str | None = None) -> None:
    query = db.query(Category.id).filter(Category.name == name)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(DUPLICATE_CATEGORY)


@router.get('', response_model=ApiResponse[list[CategoryResponse]])
def list_categories(db: Session = Depends(get_db)):
    with database_guard(db, 'listing categories'):
        categories = db.query(Category).order_by(Category.name.asc()).all()
    return envelope([CategoryResponse.model_validate(category) for category in categories])


@router.get('/{category_id}', response_model=ApiResponse[CategoryResponse])
def get_category(category_id: str, db: Session = Depends(get_db)):
    category = db.query(Category).filter(Category.id == category_id).first()
    if category is None:
        raise NotFoundError('Category not found')
    return envelope(CategoryResponse.model_validate(category))


@router.post('', response_model=ApiResponse[CategoryResponse], status_code=status.HTTP_201_CREATED)
def create_category(
    data: CreateCategoryRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ADMIN_ROLE)),
):
    with database_guard(db, 'creating category', conflict=DUPLICATE_CATEGORY):
        ensure_name_available(db, data.name)
        category = Category(name=data.name, description=data.description)
        db.add(category)
        db.commit()
        db.refresh(category)
    return envelope(CategoryResponse.model_validate(category))


@router.put('/{category_id}', response_model=ApiResponse[CategoryResponse])
def update_category(
    category_id: str,
    data: UpdateCategoryRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ADMIN_ROLE)),
):
    changes = data.model_dump(exclude_none=True)
    if not changes:
        raise ValidationError('At least one field must be provided.')

    with database_guard(db, 'updating category', conflict=DUPLICATE_CATEGORY):
        category = db.query(Category).filter(Category.id == category_id).first()
        if category is None:
            raise NotFoundError('Category not found')
        if 'name' in changes:
            ensure_name_available(db, changes['name'], exclude_id=category_id)
        for field_name, value in changes.items():
            setattr(category, field_name, value)
        db.commit()
        db.refresh(category)
    return envelope(CategoryResponse.model_validate(category))


@router.delete('/{category_id}', response_model=MessageResponse)
def delete_category(
    category_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(ADMIN_ROLE)),
):
    with database_guard(db, 'deleting category'):
        category = db.query(Category).filter(Category.id == category_id).first()
        if category is None:
            raise NotFoundError('Category not found')
        db.delete(category)
        db.commit()
    return MessageResponse(message='Category deleted successfully')
