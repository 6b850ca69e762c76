import logging

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from carebook.auth import jwt_handler
from carebook.core.errors import AuthError, ForbiddenError
from carebook.database import get_db
from carebook.models.user import User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if credentials is None:
        raise AuthError("No authorization header")

    try:
        payload = jwt_handler.decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError as exc:
        raise AuthError("Token expired") from exc
    except jwt.InvalidTokenError as exc:
        logger.info("Rejected bearer token: %s", exc)
        raise AuthError("Invalid token") from exc

    user_id = payload.get("sub")
    if not user_id:
        raise AuthError("Invalid token subject")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise AuthError("User not found")
    return user


def require_roles(*roles: str):
    allowed = set(roles)

    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise ForbiddenError(
                f"Access denied. {' or '.join(sorted(allowed)).capitalize()} privileges required."
            )
        return current_user

    return dependency
