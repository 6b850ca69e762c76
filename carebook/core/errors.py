"""Error taxonomy shared by routes and services.

Each error is an ``HTTPException`` so it can be raised anywhere below a route
and still reach the client as ``{"success": false, "error": <detail>}``.
"""

from fastapi import HTTPException, status


class ApiError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Internal Server Error'

    def __init__(self, detail: str | None = None, headers: dict[str, str] | None = None) -> None:
        super().__init__(
            status_code=type(self).status_code,
            detail=detail or type(self).default_detail,
            headers=headers,
        )


class ValidationError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid request.'


class InvalidTransition(ValidationError):
    default_detail = 'Invalid status transition.'


class ConflictError(ApiError):
    # Collisions are reported as 400 to match the booking UI contract.
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Resource already exists.'


class AuthError(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Not authenticated'

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail, headers={'WWW-Authenticate': 'Bearer'})


class ForbiddenError(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'Access denied.'


class NotFoundError(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'


class InternalError(ApiError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Internal Server Error'
