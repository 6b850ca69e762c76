from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar('T')


class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    data: T


class MessageResponse(BaseModel):
    success: bool = True
    message: str


def envelope(data: Any) -> dict:
    return {'success': True, 'data': data}


def error_body(message: Any) -> dict:
    return {'success': False, 'error': message}
