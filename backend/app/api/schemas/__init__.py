"""API schema package."""

from app.api.schemas.auth import LoginRequest, TokenResponse, VerifyResponse
from app.api.schemas.common import ApiResponse, CamelModel, MessageResponse, Pagination

__all__ = [
    "ApiResponse",
    "CamelModel",
    "LoginRequest",
    "MessageResponse",
    "Pagination",
    "TokenResponse",
    "VerifyResponse",
]
