"""Authentication and agent settings request/response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import EmailStr, Field, model_validator

from app.api.schemas.common import CamelModel, RequestModel


class LoginRequest(RequestModel):
    """Request payload for login endpoint."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=256)


class AgentProfile(CamelModel):
    id: int
    email: str
    name: str


class TokenResponse(CamelModel):
    """Bearer access token response."""

    success: bool = True
    message: str = "Login successful"
    token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., ge=1)
    user: AgentProfile


class VerifyResponse(CamelModel):
    success: bool = True
    message: str = "Token is valid"
    user: AgentProfile


class SettingsOut(CamelModel):
    agent_name: str
    agent_email: str
    updated_at: datetime


class SettingsUpdate(RequestModel):
    agent_name: str | None = Field(None, min_length=1, max_length=255)
    agent_email: EmailStr | None = None


class PasswordChange(RequestModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=256)
    confirm_password: str

    @model_validator(mode="after")
    def passwords_match(self) -> "PasswordChange":
        if self.new_password != self.confirm_password:
            raise ValueError("New password and confirmation do not match")
        return self
