"""
API request and response models for authgate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Field lengths are not constrained here. Over-long passwords fail the
CredentialHasher policy (400 weak_input), over-long emails fail email
validation and unknown reset tokens fail lookup, so every size problem gets
the same status as any other bad value of that field.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from auth.models import AccountView

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/auth/register."""

    email: str
    password: str


class LoginRequest(BaseModel):
    """Request body for POST /api/auth/login."""

    email: str
    password: str


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /api/auth/forgot-password."""

    email: str


class ResetPasswordRequest(BaseModel):
    """Request body for POST /api/auth/reset-password."""

    token: str
    new_password: str


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class AccountResponse(BaseModel):
    """Public account representation. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_view(cls, view: AccountView) -> "AccountResponse":
        return cls(
            id=view.id,
            email=view.email,
            created_at=view.created_at,
            updated_at=view.updated_at,
        )


class RegisterResponse(BaseModel):
    message: str = "User registered successfully"
    user: AccountResponse


class LoginResponse(BaseModel):
    message: str = "Login successful"
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: AccountResponse


class MessageResponse(BaseModel):
    message: str


class ForgotPasswordResponse(BaseModel):
    """Generic forgot-password acknowledgement.

    reset_token is only populated in development mode (expose_reset_tokens)
    and is dropped from the JSON body when None.
    """

    message: str
    reset_token: Optional[str] = None


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Uniform error envelope for every non-2xx response."""

    error: ErrorDetail


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str]
