"""
api/routes/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/auth/register          -- create an account; 201
  POST /api/auth/login             -- password login; returns bearer token
  POST /api/auth/forgot-password   -- start a password reset; always 200
  POST /api/auth/reset-password    -- finish a password reset with a token
  GET  /api/auth/me                -- current account (requires bearer token)

Error handling:
  Handlers let auth.errors.AuthError subclasses propagate. The handler in
  api/main.py maps each class to its status code and the {"error": {...}}
  envelope, so the same failure always produces the same response.

Security:
  AuthService.login() provides timing equalization -- use it, never inline a
  store lookup + hasher.verify().
  Cache-Control: no-store on login responses (they carry a bearer token).
  forgot-password builds its body from a constant message, so an existing and
  a non-existing email yield byte-identical responses.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    AccountResponse,
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
)
from auth.dependencies import get_current_account
from auth.models import AccountView
from auth.service import AuthService

FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, a password reset link has been sent."
RESET_PASSWORD_MESSAGE = "Password has been reset successfully."

# Auth policy:
# - POST /api/auth/register:         public
# - POST /api/auth/login:            public
# - POST /api/auth/forgot-password:  public
# - POST /api/auth/reset-password:   public -- the reset token is the credential
# - GET  /api/auth/me:               requires bearer token (get_current_account)
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> RegisterResponse:
    """Create an account from an email and password."""
    account = _service(request).register(body.email, body.password)
    return RegisterResponse(user=AccountResponse.from_view(account))


@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a bearer token.

    Unknown email and wrong password produce the same 401 invalid_credentials
    body (raised by the service, rendered by the app error handler).
    """
    service = _service(request)
    account, token = service.login(body.email, body.password)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token,
            expires_in=service.token_lifetime_seconds,
            user=AccountResponse.from_view(account),
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/forgot-password", response_model=ForgotPasswordResponse)
def forgot_password(request: Request, body: ForgotPasswordRequest) -> JSONResponse:
    """Start a password reset. The response never reveals whether the email is registered."""
    reset_token = _service(request).forgot_password(body.email)
    content = ForgotPasswordResponse(message=FORGOT_PASSWORD_MESSAGE, reset_token=reset_token)
    return JSONResponse(status_code=200, content=content.model_dump(exclude_none=True))


@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    """Set a new password using a single-use reset token."""
    _service(request).reset_password(body.token, body.new_password)
    return MessageResponse(message=RESET_PASSWORD_MESSAGE)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=AccountResponse)
def me(current_account: AccountView = Depends(get_current_account)) -> AccountResponse:
    """Return the account the bearer token was issued for."""
    return AccountResponse.from_view(current_account)
