"""
auth/errors.py -- Error kinds raised by the authentication core.

Every error carries a stable machine-readable `code` and a client-safe default
`message`. The HTTP layer maps error classes to status codes; nothing in auth/
knows about HTTP.

Security-sensitive distinctions are collapsed before they get here:
"unknown email" and "wrong password" are both InvalidCredentialsError.

Layer rule: stdlib only.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all authentication errors."""

    code = "auth_error"
    message = "Authentication failed."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.message)
        if message:
            self.message = message


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


class WeakInputError(AuthError):
    code = "weak_input"
    message = "Password does not meet the minimum requirements."


class InvalidEmailError(WeakInputError):
    code = "invalid_email"
    message = "Invalid email format."


# ---------------------------------------------------------------------------
# Accounts and credentials
# ---------------------------------------------------------------------------


class DuplicateAccountError(AuthError):
    code = "duplicate_account"
    message = "An account with this email already exists."


class InvalidCredentialsError(AuthError):
    code = "invalid_credentials"
    message = "Invalid email or password."


class AccountNotFoundError(AuthError):
    code = "account_not_found"
    message = "Account not found."


# ---------------------------------------------------------------------------
# Bearer tokens
# ---------------------------------------------------------------------------


class MissingTokenError(AuthError):
    code = "missing_token"
    message = "A bearer token is required."


class TokenMalformedError(AuthError):
    code = "invalid_token"
    message = "The bearer token is invalid."


class TokenExpiredError(AuthError):
    code = "token_expired"
    message = "The bearer token has expired."


# ---------------------------------------------------------------------------
# Reset tokens
# ---------------------------------------------------------------------------


class ResetTokenNotFoundError(AuthError):
    code = "invalid_reset_token"
    message = "The reset token is invalid."


class ResetTokenExpiredError(AuthError):
    code = "reset_token_expired"
    message = "The reset token has expired."


class ResetTokenAlreadyUsedError(AuthError):
    code = "reset_token_used"
    message = "The reset token has already been used."


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class StorageUnavailableError(AuthError):
    code = "storage_unavailable"
    message = "The account directory is unavailable."


class DeliveryError(AuthError):
    code = "delivery_failed"
    message = "The reset link could not be delivered."
