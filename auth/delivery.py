"""
auth/delivery.py -- Reset-link delivery collaborator.

Email sending is outside the auth core. The service hands (email, token) to
anything that satisfies the ResetDelivery protocol and treats a DeliveryError
like any other failure on the forgot-password path: logged, never reported to
the client.

LoggingResetDelivery is the default wiring. It records that a reset was issued
at INFO and writes the raw token only at DEBUG, so production log levels never
contain a usable secret.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger("authgate.auth.delivery")


class ResetDelivery(Protocol):
    """Anything that can get a reset token to the owner of an email address."""

    def send_reset(self, email: str, token: str) -> None:
        """Deliver the token. Raise auth.errors.DeliveryError on failure."""
        ...


class LoggingResetDelivery:
    """Delivery stand-in that writes to the log instead of sending mail."""

    def send_reset(self, email: str, token: str) -> None:
        logger.info("Password reset issued for %s", email)
        logger.debug("Password reset token for %s: %s", email, token)
