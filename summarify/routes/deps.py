"""
Summarify Backend — Route Dependencies
========================================

What:  FastAPI dependencies that resolve the caller's identity.
How:   The upstream identity provider has already authenticated the user
       and forwards the stable account id in X-Account-ID. Admin routes
       additionally require X-Admin-Key to match settings.admin_api_key.

The core trusts these values and performs no authentication itself.
"""

import hmac
import logging
from typing import Optional

from fastapi import Header

from summarify.config import settings
from summarify.exceptions import AuthenticationError, PermissionDeniedError

logger = logging.getLogger(__name__)


async def get_account_id(
    x_account_id: Optional[str] = Header(default=None, alias="X-Account-ID"),
) -> str:
    """Authenticated account id of the caller (401 when absent)."""
    account_id = (x_account_id or "").strip()
    if not account_id:
        raise AuthenticationError()
    return account_id


async def require_admin(
    x_admin_key: Optional[str] = Header(default=None, alias="X-Admin-Key"),
) -> None:
    """
    Gate for admin operations.

    An empty settings.admin_api_key disables the admin surface entirely.
    """
    if not settings.admin_api_key:
        raise PermissionDeniedError("Admin operations are disabled")
    if not x_admin_key or not hmac.compare_digest(x_admin_key, settings.admin_api_key):
        logger.warning("Rejected admin request with invalid key")
        raise PermissionDeniedError()
