import hmac
import logging
from functools import wraps

from quart import session

from .config import settings
from .errors import Forbidden, Unauthorized

_logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


def check_admin_credentials(email: str, password: str) -> bool:
    if not settings.ADMIN_PASSWORD:
        # No password configured means admin login is switched off
        return False
    email_ok = hmac.compare_digest(email.strip().lower(), settings.ADMIN_EMAIL.strip().lower())
    password_ok = hmac.compare_digest(password, settings.ADMIN_PASSWORD)
    return email_ok and password_ok


def start_admin_session(email: str) -> None:
    session.clear()
    session["user"] = email
    session["role"] = ADMIN_ROLE
    _logger.info("Admin session started | user=%s", email)


def end_session() -> None:
    session.clear()


def require_admin(func):
    """Reject the request unless the session carries the admin role."""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        if not session.get("user"):
            raise Unauthorized("Authentication required")
        if session.get("role") != ADMIN_ROLE:
            raise Forbidden("Admin access required")
        return await func(*args, **kwargs)

    return wrapper
