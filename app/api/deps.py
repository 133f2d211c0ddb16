import secrets

from fastapi import Header

from app.core.config import settings
from app.core.errors import UnauthorizedError


def require_admin_key(x_admin_key: str | None = Header(default=None)) -> str:
    """Admin endpoints are closed while ADMIN_API_KEY is unset."""
    expected = settings.admin_api_key
    if not expected or not x_admin_key or not secrets.compare_digest(x_admin_key, expected):
        raise UnauthorizedError("Unauthorized")
    return x_admin_key
