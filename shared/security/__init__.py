from .jwt_handler import create_access_token, verify_access_token
from .dependencies import AuthenticatedUser, get_current_user, require_admin
from .rate_limiter import limiter, user_id_or_ip

__all__ = [
    "create_access_token",
    "verify_access_token",
    "AuthenticatedUser",
    "get_current_user",
    "require_admin",
    "limiter",
    "user_id_or_ip"
]
