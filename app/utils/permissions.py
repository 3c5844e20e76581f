"""Role-based permission decorators."""

from enum import Enum
from functools import wraps
from typing import Callable

from app.exceptions import ForbiddenException, UnauthorizedException
from app.utils.request_context import get_current_user_id_or_none, get_current_user_role


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    ADMIN = "ADMIN"
    INSTRUCTOR = "INSTRUCTOR"
    STUDENT = "STUDENT"


def require_role(*allowed_roles: Role | str) -> Callable:
    """Decorator that enforces role-based access control.

    Usage:
        @router.put("/settings")
        @require_role(Role.ADMIN)
        async def update_settings(...):
            ...

    Super admins pass every check.
    """
    role_values = {role.value if isinstance(role, Role) else role for role in allowed_roles}

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            if get_current_user_id_or_none() is None:
                raise UnauthorizedException()

            current_role = get_current_user_role()
            if current_role != Role.SUPER_ADMIN.value and current_role not in role_values:
                raise ForbiddenException()

            return await func(*args, **kwargs)

        return wrapper

    return decorator


def require_admin() -> Callable:
    """Decorator that requires ADMIN or SUPER_ADMIN."""
    return require_role(Role.ADMIN)


def require_authenticated() -> Callable:
    """Decorator that requires any signed-in user."""
    return require_role(*Role)
