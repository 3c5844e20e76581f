"""Request context management using contextvars.

Holds the authenticated user's id and role for the lifetime of a request.
"""

import contextvars

from app.exceptions import UnauthorizedException

_current_user_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "current_user_id", default=None
)
_current_user_role: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "current_user_role", default=None
)


def get_current_user_id() -> str:
    """Get the current user ID.

    Raises:
        UnauthorizedException: If no user is authenticated
    """
    uid = _current_user_id.get()
    if uid is None:
        raise UnauthorizedException()
    return uid


def get_current_user_id_or_none() -> str | None:
    return _current_user_id.get()


def set_current_user_id(uid: str | None) -> None:
    _current_user_id.set(uid)


def get_current_user_role() -> str | None:
    return _current_user_role.get()


def set_current_user_role(role: str | None) -> None:
    _current_user_role.set(role)


def clear_all_context() -> None:
    """Clear all context variables.

    Call this at the end of each request to prevent context leakage.
    """
    _current_user_id.set(None)
    _current_user_role.set(None)


def is_admin() -> bool:
    """Check if the current user is an ADMIN or SUPER_ADMIN."""
    return get_current_user_role() in ("ADMIN", "SUPER_ADMIN")
