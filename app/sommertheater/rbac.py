from collections.abc import Callable, Iterable
from functools import wraps
from typing import Any

from flask import abort, g, jsonify, redirect, request, url_for

from app.sommertheater.constants import PERMISSION_DEFINITIONS, ROLES, SUPERUSER_ROLES
from app.sommertheater.models import User

VISIBILITY_SCOPES = ("finance", "board")


def sort_roles(roles: Iterable[str]) -> list[str]:
    """Known system roles in privilege order; duplicates and unknown keys are dropped."""
    wanted = set(roles)
    return [r for r in ROLES if r in wanted]


def primary_role(user: User | None) -> str:
    if not user:
        return "member"
    ordered = sort_roles(user.role_keys)
    return ordered[-1] if ordered else "member"


def user_has_role(user: User | None, *role_keys: str) -> bool:
    if not user or not user.is_active:
        return False
    owned = set(user.role_keys)
    return any(k in owned for k in role_keys)


def is_known_permission_key(permission_key: str) -> bool:
    return permission_key in PERMISSION_DEFINITIONS


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    if user_has_role(user, *SUPERUSER_ROLES):
        return True
    if not is_known_permission_key(permission_key):
        return False
    for role in user.roles:
        for perm in role.permissions:
            if perm.key == permission_key:
                return True
    return False


def user_has_any_permission(user: User | None, *permission_keys: str) -> bool:
    return any(user_has_permission(user, k) for k in permission_keys)


def resolve_allowed_visibility_scopes(user: User | None, can_approve: bool) -> list[str]:
    if can_approve or user_has_role(user, "board", "admin", "owner"):
        return ["finance", "board"]
    return ["finance"]


def ensure_allowed_scope(requested: str | None, allowed: list[str]) -> str:
    if requested and requested in allowed:
        return requested
    return allowed[0]


def _is_api_request() -> bool:
    return request.path.startswith("/api/")


def _unauthenticated():
    if _is_api_request():
        return jsonify({"error": "Nicht autorisiert"}), 401
    nxt = request.full_path or request.path
    # Avoid trailing '?' from full_path when there is no query string.
    if nxt.endswith("?"):
        nxt = nxt[:-1]
    return redirect(url_for("auth.login_get", next=nxt))


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        user: User | None = getattr(g, "current_user", None)
        if not user or not user.is_active:
            return _unauthenticated()
        return fn(*args, **kwargs)

    return wrapped


def require_permission(*permission_keys: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Guard a view with one or more permission keys; any one of them is enough.
    Unauthenticated: JSON 401 on /api/, login redirect otherwise. Unauthorized: 403.
    """

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                return _unauthenticated()
            if not user_has_any_permission(user, *permission_keys):
                g.missing_permission = " | ".join(permission_keys)
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
