from __future__ import annotations

from flask import Blueprint, g, jsonify

from app.sommertheater.db import db_session
from app.sommertheater.models import User
from app.sommertheater.modules.permissions.service import (
    create_custom_role,
    get_role_or_404,
    permission_matrix,
    serialize_role,
    set_role_permissions,
)
from app.sommertheater.rbac import require_permission
from app.sommertheater.utils import json_body

bp = Blueprint("permissions", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/api/permissions")
@require_permission("mitglieder.rechte")
def permissions_matrix():
    return jsonify(permission_matrix(db_session()))


@bp.post("/api/permissions/roles")
@require_permission("mitglieder.rechte")
def permissions_role_create():
    s = db_session()
    role = create_custom_role(s, json_body(), _current_user())
    s.commit()
    return jsonify({"role": serialize_role(role)}), 201


@bp.put("/api/permissions/roles/<int:role_id>")
@require_permission("mitglieder.rechte")
def permissions_role_update(role_id: int):
    s = db_session()
    payload = json_body()
    role = get_role_or_404(s, role_id)
    set_role_permissions(s, role, payload.get("permissions"), _current_user())
    s.commit()
    return jsonify({"role": serialize_role(role)})
