from __future__ import annotations

from flask import Blueprint, g, jsonify

from app.sommertheater.db import db_session
from app.sommertheater.models import User
from app.sommertheater.modules.members.service import (
    get_user_or_404,
    list_members,
    serialize_member,
    set_member_roles,
    set_member_status,
    update_profile,
    validate_profile_payload,
)
from app.sommertheater.rbac import require_login, require_permission
from app.sommertheater.utils import json_body, parse_bool

bp = Blueprint("members", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/api/members")
@require_permission("mitglieder.rollenverwaltung")
def members_list():
    s = db_session()
    return jsonify({"members": [serialize_member(u) for u in list_members(s)]})


@bp.put("/api/members/<int:user_id>/roles")
@require_permission("mitglieder.rollenverwaltung")
def members_roles_update(user_id: int):
    s = db_session()
    payload = json_body()
    target = get_user_or_404(s, user_id)
    set_member_roles(s, target, payload.get("roles"), _current_user())
    s.commit()
    return jsonify({"member": serialize_member(target)})


@bp.patch("/api/members/<int:user_id>/status")
@require_permission("mitglieder.rollenverwaltung")
def members_status_update(user_id: int):
    s = db_session()
    payload = json_body()
    active = parse_bool(payload.get("isActive"))
    if active is None:
        return jsonify({"error": "isActive ist erforderlich"}), 400
    target = get_user_or_404(s, user_id)
    set_member_status(s, target, active, _current_user())
    s.commit()
    return jsonify({"member": serialize_member(target)})


@bp.get("/api/profile")
@require_login
def profile_get():
    return jsonify({"profile": serialize_member(_current_user())})


@bp.patch("/api/profile")
@require_permission("mitglieder.profil")
def profile_update():
    s = db_session()
    payload = json_body()
    errors = validate_profile_payload(payload)
    if errors:
        return jsonify({"error": errors[0], "details": errors}), 400
    user = _current_user()
    update_profile(s, user, payload)
    s.commit()
    return jsonify({"profile": serialize_member(user)})
