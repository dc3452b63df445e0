from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.sommertheater.db import db_session
from app.sommertheater.models import User
from app.sommertheater.modules.dietary.service import (
    allergy_overview,
    deactivate_restriction,
    list_own_restrictions,
    serialize_restriction,
    upsert_restriction,
    validate_restriction_payload,
)
from app.sommertheater.rbac import require_login, require_permission
from app.sommertheater.utils import json_body

bp = Blueprint("dietary", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/api/allergies")
@require_login
def allergies_list():
    s = db_session()
    rows = list_own_restrictions(s, _current_user())
    return jsonify({"allergies": [serialize_restriction(r) for r in rows]})


@bp.post("/api/allergies")
@require_login
def allergies_upsert():
    s = db_session()
    payload = json_body()
    errors = validate_restriction_payload(payload)
    if errors:
        return jsonify({"error": errors[0], "details": errors}), 400
    row = upsert_restriction(s, _current_user(), payload)
    s.commit()
    return jsonify({"allergy": serialize_restriction(row)})


@bp.delete("/api/allergies")
@require_login
def allergies_delete():
    s = db_session()
    deactivate_restriction(s, _current_user(), request.args.get("allergen"))
    s.commit()
    return jsonify({"ok": True})


@bp.get("/api/allergies/overview")
@require_permission("mitglieder.essenplanung")
def allergies_overview():
    return jsonify(allergy_overview(db_session()))
