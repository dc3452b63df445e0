from __future__ import annotations

from flask import Blueprint, g, jsonify

from app.sommertheater.db import db_session
from app.sommertheater.models import User
from app.sommertheater.modules.measurements.service import (
    list_measurements,
    serialize_measurement,
    upsert_measurement,
    validate_measurement_payload,
)
from app.sommertheater.modules.members.service import get_user_or_404
from app.sommertheater.rbac import require_login, require_permission
from app.sommertheater.utils import get_user_display_name, json_body

bp = Blueprint("measurements", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/api/measurements")
@require_login
def measurements_own():
    s = db_session()
    rows = list_measurements(s, _current_user().id)
    return jsonify({"measurements": [serialize_measurement(m) for m in rows]})


@bp.post("/api/measurements")
@require_login
def measurements_own_upsert():
    s = db_session()
    payload = json_body()
    errors = validate_measurement_payload(payload)
    if errors:
        return jsonify({"error": errors[0], "details": errors}), 400
    user = _current_user()
    m = upsert_measurement(s, user, payload, user)
    s.commit()
    return jsonify({"measurement": serialize_measurement(m)})


@bp.get("/api/measurements/<int:user_id>")
@require_permission("mitglieder.koerpermasse")
def measurements_member(user_id: int):
    s = db_session()
    target = get_user_or_404(s, user_id)
    rows = list_measurements(s, target.id)
    return jsonify(
        {
            "member": {"id": target.id, "name": get_user_display_name(target)},
            "measurements": [serialize_measurement(m) for m in rows],
        }
    )


@bp.post("/api/measurements/<int:user_id>")
@require_permission("mitglieder.koerpermasse")
def measurements_member_upsert(user_id: int):
    s = db_session()
    payload = json_body()
    errors = validate_measurement_payload(payload)
    if errors:
        return jsonify({"error": errors[0], "details": errors}), 400
    target = get_user_or_404(s, user_id)
    m = upsert_measurement(s, target, payload, _current_user())
    s.commit()
    return jsonify({"measurement": serialize_measurement(m)})
