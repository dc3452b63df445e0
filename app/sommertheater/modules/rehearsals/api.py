from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from app.sommertheater.db import db_session
from app.sommertheater.models import User
from app.sommertheater.modules.rehearsals.service import (
    attendance_overview,
    create_proposal,
    create_rehearsal,
    create_template,
    decide_proposal,
    delete_rehearsal,
    delete_template,
    generate_from_templates,
    get_proposal_or_404,
    get_rehearsal_or_404,
    get_template_or_404,
    list_proposals,
    list_rehearsals,
    list_templates,
    list_upcoming_for_user,
    report_emergency,
    serialize_attendance,
    serialize_proposal,
    serialize_rehearsal,
    serialize_template,
    update_attendance,
    update_rehearsal,
    update_template,
    validate_rehearsal_payload,
    validate_template_payload,
)
from app.sommertheater.rbac import require_login, require_permission
from app.sommertheater.utils import json_body

bp = Blueprint("rehearsals", __name__)

PLANNING = "mitglieder.probenplanung"


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/api/rehearsals")
@require_permission(PLANNING)
def rehearsals_list():
    s = db_session()
    rows = list_rehearsals(s, request.args.to_dict())
    return jsonify({"rehearsals": [serialize_rehearsal(r) for r in rows]})


@bp.post("/api/rehearsals")
@require_permission(PLANNING)
def rehearsals_create():
    s = db_session()
    payload = json_body()
    errors = validate_rehearsal_payload(payload)
    if errors:
        return jsonify({"error": errors[0], "details": errors}), 400
    r = create_rehearsal(s, payload, _current_user())
    s.commit()
    return jsonify({"rehearsal": serialize_rehearsal(r)}), 201


@bp.get("/api/rehearsals/mine")
@require_login
def rehearsals_mine():
    s = db_session()
    return jsonify({"rehearsals": list_upcoming_for_user(s, _current_user())})


@bp.post("/api/rehearsals/generate")
@require_permission(PLANNING)
def rehearsals_generate():
    s = db_session()
    payload = json_body()
    created = generate_from_templates(s, _current_user(), weeks_ahead=payload.get("weeksAhead"))
    s.commit()
    return jsonify({"created": created, "message": f"{created} Proben erstellt"})


@bp.get("/api/rehearsals/proposals")
@require_permission(PLANNING)
def proposals_list():
    s = db_session()
    rows = list_proposals(s, status=request.args.get("status"))
    return jsonify({"proposals": [serialize_proposal(p) for p in rows]})


@bp.post("/api/rehearsals/proposals")
@require_permission(PLANNING)
def proposals_create():
    s = db_session()
    p = create_proposal(s, json_body(), _current_user())
    s.commit()
    return jsonify({"proposal": serialize_proposal(p)}), 201


@bp.post("/api/rehearsals/proposals/<int:proposal_id>")
@require_permission(PLANNING)
def proposals_decide(proposal_id: int):
    s = db_session()
    payload = json_body()
    p = get_proposal_or_404(s, proposal_id)
    rehearsal = decide_proposal(s, p, payload.get("action"), _current_user(), reason=payload.get("reason"))
    s.commit()
    body = {"proposal": serialize_proposal(p)}
    if rehearsal is not None:
        body["rehearsal"] = serialize_rehearsal(rehearsal)
    return jsonify(body)


@bp.get("/api/rehearsals/<int:rehearsal_id>")
@require_permission(PLANNING)
def rehearsals_detail(rehearsal_id: int):
    s = db_session()
    r = get_rehearsal_or_404(s, rehearsal_id)
    return jsonify({"rehearsal": serialize_rehearsal(r, include_attendance=True)})


@bp.patch("/api/rehearsals/<int:rehearsal_id>")
@require_permission(PLANNING)
def rehearsals_update(rehearsal_id: int):
    s = db_session()
    payload = json_body()
    errors = validate_rehearsal_payload(payload, partial=True)
    if errors:
        return jsonify({"error": errors[0], "details": errors}), 400
    r = get_rehearsal_or_404(s, rehearsal_id)
    update_rehearsal(s, r, payload, _current_user())
    s.commit()
    return jsonify({"rehearsal": serialize_rehearsal(r)})


@bp.delete("/api/rehearsals/<int:rehearsal_id>")
@require_permission(PLANNING)
def rehearsals_delete(rehearsal_id: int):
    s = db_session()
    r = get_rehearsal_or_404(s, rehearsal_id)
    delete_rehearsal(s, r, _current_user())
    s.commit()
    return jsonify({"ok": True})


@bp.get("/api/rehearsals/<int:rehearsal_id>/attendance")
@require_permission(PLANNING)
def attendance_get(rehearsal_id: int):
    s = db_session()
    r = get_rehearsal_or_404(s, rehearsal_id)
    return jsonify(attendance_overview(s, r))


@bp.post("/api/rehearsals/<int:rehearsal_id>/attendance")
@require_login
def attendance_set(rehearsal_id: int):
    s = db_session()
    payload = json_body()
    r = get_rehearsal_or_404(s, rehearsal_id)
    attendance = update_attendance(
        s,
        r,
        _current_user(),
        status=payload.get("status"),
        comment=payload.get("comment"),
        target_user_id=payload.get("userId"),
    )
    s.commit()
    return jsonify({"attendance": serialize_attendance(attendance) if attendance else None})


@bp.post("/api/rehearsals/<int:rehearsal_id>/emergency")
@require_login
def attendance_emergency(rehearsal_id: int):
    s = db_session()
    payload = json_body()
    r = get_rehearsal_or_404(s, rehearsal_id)
    attendance = report_emergency(s, r, _current_user(), payload.get("reason"))
    s.commit()
    return jsonify({"attendance": serialize_attendance(attendance)})


@bp.get("/api/rehearsal-templates")
@require_permission(PLANNING)
def templates_list():
    s = db_session()
    return jsonify({"templates": [serialize_template(t) for t in list_templates(s)]})


@bp.post("/api/rehearsal-templates")
@require_permission(PLANNING)
def templates_create():
    s = db_session()
    payload = json_body()
    errors = validate_template_payload(payload)
    if errors:
        return jsonify({"error": errors[0], "details": errors}), 400
    t = create_template(s, payload, _current_user())
    s.commit()
    return jsonify({"template": serialize_template(t)}), 201


@bp.patch("/api/rehearsal-templates/<int:template_id>")
@require_permission(PLANNING)
def templates_update(template_id: int):
    s = db_session()
    payload = json_body()
    errors = validate_template_payload(payload, partial=True)
    if errors:
        return jsonify({"error": errors[0], "details": errors}), 400
    t = get_template_or_404(s, template_id)
    update_template(s, t, payload, _current_user())
    s.commit()
    return jsonify({"template": serialize_template(t)})


@bp.delete("/api/rehearsal-templates/<int:template_id>")
@require_permission(PLANNING)
def templates_delete(template_id: int):
    s = db_session()
    t = get_template_or_404(s, template_id)
    delete_template(s, t, _current_user())
    s.commit()
    return jsonify({"ok": True})
