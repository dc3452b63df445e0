from __future__ import annotations

from flask import Blueprint, Response, g, jsonify, request

from app.sommertheater.db import db_session
from app.sommertheater.models import User
from app.sommertheater.modules.finance.service import (
    EXPORT_FILENAME,
    create_budget,
    create_entry,
    delete_budget,
    delete_entry,
    export_entries,
    finance_summary,
    generate_finance_csv,
    get_budget_or_404,
    get_entry_or_404,
    list_budgets,
    list_entries,
    serialize_budget,
    serialize_entry,
    update_budget,
    update_entry,
    validate_budget_payload,
    validate_entry_payload,
)
from app.sommertheater.modules.productions.service import get_show_or_404
from app.sommertheater.rbac import require_permission, resolve_allowed_visibility_scopes, user_has_permission
from app.sommertheater.utils import json_body

bp = Blueprint("finance", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _access() -> tuple[User, bool, list[str]]:
    user = _current_user()
    can_approve = user_has_permission(user, "mitglieder.finanzen.approve")
    return user, can_approve, resolve_allowed_visibility_scopes(user, can_approve)


def _forbidden():
    g.missing_permission = "mitglieder.finanzen.manage"
    return jsonify({"error": "Kein Zugriff"}), 403


def _required_show_id(s) -> int | None:
    raw = (request.args.get("showId") or "").strip()
    if not raw:
        return None
    return get_show_or_404(s, raw, "Produktion nicht gefunden").id


@bp.get("/api/finance")
@require_permission("mitglieder.finanzen")
def finance_list():
    s = db_session()
    _user, _can_approve, scopes = _access()
    entries = list_entries(s, request.args.to_dict(), scopes)
    return jsonify({"entries": [serialize_entry(e) for e in entries], "allowedScopes": scopes})


@bp.post("/api/finance")
@require_permission("mitglieder.finanzen.manage")
def finance_create():
    s = db_session()
    payload = json_body()
    errors = validate_entry_payload(payload)
    if errors:
        return jsonify({"error": errors[0], "details": errors}), 400
    user, can_approve, scopes = _access()
    entry = create_entry(s, payload, user, can_approve=can_approve, scopes=scopes)
    s.commit()
    return jsonify({"entry": serialize_entry(entry)}), 201


@bp.get("/api/finance/<int:entry_id>")
@require_permission("mitglieder.finanzen")
def finance_detail(entry_id: int):
    s = db_session()
    _user, _can_approve, scopes = _access()
    return jsonify({"entry": serialize_entry(get_entry_or_404(s, entry_id, scopes))})


@bp.patch("/api/finance/<int:entry_id>")
@require_permission("mitglieder.finanzen")
def finance_update(entry_id: int):
    s = db_session()
    user, can_approve, scopes = _access()
    if not user_has_permission(user, "mitglieder.finanzen.manage") and not can_approve:
        return _forbidden()
    payload = json_body()
    errors = validate_entry_payload(payload, partial=True)
    if errors:
        return jsonify({"error": errors[0], "details": errors}), 400
    entry = get_entry_or_404(s, entry_id, scopes)
    update_entry(s, entry, payload, user, can_approve=can_approve, scopes=scopes)
    s.commit()
    return jsonify({"entry": serialize_entry(entry)})


@bp.delete("/api/finance/<int:entry_id>")
@require_permission("mitglieder.finanzen.manage")
def finance_delete(entry_id: int):
    s = db_session()
    user, _can_approve, scopes = _access()
    entry = get_entry_or_404(s, entry_id, scopes)
    delete_entry(s, entry, user)
    s.commit()
    return jsonify({"ok": True})


@bp.get("/api/finance/budgets")
@require_permission("mitglieder.finanzen")
def finance_budgets_list():
    s = db_session()
    show_id = _required_show_id(s)
    if show_id is None:
        return jsonify({"error": "Produktion erforderlich"}), 400
    _user, _can_approve, scopes = _access()
    return jsonify({"budgets": list_budgets(s, show_id, scopes)})


@bp.post("/api/finance/budgets")
@require_permission("mitglieder.finanzen.manage")
def finance_budgets_create():
    s = db_session()
    payload = json_body()
    errors = validate_budget_payload(payload)
    if errors:
        return jsonify({"error": errors[0], "details": errors}), 400
    budget = create_budget(s, payload, _current_user())
    s.commit()
    return jsonify({"budget": serialize_budget(budget)}), 201


@bp.patch("/api/finance/budgets/<int:budget_id>")
@require_permission("mitglieder.finanzen.manage")
def finance_budgets_update(budget_id: int):
    s = db_session()
    payload = json_body()
    errors = validate_budget_payload(payload, partial=True)
    if errors:
        return jsonify({"error": errors[0], "details": errors}), 400
    budget = get_budget_or_404(s, budget_id)
    update_budget(s, budget, payload, _current_user())
    s.commit()
    _user, _can_approve, scopes = _access()
    budgets = {b["id"]: b for b in list_budgets(s, budget.show_id, scopes)}
    return jsonify({"budget": budgets.get(budget.id) or serialize_budget(budget)})


@bp.delete("/api/finance/budgets/<int:budget_id>")
@require_permission("mitglieder.finanzen.manage")
def finance_budgets_delete(budget_id: int):
    s = db_session()
    budget = get_budget_or_404(s, budget_id)
    delete_budget(s, budget, _current_user())
    s.commit()
    return jsonify({"ok": True})


@bp.get("/api/finance/summary")
@require_permission("mitglieder.finanzen")
def finance_summary_view():
    s = db_session()
    show_id = _required_show_id(s)
    if show_id is None:
        return jsonify({"error": "Produktion erforderlich"}), 400
    _user, _can_approve, scopes = _access()
    return jsonify({"summary": finance_summary(s, show_id, scopes)})


@bp.get("/api/finance/export")
@require_permission("mitglieder.finanzen")
def finance_export():
    s = db_session()
    user, _can_approve, scopes = _access()
    if not user_has_permission(user, "mitglieder.finanzen.export"):
        g.missing_permission = "mitglieder.finanzen.export"
        return jsonify({"error": "Kein Zugriff"}), 403
    csv_text = generate_finance_csv(export_entries(s, request.args.to_dict(), scopes))
    return Response(
        csv_text,
        mimetype="text/csv",
        headers={
            "Content-Type": "text/csv; charset=utf-8",
            "Content-Disposition": f"attachment; filename={EXPORT_FILENAME}",
        },
    )
