from __future__ import annotations

from flask import Blueprint, abort, g, jsonify, render_template

from app.sommertheater.db import db_session
from app.sommertheater.models import User
from app.sommertheater.modules.productions.models import Show
from app.sommertheater.modules.productions.service import (
    chronik_item,
    create_show,
    get_show_or_404,
    list_revealed_shows,
    list_shows,
    serialize_show,
    update_show_dates,
    validate_show_payload,
)
from app.sommertheater.rbac import require_login, require_permission
from app.sommertheater.utils import json_body

bp = Blueprint("productions", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/api/shows")
@require_login
def shows_list():
    s = db_session()
    return jsonify({"shows": [serialize_show(show) for show in list_shows(s)]})


@bp.post("/api/shows")
@require_permission("mitglieder.produktionen")
def shows_create():
    s = db_session()
    payload = json_body()
    errors = validate_show_payload(payload)
    if errors:
        return jsonify({"error": errors[0], "details": errors}), 400
    show = create_show(s, payload, _current_user())
    s.commit()
    return jsonify({"show": serialize_show(show)}), 201


@bp.put("/api/chronik/shows/<int:show_id>/dates")
@require_permission("mitglieder.website.chronik")
def chronik_dates_update(show_id: int):
    s = db_session()
    payload = json_body()
    show = get_show_or_404(s, show_id, "Chronik-Eintrag wurde nicht gefunden.")
    update_show_dates(s, show, payload.get("dates"), _current_user())
    s.commit()
    return jsonify({"show": {"id": show.id, "dates": show.dates}})


# --- public Chronik ------------------------------------------------------------


@bp.get("/chronik")
def chronik_list():
    s = db_session()
    items = [chronik_item(show) for show in list_revealed_shows(s)]
    return render_template("public/chronik_list.html", items=items)


@bp.get("/chronik/<int:show_id>")
def chronik_detail(show_id: int):
    s = db_session()
    show = s.get(Show, show_id)
    if not show or show.revealed_at is None:
        abort(404)
    return render_template("public/chronik_detail.html", item=chronik_item(show))
