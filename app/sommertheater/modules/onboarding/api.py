from __future__ import annotations

import json

from flask import Blueprint, current_app, g, jsonify, render_template, request

from app.sommertheater.auth import login_user
from app.sommertheater.db import db_session
from app.sommertheater.models import User
from app.sommertheater.modules.onboarding.service import (
    FOCUS_OPTIONS,
    GENDER_LABELS,
    calculate_invite_status,
    complete_onboarding,
    create_invite,
    find_invite_by_token,
    get_invite_or_404,
    invite_url,
    list_invites,
    onboarding_analytics,
    renew_invite,
    serialize_invite,
    start_redemption,
    update_invite,
)
from app.sommertheater.modules.dietary.service import DIETARY_STRICTNESS_LABELS, DIETARY_STYLE_LABELS
from app.sommertheater.modules.photo_consent.service import read_document_upload
from app.sommertheater.modules.productions.service import get_show_or_404, list_shows, serialize_show
from app.sommertheater.rbac import require_permission
from app.sommertheater.storage import storage_from_config
from app.sommertheater.utils import get_user_display_name, json_body

bp = Blueprint("onboarding", __name__)

INVITE_PERMISSIONS = ("mitglieder.einladungen", "mitglieder.rollenverwaltung")


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


# --- invite management -----------------------------------------------------------


@bp.get("/api/member-invites")
@require_permission(*INVITE_PERMISSIONS)
def invites_list():
    s = db_session()
    base_url = current_app.config["APP_BASE_URL"]
    return jsonify(
        {
            "invites": [serialize_invite(i, base_url=base_url) for i in list_invites(s)],
            "productions": [serialize_show(show) for show in list_shows(s)],
        }
    )


@bp.post("/api/member-invites")
@require_permission(*INVITE_PERMISSIONS)
def invites_create():
    s = db_session()
    invite, token = create_invite(s, json_body(), _current_user())
    s.commit()
    base_url = current_app.config["APP_BASE_URL"]
    body = serialize_invite(invite, base_url=base_url)
    body.update({"token": token, "inviteUrl": invite_url(base_url, token)})
    return jsonify({"invite": body}), 201


@bp.patch("/api/member-invites/<int:invite_id>")
@require_permission(*INVITE_PERMISSIONS)
def invites_update(invite_id: int):
    s = db_session()
    payload = json_body()
    invite = get_invite_or_404(s, invite_id)
    update_invite(s, invite, payload, _current_user())
    s.commit()
    return jsonify({"invite": serialize_invite(invite, base_url=current_app.config["APP_BASE_URL"])})


@bp.post("/api/member-invites/<int:invite_id>/renew")
@require_permission(*INVITE_PERMISSIONS)
def invites_renew(invite_id: int):
    s = db_session()
    payload = json_body()
    invite = get_invite_or_404(s, invite_id)
    renew_invite(s, invite, payload.get("days"), _current_user())
    s.commit()
    return jsonify({"invite": serialize_invite(invite, base_url=current_app.config["APP_BASE_URL"])})


# --- public onboarding -------------------------------------------------------------


@bp.get("/onboarding/<token>")
def onboarding_form(token: str):
    s = db_session()
    invite = find_invite_by_token(s, token)
    if invite is None:
        return render_template("onboarding/not_found.html"), 404
    status = calculate_invite_status(invite)
    if not status["isActive"]:
        return render_template("onboarding/invalid.html", invite=invite, status=status), 410

    redemption = start_redemption(s, invite)
    s.commit()
    return render_template(
        "onboarding/form.html",
        invite=invite,
        show=invite.show,
        session_token=redemption.session_token,
        focus_options=FOCUS_OPTIONS,
        gender_labels=GENDER_LABELS,
        dietary_style_labels=DIETARY_STYLE_LABELS,
        dietary_strictness_labels=DIETARY_STRICTNESS_LABELS,
    )


@bp.post("/api/onboarding/complete")
def onboarding_complete():
    if request.mimetype != "multipart/form-data":
        return jsonify({"error": "Erwartet multipart/form-data"}), 400
    raw = request.form.get("payload")
    try:
        payload = json.loads(raw) if raw else None
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        return jsonify({"error": "Ungültige Daten"}), 400

    document = read_document_upload(
        request.files.get("document"),
        type_message="Bitte nutze PDF oder Bilddateien (JPG/PNG)",
    )
    s = db_session()
    user = complete_onboarding(s, payload, document, storage_from_config(current_app.config))
    login_user(user)
    current_app.logger.info("Onboarding completed (user_id=%s request_id=%s)", user.id, g.request_id)
    return jsonify(
        {
            "ok": True,
            "userId": user.id,
            "user": {"id": user.id, "email": user.email, "name": get_user_display_name(user)},
        }
    )


@bp.get("/api/onboarding/analytics")
@require_permission("mitglieder.onboarding.analytics")
def onboarding_analytics_view():
    s = db_session()
    show_id = None
    if request.args.get("showId"):
        show_id = get_show_or_404(s, request.args.get("showId")).id
    return jsonify(onboarding_analytics(s, show_id=show_id))
