from __future__ import annotations

from flask import Blueprint, abort, current_app, g, jsonify, request, send_file

from app.sommertheater.audit import record_event
from app.sommertheater.db import db_session
from app.sommertheater.models import User
from app.sommertheater.modules.photo_consent.service import (
    apply_consent_action,
    get_consent_for_user,
    get_consent_or_404,
    list_consents,
    read_document_upload,
    serialize_consent_admin,
    submit_consent,
    summarize,
)
from app.sommertheater.rbac import require_login, require_permission
from app.sommertheater.storage import StorageError, storage_from_config
from app.sommertheater.utils import json_body, parse_bool

bp = Blueprint("photo_consent", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/api/photo-consent")
@require_login
def photo_consent_get():
    s = db_session()
    user = _current_user()
    return jsonify({"consent": summarize(user, get_consent_for_user(s, user.id))})


@bp.post("/api/photo-consent")
@require_login
def photo_consent_submit():
    s = db_session()
    user = _current_user()
    if request.mimetype == "multipart/form-data":
        confirm = parse_bool(request.form.get("confirm"))
        document = read_document_upload(request.files.get("document"))
    else:
        confirm = parse_bool(json_body().get("confirm"))
        document = None

    consent = submit_consent(
        s,
        user,
        confirm=bool(confirm),
        document=document,
        storage=storage_from_config(current_app.config),
    )
    s.commit()
    return jsonify({"consent": summarize(user, consent)})


@bp.get("/api/photo-consents")
@require_permission("mitglieder.fotoerlaubnisse")
def photo_consents_list():
    s = db_session()
    status = (request.args.get("status") or "").strip() or None
    return jsonify({"consents": [serialize_consent_admin(c) for c in list_consents(s, status=status)]})


@bp.post("/api/photo-consents/action")
@require_permission("mitglieder.fotoerlaubnisse")
def photo_consents_action():
    s = db_session()
    consent = apply_consent_action(s, json_body(), _current_user())
    s.commit()
    return jsonify({"consent": serialize_consent_admin(consent)})


@bp.get("/api/photo-consents/<int:consent_id>/document")
@require_permission("mitglieder.fotoerlaubnisse")
def photo_consents_document(consent_id: int):
    s = db_session()
    consent = get_consent_or_404(s, consent_id)
    if not consent.document_key:
        abort(404)

    storage = storage_from_config(current_app.config)
    try:
        fobj = storage.open(consent.document_key)
    except StorageError:
        current_app.logger.warning("Photo consent document missing in storage (consent_id=%s)", consent.id)
        abort(404)

    record_event(
        s,
        actor=_current_user(),
        action="photo_consent.document_download",
        entity_type="PhotoConsent",
        entity_id=str(consent.id),
        metadata={"filename": consent.document_name},
    )
    s.commit()

    inline = request.args.get("mode") == "inline"
    return send_file(
        fobj,
        mimetype=consent.document_mime or "application/octet-stream",
        as_attachment=not inline,
        download_name=consent.document_name or "einverstaendnis.pdf",
        max_age=0,
    )
