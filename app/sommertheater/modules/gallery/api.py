from __future__ import annotations

from datetime import date

from flask import Blueprint, abort, current_app, g, jsonify, request, send_file

from app.sommertheater.db import db_session
from app.sommertheater.models import User
from app.sommertheater.modules.gallery.service import (
    create_items,
    delete_item,
    gallery_year_range,
    get_gallery_year_description,
    get_item_or_404,
    is_valid_gallery_year,
    list_items,
    prepare_uploads,
    serialize_item,
)
from app.sommertheater.rbac import require_permission
from app.sommertheater.storage import StorageError, storage_from_config
from app.sommertheater.utils import parse_int

bp = Blueprint("gallery", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _year_or_none(raw: str) -> int | None:
    year = parse_int(raw) if raw.strip().isdigit() else None
    return year if year is not None and is_valid_gallery_year(year) else None


@bp.get("/api/gallery")
@require_permission("mitglieder.galerie")
def gallery_years():
    current = date.today().year
    return jsonify(
        {
            "years": [
                {"year": y, "description": get_gallery_year_description(y, current)}
                for y in gallery_year_range(current_year=current)
            ]
        }
    )


@bp.get("/api/gallery/<year>")
@require_permission("mitglieder.galerie")
def gallery_list(year: str):
    parsed = _year_or_none(year)
    if parsed is None:
        return jsonify({"error": "Ungültiges Jahr"}), 400
    s = db_session()
    viewer = _current_user()
    return jsonify(
        {
            "year": parsed,
            "description": get_gallery_year_description(parsed, date.today().year),
            "items": [serialize_item(i, viewer) for i in list_items(s, parsed)],
        }
    )


@bp.post("/api/gallery/<year>")
@require_permission("mitglieder.galerie.upload")
def gallery_upload(year: str):
    parsed = _year_or_none(year)
    if parsed is None:
        return jsonify({"error": "Ungültiges Jahr"}), 400
    uploads = prepare_uploads(request.files.getlist("files"), request.form.getlist("descriptions"))

    s = db_session()
    user = _current_user()
    items = create_items(s, parsed, uploads, user, storage_from_config(current_app.config))
    s.commit()
    current_app.logger.info("Gallery upload: %s item(s) for %s (user_id=%s)", len(items), parsed, user.id)
    return jsonify({"items": [serialize_item(i, user) for i in items]}), 201


@bp.get("/api/gallery/items/<int:item_id>/file")
@require_permission("mitglieder.galerie")
def gallery_file(item_id: int):
    s = db_session()
    item = get_item_or_404(s, item_id)
    try:
        fobj = storage_from_config(current_app.config).open(item.storage_key)
    except StorageError:
        current_app.logger.warning("Gallery object missing in storage (item_id=%s)", item.id)
        abort(404)
    return send_file(
        fobj,
        mimetype=item.mime_type,
        as_attachment=False,
        download_name=item.file_name,
        max_age=0,
        last_modified=item.updated_at or item.created_at,
    )


@bp.delete("/api/gallery/items/<int:item_id>")
@require_permission("mitglieder.galerie")
def gallery_delete(item_id: int):
    s = db_session()
    item = get_item_or_404(s, item_id)
    delete_item(s, item, _current_user(), storage_from_config(current_app.config))
    s.commit()
    return jsonify({"ok": True})
