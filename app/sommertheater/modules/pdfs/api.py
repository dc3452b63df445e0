from __future__ import annotations

import io
import re

from flask import Blueprint, current_app, g, jsonify, request, send_file

from app.sommertheater.audit import record_event
from app.sommertheater.db import db_session
from app.sommertheater.modules.pdfs.engine import (
    PdfRenderError,
    PdfTemplateNotFoundError,
    PdfValidationError,
    list_templates,
    render_pdf,
)
from app.sommertheater.rbac import require_permission

bp = Blueprint("pdfs", __name__)

_UNSAFE_FILENAME_RE = re.compile(r'[\r\n"\\]')


def sanitize_pdf_filename(filename: str | None) -> str:
    cleaned = _UNSAFE_FILENAME_RE.sub("", filename or "").strip()
    if not cleaned:
        return "download.pdf"
    if not cleaned.lower().endswith(".pdf"):
        return f"{cleaned}.pdf"
    return cleaned


@bp.get("/api/pdfs")
@require_permission("mitglieder.einladungen")
def pdf_templates():
    return jsonify({"templates": list_templates()})


@bp.post("/api/pdfs/<template_id>")
@require_permission("mitglieder.einladungen")
def pdf_render(template_id: str):
    payload = request.get_json(silent=True)
    if payload is None:
        return jsonify({"error": "Ungültige JSON-Daten"}), 400
    if isinstance(payload, dict):
        payload.pop("csrf_token", None)

    try:
        result = render_pdf(template_id, payload)
    except PdfTemplateNotFoundError:
        return jsonify({"error": "Unbekannte PDF-Vorlage"}), 404
    except PdfValidationError as e:
        return jsonify({"error": "Ungültige Daten", "issues": e.issues}), 400
    except PdfRenderError as e:
        current_app.logger.error("PDF render failed (template=%s request_id=%s): %s", e.template_id, g.request_id, e.original)
        return jsonify({"error": "PDF konnte nicht erstellt werden."}), 500

    s = db_session()
    record_event(
        s,
        actor=g.current_user,
        action="pdf.render",
        entity_type="PdfTemplate",
        entity_id=result.template_id,
        metadata={"filename": result.filename},
    )
    s.commit()

    resp = send_file(
        io.BytesIO(result.content),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=sanitize_pdf_filename(result.filename),
        max_age=0,
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp
