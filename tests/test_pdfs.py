from datetime import datetime

import pytest

from app.sommertheater.db import session_scope
from app.sommertheater.models import AuditEvent
from app.sommertheater.modules.pdfs.api import sanitize_pdf_filename
from app.sommertheater.modules.pdfs.engine import PdfTemplateNotFoundError, PdfValidationError, render_pdf
from app.sommertheater.modules.pdfs.onboarding_invite import (
    detail_entries,
    filename,
    format_date_long,
    format_link_for_display,
    validate,
)

LINK = "https://mitglieder.example.org/onboarding/abc123"


def test_validate_collects_issues():
    with pytest.raises(PdfValidationError) as exc:
        validate({"link": "mitglieder.example.org", "maxUses": 0, "roles": ["wizard"], "note": "x" * 401})
    assert [i["path"] for i in exc.value.issues] == [["link"], ["note"], ["maxUses"], ["roles"]]

    with pytest.raises(PdfValidationError):
        validate(["kein", "objekt"])


def test_validate_cleans_input():
    clean = validate({"link": f" {LINK} ", "headline": "  ", "roles": ["cast", "cast", "tech"], "maxUses": 5})
    assert clean["link"] == LINK
    assert clean["headline"] is None
    assert clean["roles"] == ["cast", "tech"]
    assert clean["maxUses"] == 5
    assert clean["expiresAt"] is None


def test_filename_and_formatting():
    assert filename({"inviteLabel": "Sommer Ensemble Größe"}) == "onboarding-sommer-ensemble-groesse.pdf"
    assert filename({}) == "onboarding-link.pdf"
    assert format_link_for_display("https://www.example.org/") == "example.org"
    assert format_link_for_display("https://example.org/a/b/?x=1") == "example.org/a/b?x=1"
    assert format_date_long(datetime(2026, 3, 7)) == "7. März 2026"


def test_detail_entries():
    data = {"inviteLabel": "Sommer 2026", "maxUses": 3, "roles": ["cast", "tech"], "expiresAt": datetime(2026, 7, 1)}
    assert detail_entries(data, "Sommer 2026") == [
        ("Gültig bis", "1. Juli 2026"),
        ("Maximale Nutzungen", "3"),
        ("Vorausgewählte Rollen", "Ensemble, Technik"),
    ]


def test_render_pdf_bytes():
    result = render_pdf("onboarding-invite", {"link": LINK, "inviteLabel": "Sommer 2026", "note": "Bis bald!"})
    assert result.content.startswith(b"%PDF")
    assert result.filename == "onboarding-sommer-2026.pdf"

    with pytest.raises(PdfTemplateNotFoundError):
        render_pdf("plakat", {})


def test_sanitize_pdf_filename():
    assert sanitize_pdf_filename(None) == "download.pdf"
    assert sanitize_pdf_filename('ein"la\\dung') == "einladung.pdf"
    assert sanitize_pdf_filename("poster.PDF") == "poster.PDF"


def test_pdf_api(app, login_as):
    member, _ = login_as("mia@example.com")
    assert member.get("/api/pdfs").status_code == 403

    board, _ = login_as("vorstand@example.com", ("board",))
    templates = board.get("/api/pdfs").json["templates"]
    assert [t["id"] for t in templates] == ["onboarding-invite"]

    r = board.post("/api/pdfs/onboarding-invite", json={"link": LINK, "inviteLabel": "Sommer 2026", "roles": ["cast"]})
    assert r.status_code == 200
    assert r.mimetype == "application/pdf"
    assert r.headers["Cache-Control"] == "no-store"
    assert "onboarding-sommer-2026.pdf" in r.headers["Content-Disposition"]
    assert r.data.startswith(b"%PDF")

    r = board.post("/api/pdfs/onboarding-invite", json={"link": "ftp://example.org"})
    assert r.status_code == 400
    assert r.json["issues"][0]["path"] == ["link"]

    assert board.post("/api/pdfs/plakat", json={"link": LINK}).status_code == 404
    assert board.post("/api/pdfs/onboarding-invite", data="kein json", content_type="text/plain").status_code == 400

    with session_scope(app) as s:
        events = s.query(AuditEvent).filter(AuditEvent.action == "pdf.render").all()
        assert [e.entity_id for e in events] == ["onboarding-invite"]
