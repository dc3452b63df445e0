import io
from datetime import date

import pytest

from app.sommertheater.db import session_scope
from app.sommertheater.models import AuditEvent
from app.sommertheater.modules.photo_consent.models import PhotoConsent
from app.sommertheater.modules.photo_consent.service import sanitize_document_filename


def _minor_dob() -> date:
    return date(date.today().year - 15, 1, 1)


def _upload(c, confirm="true", document=None):
    data = {"confirm": confirm}
    if document is not None:
        data["document"] = document
    return c.post("/api/photo-consent", data=data, content_type="multipart/form-data")


def test_status_without_consent(login_as):
    c, _ = login_as("mia@example.com", date_of_birth=date(1999, 3, 3))
    r = c.get("/api/photo-consent")
    assert r.status_code == 200
    consent = r.json["consent"]
    assert consent["status"] == "none"
    assert consent["requiresDocument"] is False
    assert consent["requiresDateOfBirth"] is False


def test_submit_requires_confirmation_and_birthdate(login_as):
    c, _ = login_as("mia@example.com")
    r = c.post("/api/photo-consent", json={"confirm": False})
    assert r.status_code == 400
    assert r.json["error"] == "Bitte bestätige dein Einverständnis"

    r = c.post("/api/photo-consent", json={"confirm": True})
    assert r.status_code == 400
    assert r.json["details"] == {"requiresDateOfBirth": True}


def test_adult_submit_without_document(app, login_as):
    c, uid = login_as("mia@example.com", date_of_birth=date(1999, 3, 3))
    r = c.post("/api/photo-consent", json={"confirm": True})
    assert r.status_code == 200
    assert r.json["consent"]["status"] == "pending"
    assert r.json["consent"]["hasDocument"] is False
    with session_scope(app) as s:
        assert s.query(PhotoConsent).filter_by(user_id=uid).one().consent_given is True


def test_minor_needs_document(login_as):
    c, _ = login_as("kid@example.com", date_of_birth=_minor_dob())
    r = _upload(c)
    assert r.status_code == 400
    assert "Einverständniserklärung" in r.json["error"]

    r = _upload(c, document=(io.BytesIO(b"GIF89a"), "bild.gif", "image/gif"))
    assert r.status_code == 400

    r = _upload(c, document=(io.BytesIO(b"%PDF-1.4"), "Einverständnis Eltern.pdf", "application/pdf"))
    assert r.status_code == 200
    assert r.json["consent"]["hasDocument"] is True
    assert r.json["consent"]["requiresDocument"] is True

    # the stored document satisfies later resubmissions
    r = _upload(c)
    assert r.status_code == 200


def test_review_actions_and_document_download(app, login_as):
    kid, kid_id = login_as("kid@example.com", date_of_birth=_minor_dob())
    _upload(kid, document=(io.BytesIO(b"%PDF-1.4 unterschrieben"), "form.pdf", "application/pdf"))

    board, _ = login_as("vorstand@example.com", ("board",))
    r = board.get("/api/photo-consents?status=pending")
    assert r.status_code == 200
    [row] = r.json["consents"]
    assert row["userId"] == kid_id
    assert row["hasDocument"] is True

    r = board.post("/api/photo-consents/action", json={"id": row["id"], "action": "reject"})
    assert r.status_code == 400
    assert r.json["error"] == "Bitte gib einen Ablehnungsgrund an"

    r = board.post("/api/photo-consents/action", json={"id": row["id"], "action": "reject", "reason": "Unterschrift fehlt"})
    assert r.json["consent"]["status"] == "rejected"
    assert r.json["consent"]["rejectionReason"] == "Unterschrift fehlt"

    r = board.post("/api/photo-consents/action", json={"id": row["id"], "action": "approve"})
    assert r.json["consent"]["status"] == "approved"
    assert r.json["consent"]["rejectionReason"] is None
    assert r.json["consent"]["approvedByName"]

    r = board.post("/api/photo-consents/action", json={"id": row["id"], "action": "archive"})
    assert r.status_code == 400

    r = board.get(f"/api/photo-consents/{row['id']}/document")
    assert r.status_code == 200
    assert r.data == b"%PDF-1.4 unterschrieben"
    assert r.headers["Content-Type"] == "application/pdf"
    assert "attachment" in r.headers["Content-Disposition"]

    with session_scope(app) as s:
        actions = [e.action for e in s.query(AuditEvent).order_by(AuditEvent.id).all()]
    assert "photo_consent.reject" in actions
    assert "photo_consent.approve" in actions
    assert "photo_consent.document_download" in actions

    # resubmission resets the review
    r = _upload(kid)
    assert r.json["consent"]["status"] == "pending"
    assert r.json["consent"]["approvedAt"] is None


def test_review_requires_permission(login_as):
    c, _ = login_as("mia@example.com")
    assert c.get("/api/photo-consents").status_code == 403
    assert c.post("/api/photo-consents/action", json={"id": 1, "action": "approve"}).status_code == 403


def test_unknown_consent_returns_404(login_as):
    board, _ = login_as("vorstand@example.com", ("board",))
    r = board.post("/api/photo-consents/action", json={"id": 999, "action": "approve"})
    assert r.status_code == 404
    assert board.get("/api/photo-consents/999/document").status_code == 404


def test_sanitize_document_filename():
    assert sanitize_document_filename("  ") == "einverstaendnis.pdf"
    assert sanitize_document_filename("a/b\\c.pdf") == "a_b_c.pdf"
    assert sanitize_document_filename("Einverständnis.pdf") == "Einverständnis.pdf"


def test_failed_submission_removes_new_document(app, make_user, monkeypatch, tmp_path):
    from app.sommertheater.models import User
    from app.sommertheater.modules.photo_consent import service
    from app.sommertheater.storage import LocalStorage

    uid = make_user("mia@example.com", date_of_birth=_minor_dob())
    storage = LocalStorage(root=tmp_path / "docs")
    first = service.UploadedDocument(data=b"%PDF-1.4 v1", mime="application/pdf", name="v1.pdf")
    second = service.UploadedDocument(data=b"%PDF-1.4 v2", mime="application/pdf", name="v2.pdf")

    with session_scope(app) as s:
        consent = service.submit_consent(s, s.get(User, uid), confirm=True, document=first, storage=storage)
        first_key = consent.document_key

    def _broken_audit(*args, **kwargs):
        raise RuntimeError("audit offline")

    monkeypatch.setattr(service, "record_event", _broken_audit)
    with session_scope(app) as s:
        user = s.get(User, uid)
        with pytest.raises(RuntimeError):
            service.submit_consent(s, user, confirm=True, document=second, storage=storage)
        # identical content reuses the key the row still points at
        with pytest.raises(RuntimeError):
            service.submit_consent(s, user, confirm=True, document=first, storage=storage)

    stored = sorted(p.name for p in (tmp_path / "docs").rglob("*") if p.is_file())
    assert len(stored) == 1
    assert storage.exists(first_key)
    with session_scope(app) as s:
        consent = s.query(PhotoConsent).filter_by(user_id=uid).one()
        assert consent.document_key == first_key
        assert consent.document_name == "v1.pdf"
