from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from app.sommertheater.audit import record_event
from app.sommertheater.db import atomic
from app.sommertheater.errors import NotFoundError, ValidationError
from app.sommertheater.storage import Storage, build_storage_key, digest
from app.sommertheater.utils import calculate_age, get_user_display_name, iso, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from werkzeug.datastructures import FileStorage

    from app.sommertheater.models import User
    from app.sommertheater.modules.photo_consent.models import PhotoConsent

MAX_DOCUMENT_BYTES = 8 * 1024 * 1024
ALLOWED_DOCUMENT_TYPES = frozenset({"application/pdf", "image/jpeg", "image/png", "image/jpg"})
CONSENT_STATUSES = ("pending", "approved", "rejected")
CONSENT_ACTIONS = ("approve", "reject", "reset")

_UNSAFE_FILENAME_RE = re.compile(r"[^\w. -]+")


@dataclass(frozen=True)
class UploadedDocument:
    data: bytes
    mime: str
    name: str

    @property
    def size(self) -> int:
        return len(self.data)


def sanitize_document_filename(name: str | None) -> str:
    trimmed = (name or "").strip()
    if not trimmed:
        return "einverstaendnis.pdf"
    return _UNSAFE_FILENAME_RE.sub("_", trimmed)


def read_document_upload(
    f: "FileStorage | None",
    *,
    type_message: str = "Erlaubt sind PDF oder Bilddateien (JPG, PNG)",
) -> UploadedDocument | None:
    """Signed consent form from a multipart field; None when no file was sent."""
    if f is None or not f.filename:
        return None
    data = f.read()
    if not data:
        return None
    if len(data) > MAX_DOCUMENT_BYTES:
        raise ValidationError("Dokument darf maximal 8 MB groß sein")
    mime = (f.mimetype or "").strip().lower()
    if mime and mime not in ALLOWED_DOCUMENT_TYPES:
        raise ValidationError(type_message)
    return UploadedDocument(
        data=data,
        mime=mime or "application/octet-stream",
        name=sanitize_document_filename(f.filename),
    )


def store_document(storage: Storage, user_id: int, doc: UploadedDocument) -> str:
    key = build_storage_key(f"photo-consents/{user_id}", doc.name, unique=digest(doc.data)[:12])
    storage.put_bytes(key, doc.data, content_type=doc.mime)
    return key


def attach_document(consent: "PhotoConsent", key: str, doc: UploadedDocument) -> None:
    consent.document_key = key
    consent.document_name = doc.name
    consent.document_mime = doc.mime
    consent.document_size = doc.size
    consent.document_uploaded_at = datetime.utcnow()


def summarize(user: "User", consent: "PhotoConsent | None") -> dict:
    age = calculate_age(user.date_of_birth)
    return {
        "status": consent.status if consent else "none",
        "requiresDocument": age is not None and age < 18,
        "requiresDateOfBirth": user.date_of_birth is None,
        "hasDocument": bool(consent and consent.document_uploaded_at),
        "age": age,
        "dateOfBirth": iso(user.date_of_birth),
        "submittedAt": iso(consent.created_at) if consent else None,
        "updatedAt": iso(consent.updated_at) if consent else None,
        "approvedAt": iso(consent.approved_at) if consent else None,
        "approvedByName": get_user_display_name(consent.approved_by) if consent and consent.approved_by else None,
        "rejectionReason": consent.rejection_reason if consent else None,
        "documentName": consent.document_name if consent else None,
        "documentUploadedAt": iso(consent.document_uploaded_at) if consent else None,
    }


def get_consent_for_user(s: "Session", user_id: int) -> "PhotoConsent | None":
    from app.sommertheater.modules.photo_consent.models import PhotoConsent

    return s.query(PhotoConsent).filter(PhotoConsent.user_id == user_id).one_or_none()


def get_consent_or_404(s: "Session", consent_id: Any) -> "PhotoConsent":
    from app.sommertheater.modules.photo_consent.models import PhotoConsent

    cid = parse_int(consent_id)
    consent = s.get(PhotoConsent, cid) if cid is not None else None
    if not consent:
        raise NotFoundError("Eintrag nicht gefunden")
    return consent


def submit_consent(
    s: "Session",
    user: "User",
    *,
    confirm: bool,
    document: UploadedDocument | None,
    storage: Storage,
) -> "PhotoConsent":
    """Self-service submission; always (re)enters the pending state."""
    from app.sommertheater.modules.photo_consent.models import PhotoConsent

    if not confirm:
        raise ValidationError("Bitte bestätige dein Einverständnis")
    if user.date_of_birth is None:
        raise ValidationError(
            "Bitte hinterlege zuerst dein Geburtsdatum im Profil",
            details={"requiresDateOfBirth": True},
        )

    consent = get_consent_for_user(s, user.id)
    age = calculate_age(user.date_of_birth)
    has_existing_document = bool(consent and consent.document_uploaded_at)
    if age is not None and age < 18 and document is None and not has_existing_document:
        raise ValidationError("Bitte lade die unterschriebene Einverständniserklärung hoch")

    created = consent is None
    previous_key = consent.document_key if consent else None
    stored_key = None
    try:
        with atomic(s):
            if consent is None:
                consent = PhotoConsent(user_id=user.id)
                s.add(consent)

            consent.status = "pending"
            consent.consent_given = True
            consent.approved_at = None
            consent.approved_by_user_id = None
            consent.rejection_reason = None
            if document is not None:
                stored_key = store_document(storage, user.id, document)
                attach_document(consent, stored_key, document)
            s.flush()

            record_event(
                s,
                actor=user,
                action="photo_consent.submit",
                entity_type="PhotoConsent",
                entity_id=str(consent.id),
                metadata={"created": created, "document": document.name if document else None},
            )
    except Exception:
        # same content maps to the same key, which the stored row still references
        if stored_key and stored_key != previous_key:
            storage.delete(stored_key)
        raise
    return consent


def list_consents(s: "Session", *, status: str | None = None) -> list["PhotoConsent"]:
    from app.sommertheater.modules.photo_consent.models import PhotoConsent

    q = s.query(PhotoConsent)
    if status in CONSENT_STATUSES:
        q = q.filter(PhotoConsent.status == status)
    return q.order_by(PhotoConsent.updated_at.desc(), PhotoConsent.id.desc()).all()


def serialize_consent_admin(consent: "PhotoConsent") -> dict:
    user = consent.user
    age = calculate_age(user.date_of_birth) if user else None
    return {
        "id": consent.id,
        "userId": consent.user_id,
        "name": get_user_display_name(user),
        "email": user.email if user else None,
        "status": consent.status,
        "consentGiven": consent.consent_given,
        "age": age,
        "requiresDocument": age is not None and age < 18,
        "hasDocument": consent.document_uploaded_at is not None,
        "documentName": consent.document_name,
        "documentMime": consent.document_mime,
        "documentUploadedAt": iso(consent.document_uploaded_at),
        "approvedAt": iso(consent.approved_at),
        "approvedByName": get_user_display_name(consent.approved_by) if consent.approved_by else None,
        "rejectionReason": consent.rejection_reason,
        "updatedAt": iso(consent.updated_at),
    }


def apply_consent_action(s: "Session", payload: dict, actor: "User") -> "PhotoConsent":
    raw_id = payload.get("id")
    if raw_id in (None, ""):
        raise ValidationError("Fehlende ID")
    action = str(payload.get("action") or "").strip()
    if action not in CONSENT_ACTIONS:
        raise ValidationError("Unbekannte Aktion")
    reason = str(payload.get("reason") or "").strip()
    if action == "reject" and not reason:
        raise ValidationError("Bitte gib einen Ablehnungsgrund an")

    consent = get_consent_or_404(s, raw_id)
    old_status = consent.status
    if action == "approve":
        consent.status = "approved"
        consent.approved_at = datetime.utcnow()
        consent.approved_by_user_id = actor.id
        consent.rejection_reason = None
    elif action == "reject":
        consent.status = "rejected"
        consent.approved_at = None
        consent.approved_by_user_id = None
        consent.rejection_reason = reason
    else:
        consent.status = "pending"
        consent.approved_at = None
        consent.approved_by_user_id = None
        consent.rejection_reason = None

    record_event(
        s,
        actor=actor,
        action=f"photo_consent.{action}",
        entity_type="PhotoConsent",
        entity_id=str(consent.id),
        reason=reason or None,
        metadata={"changes": {"status": {"old": old_status, "new": consent.status}}},
    )
    return consent
