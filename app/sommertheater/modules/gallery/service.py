from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any

from app.sommertheater.audit import record_event
from app.sommertheater.errors import ForbiddenError, NotFoundError, ValidationError
from app.sommertheater.rbac import user_has_permission
from app.sommertheater.storage import Storage, StorageError, build_storage_key, digest
from app.sommertheater.utils import get_user_display_name, iso

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from werkzeug.datastructures import FileStorage

    from app.sommertheater.models import User
    from app.sommertheater.modules.gallery.models import GalleryItem

logger = logging.getLogger(__name__)

GALLERY_START_YEAR = 2009
MAX_GALLERY_FILES_PER_UPLOAD = 20
MAX_GALLERY_FILE_BYTES = 60 * 1024 * 1024
MAX_GALLERY_DESCRIPTION_LENGTH = 280
MAX_GALLERY_FILENAME_LENGTH = 180

ALLOWED_IMAGE_MIME_TYPES = frozenset({"image/jpeg", "image/png", "image/webp", "image/gif"})
ALLOWED_VIDEO_MIME_TYPES = frozenset({"video/mp4", "video/quicktime", "video/webm", "video/x-m4v"})

EXTENSION_MEDIA_KIND = {
    ".jpg": "image",
    ".jpeg": "image",
    ".png": "image",
    ".webp": "image",
    ".gif": "image",
    ".mp4": "video",
    ".mov": "video",
    ".m4v": "video",
    ".webm": "video",
}
EXTENSION_MIME_FALLBACK = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".m4v": "video/x-m4v",
    ".webm": "video/webm",
}

_CONTROL_RE = re.compile(r"[\r\n\t]+")
_UNSAFE_RE = re.compile(r"[^\w.()\-\s]+")


def _extension(name: str | None) -> str:
    lowered = (name or "").strip().lower()
    dot = lowered.rfind(".")
    return lowered[dot:] if dot != -1 else ""


def resolve_media_kind(mime_type: str | None, file_name: str | None = None) -> str | None:
    """'image' or 'video' from the MIME type, falling back to the file extension."""
    mime = (mime_type or "").strip().lower()
    if mime.startswith("image/"):
        return "image"
    if mime.startswith("video/"):
        return "video"
    return EXTENSION_MEDIA_KIND.get(_extension(file_name))


def sanitize_gallery_filename(name: str | None) -> str:
    trimmed = (name or "").strip()
    if not trimmed:
        return "datei"
    cleaned = _UNSAFE_RE.sub("_", _CONTROL_RE.sub("_", trimmed))
    return cleaned[:MAX_GALLERY_FILENAME_LENGTH] or "datei"


def infer_mime_type(file_name: str, kind: str, provided: str | None = None) -> str:
    if provided and provided.strip():
        return provided.strip()
    fallback = EXTENSION_MIME_FALLBACK.get(_extension(file_name))
    if fallback:
        return fallback
    return "image/jpeg" if kind == "image" else "video/mp4"


def _format_decimal(value: float, digits: int) -> str:
    text = f"{value:.{digits}f}"
    if digits and text.endswith("0"):
        text = text.rstrip("0").rstrip(".")
    return text.replace(".", ",")


def format_gallery_file_size(size: Any) -> str:
    """Human readable size with a German decimal comma (e.g. '1,5 MB')."""
    if isinstance(size, bool) or not isinstance(size, (int, float)) or size <= 0:
        return "0 B"
    units = ("B", "KB", "MB", "GB")
    value = float(size)
    idx = 0
    while value >= 1024 and idx < len(units) - 1:
        value /= 1024
        idx += 1
    digits = 0 if value >= 10 or idx == 0 else 1
    return f"{_format_decimal(value, digits)} {units[idx]}"


def gallery_year_range(start_year: int = GALLERY_START_YEAR, *, current_year: int | None = None) -> list[int]:
    current_year = current_year or date.today().year
    return list(range(current_year, start_year - 1, -1))


def is_valid_gallery_year(year: Any, *, current_year: int | None = None) -> bool:
    current_year = current_year or date.today().year
    return isinstance(year, int) and not isinstance(year, bool) and GALLERY_START_YEAR <= year <= current_year


def get_gallery_year_description(year: int, current_year: int) -> str:
    if year == current_year:
        return "Halte Proben, Premieren und Backstage-Momente der aktuellen Saison fest."
    if year == current_year - 1:
        return (
            "Schließe die Highlights der vergangenen Saison ab – "
            "von Ensemble-Porträts bis zu Pressebildern."
        )
    if year == GALLERY_START_YEAR:
        return (
            "Hier begann alles: Digitalisiere die ersten Aufführungen "
            "und Plakatmotive des Sommertheaters."
        )
    if year < 2013:
        return f"Vervollständige das frühe Archiv aus {year} mit gescannten Prints und Making-of-Fotos."
    if year >= current_year - 5:
        return f"Sammle Social-Media-Motive, Presse-Features und Bühnenbilder aus {year}."
    return (
        f"Füge weitere Erinnerungen aus {year} hinzu – "
        "Kostüme, Publikumsmomente und Probendokumentation."
    )


@dataclass(frozen=True)
class PendingUpload:
    data: bytes
    kind: str
    mime: str
    name: str
    description: str | None


def _normalize_description(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed[:MAX_GALLERY_DESCRIPTION_LENGTH] or None


def prepare_uploads(files: list["FileStorage"], descriptions: list[str]) -> list[PendingUpload]:
    """Validate a whole batch; any rejected file fails the upload with every reason joined."""
    batch = []
    for f in files:
        if f is None or not f.filename:
            continue
        data = f.read()
        if data:
            batch.append((f, data))

    if not batch:
        raise ValidationError("Bitte wähle mindestens eine Datei aus.")
    if len(batch) > MAX_GALLERY_FILES_PER_UPLOAD:
        raise ValidationError(
            f"Es können maximal {MAX_GALLERY_FILES_PER_UPLOAD} Dateien auf einmal hochgeladen werden."
        )

    errors: list[str] = []
    out: list[PendingUpload] = []
    for index, (f, data) in enumerate(batch):
        mime = (f.mimetype or "").strip().lower()
        if mime == "application/octet-stream":
            mime = ""
        kind = resolve_media_kind(mime, f.filename)
        if kind is None:
            errors.append(f"{f.filename}: Dateityp wird nicht unterstützt.")
            continue
        if len(data) > MAX_GALLERY_FILE_BYTES:
            errors.append(
                f"{f.filename}: Datei ist zu groß (maximal {MAX_GALLERY_FILE_BYTES // (1024 * 1024)} MB)."
            )
            continue
        if mime:
            if kind == "image" and mime not in ALLOWED_IMAGE_MIME_TYPES:
                errors.append(f"{f.filename}: Bildformat {mime} wird nicht unterstützt.")
                continue
            if kind == "video" and mime not in ALLOWED_VIDEO_MIME_TYPES:
                errors.append(f"{f.filename}: Videoformat {mime} wird nicht unterstützt.")
                continue
        name = sanitize_gallery_filename(f.filename)
        out.append(
            PendingUpload(
                data=data,
                kind=kind,
                mime=infer_mime_type(name, kind, mime),
                name=name,
                description=_normalize_description(descriptions[index] if index < len(descriptions) else None),
            )
        )
    if errors:
        raise ValidationError(" ".join(errors), details=errors)
    return out


def can_delete_item(user: "User | None", item: "GalleryItem") -> bool:
    if not user:
        return False
    return item.uploaded_by_user_id == user.id or user_has_permission(user, "mitglieder.galerie.upload")


def serialize_item(item: "GalleryItem", viewer: "User | None" = None) -> dict:
    uploader = item.uploaded_by
    return {
        "id": item.id,
        "year": item.year,
        "type": item.media_type,
        "fileName": item.file_name,
        "mimeType": item.mime_type,
        "fileSize": item.file_size,
        "fileSizeLabel": format_gallery_file_size(item.file_size),
        "description": item.description,
        "createdAt": iso(item.created_at),
        "uploadedBy": {
            "id": uploader.id if uploader else None,
            "name": get_user_display_name(uploader) if uploader else None,
            "email": uploader.email if uploader else None,
        },
        "downloadUrl": f"/api/gallery/items/{item.id}/file",
        "canDelete": can_delete_item(viewer, item),
    }


def list_items(s: "Session", year: int) -> list["GalleryItem"]:
    from app.sommertheater.modules.gallery.models import GalleryItem

    return (
        s.query(GalleryItem)
        .filter(GalleryItem.year == year)
        .order_by(GalleryItem.created_at.desc(), GalleryItem.id.desc())
        .all()
    )


def get_item_or_404(s: "Session", item_id: int) -> "GalleryItem":
    from app.sommertheater.modules.gallery.models import GalleryItem

    item = s.get(GalleryItem, item_id)
    if not item:
        raise NotFoundError("Datei nicht gefunden")
    return item


def create_items(
    s: "Session",
    year: int,
    uploads: list[PendingUpload],
    actor: "User",
    storage: Storage,
) -> list["GalleryItem"]:
    from app.sommertheater.modules.gallery.models import GalleryItem

    stored: list[str] = []
    items: list[GalleryItem] = []
    try:
        for up in uploads:
            key = build_storage_key(f"gallery/{year}", up.name, unique=digest(up.data)[:12])
            storage.put_bytes(key, up.data, content_type=up.mime)
            stored.append(key)
            item = GalleryItem(
                year=year,
                media_type=up.kind,
                file_name=up.name,
                mime_type=up.mime,
                file_size=len(up.data),
                storage_key=key,
                description=up.description,
                uploaded_by_user_id=actor.id,
            )
            s.add(item)
            items.append(item)
        s.flush()
    except Exception:
        for key in stored:
            try:
                storage.delete(key)
            except StorageError:
                logger.warning("Could not remove orphaned gallery object %s", key)
        raise

    record_event(
        s,
        actor=actor,
        action="gallery.upload",
        entity_type="GalleryItem",
        metadata={"year": year, "items": [i.id for i in items], "count": len(items)},
    )
    return items


def delete_item(s: "Session", item: "GalleryItem", actor: "User", storage: Storage) -> None:
    if not can_delete_item(actor, item):
        raise ForbiddenError("Keine Berechtigung")
    key = item.storage_key
    record_event(
        s,
        actor=actor,
        action="gallery.delete",
        entity_type="GalleryItem",
        entity_id=str(item.id),
        metadata={"year": item.year, "fileName": item.file_name},
    )
    s.delete(item)
    s.flush()
    try:
        storage.delete(key)
    except StorageError:
        logger.warning("Gallery object already missing in storage (key=%s)", key)
