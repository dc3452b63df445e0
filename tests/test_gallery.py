import io
from datetime import date

from app.sommertheater.db import session_scope
from app.sommertheater.models import AuditEvent
from app.sommertheater.modules.gallery.models import GalleryItem
from app.sommertheater.modules.gallery.service import (
    format_gallery_file_size,
    gallery_year_range,
    get_gallery_year_description,
    infer_mime_type,
    is_valid_gallery_year,
    resolve_media_kind,
    sanitize_gallery_filename,
)

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


def _upload(c, year, files, descriptions=()):
    data = {
        "files": [(io.BytesIO(body), name, mime) for name, body, mime in files],
        "descriptions": list(descriptions),
    }
    return c.post(f"/api/gallery/{year}", data=data, content_type="multipart/form-data")


def test_helpers():
    assert resolve_media_kind("image/png") == "image"
    assert resolve_media_kind("", "clip.MOV") == "video"
    assert resolve_media_kind("application/pdf", "flyer.pdf") is None
    assert sanitize_gallery_filename("  ") == "datei"
    assert sanitize_gallery_filename("Probe\n1?.jpg") == "Probe_1_.jpg"
    assert infer_mime_type("clip.m4v", "video") == "video/x-m4v"
    assert infer_mime_type("ohne", "image") == "image/jpeg"
    assert format_gallery_file_size(0) == "0 B"
    assert format_gallery_file_size(512) == "512 B"
    assert format_gallery_file_size(1536) == "1,5 KB"
    assert format_gallery_file_size(20 * 1024 * 1024) == "20 MB"


def test_year_range_and_descriptions():
    assert gallery_year_range(current_year=2011) == [2011, 2010, 2009]
    assert is_valid_gallery_year(2009, current_year=2025)
    assert not is_valid_gallery_year(2008, current_year=2025)
    assert not is_valid_gallery_year(True, current_year=2025)
    assert get_gallery_year_description(2025, 2025).startswith("Halte Proben")
    assert "Hier begann alles" in get_gallery_year_description(2009, 2025)
    assert "2011" in get_gallery_year_description(2011, 2025)


def test_years_listing(login_as):
    c, _ = login_as("mia@example.com")
    years = c.get("/api/gallery").json["years"]
    assert years[0]["year"] == date.today().year
    assert years[-1]["year"] == 2009


def test_member_cannot_upload(login_as):
    c, _ = login_as("mia@example.com")
    r = _upload(c, 2020, [("bild.png", PNG, "image/png")])
    assert r.status_code == 403


def test_upload_list_download_delete(app, login_as):
    tech, tech_id = login_as("technik@example.com", ("tech",), first_name="Tom", last_name="Licht")
    r = _upload(
        tech,
        2020,
        [("bühne.png", PNG, "image/png"), ("clip.mp4", b"\x00\x00\x00\x18ftypmp42", "video/mp4")],
        descriptions=[" Generalprobe ", ""],
    )
    assert r.status_code == 201
    items = r.json["items"]
    assert [i["type"] for i in items] == ["image", "video"]
    assert items[0]["description"] == "Generalprobe"
    assert items[1]["description"] is None
    assert items[0]["uploadedBy"]["name"] == "Tom Licht"
    assert items[0]["canDelete"] is True

    member, _ = login_as("mia@example.com")
    listing = member.get("/api/gallery/2020").json
    assert {i["fileName"] for i in listing["items"]} == {"bühne.png", "clip.mp4"}
    assert all(i["canDelete"] is False for i in listing["items"])

    image_id = items[0]["id"]
    r = member.get(f"/api/gallery/items/{image_id}/file")
    assert r.status_code == 200
    assert r.mimetype == "image/png"
    assert r.data == PNG

    assert member.delete(f"/api/gallery/items/{image_id}").status_code == 403
    assert tech.delete(f"/api/gallery/items/{image_id}").json == {"ok": True}
    assert member.get(f"/api/gallery/items/{image_id}/file").status_code == 404

    with session_scope(app) as s:
        assert s.query(GalleryItem).count() == 1
        actions = [e.action for e in s.query(AuditEvent).order_by(AuditEvent.id).all()]
    assert actions.count("gallery.upload") == 1
    assert actions.count("gallery.delete") == 1


def test_upload_rejects_whole_batch(app, login_as):
    tech, _ = login_as("technik@example.com", ("tech",))
    r = _upload(
        tech,
        2020,
        [("bild.png", PNG, "image/png"), ("flyer.pdf", b"%PDF-1.4", "application/pdf"), ("alt.bmp", PNG, "image/bmp")],
    )
    assert r.status_code == 400
    assert r.json["details"] == [
        "flyer.pdf: Dateityp wird nicht unterstützt.",
        "alt.bmp: Bildformat image/bmp wird nicht unterstützt.",
    ]
    with session_scope(app) as s:
        assert s.query(GalleryItem).count() == 0


def test_upload_requires_files_and_valid_year(login_as):
    tech, _ = login_as("technik@example.com", ("tech",))
    r = _upload(tech, 2020, [])
    assert r.status_code == 400
    assert r.json["error"] == "Bitte wähle mindestens eine Datei aus."

    r = _upload(tech, 2005, [("bild.png", PNG, "image/png")])
    assert r.status_code == 400
    assert r.json["error"] == "Ungültiges Jahr"

    assert tech.get(f"/api/gallery/{date.today().year + 1}").status_code == 400
