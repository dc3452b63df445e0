"""
"Backstage-Pass" poster: an A4 invitation with a QR code pointing at an onboarding link.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any
from urllib.parse import urlsplit

from reportlab.graphics import renderPDF
from reportlab.graphics.barcode.qr import QrCodeWidget
from reportlab.graphics.shapes import Drawing
from reportlab.lib.colors import HexColor
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen.canvas import Canvas

from app.sommertheater.constants import ROLE_LABELS, ROLES
from app.sommertheater.modules.pdfs.engine import PAGE_MARGIN, PAGE_SIZE, PdfTemplate, PdfValidationError, register_template
from app.sommertheater.utils import parse_datetime, slugify

THEATRE_NAME = "Sommertheater Altrossthal"
MAX_HEADLINE_LENGTH = 120
MAX_NOTE_LENGTH = 400
QR_SIZE = 192

GERMAN_MONTHS = (
    "Januar",
    "Februar",
    "März",
    "April",
    "Mai",
    "Juni",
    "Juli",
    "August",
    "September",
    "Oktober",
    "November",
    "Dezember",
)

PALETTE = {
    "background": HexColor("#fff7ed"),
    "sunrise": HexColor("#f97316"),
    "twilight": HexColor("#0ea5e9"),
    "rose": HexColor("#f43f5e"),
    "highlight": HexColor("#fde68a"),
    "note": HexColor("#ffe4e6"),
    "text": HexColor("#1f2937"),
    "muted": HexColor("#4b5563"),
    "soft": HexColor("#6b7280"),
    "frame": HexColor("#0f172a"),
    "frame_stroke": HexColor("#4338ca"),
    "white": HexColor("#ffffff"),
}


# --- input --------------------------------------------------------------------


def _optional_str(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _is_http_url(value: str) -> bool:
    parts = urlsplit(value)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def validate(data: Any) -> dict:
    if not isinstance(data, dict):
        raise PdfValidationError([{"path": [], "message": "Erwartet ein Objekt"}])
    issues: list[dict] = []

    link = data.get("link")
    link = link.strip() if isinstance(link, str) else ""
    if not link or not _is_http_url(link):
        issues.append({"path": ["link"], "message": "Ungültiger Link"})

    clean: dict[str, Any] = {"link": link}
    for key, limit in (("displayLink", None), ("headline", MAX_HEADLINE_LENGTH), ("inviteLabel", MAX_HEADLINE_LENGTH), ("note", MAX_NOTE_LENGTH)):
        value = _optional_str(data.get(key))
        if value is not None and limit is not None and len(value) > limit:
            issues.append({"path": [key], "message": f"Höchstens {limit} Zeichen"})
        clean[key] = value

    clean["expiresAt"] = parse_datetime(data.get("expiresAt")) if data.get("expiresAt") else None

    max_uses = data.get("maxUses")
    if max_uses is None:
        clean["maxUses"] = None
    elif isinstance(max_uses, int) and not isinstance(max_uses, bool) and max_uses >= 1:
        clean["maxUses"] = max_uses
    else:
        issues.append({"path": ["maxUses"], "message": "Muss eine positive ganze Zahl sein"})

    roles = data.get("roles") or []
    if not isinstance(roles, list) or any(r not in ROLES for r in roles):
        issues.append({"path": ["roles"], "message": "Unbekannte Rolle"})
        roles = []
    clean["roles"] = list(dict.fromkeys(roles))

    if issues:
        raise PdfValidationError(issues)
    return clean


def filename(data: dict) -> str:
    slug = slugify(data.get("inviteLabel") or data.get("headline"))
    return f"onboarding-{slug}.pdf" if slug else "onboarding-link.pdf"


# --- formatting ---------------------------------------------------------------


def format_date_long(value: datetime) -> str:
    return f"{value.day}. {GERMAN_MONTHS[value.month - 1]} {value.year}"


def format_date_time(value: datetime) -> str:
    return value.strftime("%d.%m.%Y, %H:%M")


def format_link_for_display(link: str) -> str:
    parts = urlsplit(link)
    if not parts.netloc:
        return link
    host = parts.netloc[4:] if parts.netloc.lower().startswith("www.") else parts.netloc
    path = "" if parts.path == "/" else parts.path.rstrip("/")
    query = f"?{parts.query}" if parts.query else ""
    fragment = f"#{parts.fragment}" if parts.fragment else ""
    return f"{host}{path}{query}{fragment}" or link


def describe_roles(roles: list[str]) -> str:
    return ", ".join(ROLE_LABELS.get(r, r) for r in roles)


def detail_entries(data: dict, title: str) -> list[tuple[str, str]]:
    entries: list[tuple[str, str]] = []
    if data.get("inviteLabel") and data["inviteLabel"] != title:
        entries.append(("Titel", data["inviteLabel"]))
    if data.get("expiresAt"):
        entries.append(("Gültig bis", format_date_long(data["expiresAt"])))
    if data.get("maxUses") is not None:
        entries.append(("Maximale Nutzungen", str(data["maxUses"])))
    if data.get("roles"):
        entries.append(("Vorausgewählte Rollen", describe_roles(data["roles"])))
    return entries


# --- drawing ------------------------------------------------------------------


class _Cursor:
    """Top-down text flow on a single page."""

    def __init__(self, c: Canvas):
        self.c = c
        self.width, self.height = PAGE_SIZE
        self.left = PAGE_MARGIN
        self.usable = self.width - 2 * PAGE_MARGIN
        self.y = self.height - PAGE_MARGIN

    def gap(self, points: float) -> None:
        self.y -= points

    def text(self, value: str, *, font: str, size: float, color, align: str = "center", width: float | None = None) -> None:
        width = width or self.usable
        left = self.left + (self.usable - width) / 2
        self.c.setFont(font, size)
        self.c.setFillColor(color)
        for line in simpleSplit(value, font, size, width):
            self.y -= size * 1.2
            if align == "center":
                self.c.drawCentredString(left + width / 2, self.y, line)
            elif align == "right":
                self.c.drawRightString(left + width, self.y, line)
            else:
                self.c.drawString(left, self.y, line)


def _background(c: Canvas, cur: _Cursor) -> None:
    c.setFillColor(PALETTE["background"])
    c.rect(0, 0, cur.width, cur.height, stroke=0, fill=1)
    for color, alpha, x, y, r in (
        ("sunrise", 0.12, cur.width - 90, cur.height - PAGE_MARGIN + 30, 150),
        ("twilight", 0.10, 90, PAGE_MARGIN - 40, 170),
    ):
        c.saveState()
        c.setFillColor(PALETTE[color])
        c.setFillAlpha(alpha)
        c.circle(x, y, r, stroke=0, fill=1)
        c.restoreState()
    c.saveState()
    c.setFillColor(PALETTE["highlight"])
    c.setFillAlpha(0.18)
    c.rect(PAGE_MARGIN, cur.height - PAGE_MARGIN - 24, cur.usable, 48, stroke=0, fill=1)
    c.setFillColor(PALETTE["rose"])
    c.setFillAlpha(0.12)
    c.rect(PAGE_MARGIN, PAGE_MARGIN + 8, cur.usable, 44, stroke=0, fill=1)
    c.restoreState()


def _note_box(c: Canvas, cur: _Cursor, note: str) -> None:
    box_width = min(cur.usable, 360)
    lines = simpleSplit(note, "Helvetica-Oblique", 12, box_width - 24)
    box_height = len(lines) * 14.4 + 28
    x = cur.left + (cur.usable - box_width) / 2
    c.setFillColor(PALETTE["note"])
    c.roundRect(x, cur.y - box_height, box_width, box_height, 18, stroke=0, fill=1)
    cur.gap(14)
    cur.text(note, font="Helvetica-Oblique", size=12, color=PALETTE["rose"], width=box_width - 24)
    cur.gap(14)


def _qr_code(c: Canvas, cur: _Cursor, link: str) -> None:
    widget = QrCodeWidget(link, barLevel="H")
    x0, y0, x1, y1 = widget.getBounds()
    scale_x, scale_y = QR_SIZE / (x1 - x0), QR_SIZE / (y1 - y0)
    drawing = Drawing(QR_SIZE, QR_SIZE, transform=[scale_x, 0, 0, scale_y, 0, 0])
    drawing.add(widget)

    padding = 24
    x = cur.left + (cur.usable - QR_SIZE) / 2
    y = cur.y - QR_SIZE - padding
    c.setFillColor(PALETTE["frame"])
    c.setStrokeColor(PALETTE["frame_stroke"])
    c.setLineWidth(3.4)
    c.roundRect(x - padding, y - padding, QR_SIZE + 2 * padding, QR_SIZE + 2 * padding, 30, stroke=1, fill=1)
    c.setFillColor(PALETTE["white"])
    c.roundRect(x, y, QR_SIZE, QR_SIZE, 16, stroke=0, fill=1)
    renderPDF.draw(drawing, c, x, y)
    cur.y = y - padding - 12


def render(c: Canvas, data: dict) -> None:
    title = data.get("headline") or data.get("inviteLabel") or "Dein Backstage-Start"
    label = data.get("inviteLabel")
    if label:
        intro = f"Wie schön, dass du für „{label}“ unsere Bühnenfamilie verstärkst."
        action = f"Scanne den Code oder folge dem Link und hol dir deinen Backstage-Zugang zum {THEATRE_NAME}."
    else:
        intro = "Wie schön, dass du Teil unserer Bühnenfamilie wirst!"
        action = "Scanne den Code oder folge dem Link und sichere dir deinen Backstage-Zugang."
    story = (
        f"{THEATRE_NAME} lebt von Menschen, die Ideen mitbringen, mit anpacken und das Publikum "
        "verzaubern – schnapp dir alle Infos und leg los."
    )

    c.setTitle(title)
    c.setSubject(f"Einladung ins Ensemble des {THEATRE_NAME}")
    cur = _Cursor(c)
    _background(c, cur)

    cur.text(f"Willkommen im {THEATRE_NAME}", font="Helvetica-Bold", size=28, color=PALETTE["sunrise"])
    cur.gap(6)
    cur.text(title, font="Helvetica-Bold", size=24, color=PALETTE["text"])
    cur.gap(10)
    cur.text(intro, font="Helvetica", size=14, color=PALETTE["text"])
    cur.gap(4)
    cur.text(action, font="Helvetica", size=13, color=PALETTE["muted"])
    cur.gap(4)
    cur.text(story, font="Helvetica", size=12, color=PALETTE["muted"])

    if data.get("note"):
        cur.gap(12)
        _note_box(c, cur, data["note"])

    cur.gap(12)
    cur.text("Backstage-Check-in", font="Helvetica-Bold", size=16, color=PALETTE["sunrise"])
    cur.gap(12)
    _qr_code(c, cur, data["link"])

    cur.text("Direkter Zugang", font="Helvetica-Bold", size=14, color=PALETTE["text"])
    manual = format_link_for_display(data.get("displayLink") or data["link"])
    cur.text(manual, font="Helvetica", size=12, color=PALETTE["sunrise"])
    c.linkURL(data["link"], (cur.left, cur.y - 2, cur.left + cur.usable, cur.y + 14), relative=0)
    cur.gap(4)
    cur.text("Falls die Kamera streikt, gib den Link einfach im Browser ein.", font="Helvetica", size=11, color=PALETTE["muted"])

    entries = detail_entries(data, title)
    if entries:
        cur.gap(14)
        cur.text("Backstage-Fakten", font="Helvetica-Bold", size=12, color=PALETTE["sunrise"], align="left")
        cur.text(
            "Damit deine erste Probe stressfrei läuft, findest du hier die wichtigsten Eckdaten:",
            font="Helvetica",
            size=11,
            color=PALETTE["muted"],
            align="left",
        )
        for name, value in entries:
            cur.text(f"{name}: {value}", font="Helvetica", size=11, color=PALETTE["text"], align="left")

    cur.gap(12)
    cur.text("Wir sehen uns auf und hinter der Bühne!", font="Helvetica", size=11, color=PALETTE["text"])
    cur.gap(8)
    cur.text(f"Erstellt am {format_date_time(datetime.now())}", font="Helvetica", size=9, color=PALETTE["soft"], align="right")


TEMPLATE = register_template(
    PdfTemplate(
        id="onboarding-invite",
        label="Backstage-Pass Poster",
        description="Erzeugt ein farbenfrohes A4-PDF mit QR-Code für neue Gesichter beim Sommertheater Altrossthal.",
        validate=validate,
        filename=filename,
        render=render,
    )
)
