"""
Small PDF rendering engine on top of reportlab.

Templates register themselves by id. A template validates raw input into a
clean data dict, names the file and draws onto a reportlab canvas.
"""
from __future__ import annotations

import io
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen.canvas import Canvas

logger = logging.getLogger(__name__)

PAGE_SIZE = A4
PAGE_MARGIN = 56


class PdfError(RuntimeError):
    pass


class PdfTemplateNotFoundError(PdfError):
    def __init__(self, template_id: str):
        super().__init__(f"Unknown PDF template: {template_id}")
        self.template_id = template_id


class PdfValidationError(PdfError):
    def __init__(self, issues: list[dict]):
        super().__init__("Ungültige Daten für diese PDF-Vorlage")
        self.issues = issues


class PdfRenderError(PdfError):
    def __init__(self, template_id: str, original: BaseException):
        super().__init__(f"Rendering PDF template failed: {template_id}")
        self.template_id = template_id
        self.original = original


@dataclass(frozen=True)
class PdfTemplate:
    id: str
    label: str
    description: str
    validate: Callable[[Any], dict]  # raises PdfValidationError
    filename: Callable[[dict], str]
    render: Callable[[Canvas, dict], None]


@dataclass(frozen=True)
class RenderedPdf:
    filename: str
    content: bytes
    template_id: str


_TEMPLATES: dict[str, PdfTemplate] = {}


def register_template(template: PdfTemplate) -> PdfTemplate:
    _TEMPLATES[template.id] = template
    return template


def find_template(template_id: str) -> PdfTemplate | None:
    return _TEMPLATES.get((template_id or "").strip())


def list_templates() -> list[dict]:
    return [{"id": t.id, "label": t.label, "description": t.description} for t in _TEMPLATES.values()]


def render_pdf(template_id: str, data: Any) -> RenderedPdf:
    template = find_template(template_id)
    if template is None:
        raise PdfTemplateNotFoundError(template_id)

    clean = template.validate(data)

    buf = io.BytesIO()
    canvas = Canvas(buf, pagesize=PAGE_SIZE)
    try:
        template.render(canvas, clean)
        canvas.showPage()
        canvas.save()
    except Exception as e:
        logger.exception("PDF template %s failed to render", template.id)
        raise PdfRenderError(template.id, e) from e
    return RenderedPdf(filename=template.filename(clean), content=buf.getvalue(), template_id=template.id)


# Templates register on import (kept at bottom to avoid circular imports).
from app.sommertheater.modules.pdfs import onboarding_invite  # noqa: E402,F401
