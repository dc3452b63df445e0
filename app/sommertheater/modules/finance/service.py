from __future__ import annotations

import csv
import io
import re
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_

from app.sommertheater.audit import record_event
from app.sommertheater.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from app.sommertheater.rbac import ensure_allowed_scope
from app.sommertheater.utils import clean_str, get_user_display_name, iso, parse_datetime, parse_float, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

    from app.sommertheater.models import User
    from app.sommertheater.modules.finance.models import FinanceBudget, FinanceEntry

FINANCE_TYPES = ("income", "expense")
FINANCE_KINDS = ("general", "invoice", "donation")
FINANCE_STATUSES = ("draft", "pending", "approved", "paid", "cancelled")
FINANCE_STATUS_LABELS = {
    "draft": "Entwurf",
    "pending": "Wartet auf Freigabe",
    "approved": "Freigegeben",
    "paid": "Bezahlt",
    "cancelled": "Storniert",
}
APPROVAL_STATUSES = ("approved", "paid")
DEFAULT_STATUS_FILTER = ("draft", "pending", "approved", "paid")
TOTAL_STATUSES = ("pending", "approved", "paid")
PENDING_INVOICE_STATUSES = ("pending", "approved")
MAX_RESULTS = 200
EXPORT_FILENAME = "mitglieder-finanzen.csv"

EXPORT_HEADER = [
    "ID",
    "Titel",
    "Art",
    "Typ",
    "Status",
    "Betrag",
    "Währung",
    "Kategorie",
    "Buchungsdatum",
    "Fälligkeit",
    "Bezahlt am",
    "Rechnungsnummer",
    "Anbieter",
    "Mitglied",
    "Spendenquelle",
    "Spenderkontakt",
    "Show",
    "Budget",
    "Sichtbarkeit",
    "Anhänge",
]

_CURRENCY_RE = re.compile(r"^[A-Za-z]{3}$")
_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
_CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal | None:
    f = parse_float(value)
    if f is None:
        return None
    return Decimal(str(f)).quantize(_CENT, rounding=ROUND_HALF_UP)


def default_status_for_kind(kind: str) -> str:
    if kind == "invoice":
        return "pending"
    if kind == "donation":
        return "approved"
    return "draft"


# --- validation ------------------------------------------------------------------


def validate_entry_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []

    def _present(key: str) -> bool:
        return not partial or key in payload

    if _present("title"):
        title = payload.get("title")
        if not isinstance(title, str) or not 3 <= len(title.strip()) <= 200:
            errors.append("Der Titel muss zwischen 3 und 200 Zeichen lang sein.")
    if _present("amount"):
        amount = parse_float(payload.get("amount"))
        if amount is None or amount < 0:
            errors.append("Der Betrag muss eine positive Zahl sein.")
    if _present("type") and payload.get("type") not in FINANCE_TYPES:
        errors.append("Ungültiger Buchungstyp.")
    if "kind" in payload and payload.get("kind") not in FINANCE_KINDS:
        errors.append("Ungültige Buchungsart.")
    if payload.get("status") is not None and payload.get("status") not in FINANCE_STATUSES:
        errors.append("Ungültiger Status.")
    if payload.get("currency") is not None:
        currency = payload.get("currency")
        if not isinstance(currency, str) or not _CURRENCY_RE.match(currency.strip()):
            errors.append("Die Währung muss ein dreistelliger Code sein.")
    if payload.get("visibilityScope") is not None and payload.get("visibilityScope") not in ("finance", "board"):
        errors.append("Ungültige Sichtbarkeit.")
    for key in ("bookingDate", "dueDate", "paidAt"):
        if payload.get(key) and parse_datetime(payload.get(key)) is None:
            errors.append("Ungültiges Datum.")
            break
    if payload.get("description") and len(str(payload.get("description"))) > 4000:
        errors.append("Die Beschreibung darf höchstens 4000 Zeichen lang sein.")
    return errors


def parse_attachments(raw: Any) -> list[dict]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("Anhänge müssen als Liste übermittelt werden.")
    out = []
    for item in raw:
        if not isinstance(item, dict):
            raise ValidationError("Ungültiger Anhang.")
        filename = clean_str(item.get("filename"), max_len=160, field="Dateiname")
        if not filename:
            raise ValidationError("Anhänge benötigen einen Dateinamen.")
        url = clean_str(item.get("url"), max_len=1024, field="URL")
        if url and not _URL_RE.match(url):
            raise ValidationError("Anhänge benötigen eine gültige URL")
        size = parse_int(item.get("size"))
        if size is not None and size < 0:
            raise ValidationError("Ungültige Dateigröße.")
        out.append(
            {
                "filename": filename,
                "url": url,
                "mime_type": clean_str(item.get("mimeType"), max_len=120, field="Dateityp"),
                "size": size,
            }
        )
    return out


def _resolve_member(s: "Session", raw: Any) -> int | None:
    from app.sommertheater.models import User

    if raw in (None, ""):
        return None
    uid = parse_int(raw)
    if uid is None or not s.get(User, uid):
        raise NotFoundError("Mitglied nicht gefunden")
    return uid


def _resolve_show(s: "Session", raw: Any) -> int | None:
    from app.sommertheater.modules.productions.models import Show

    if raw in (None, ""):
        return None
    sid = parse_int(raw)
    if sid is None or not s.get(Show, sid):
        raise NotFoundError("Produktion nicht gefunden")
    return sid


def _resolve_budget(s: "Session", raw: Any) -> int | None:
    from app.sommertheater.modules.finance.models import FinanceBudget

    if raw in (None, ""):
        return None
    bid = parse_int(raw)
    if bid is None or not s.get(FinanceBudget, bid):
        raise NotFoundError("Budget nicht gefunden")
    return bid


# --- entries -----------------------------------------------------------------------


def _named_user(user: "User | None") -> dict | None:
    if user is None:
        return None
    return {"id": user.id, "name": get_user_display_name(user), "email": user.email}


def serialize_entry(entry: "FinanceEntry") -> dict:
    budget = entry.budget
    show = entry.show
    return {
        "id": entry.id,
        "type": entry.type,
        "kind": entry.kind,
        "status": entry.status,
        "statusLabel": FINANCE_STATUS_LABELS.get(entry.status, entry.status),
        "title": entry.title,
        "description": entry.description,
        "amount": float(entry.amount),
        "currency": entry.currency,
        "category": entry.category,
        "bookingDate": iso(entry.booking_date),
        "dueDate": iso(entry.due_date),
        "paidAt": iso(entry.paid_at),
        "invoiceNumber": entry.invoice_number,
        "vendor": entry.vendor,
        "memberPaidById": entry.member_paid_by_id,
        "memberPaidBy": _named_user(entry.member_paid_by),
        "donationSource": entry.donation_source,
        "donorContact": entry.donor_contact,
        "tags": entry.tags,
        "show": {"id": show.id, "title": show.title, "year": show.year} if show else None,
        "budget": (
            {
                "id": budget.id,
                "category": budget.category,
                "plannedAmount": float(budget.planned_amount),
                "currency": budget.currency,
            }
            if budget
            else None
        ),
        "visibilityScope": entry.visibility_scope,
        "createdBy": _named_user(entry.created_by),
        "approvedBy": _named_user(entry.approved_by),
        "approvedAt": iso(entry.approved_at),
        "createdAt": iso(entry.created_at),
        "updatedAt": iso(entry.updated_at),
        "attachments": [
            {
                "id": a.id,
                "filename": a.filename,
                "url": a.url,
                "mimeType": a.mime_type,
                "size": a.size,
                "createdAt": iso(a.created_at),
            }
            for a in entry.attachments
        ],
        "logs": [
            {
                "id": log.id,
                "fromStatus": log.from_status,
                "toStatus": log.to_status,
                "note": log.note,
                "createdAt": iso(log.created_at),
                "changedBy": _named_user(log.changed_by),
            }
            for log in entry.logs
        ],
    }


def entry_query(s: "Session", filters: dict, scopes: list[str], *, default_statuses: bool = True):
    from app.sommertheater.modules.finance.models import FinanceEntry

    q = s.query(FinanceEntry).filter(FinanceEntry.visibility_scope.in_(scopes))
    status = filters.get("status")
    if status in FINANCE_STATUSES:
        q = q.filter(FinanceEntry.status == status)
    elif default_statuses:
        q = q.filter(FinanceEntry.status.in_(DEFAULT_STATUS_FILTER))
    if filters.get("kind") in FINANCE_KINDS:
        q = q.filter(FinanceEntry.kind == filters["kind"])
    if filters.get("type") in FINANCE_TYPES:
        q = q.filter(FinanceEntry.type == filters["type"])
    show_id = parse_int(filters.get("showId"))
    if show_id is not None:
        q = q.filter(FinanceEntry.show_id == show_id)
    budget_id = parse_int(filters.get("budgetId"))
    if budget_id is not None:
        q = q.filter(FinanceEntry.budget_id == budget_id)
    start = parse_datetime(filters.get("from"))
    if start is not None:
        q = q.filter(FinanceEntry.booking_date >= start)
    end = parse_datetime(filters.get("to"))
    if end is not None:
        q = q.filter(FinanceEntry.booking_date <= end)
    term = (filters.get("q") or "").strip()
    if term:
        like = f"%{term}%"
        q = q.filter(
            or_(
                FinanceEntry.title.ilike(like),
                FinanceEntry.description.ilike(like),
                FinanceEntry.invoice_number.ilike(like),
                FinanceEntry.vendor.ilike(like),
                FinanceEntry.donation_source.ilike(like),
            )
        )
    return q


def list_entries(s: "Session", filters: dict, scopes: list[str]) -> list["FinanceEntry"]:
    from app.sommertheater.modules.finance.models import FinanceEntry

    return (
        entry_query(s, filters, scopes)
        .order_by(FinanceEntry.booking_date.desc(), FinanceEntry.id.desc())
        .limit(MAX_RESULTS)
        .all()
    )


def get_entry_or_404(s: "Session", entry_id: Any, scopes: list[str]) -> "FinanceEntry":
    from app.sommertheater.modules.finance.models import FinanceEntry

    eid = parse_int(entry_id)
    entry = s.get(FinanceEntry, eid) if eid is not None else None
    if not entry:
        raise NotFoundError("Eintrag nicht gefunden")
    if entry.visibility_scope not in scopes:
        raise ForbiddenError("Kein Zugriff")
    return entry


def _check_kind_requirements(kind: str, member_paid_by_id: int | None, donation_source: str | None) -> None:
    if kind == "invoice" and not member_paid_by_id:
        raise ValidationError("Für Rechnungen muss ein zahlendes Mitglied angegeben werden.")
    if kind == "donation" and not donation_source:
        raise ValidationError("Spenden benötigen eine Quelle.")


def create_entry(
    s: "Session",
    payload: dict,
    actor: "User",
    *,
    can_approve: bool,
    scopes: list[str],
) -> "FinanceEntry":
    from app.sommertheater.modules.finance.models import FinanceAttachment, FinanceEntry, FinanceLog

    kind = payload.get("kind") or "general"
    status = payload.get("status") or default_status_for_kind(kind)
    if status in APPROVAL_STATUSES and not can_approve:
        raise ForbiddenError("Freigabe-Rechte erforderlich")

    member_paid_by_id = _resolve_member(s, payload.get("memberPaidById"))
    donation_source = clean_str(payload.get("donationSource"), max_len=160, field="Spendenquelle")
    _check_kind_requirements(kind, member_paid_by_id, donation_source)
    attachments = parse_attachments(payload.get("attachments"))

    now = datetime.utcnow()
    approved = status in APPROVAL_STATUSES
    entry = FinanceEntry(
        type=payload.get("type"),
        kind=kind,
        status=status,
        title=payload.get("title").strip(),
        description=clean_str(payload.get("description"), max_len=4000, field="Beschreibung"),
        amount=to_money(payload.get("amount")),
        currency=(payload.get("currency") or "EUR").strip().upper(),
        category=clean_str(payload.get("category"), max_len=120, field="Kategorie"),
        booking_date=parse_datetime(payload.get("bookingDate")) or now,
        due_date=parse_datetime(payload.get("dueDate")),
        paid_at=(parse_datetime(payload.get("paidAt")) or now) if status == "paid" else None,
        invoice_number=clean_str(payload.get("invoiceNumber"), max_len=120, field="Rechnungsnummer"),
        vendor=clean_str(payload.get("vendor"), max_len=160, field="Anbieter"),
        member_paid_by_id=member_paid_by_id,
        donation_source=donation_source,
        donor_contact=clean_str(payload.get("donorContact"), max_len=200, field="Spenderkontakt"),
        tags=payload.get("tags"),
        show_id=_resolve_show(s, payload.get("showId")),
        budget_id=_resolve_budget(s, payload.get("budgetId")),
        visibility_scope=ensure_allowed_scope(payload.get("visibilityScope"), scopes),
        created_by_id=actor.id,
        approved_by_id=actor.id if approved else None,
        approved_at=now if approved else None,
    )
    entry.attachments = [FinanceAttachment(**a) for a in attachments]
    entry.logs = [FinanceLog(from_status=None, to_status=status, changed_by_id=actor.id)]
    s.add(entry)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="finance.entry.create",
        entity_type="FinanceEntry",
        entity_id=str(entry.id),
        metadata={"kind": kind, "type": entry.type, "status": status, "amount": entry.amount},
    )
    return entry


def update_entry(
    s: "Session",
    entry: "FinanceEntry",
    payload: dict,
    actor: "User",
    *,
    can_approve: bool,
    scopes: list[str],
) -> "FinanceEntry":
    from app.sommertheater.modules.finance.models import FinanceAttachment, FinanceLog

    note = clean_str(payload.pop("note", None), max_len=500, field="Notiz")
    if not payload:
        raise ValidationError("Keine Änderungen übermittelt")

    changes = {}

    def _set(attr: str, val):
        if val != getattr(entry, attr):
            changes[attr] = {"old": getattr(entry, attr), "new": val}
            setattr(entry, attr, val)

    if "title" in payload:
        _set("title", payload.get("title").strip())
    if "description" in payload:
        _set("description", clean_str(payload.get("description"), max_len=4000, field="Beschreibung"))
    if "amount" in payload:
        _set("amount", to_money(payload.get("amount")))
    if "currency" in payload:
        _set("currency", (payload.get("currency") or "EUR").strip().upper())
    if "type" in payload:
        _set("type", payload.get("type"))
    if "kind" in payload:
        _set("kind", payload.get("kind"))
    if "category" in payload:
        _set("category", clean_str(payload.get("category"), max_len=120, field="Kategorie"))
    if "bookingDate" in payload:
        _set("booking_date", parse_datetime(payload.get("bookingDate")) or entry.booking_date)
    if "dueDate" in payload:
        _set("due_date", parse_datetime(payload.get("dueDate")))
    if "invoiceNumber" in payload:
        _set("invoice_number", clean_str(payload.get("invoiceNumber"), max_len=120, field="Rechnungsnummer"))
    if "vendor" in payload:
        _set("vendor", clean_str(payload.get("vendor"), max_len=160, field="Anbieter"))
    if "memberPaidById" in payload:
        _set("member_paid_by_id", _resolve_member(s, payload.get("memberPaidById")))
    if "donationSource" in payload:
        _set("donation_source", clean_str(payload.get("donationSource"), max_len=160, field="Spendenquelle"))
    if "donorContact" in payload:
        _set("donor_contact", clean_str(payload.get("donorContact"), max_len=200, field="Spenderkontakt"))
    if "tags" in payload:
        _set("tags", payload.get("tags"))
    if "showId" in payload:
        _set("show_id", _resolve_show(s, payload.get("showId")))
    if "budgetId" in payload:
        _set("budget_id", _resolve_budget(s, payload.get("budgetId")))
    if "visibilityScope" in payload:
        _set("visibility_scope", ensure_allowed_scope(payload.get("visibilityScope"), scopes))

    _check_kind_requirements(entry.kind, entry.member_paid_by_id, entry.donation_source)

    new_status = payload.get("status")
    if new_status and new_status != entry.status:
        if new_status in APPROVAL_STATUSES and not can_approve:
            raise ForbiddenError("Freigabe-Rechte erforderlich")
        now = datetime.utcnow()
        old_status = entry.status
        _set("status", new_status)
        if new_status in APPROVAL_STATUSES:
            if entry.approved_at is None:
                entry.approved_at = now
                entry.approved_by_id = actor.id
        else:
            entry.approved_at = None
            entry.approved_by_id = None
        if new_status == "paid":
            entry.paid_at = parse_datetime(payload.get("paidAt")) or entry.paid_at or now
        else:
            entry.paid_at = None
        entry.logs.append(FinanceLog(from_status=old_status, to_status=new_status, note=note, changed_by_id=actor.id))
    elif "paidAt" in payload and entry.status == "paid":
        _set("paid_at", parse_datetime(payload.get("paidAt")) or entry.paid_at)

    if "attachments" in payload:
        attachments = parse_attachments(payload.get("attachments"))
        changes["attachments"] = {"old": len(entry.attachments), "new": len(attachments)}
        entry.attachments = [FinanceAttachment(**a) for a in attachments]

    if changes:
        record_event(
            s,
            actor=actor,
            action="finance.entry.update",
            entity_type="FinanceEntry",
            entity_id=str(entry.id),
            reason=note,
            metadata={"changes": changes},
        )
    return entry


def delete_entry(s: "Session", entry: "FinanceEntry", actor: "User") -> None:
    record_event(
        s,
        actor=actor,
        action="finance.entry.delete",
        entity_type="FinanceEntry",
        entity_id=str(entry.id),
        metadata={"title": entry.title, "amount": entry.amount, "status": entry.status},
    )
    s.delete(entry)


# --- budgets ---------------------------------------------------------------------


def validate_budget_payload(payload: dict, *, partial: bool = False) -> list[str]:
    errors = []
    if not partial or "category" in payload:
        category = payload.get("category")
        if not isinstance(category, str) or not 2 <= len(category.strip()) <= 120:
            errors.append("Die Kategorie muss zwischen 2 und 120 Zeichen lang sein.")
    if not partial or "plannedAmount" in payload:
        planned = parse_float(payload.get("plannedAmount"))
        if planned is None or planned < 0:
            errors.append("Der geplante Betrag muss eine positive Zahl sein.")
    if payload.get("currency") is not None:
        currency = payload.get("currency")
        if not isinstance(currency, str) or not _CURRENCY_RE.match(currency.strip()):
            errors.append("Die Währung muss ein dreistelliger Code sein.")
    return errors


def serialize_budget(budget: "FinanceBudget", *, actual: Decimal | float = 0, entry_count: int = 0) -> dict:
    show = budget.show
    return {
        "id": budget.id,
        "showId": budget.show_id,
        "show": {"id": show.id, "title": show.title, "year": show.year} if show else None,
        "category": budget.category,
        "plannedAmount": float(budget.planned_amount),
        "currency": budget.currency,
        "notes": budget.notes,
        "actualAmount": float(actual),
        "entryCount": entry_count,
        "createdAt": iso(budget.created_at),
        "updatedAt": iso(budget.updated_at),
    }


def budget_actuals(s: "Session", budget_ids: list[int], scopes: list[str]) -> dict[int, tuple[Decimal, int]]:
    """budget id -> (net spending of approved/paid entries, entry count)."""
    from app.sommertheater.modules.finance.models import FinanceEntry

    if not budget_ids:
        return {}
    rows = (
        s.query(FinanceEntry.budget_id, FinanceEntry.type, func.sum(FinanceEntry.amount), func.count(FinanceEntry.id))
        .filter(
            FinanceEntry.budget_id.in_(budget_ids),
            FinanceEntry.status.in_(APPROVAL_STATUSES),
            FinanceEntry.visibility_scope.in_(scopes),
        )
        .group_by(FinanceEntry.budget_id, FinanceEntry.type)
        .all()
    )
    out: dict[int, tuple[Decimal, int]] = {}
    for budget_id, entry_type, total, count in rows:
        amount = Decimal(str(total or 0))
        actual, n = out.get(budget_id, (Decimal("0"), 0))
        actual = actual + amount if entry_type == "expense" else actual - amount
        out[budget_id] = (actual, n + int(count or 0))
    return out


def list_budgets(s: "Session", show_id: int, scopes: list[str]) -> list[dict]:
    from app.sommertheater.modules.finance.models import FinanceBudget

    budgets = (
        s.query(FinanceBudget)
        .filter(FinanceBudget.show_id == show_id)
        .order_by(FinanceBudget.category.asc())
        .all()
    )
    actuals = budget_actuals(s, [b.id for b in budgets], scopes)
    return [serialize_budget(b, actual=actuals.get(b.id, (0, 0))[0], entry_count=actuals.get(b.id, (0, 0))[1]) for b in budgets]


def get_budget_or_404(s: "Session", budget_id: Any) -> "FinanceBudget":
    from app.sommertheater.modules.finance.models import FinanceBudget

    bid = parse_int(budget_id)
    budget = s.get(FinanceBudget, bid) if bid is not None else None
    if not budget:
        raise NotFoundError("Budget nicht gefunden")
    return budget


def create_budget(s: "Session", payload: dict, actor: "User") -> "FinanceBudget":
    from app.sommertheater.modules.finance.models import FinanceBudget

    show_id = _resolve_show(s, payload.get("showId"))
    if show_id is None:
        raise ValidationError("Produktion erforderlich")
    budget = FinanceBudget(
        show_id=show_id,
        category=payload.get("category").strip(),
        planned_amount=to_money(payload.get("plannedAmount")),
        currency=(payload.get("currency") or "EUR").strip().upper(),
        notes=clean_str(payload.get("notes"), max_len=2000, field="Notizen"),
    )
    s.add(budget)
    s.flush()

    record_event(
        s,
        actor=actor,
        action="finance.budget.create",
        entity_type="FinanceBudget",
        entity_id=str(budget.id),
        metadata={"showId": show_id, "category": budget.category, "plannedAmount": budget.planned_amount},
    )
    return budget


def update_budget(s: "Session", budget: "FinanceBudget", payload: dict, actor: "User") -> "FinanceBudget":
    if not payload:
        raise ValidationError("Keine Änderungen übermittelt")
    changes = {}

    def _set(attr: str, val):
        if val != getattr(budget, attr):
            changes[attr] = {"old": getattr(budget, attr), "new": val}
            setattr(budget, attr, val)

    if "category" in payload:
        _set("category", payload.get("category").strip())
    if "plannedAmount" in payload:
        _set("planned_amount", to_money(payload.get("plannedAmount")))
    if "currency" in payload:
        _set("currency", (payload.get("currency") or "EUR").strip().upper())
    if "notes" in payload:
        _set("notes", clean_str(payload.get("notes"), max_len=2000, field="Notizen"))

    if changes:
        record_event(
            s,
            actor=actor,
            action="finance.budget.update",
            entity_type="FinanceBudget",
            entity_id=str(budget.id),
            metadata={"changes": changes},
        )
    return budget


def delete_budget(s: "Session", budget: "FinanceBudget", actor: "User") -> None:
    from app.sommertheater.modules.finance.models import FinanceEntry

    in_use = s.query(func.count(FinanceEntry.id)).filter(FinanceEntry.budget_id == budget.id).scalar() or 0
    if in_use:
        raise ConflictError("Budget enthält Buchungen und kann nicht gelöscht werden.")
    record_event(
        s,
        actor=actor,
        action="finance.budget.delete",
        entity_type="FinanceBudget",
        entity_id=str(budget.id),
        metadata={"category": budget.category},
    )
    s.delete(budget)


# --- summary / export ---------------------------------------------------------------


def finance_summary(s: "Session", show_id: int, scopes: list[str]) -> dict:
    from app.sommertheater.modules.finance.models import FinanceEntry

    base = s.query(FinanceEntry).filter(FinanceEntry.show_id == show_id, FinanceEntry.visibility_scope.in_(scopes))

    totals = dict(
        base.filter(FinanceEntry.status.in_(TOTAL_STATUSES))
        .with_entities(FinanceEntry.type, func.sum(FinanceEntry.amount))
        .group_by(FinanceEntry.type)
        .all()
    )
    pending_count, pending_amount = (
        base.filter(FinanceEntry.kind == "invoice", FinanceEntry.status.in_(PENDING_INVOICE_STATUSES))
        .with_entities(func.count(FinanceEntry.id), func.sum(FinanceEntry.amount))
        .one()
    )
    donation_total = (
        base.filter(FinanceEntry.kind == "donation", FinanceEntry.status.in_(APPROVAL_STATUSES))
        .with_entities(func.sum(FinanceEntry.amount))
        .scalar()
    )
    return {
        "totalIncome": float(totals.get("income") or 0),
        "totalExpense": float(totals.get("expense") or 0),
        "pendingInvoices": int(pending_count or 0),
        "pendingAmount": float(pending_amount or 0),
        "donationTotal": float(donation_total or 0),
    }


def export_entries(s: "Session", filters: dict, scopes: list[str]) -> list["FinanceEntry"]:
    from app.sommertheater.modules.finance.models import FinanceEntry

    return (
        entry_query(s, filters, scopes, default_statuses=False)
        .order_by(FinanceEntry.booking_date.asc(), FinanceEntry.id.asc())
        .all()
    )


def generate_finance_csv(entries: list["FinanceEntry"]) -> str:
    out = io.StringIO()
    w = csv.writer(out, lineterminator="\n")
    w.writerow(EXPORT_HEADER)
    for e in entries:
        member = e.member_paid_by
        show = e.show
        w.writerow(
            [
                e.id,
                e.title,
                e.kind,
                e.type,
                e.status,
                f"{e.amount:.2f}",
                e.currency,
                e.category or "",
                iso(e.booking_date),
                iso(e.due_date) or "",
                iso(e.paid_at) or "",
                e.invoice_number or "",
                e.vendor or "",
                (get_user_display_name(member) if member else ""),
                e.donation_source or "",
                e.donor_contact or "",
                f"{show.year} {show.title or ''}".strip() if show else "",
                e.budget.category if e.budget else "",
                e.visibility_scope,
                " | ".join(a.url or a.filename for a in e.attachments),
            ]
        )
    return out.getvalue()
