import csv
import io

import pytest

from app.sommertheater.db import session_scope
from app.sommertheater.models import AuditEvent, Permission, Role
from app.sommertheater.modules.finance.models import FinanceEntry
from app.sommertheater.modules.finance.service import default_status_for_kind, generate_finance_csv, to_money
from app.sommertheater.modules.productions.models import Show


@pytest.fixture()
def show_id(app):
    with session_scope(app) as s:
        show = Show(year=2025, title="Der zerbrochne Krug")
        s.add(show)
        s.flush()
        return show.id


@pytest.fixture()
def treasurer(login_as):
    c, uid = login_as("kasse@example.com", ("finance",))
    return c


@pytest.fixture()
def bookkeeper(app, login_as):
    """Can book entries but not approve them."""
    with session_scope(app) as s:
        perms = s.query(Permission).filter(Permission.key.in_(["mitglieder.finanzen", "mitglieder.finanzen.manage"])).all()
        s.add(Role(key="buchhaltung", name="Buchhaltung", is_system=False, sort_index=100, permissions=perms))
    c, _ = login_as("buch@example.com", ("member", "buchhaltung"))
    return c


def _entry(**overrides):
    data = {"title": "Bühnenholz", "amount": 120.5, "type": "expense"}
    data.update(overrides)
    return data


def test_default_status_per_kind():
    assert default_status_for_kind("general") == "draft"
    assert default_status_for_kind("invoice") == "pending"
    assert default_status_for_kind("donation") == "approved"


def test_to_money_rounds_half_up():
    assert str(to_money("10.005")) == "10.01"
    assert to_money("abc") is None


def test_create_entry_validation(treasurer):
    r = treasurer.post("/api/finance", json={"title": "ab", "amount": -1, "type": "gift"})
    assert r.status_code == 400
    assert r.json["details"] == [
        "Der Titel muss zwischen 3 und 200 Zeichen lang sein.",
        "Der Betrag muss eine positive Zahl sein.",
        "Ungültiger Buchungstyp.",
    ]

    r = treasurer.post("/api/finance", json=_entry(kind="invoice"))
    assert r.status_code == 400
    assert r.json["error"] == "Für Rechnungen muss ein zahlendes Mitglied angegeben werden."

    r = treasurer.post("/api/finance", json=_entry(kind="donation", type="income"))
    assert r.status_code == 400
    assert r.json["error"] == "Spenden benötigen eine Quelle."

    r = treasurer.post("/api/finance", json=_entry(attachments=[{"filename": "beleg.pdf", "url": "ftp://x"}]))
    assert r.status_code == 400


def test_create_and_approve_flow(app, treasurer, make_user, show_id):
    payer = make_user("mia@example.com")
    r = treasurer.post(
        "/api/finance",
        json=_entry(
            kind="invoice",
            memberPaidById=payer,
            showId=show_id,
            currency="eur",
            attachments=[{"filename": "beleg.pdf", "url": "https://files.example.org/beleg.pdf", "size": 2048}],
        ),
    )
    assert r.status_code == 201
    entry = r.json["entry"]
    assert entry["status"] == "pending"
    assert entry["currency"] == "EUR"
    assert entry["memberPaidBy"]["id"] == payer
    assert entry["attachments"][0]["size"] == 2048
    assert [(log["fromStatus"], log["toStatus"]) for log in entry["logs"]] == [(None, "pending")]

    r = treasurer.patch(f"/api/finance/{entry['id']}", json={"status": "paid", "note": "überwiesen"})
    assert r.status_code == 200
    updated = r.json["entry"]
    assert updated["status"] == "paid"
    assert updated["approvedAt"] is not None
    assert updated["paidAt"] is not None
    assert updated["logs"][-1]["note"] == "überwiesen"

    r = treasurer.patch(f"/api/finance/{entry['id']}", json={"status": "pending"})
    assert r.json["entry"]["approvedAt"] is None
    assert r.json["entry"]["paidAt"] is None

    with session_scope(app) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "finance.entry.update").count() == 2


def test_update_without_changes(treasurer):
    entry = treasurer.post("/api/finance", json=_entry()).json["entry"]
    r = treasurer.patch(f"/api/finance/{entry['id']}", json={"note": "nur Notiz"})
    assert r.status_code == 400
    assert r.json["error"] == "Keine Änderungen übermittelt"


def test_bookkeeper_cannot_approve(bookkeeper):
    r = bookkeeper.post("/api/finance", json=_entry(status="approved"))
    assert r.status_code == 403
    assert r.json["error"] == "Freigabe-Rechte erforderlich"

    entry = bookkeeper.post("/api/finance", json=_entry()).json["entry"]
    assert entry["status"] == "draft"
    r = bookkeeper.patch(f"/api/finance/{entry['id']}", json={"status": "approved"})
    assert r.status_code == 403


def test_board_scope_is_hidden_from_bookkeeper(app, bookkeeper, treasurer):
    hidden = treasurer.post("/api/finance", json=_entry(title="Vorstandsessen", visibilityScope="board")).json["entry"]
    assert hidden["visibilityScope"] == "board"

    # falls back to the first allowed scope
    own = bookkeeper.post("/api/finance", json=_entry(visibilityScope="board")).json["entry"]
    assert own["visibilityScope"] == "finance"

    r = bookkeeper.get("/api/finance")
    assert r.json["allowedScopes"] == ["finance"]
    assert [e["id"] for e in r.json["entries"]] == [own["id"]]

    r = bookkeeper.get(f"/api/finance/{hidden['id']}")
    assert r.status_code == 403


def test_member_without_finance_permission(login_as):
    c, _ = login_as("mia@example.com")
    assert c.get("/api/finance").status_code == 403


def test_list_filters(treasurer):
    treasurer.post("/api/finance", json=_entry(title="Kostümstoff", vendor="Stoffhaus"))
    treasurer.post("/api/finance", json=_entry(title="Ticketverkauf", type="income", status="cancelled"))

    r = treasurer.get("/api/finance")
    assert [e["title"] for e in r.json["entries"]] == ["Kostümstoff"]

    r = treasurer.get("/api/finance?status=cancelled")
    assert [e["title"] for e in r.json["entries"]] == ["Ticketverkauf"]

    r = treasurer.get("/api/finance?q=stoffhaus")
    assert [e["title"] for e in r.json["entries"]] == ["Kostümstoff"]


def test_budgets_and_summary(treasurer, show_id):
    r = treasurer.post("/api/finance/budgets", json={"showId": show_id, "category": "Bühne", "plannedAmount": 500})
    assert r.status_code == 201
    budget = r.json["budget"]

    treasurer.post("/api/finance", json=_entry(amount=200, showId=show_id, budgetId=budget["id"], status="approved"))
    treasurer.post("/api/finance", json=_entry(amount=50, showId=show_id, budgetId=budget["id"], status="draft"))
    treasurer.post(
        "/api/finance",
        json=_entry(title="Spende Bäckerei", type="income", kind="donation", donationSource="Bäckerei", amount=80, showId=show_id),
    )

    r = treasurer.get(f"/api/finance/budgets?showId={show_id}")
    [row] = r.json["budgets"]
    assert row["actualAmount"] == 200
    assert row["entryCount"] == 1

    r = treasurer.get(f"/api/finance/summary?showId={show_id}")
    assert r.json["summary"] == {
        "totalIncome": 80,
        "totalExpense": 200,
        "pendingInvoices": 0,
        "pendingAmount": 0,
        "donationTotal": 80,
    }

    assert treasurer.get("/api/finance/summary").status_code == 400

    r = treasurer.delete(f"/api/finance/budgets/{budget['id']}")
    assert r.status_code == 409


def test_budget_update_and_delete(treasurer, show_id):
    budget = treasurer.post(
        "/api/finance/budgets", json={"showId": show_id, "category": "Technik", "plannedAmount": 300}
    ).json["budget"]
    r = treasurer.patch(f"/api/finance/budgets/{budget['id']}", json={"plannedAmount": 350.5})
    assert r.status_code == 200
    assert r.json["budget"]["plannedAmount"] == 350.5

    r = treasurer.patch(f"/api/finance/budgets/{budget['id']}", json={"category": "x"})
    assert r.status_code == 400

    assert treasurer.delete(f"/api/finance/budgets/{budget['id']}").json == {"ok": True}


def test_delete_entry_is_audited(app, treasurer):
    entry = treasurer.post("/api/finance", json=_entry()).json["entry"]
    assert treasurer.delete(f"/api/finance/{entry['id']}").status_code == 200
    with session_scope(app) as s:
        assert s.get(FinanceEntry, entry["id"]) is None
        assert s.query(AuditEvent).filter(AuditEvent.action == "finance.entry.delete").count() == 1


def test_csv_export(treasurer, login_as):
    treasurer.post("/api/finance", json=_entry(title="Scheinwerfer", amount=99.9, status="cancelled"))
    r = treasurer.get("/api/finance/export")
    assert r.status_code == 200
    assert r.headers["Content-Type"] == "text/csv; charset=utf-8"
    assert "mitglieder-finanzen.csv" in r.headers["Content-Disposition"]

    rows = list(csv.reader(io.StringIO(r.data.decode("utf-8"))))
    assert rows[0][:3] == ["ID", "Titel", "Art"]
    # export includes cancelled entries
    assert rows[1][1] == "Scheinwerfer"
    assert rows[1][5] == "99.90"

    board, _ = login_as("vorstand@example.com", ("board",))
    assert board.get("/api/finance/export").status_code == 403


def test_generate_csv_header_only():
    assert generate_finance_csv([]).splitlines() == [
        "ID,Titel,Art,Typ,Status,Betrag,Währung,Kategorie,Buchungsdatum,Fälligkeit,Bezahlt am,"
        "Rechnungsnummer,Anbieter,Mitglied,Spendenquelle,Spenderkontakt,Show,Budget,Sichtbarkeit,Anhänge"
    ]
