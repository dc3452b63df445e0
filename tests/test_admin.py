from datetime import datetime, timedelta

from werkzeug.security import check_password_hash

from app.sommertheater.admin import dashboard_counts
from app.sommertheater.db import session_scope
from app.sommertheater.models import AuditEvent, User
from app.sommertheater.modules.finance.models import FinanceEntry
from app.sommertheater.modules.photo_consent.models import PhotoConsent
from app.sommertheater.modules.rehearsals.models import Rehearsal


def _form(c, data):
    return dict(data, csrf_token=c.csrf_token())


def test_password_change_requires_current_password(app, login_as):
    c, uid = login_as("mia@example.com")
    r = c.client.post(
        "/admin/me",
        data=_form(c, {"current_password": "wrong", "new_password": "geheim123", "confirm_password": "geheim123"}),
    )
    assert r.status_code == 302
    with session_scope(app) as s:
        assert check_password_hash(s.get(User, uid).password_hash, "pw")


def test_password_change_length_limits(app, login_as):
    c, uid = login_as("mia@example.com")
    r = c.client.post(
        "/admin/me",
        data=_form(c, {"current_password": "pw", "new_password": "kurz", "confirm_password": "kurz"}),
        follow_redirects=True,
    )
    assert "zwischen 6 und 128 Zeichen".encode() in r.data
    with session_scope(app) as s:
        assert check_password_hash(s.get(User, uid).password_hash, "pw")


def test_password_change_success(app, login_as):
    c, uid = login_as("mia@example.com")
    r = c.client.post(
        "/admin/me",
        data=_form(c, {"current_password": "pw", "new_password": "geheim123", "confirm_password": "geheim123"}),
        follow_redirects=True,
    )
    assert r.status_code == 200
    assert "Passwort wurde geändert".encode() in r.data
    with session_scope(app) as s:
        assert check_password_hash(s.get(User, uid).password_hash, "geheim123")
        assert s.query(AuditEvent).filter(AuditEvent.action == "user.password_change").count() == 1


def test_audit_log_filters(app, login_as):
    c, _ = login_as("boss@example.com", ("admin",))
    with session_scope(app) as s:
        s.add(AuditEvent(action="finance.entry.create", actor_user_email="kasse@example.com"))
        s.add(AuditEvent(action="rehearsal.create", actor_user_email="regie@example.com"))
        s.add(
            AuditEvent(
                action="rehearsal.delete",
                actor_user_email="regie@example.com",
                created_at=datetime.utcnow() - timedelta(days=30),
            )
        )

    r = c.get("/admin/audit?action=rehearsal")
    assert r.status_code == 200
    assert b"rehearsal.create" in r.data
    assert b"rehearsal.delete" in r.data
    assert b"finance.entry.create" not in r.data

    since = (datetime.utcnow() - timedelta(days=1)).date().isoformat()
    r = c.get(f"/admin/audit?action=rehearsal&from={since}")
    assert b"rehearsal.create" in r.data
    assert b"rehearsal.delete" not in r.data

    r = c.get("/admin/audit?actor=kasse")
    assert b"finance.entry.create" in r.data
    assert b"rehearsal.create" not in r.data


def test_dashboard_counts_follow_permissions(app, make_user):
    member_id = make_user("mia@example.com", ("member",))
    board_id = make_user("vorstand@example.com", ("board",))
    finance_id = make_user("kasse@example.com", ("finance",))
    with session_scope(app) as s:
        now = datetime.utcnow()
        s.add(Rehearsal(start=now + timedelta(days=2), end=now + timedelta(days=2, hours=3)))
        s.add(Rehearsal(start=now - timedelta(days=2), end=now - timedelta(days=2) + timedelta(hours=3)))
        s.add(PhotoConsent(user_id=member_id, status="pending"))
        s.add(FinanceEntry(type="expense", title="Holz", amount=12, status="pending"))
        s.flush()

        member = s.get(User, member_id)
        counts = dashboard_counts(s, member)
        assert counts == {"upcomingRehearsals": 1}

        board = s.get(User, board_id)
        counts = dashboard_counts(s, board)
        assert counts["pendingConsents"] == 1
        assert counts["activeInvites"] == 0
        assert "pendingFinance" not in counts

        finance = s.get(User, finance_id)
        assert dashboard_counts(s, finance)["pendingFinance"] == 1
