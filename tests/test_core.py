from app.sommertheater.db import session_scope
from app.sommertheater.models import AuditEvent, User


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_landing_page_renders_without_shows(client):
    r = client.get("/")
    assert r.status_code == 200
    assert "Sommertheater".encode() in r.data


def test_login_and_dashboard_access(api, make_user):
    make_user("mia@example.com", ("member",), first_name="Mia")

    r = api.get("/admin/")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]

    r = api.login("mia@example.com")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/admin/")

    r = api.get("/admin/")
    assert r.status_code == 200
    assert b"Mia" in r.data


def test_login_only_follows_local_next(api, make_user):
    make_user("mia@example.com")
    r = api.client.post(
        "/auth/login",
        data={"email": "mia@example.com", "password": "pw", "next": "//evil.example.com"},
    )
    assert r.headers["Location"].endswith("/admin/")


def test_failed_login_is_audited(app, api, make_user):
    make_user("mia@example.com")
    r = api.login("mia@example.com", "wrong")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]

    with session_scope(app) as s:
        ev = s.query(AuditEvent).filter(AuditEvent.action == "auth.login_failed").one()
        assert ev.entity_id == "mia@example.com"


def test_login_rate_limit(api, make_user):
    make_user("mia@example.com")
    for _ in range(5):
        api.login("mia@example.com", "wrong")
    r = api.login("mia@example.com")
    assert "/auth/login" in r.headers["Location"]


def test_api_requires_login(client):
    r = client.get("/api/members")
    assert r.status_code == 401
    assert r.json["error"] == "Nicht autorisiert"


def test_api_forbidden_without_permission(login_as):
    c, _ = login_as("mia@example.com", ("member",))
    r = c.get("/api/members")
    assert r.status_code == 403
    assert r.json["error"] == "Keine Berechtigung"


def test_html_forbidden_page(login_as):
    c, _ = login_as("mia@example.com", ("member",))
    r = c.get("/admin/audit")
    assert r.status_code == 403
    assert b"admin.audit" in r.data


def test_csrf_guard_rejects_api_write_without_token(login_as):
    c, _ = login_as("mia@example.com", ("member",))
    r = c.client.patch("/api/profile", json={"firstName": "Mia"})
    assert r.status_code == 400
    assert "CSRF" in r.json["error"]

    r = c.patch("/api/profile", json={"firstName": "Mia"})
    assert r.status_code == 200
    assert r.json["profile"]["firstName"] == "Mia"


def test_deactivated_user_is_logged_out(app, login_as):
    c, uid = login_as("mia@example.com", ("member",))
    with session_scope(app) as s:
        s.get(User, uid).is_active = False
    r = c.get("/api/profile")
    assert r.status_code == 401


def test_logout_clears_session(login_as):
    c, _ = login_as("mia@example.com", ("member",))
    r = c.get("/auth/logout")
    assert r.status_code == 302
    assert c.get("/api/profile").status_code == 401


def test_unknown_api_route_returns_json_404(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert r.json["error"] == "Nicht gefunden"
