from __future__ import annotations

import pytest
from werkzeug.security import generate_password_hash

from app.sommertheater import create_app
from app.sommertheater.auth import _login_attempts
from app.sommertheater.constants import DEFAULT_ROLE_GRANTS, ROLES
from app.sommertheater.db import session_scope
from app.sommertheater.models import Base, User
from app.sommertheater.modules.members.service import ensure_roles
from app.sommertheater.modules.permissions.service import ensure_permission_definitions
from app.sommertheater.modules.sperrliste.holidays import clear_holiday_cache


def _seed_roles(s) -> None:
    catalog = ensure_permission_definitions(s)
    roles = {r.key: r for r in ensure_roles(s, ROLES)}
    for role_key, keys in DEFAULT_ROLE_GRANTS.items():
        roles[role_key].permissions = [catalog[k] for k in keys]


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("LOCAL_STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.setenv("OUTBOUND_HTTP_DISABLED", "1")
    monkeypatch.setenv("APP_BASE_URL", "https://mitglieder.example.org")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "SAXONY_HOLIDAYS_ICS_URL"):
        monkeypatch.delenv(k, raising=False)

    app = create_app()
    app.config["TESTING"] = True

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        _seed_roles(s)

    _login_attempts.clear()
    clear_holiday_cache()
    yield app
    clear_holiday_cache()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_user(app):
    """Create an active member with the given role keys; returns the user id."""

    def _make(email: str, roles=("member",), password: str = "pw", **fields) -> int:
        with session_scope(app) as s:
            u = User(email=email, password_hash=generate_password_hash(password), is_active=True, **fields)
            u.roles = ensure_roles(s, roles)
            s.add(u)
            s.flush()
            return u.id

    return _make


class ApiClient:
    """Test client wrapper that logs in and sends the session CSRF token with every call."""

    def __init__(self, client):
        self.client = client

    def login(self, email: str, password: str = "pw"):
        return self.client.post("/auth/login", data={"email": email, "password": password}, follow_redirects=False)

    def csrf_token(self) -> str | None:
        with self.client.session_transaction() as sess:
            return sess.get("csrf_token")

    def _headers(self, headers=None) -> dict:
        out = {"X-CSRF-Token": self.csrf_token() or ""}
        out.update(headers or {})
        return out

    def get(self, url, **kw):
        return self.client.get(url, **kw)

    def post(self, url, headers=None, **kw):
        return self.client.post(url, headers=self._headers(headers), **kw)

    def put(self, url, headers=None, **kw):
        return self.client.put(url, headers=self._headers(headers), **kw)

    def patch(self, url, headers=None, **kw):
        return self.client.patch(url, headers=self._headers(headers), **kw)

    def delete(self, url, headers=None, **kw):
        return self.client.delete(url, headers=self._headers(headers), **kw)


@pytest.fixture()
def api(client):
    return ApiClient(client)


@pytest.fixture()
def login_as(app, make_user):
    """Create a user with roles, log a fresh client in and return (ApiClient, user_id)."""

    def _login(email: str, roles=("member",), **fields):
        uid = make_user(email, roles, **fields)
        c = ApiClient(app.test_client())
        r = c.login(email)
        assert r.status_code == 302
        return c, uid

    return _login
