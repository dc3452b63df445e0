from app.sommertheater.db import session_scope
from app.sommertheater.models import Permission, Role, User
from app.sommertheater.rbac import (
    ensure_allowed_scope,
    primary_role,
    resolve_allowed_visibility_scopes,
    sort_roles,
    user_has_permission,
)


def test_sort_roles_orders_by_privilege_and_drops_unknown():
    assert sort_roles(["admin", "member", "nope", "board", "member"]) == ["member", "board", "admin"]


def test_primary_role_and_superusers(app, make_user):
    uid = make_user("boss@example.com", ("cast", "owner"))
    mid = make_user("mia@example.com", ("member",))
    with session_scope(app) as s:
        boss = s.get(User, uid)
        mia = s.get(User, mid)
        assert primary_role(boss) == "owner"
        assert primary_role(None) == "member"
        assert user_has_permission(boss, "mitglieder.finanzen.approve")
        assert user_has_permission(mia, "mitglieder.sperrliste")
        assert not user_has_permission(mia, "mitglieder.finanzen")
        assert not user_has_permission(mia, "does.not.exist")

        mia.is_active = False
        assert not user_has_permission(mia, "mitglieder.sperrliste")


def test_visibility_scopes():
    assert resolve_allowed_visibility_scopes(None, True) == ["finance", "board"]
    assert resolve_allowed_visibility_scopes(None, False) == ["finance"]
    assert ensure_allowed_scope("board", ["finance"]) == "finance"
    assert ensure_allowed_scope("board", ["finance", "board"]) == "board"


def test_permission_matrix_and_custom_role(login_as):
    c, _ = login_as("boss@example.com", ("admin",))
    r = c.get("/api/permissions")
    assert r.status_code == 200
    keys = {p["key"] for p in r.json["permissions"]}
    assert "mitglieder.galerie.upload" in keys
    admin_role = next(role for role in r.json["roles"] if role["key"] == "admin")
    assert admin_role["locked"] is True

    r = c.post("/api/permissions/roles", json={"name": "Maske & Kostüm"})
    assert r.status_code == 201
    role = r.json["role"]
    assert role["isSystem"] is False

    r = c.post("/api/permissions/roles", json={"name": "Maske & Kostüm"})
    assert r.status_code == 409

    r = c.put(f"/api/permissions/roles/{role['id']}", json={"permissions": ["mitglieder.koerpermasse"]})
    assert r.status_code == 200
    assert r.json["role"]["permissions"] == ["mitglieder.koerpermasse"]

    r = c.put(f"/api/permissions/roles/{role['id']}", json={"permissions": ["mitglieder.erfunden"]})
    assert r.status_code == 400
    assert "Unbekannte Rechte" in r.json["error"]


def test_locked_roles_cannot_be_edited(app, login_as):
    c, _ = login_as("boss@example.com", ("admin",))
    with session_scope(app) as s:
        admin_id = s.query(Role).filter(Role.key == "admin").one().id
    r = c.put(f"/api/permissions/roles/{admin_id}", json={"permissions": []})
    assert r.status_code == 400


def test_member_role_assignment_and_owner_guard(app, login_as, make_user):
    c, _ = login_as("vorstand@example.com", ("board",))
    target = make_user("mia@example.com", ("member",))

    r = c.put(f"/api/members/{target}/roles", json={"roles": ["member", "cast", "unbekannt"]})
    assert r.status_code == 200
    assert r.json["member"]["roles"] == ["member", "cast"]
    assert r.json["member"]["primaryRole"] == "cast"

    r = c.put(f"/api/members/{target}/roles", json={"roles": ["owner"]})
    assert r.status_code == 403

    r = c.put(f"/api/members/{target}/roles", json={"roles": []})
    assert r.status_code == 400


def test_member_deactivation(app, login_as, make_user):
    c, me = login_as("vorstand@example.com", ("board",))
    target = make_user("mia@example.com", ("member",))

    r = c.patch(f"/api/members/{target}/status", json={"isActive": False})
    assert r.status_code == 200
    assert r.json["member"]["isActive"] is False

    r = c.patch(f"/api/members/{me}/status", json={"isActive": False})
    assert r.status_code == 400

    r = c.patch(f"/api/members/{target}/status", json={})
    assert r.status_code == 400


def test_profile_validation(login_as):
    c, _ = login_as("mia@example.com")
    r = c.patch("/api/profile", json={"firstName": "M"})
    assert r.status_code == 400
    assert r.json["error"] == "Vorname muss mindestens 2 Zeichen lang sein."

    r = c.patch("/api/profile", json={"dateOfBirth": "2999-01-01"})
    assert r.status_code == 400

    r = c.patch("/api/profile", json={"firstName": "Mia", "lastName": "Berger", "dateOfBirth": "2001-05-04"})
    assert r.status_code == 200
    assert r.json["profile"]["displayName"] == "Mia Berger"
    assert r.json["profile"]["dateOfBirth"] == "2001-05-04"


def test_seeded_catalog_matches_definitions(app):
    from app.sommertheater.constants import PERMISSION_DEFINITIONS

    with session_scope(app) as s:
        assert {p.key for p in s.query(Permission).all()} == set(PERMISSION_DEFINITIONS)
