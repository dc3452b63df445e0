from __future__ import annotations

from datetime import date, datetime, time, timedelta

from flask import Blueprint, flash, g, redirect, render_template, request, url_for
from werkzeug.security import check_password_hash, generate_password_hash

from app.sommertheater.audit import record_event
from app.sommertheater.constants import ROLE_LABELS
from app.sommertheater.db import db_session
from app.sommertheater.models import AuditEvent, User
from app.sommertheater.rbac import primary_role, require_permission, user_has_permission

bp = Blueprint("admin", __name__)

AUDIT_LIMIT = 200
MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = 128


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def dashboard_counts(s, user: User, *, now: datetime | None = None) -> dict[str, int]:
    """Open work items per area; areas the viewer cannot see are left out."""
    from app.sommertheater.modules.finance.models import FinanceEntry
    from app.sommertheater.modules.onboarding.models import MemberInvite
    from app.sommertheater.modules.onboarding.service import is_invite_usable
    from app.sommertheater.modules.photo_consent.models import PhotoConsent
    from app.sommertheater.modules.rehearsals.models import Rehearsal

    now = now or datetime.utcnow()
    counts: dict[str, int] = {
        "upcomingRehearsals": s.query(Rehearsal).filter(Rehearsal.start >= now).count(),
    }
    if user_has_permission(user, "mitglieder.fotoerlaubnisse"):
        counts["pendingConsents"] = s.query(PhotoConsent).filter(PhotoConsent.status == "pending").count()
    if user_has_permission(user, "mitglieder.finanzen.approve"):
        counts["pendingFinance"] = s.query(FinanceEntry).filter(FinanceEntry.status == "pending").count()
    if user_has_permission(user, "mitglieder.einladungen"):
        invites = s.query(MemberInvite).filter(MemberInvite.is_disabled.is_(False)).all()
        counts["activeInvites"] = sum(1 for i in invites if is_invite_usable(i, now))
    return counts


@bp.get("/")
@require_permission("mitglieder.dashboard")
def index():
    s = db_session()
    user = _current_user()
    return render_template(
        "admin/index.html",
        user=user,
        role_label=ROLE_LABELS.get(primary_role(user), primary_role(user)),
        counts=dashboard_counts(s, user),
    )


@bp.get("/me")
@require_permission("mitglieder.profil")
def me():
    user = _current_user()
    role_keys = sorted({r.key for r in (user.roles or [])})
    perm_keys = sorted({p.key for r in (user.roles or []) for p in (r.permissions or [])})
    return render_template("admin/me.html", user=user, role_keys=role_keys, perm_keys=perm_keys)


@bp.post("/me")
@require_permission("mitglieder.profil")
def me_update():
    """Password change for the logged-in member."""
    s = db_session()
    user = _current_user()

    current = request.form.get("current_password") or ""
    new = request.form.get("new_password") or ""
    confirm = request.form.get("confirm_password")

    if not check_password_hash(user.password_hash, current):
        flash("Das aktuelle Passwort ist falsch.", "danger")
        return redirect(url_for("admin.me"))
    if len(new) < MIN_PASSWORD_LENGTH or len(new) > MAX_PASSWORD_LENGTH:
        flash(
            f"Das neue Passwort muss zwischen {MIN_PASSWORD_LENGTH} und {MAX_PASSWORD_LENGTH} Zeichen lang sein.",
            "danger",
        )
        return redirect(url_for("admin.me"))
    if confirm is not None and confirm != new:
        flash("Die Passwörter stimmen nicht überein.", "danger")
        return redirect(url_for("admin.me"))

    user.password_hash = generate_password_hash(new)
    record_event(s, actor=user, action="user.password_change", entity_type="User", entity_id=str(user.id))
    s.commit()
    flash("Passwort wurde geändert.", "success")
    return redirect(url_for("admin.me"))


@bp.get("/audit")
@require_permission("admin.audit")
def audit_log():
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor = (request.args.get("actor") or "").strip().lower()
    date_from = _parse_date(request.args.get("from") or "")
    date_to = _parse_date(request.args.get("to") or "")

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.ilike(f"{action}%"))
    if actor:
        q = q.filter(AuditEvent.actor_user_email.ilike(f"%{actor}%"))
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))
    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(AUDIT_LIMIT).all()

    return render_template(
        "admin/audit.html",
        events=events,
        filters={"action": action, "actor": actor, "from": date_from, "to": date_to},
        limit=AUDIT_LIMIT,
    )
