from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from app.sommertheater.db import db_session
from app.sommertheater.models import User
from app.sommertheater.modules.sperrliste.holidays import cached_holiday_ranges, fetch_holiday_ranges
from app.sommertheater.modules.sperrliste.service import (
    block_day_overview,
    bulk_create_block_days,
    create_block_day,
    delete_block_day,
    get_own_block_day_or_404,
    list_own_block_days,
    serialize_block_day,
    update_block_day_reason,
)
from app.sommertheater.modules.sperrliste.settings import (
    ResolvedSettings,
    apply_holiday_status,
    default_holiday_url,
    effective_url_for,
    read_settings,
    resolve_settings,
    save_settings,
    validate_settings_payload,
)
from app.sommertheater.rbac import require_permission
from app.sommertheater.utils import json_body

bp = Blueprint("sperrliste", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _resolved(s) -> ResolvedSettings:
    return resolve_settings(read_settings(s), env_url=current_app.config.get("SAXONY_HOLIDAYS_ICS_URL"))


def _fetch_kwargs() -> dict:
    return {
        "outbound_disabled": bool(current_app.config.get("OUTBOUND_HTTP_DISABLED")),
        "env_url": current_app.config.get("SAXONY_HOLIDAYS_ICS_URL"),
        "timeout": int(current_app.config.get("HOLIDAY_FEED_TIMEOUT") or 10),
    }


def _defaults() -> dict:
    return {"holidaySourceUrl": default_holiday_url(current_app.config.get("SAXONY_HOLIDAYS_ICS_URL"))}


# --- settings & holidays ------------------------------------------------------


@bp.get("/api/sperrliste/settings")
@require_permission("mitglieder.sperrliste.settings")
def settings_get():
    s = db_session()
    return jsonify({"settings": _resolved(s).to_dict(), "defaults": _defaults()})


@bp.put("/api/sperrliste/settings")
@require_permission("mitglieder.sperrliste.settings")
def settings_put():
    s = db_session()
    values, errors = validate_settings_payload(json_body())
    if errors:
        return jsonify({"error": errors[0], "details": errors}), 400

    save_settings(s, values, _current_user())
    result = fetch_holiday_ranges(_resolved(s), **_fetch_kwargs())
    apply_holiday_status(s, result.status)
    s.commit()
    current_app.logger.info("Sperrliste settings saved (holiday status=%s)", result.status["status"])
    return jsonify({"settings": _resolved(s).to_dict(), "holidays": result.ranges, "defaults": _defaults()})


@bp.post("/api/sperrliste/settings/check")
@require_permission("mitglieder.sperrliste.settings")
def settings_check():
    """Dry-run a holiday source without saving it."""
    s = db_session()
    payload = json_body()
    values, errors = validate_settings_payload(
        {
            "freezeDays": 0,
            "holidaySourceMode": payload.get("mode"),
            "holidaySourceUrl": payload.get("url"),
        }
    )
    if errors:
        return jsonify({"error": errors[0], "details": errors}), 400

    base = _resolved(s)
    mode, url = values["holiday_source_mode"], values["holiday_source_url"]
    candidate = ResolvedSettings(
        freeze_days=base.freeze_days,
        preferred_weekdays=base.preferred_weekdays,
        exception_weekdays=base.exception_weekdays,
        mode=mode,
        url=url,
        effective_url=effective_url_for(mode, url, current_app.config.get("SAXONY_HOLIDAYS_ICS_URL")),
        status="disabled" if mode == "disabled" else "unknown",
    )
    result = fetch_holiday_ranges(candidate, **_fetch_kwargs())
    return jsonify({"holidayStatus": result.status_json()})


@bp.get("/api/sperrliste/holidays")
@require_permission("mitglieder.sperrliste")
def holidays_get():
    s = db_session()
    settings = _resolved(s)
    result, fresh = cached_holiday_ranges(settings, **_fetch_kwargs())
    if fresh:
        apply_holiday_status(s, result.status)
        s.commit()
    return jsonify({"ranges": result.ranges, "status": result.status_json()})


# --- block days ---------------------------------------------------------------


@bp.get("/api/block-days")
@require_permission("mitglieder.sperrliste")
def block_days_list():
    s = db_session()
    return jsonify([serialize_block_day(b) for b in list_own_block_days(s, _current_user())])


@bp.post("/api/block-days")
@require_permission("mitglieder.sperrliste")
def block_days_create():
    s = db_session()
    b = create_block_day(s, _current_user(), json_body(), freeze_days=_resolved(s).freeze_days)
    s.commit()
    return jsonify(serialize_block_day(b))


@bp.post("/api/block-days/bulk")
@require_permission("mitglieder.sperrliste")
def block_days_bulk_create():
    s = db_session()
    created, skipped = bulk_create_block_days(s, _current_user(), json_body(), freeze_days=_resolved(s).freeze_days)
    s.commit()
    return jsonify({"created": [serialize_block_day(b) for b in created], "skipped": skipped})


@bp.patch("/api/block-days/<int:block_id>")
@require_permission("mitglieder.sperrliste")
def block_days_update(block_id: int):
    s = db_session()
    user = _current_user()
    b = get_own_block_day_or_404(s, user, block_id)
    update_block_day_reason(s, b, json_body(), user)
    s.commit()
    return jsonify(serialize_block_day(b))


@bp.delete("/api/block-days/<int:block_id>")
@require_permission("mitglieder.sperrliste")
def block_days_delete(block_id: int):
    s = db_session()
    user = _current_user()
    b = get_own_block_day_or_404(s, user, block_id)
    delete_block_day(s, b, user, freeze_days=_resolved(s).freeze_days)
    s.commit()
    return jsonify({"success": True})


@bp.get("/api/block-days/overview")
@require_permission("mitglieder.probenplanung")
def block_days_overview():
    s = db_session()
    return jsonify(block_day_overview(s, request.args.get("from"), request.args.get("to")))
