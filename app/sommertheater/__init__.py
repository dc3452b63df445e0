import logging
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, jsonify, render_template, request, session

from app.sommertheater.config import load_config
from app.sommertheater.db import init_db, teardown_db_session
from app.sommertheater.errors import ServiceError
from app.sommertheater.routes import bp as routes_bp
from app.sommertheater.auth import bp as auth_bp, load_current_user
from app.sommertheater.admin import bp as admin_bp
from app.sommertheater.modules.productions.api import bp as productions_bp
from app.sommertheater.modules.members.api import bp as members_bp
from app.sommertheater.modules.permissions.api import bp as permissions_bp
from app.sommertheater.modules.onboarding.api import bp as onboarding_bp
from app.sommertheater.modules.finance.api import bp as finance_bp
from app.sommertheater.modules.photo_consent.api import bp as photo_consent_bp
from app.sommertheater.modules.measurements.api import bp as measurements_bp
from app.sommertheater.modules.dietary.api import bp as dietary_bp
from app.sommertheater.modules.rehearsals.api import bp as rehearsals_bp
from app.sommertheater.modules.sperrliste.api import bp as sperrliste_bp
from app.sommertheater.modules.gallery.api import bp as gallery_bp
from app.sommertheater.modules.pdfs.api import bp as pdfs_bp

_UNGUARDED_PREFIXES = ("/static/", "/health", "/healthz")


def _wants_json() -> bool:
    return request.path.startswith("/api/")


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    # CSRF protection (minimal)
    from app.sommertheater.security import ensure_csrf_token, validate_csrf

    @app.context_processor
    def _inject_csrf() -> dict:
        return {"csrf_token": ensure_csrf_token()}

    @app.context_processor
    def _inject_permissions() -> dict:
        from app.sommertheater.rbac import user_has_permission

        def has_perm(key: str) -> bool:
            return user_has_permission(getattr(g, "current_user", None), key)

        return {"has_perm": has_perm}

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%d.%m.%Y") -> str:
        if value is None:
            return "–"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        return str(value)

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(_UNGUARDED_PREFIXES):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Login/logout carry no session yet.
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                if _wants_json():
                    return jsonify({"error": "CSRF-Token fehlt oder ist ungültig."}), 400
                return render_template("errors/400.html", message="CSRF-Token fehlt oder ist ungültig."), 400

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os

        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(productions_bp)
    app.register_blueprint(members_bp)
    app.register_blueprint(permissions_bp)
    app.register_blueprint(onboarding_bp)
    app.register_blueprint(finance_bp)
    app.register_blueprint(photo_consent_bp)
    app.register_blueprint(measurements_bp)
    app.register_blueprint(dietary_bp)
    app.register_blueprint(rehearsals_bp)
    app.register_blueprint(sperrliste_bp)
    app.register_blueprint(gallery_bp)
    app.register_blueprint(pdfs_bp)

    def _load_user_wrapper():
        if request.path.startswith(_UNGUARDED_PREFIXES):
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    @app.errorhandler(ServiceError)
    def _service_error(e: ServiceError):  # type: ignore[no-redef]
        s = getattr(g, "db_session", None)
        if s is not None:
            s.rollback()
        if _wants_json():
            return jsonify(e.to_dict()), e.status_code
        template = f"errors/{e.status_code}.html" if e.status_code in (400, 403, 404) else "errors/400.html"
        return render_template(template, message=e.message), e.status_code

    @app.errorhandler(400)
    def _err_400(e):  # type: ignore[no-redef]
        if _wants_json():
            return jsonify({"error": "Ungültige Anfrage"}), 400
        return render_template("errors/400.html", message=getattr(e, "description", None)), 400

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        if _wants_json():
            return jsonify({"error": "Nicht gefunden"}), 404
        return render_template("errors/404.html"), 404

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        if _wants_json():
            return jsonify({"error": "Interner Serverfehler"}), 500
        return render_template("errors/500.html"), 500

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        if _wants_json():
            return jsonify({"error": "Keine Berechtigung"}), 403
        return render_template("errors/403.html", missing_permission=missing), 403

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        limit_mb = (app.config.get("MAX_CONTENT_LENGTH") or 0) // (1024 * 1024)
        message = f"Die Anfrage ist zu groß (maximal {limit_mb} MB)."
        if _wants_json():
            return jsonify({"error": message}), 413
        return render_template("errors/400.html", message=message), 413

    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
