from flask import Blueprint, render_template

from app.sommertheater.db import db_session
from app.sommertheater.modules.productions.service import next_revealed_show

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    show = next_revealed_show(db_session())
    return render_template("public/index.html", show=show)


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast liveness probe. No DB access.
    """
    return "ok", 200
