from __future__ import annotations

from flask import Blueprint, current_app, jsonify

from ..game.scheduling import now_ms

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    engine = current_app.extensions["duohunt"]
    return jsonify({"ok": True, "now": now_ms(), "challenges": len(engine.catalog)})
