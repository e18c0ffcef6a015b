from __future__ import annotations

import logging
import sys
from pathlib import Path

from flask import Flask, send_from_directory
from flask_cors import CORS
from flask_socketio import SocketIO
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import Config
from .game.catalog import ChallengeCatalog
from .game.engine import RoundEngine
from .game.scheduling import SocketIOScheduler
from .game.service import RoomRegistry
from .realtime.handlers import register_socketio_handlers
from .realtime.notifier import SocketIONotifier
from .routes.health import bp as health_bp
from .routes.rooms import bp as rooms_bp


def _pick_async_mode(configured: str) -> str:
    if configured:
        return configured
    if sys.platform.startswith("win") or sys.version_info >= (3, 13):
        return "threading"
    return "eventlet"


def create_app(config_class=Config, scheduler=None) -> tuple[Flask, SocketIO]:
    public_dir = Path(__file__).resolve().parents[2] / "public"

    static_folder = str(public_dir) if public_dir.exists() else None
    static_url_path = "/" if public_dir.exists() else None

    app = Flask(
        __name__,
        static_folder=static_folder,
        static_url_path=static_url_path,
    )
    app.config.from_object(config_class)
    logging.getLogger("duohunt").setLevel(str(app.config.get("LOG_LEVEL") or "INFO").upper())

    if app.config.get("TRUST_PROXY_HEADERS", False):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    cors_origins = app.config.get("CORS_ORIGINS", "*")
    CORS(app, resources={r"/api/*": {"origins": cors_origins}})

    socketio = SocketIO(
        app,
        cors_allowed_origins=cors_origins,
        async_mode=_pick_async_mode(app.config.get("SOCKETIO_ASYNC_MODE", "")),
    )

    catalog = ChallengeCatalog.from_file(
        app.config["CHALLENGES_PATH"],
        default_time_limit_sec=app.config["DEFAULT_TIME_LIMIT_SEC"],
        default_base_score=app.config["DEFAULT_BASE_SCORE"],
    )
    if not len(catalog):
        app.logger.warning("Challenge catalog is empty; rooms will not be able to start rounds")

    scheduler = scheduler or SocketIOScheduler(socketio)
    registry = RoomRegistry(scheduler, unused_ttl_sec=app.config["UNUSED_ROOM_TTL_SEC"])
    engine = RoundEngine(
        registry,
        catalog,
        SocketIONotifier(socketio),
        scheduler,
        config=app.config,
    )
    app.extensions["duohunt"] = engine

    app.register_blueprint(health_bp, url_prefix="/api")
    app.register_blueprint(rooms_bp, url_prefix="/api")

    register_socketio_handlers(socketio, engine)

    if public_dir.exists():
        @app.get("/")
        def index():
            return send_from_directory(public_dir, "index.html")

    return app, socketio
