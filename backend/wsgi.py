import logging

try:
    from backend.duohunt.server import create_app
except ImportError:  # pragma: no cover
    from duohunt.server import create_app

logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app, socketio = create_app()
