import os
from pathlib import Path


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Reverse proxy / IP headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    # Socket.IO ("" lets the server pick eventlet or threading)
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip()

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Challenge data (read once at startup)
    CHALLENGES_PATH = os.environ.get(
        "CHALLENGES_PATH",
        str(Path(__file__).resolve().parent / "challenges" / "sample_challenges.json"),
    )
    # "strict" or "tiered"
    DIFFICULTY_TABLE = os.environ.get("DIFFICULTY_TABLE", "strict")

    # Game
    ROUNDS_PER_GAME = int(os.environ.get("ROUNDS_PER_GAME", "3"))
    NEXT_ROUND_DELAY_MS = int(os.environ.get("NEXT_ROUND_DELAY_MS", "1500"))
    UNUSED_ROOM_TTL_SEC = int(os.environ.get("UNUSED_ROOM_TTL_SEC", "60"))
    TIMER_TICK_SEC = float(os.environ.get("TIMER_TICK_SEC", "1"))
    LIVES_HARD = int(os.environ.get("LIVES_HARD", "3"))
    LIVES_NORMAL = int(os.environ.get("LIVES_NORMAL", "5"))
    HARD_SCORE_MULTIPLIER = float(os.environ.get("HARD_SCORE_MULTIPLIER", "1.5"))
    HARD_TIME_FACTOR = float(os.environ.get("HARD_TIME_FACTOR", "0.8"))
    DEFAULT_TIME_LIMIT_SEC = int(os.environ.get("DEFAULT_TIME_LIMIT_SEC", "300"))
    DEFAULT_BASE_SCORE = int(os.environ.get("DEFAULT_BASE_SCORE", "100"))
    CHAT_MAX_LEN = int(os.environ.get("CHAT_MAX_LEN", "500"))
