"""Centralized configuration: all env vars in one place."""
import os
import logging
from dotenv import load_dotenv

load_dotenv()

# --- Open Trivia DB ---
TRIVIA_API_URL = os.getenv("TRIVIA_API_URL", "https://opentdb.com/api.php")
TRIVIA_API_TIMEOUT = int(os.getenv("TRIVIA_API_TIMEOUT", "10"))

# --- Server ---
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8080"))
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "")

# --- WebSocket Security ---
WS_RATE_LIMIT_PER_SEC = 10  # max messages per second per client
MAX_WS_MESSAGE_SIZE = 4096  # bytes

# --- Rooms ---
ROOM_ID_MIN = 100000
ROOM_ID_MAX = 999999
ROOM_TTL_SECONDS = int(os.getenv("ROOM_TTL_SECONDS", "0"))  # 0 = rooms live until shutdown
ROOM_CLEANUP_INTERVAL = 60  # seconds

# --- Game ---
DEFAULT_QUESTIONS_PER_ROUND = 5
MAX_QUESTIONS_PER_ROUND = 50  # Open Trivia DB per-request maximum
DEFAULT_QUESTION_TIME_LIMIT = 0  # 0 = unlimited
MAX_QUESTION_TIME_LIMIT = 600
MAX_ROUNDS = 50
MAX_PLAYER_NAME_LENGTH = 20

# mode -> Open Trivia DB difficulty; 4 is the kids mode
DIFFICULTY_BY_MODE = {
    1: "easy",
    2: "medium",
    3: "hard",
    4: "easy",
}
DEFAULT_DIFFICULTY = "easy"

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE", "")  # empty = stdout only


def setup_logging():
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if LOG_FILE:
        handlers.append(logging.FileHandler(LOG_FILE))
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
    )
