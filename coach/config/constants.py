from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# BASE_DIR points to the project root
BASE_DIR = Path(__file__).resolve().parents[2]

load_dotenv(dotenv_path=BASE_DIR / ".env")

SQLITE_PREFIX = "sqlite:///"

COACH_MODEL = os.getenv("COACH_MODEL", "gpt-4o")
CHAT_TIMEOUT_SECONDS = float(os.getenv("COACH_CHAT_TIMEOUT", "60"))
CONTINUATION_TIMEOUT_SECONDS = float(os.getenv("COACH_CONTINUATION_TIMEOUT", "45"))
MODEL_MAX_RETRIES = int(os.getenv("COACH_MAX_RETRIES", "2"))
CHAT_MAX_TOKENS = 4096
CONTINUATION_MAX_TOKENS = 2048

CACHE_TTL_EXERCISE_LIBRARY = int(os.getenv("EXERCISE_LIBRARY_CACHE_TTL", str(10 * 60)))
CACHE_CLEANUP_INTERVAL = 5 * 60

DEFAULT_PLAN_VALIDITY_DAYS = 30
RESUME_EXTENSION_DAYS = 7
DEFAULT_SESSION_LENGTH_MIN = 45
PLAN_GENERATOR_TAG = "coach"

QUERY_RESULT_LIMIT = 10
MAX_MESSAGE_LENGTH = 10_000
MAX_MESSAGES = 100
MAX_TOTAL_CONTENT_SIZE = 500_000

FALLBACK_ASSISTANT_MESSAGE = "I've updated your workout plan!"
PROVIDER_ERROR_MESSAGE = "Failed to get response from AI"

DAYS_OF_WEEK = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
)


def _exercise_library_key(user_id: str) -> str:
    return f"exercise_library:{user_id}"


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
