import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

DB_TYPE = os.getenv("DB_TYPE", "postgresql").lower()
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = os.getenv("DB_PORT")
DB_USER = os.getenv("DB_USER", "root")
DB_PASSWORD = os.getenv("DB_PASSWORD", "123")
DB_NAME = os.getenv("DB_NAME", "erd_studio")
SQLITE_PATH = os.getenv("SQLITE_PATH", "./erd_studio.db")

CORS_ORIGINS = os.getenv("CORS_ORIGINS")

CANONICAL_MODELS = ("gpt-5", "gpt-5-mini", "gemini-2.5-flash", "gemini-2.5-flash-lite")
DEFAULT_AI_MODEL = os.getenv("DEFAULT_AI_MODEL", "gemini-2.5-flash")

AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "180"))
AI_RETRY_ATTEMPTS = int(os.getenv("AI_RETRY_ATTEMPTS", "3"))
AI_RETRY_BASE_DELAY = float(os.getenv("AI_RETRY_BASE_DELAY", "0.4"))
AI_CHAT_TAIL = int(os.getenv("AI_CHAT_TAIL", "6"))
AI_CACHE_ENABLED = _flag("AI_CACHE_ENABLED", True)
OPENAI_MAX_TOKENS = int(os.getenv("OPENAI_MAX_TOKENS", "8000"))

CHAT_HISTORY_LIMIT = int(os.getenv("CHAT_HISTORY_LIMIT", "100"))
FREE_PLAN_DIAGRAM_LIMIT = int(os.getenv("FREE_PLAN_DIAGRAM_LIMIT", "10"))
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", "20"))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", "100"))
