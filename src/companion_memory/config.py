import os
import logging

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

log = logging.getLogger("companion")

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_CHAT_MODEL = "meta-llama/llama-3-8b-instruct:free"
DEFAULT_EMBED_MODEL = "nomic-ai/nomic-embed-text-v1.5"

ONE_YEAR = 60 * 60 * 24 * 365


def _env(name: str, default: str = "") -> str:
    """Read an env var, treating `<placeholder>` values as unset."""
    val = os.getenv(name, "")
    if not val.strip() or val.startswith("<"):
        return default
    return val.strip()


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    """Parse a non-negative int; unparsable or below `minimum` gives `default`."""
    val = _env(name)
    if val.isdigit() and int(val) >= minimum:
        return int(val)
    return default


def _env_float(name: str, default: float) -> float:
    val = _env(name)
    try:
        return float(val) if val else default
    except ValueError:
        return default


def get_api_key() -> str:
    key = _env("OPENAI_API_KEY")
    if not key:
        log.debug("no upstream key configured (set OPENAI_API_KEY)")
    return key


def get_store_path() -> str:
    return os.path.expanduser(_env("MEMORY_STORE_PATH", "~/.companion-memory"))


def get_database_url() -> str | None:
    """Return DATABASE_URL if set and non-placeholder, else None."""
    return _env("DATABASE_URL") or None


def get_allow_origins() -> list[str]:
    return [o.strip() for o in _env("ALLOW_ORIGIN").split(",") if o.strip()]


def is_production() -> bool:
    return _env("APP_ENV").lower() == "production"


def get_cookie_samesite(origins: list[str]) -> str:
    # cross-site callers need SameSite=None
    return _env("COOKIE_SAMESITE", "none" if origins else "lax").lower()


def get_cookie_secure() -> bool:
    val = _env("COOKIE_SECURE")
    if val:
        return val.lower() in ("true", "1", "yes")
    return is_production()


class Settings(BaseModel, frozen=True):
    """Every deployment knob in one place. Built once at process start."""

    base_url: str = DEFAULT_BASE_URL
    chat_model: str = DEFAULT_CHAT_MODEL
    embed_model: str = DEFAULT_EMBED_MODEL
    api_key: str = ""
    public_url: str = "https://example.com"
    app_title: str = "AI Companion"
    request_timeout: float = 60.0

    store_path: str = "~/.companion-memory"
    database_url: str | None = None

    recall_threshold: float = 0.1
    recall_top_k: int = Field(8, ge=1)
    recall_scan_cap: int = Field(500, ge=1)
    summary_every: int = Field(12, ge=1)
    summary_window: int = Field(20, ge=1)
    fact_limit: int = Field(50, ge=0)
    summary_limit: int = Field(10, ge=0)
    chat_cache_size: int = Field(1024, ge=1)

    allow_origins: list[str] = Field(default_factory=list)
    cookie_name: str = "aid"
    cookie_samesite: str = "lax"
    cookie_secure: bool = False
    cookie_max_age: int = ONE_YEAR

    log_level: str = "INFO"

    @property
    def is_openrouter(self) -> bool:
        return "openrouter.ai" in self.base_url


def load_settings() -> Settings:
    origins = get_allow_origins()
    return Settings(
        base_url=_env("OPENAI_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
        chat_model=_env("OPENAI_MODEL", DEFAULT_CHAT_MODEL),
        embed_model=_env("OPENAI_EMBED_MODEL", DEFAULT_EMBED_MODEL),
        api_key=get_api_key(),
        public_url=_env("PUBLIC_URL", "https://example.com"),
        app_title=_env("APP_TITLE", "AI Companion"),
        request_timeout=_env_float("LLM_TIMEOUT", 60.0),
        store_path=get_store_path(),
        database_url=get_database_url(),
        recall_threshold=_env_float("RECALL_THRESHOLD", 0.1),
        recall_top_k=_env_int("RECALL_TOP_K", 8, minimum=1),
        recall_scan_cap=_env_int("RECALL_SCAN_CAP", 500, minimum=1),
        summary_every=_env_int("SUMMARY_EVERY", 12, minimum=1),
        summary_window=_env_int("SUMMARY_WINDOW", 20, minimum=1),
        fact_limit=_env_int("GROUNDING_FACTS", 50),
        summary_limit=_env_int("GROUNDING_SUMMARIES", 10),
        chat_cache_size=_env_int("CHAT_CACHE_SIZE", 1024, minimum=1),
        allow_origins=origins,
        cookie_name=_env("COOKIE_NAME", "aid"),
        cookie_samesite=get_cookie_samesite(origins),
        cookie_secure=get_cookie_secure(),
        log_level=_env("LOG_LEVEL", "INFO").upper(),
    )
