from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "http://127.0.0.1:5000/api"
DEFAULT_CORS_ORIGINS = "http://localhost:5000,http://127.0.0.1:5000"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 100


def load_dotenv(path: str = ".env") -> None:
    if not os.path.exists(path):
        return

    try:
        with open(path, "r", encoding="utf-8") as env_file:
            for raw_line in env_file:
                line = raw_line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip().strip("'").strip('"')
                if key:
                    os.environ.setdefault(key, value)
    except OSError:
        logger.exception("Failed to read %s", path)


def required_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise RuntimeError(f"{name} is not configured")
    return value


def _env_float(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}: {raw!r}") from exc


def _env_int(name: str, default: str) -> int:
    raw = os.environ.get(name, default)
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid {name}: {raw!r}") from exc


def clamp_page_size(value: int) -> int:
    return max(MIN_PAGE_SIZE, min(MAX_PAGE_SIZE, value))


@dataclass
class Settings:
    """Runtime configuration for the API server and the admin pages."""

    database_url: str | None = None
    api_base_url: str = DEFAULT_API_BASE_URL
    api_timeout_seconds: float = 10.0
    page_size: int = 20
    search_debounce_ms: int = 300
    cors_allowed_origins: set[str] = field(default_factory=set)
    log_level: str = "INFO"
    run_db_init: bool = False
    port: int = 5000
    debug: bool = False

    @property
    def search_debounce_seconds(self) -> float:
        return self.search_debounce_ms / 1000.0

    @classmethod
    def from_env(cls) -> "Settings":
        timeout = _env_float("API_TIMEOUT_SECONDS", "10")
        if timeout <= 0:
            raise ValueError("API_TIMEOUT_SECONDS must be > 0")
        debounce_ms = _env_int("SEARCH_DEBOUNCE_MS", "300")
        if debounce_ms < 0:
            raise ValueError("SEARCH_DEBOUNCE_MS must be >= 0")
        port = _env_int("PORT", "5000")
        if not 1 <= port <= 65535:
            raise ValueError("Port must be between 1 and 65535")
        return cls(
            database_url=os.environ.get("DATABASE_URL") or None,
            api_base_url=os.environ.get("API_BASE_URL", DEFAULT_API_BASE_URL).rstrip("/"),
            api_timeout_seconds=timeout,
            page_size=clamp_page_size(_env_int("PAGE_SIZE", "20")),
            search_debounce_ms=debounce_ms,
            cors_allowed_origins={
                origin.strip()
                for origin in os.environ.get("CORS_ALLOWED_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
                if origin.strip()
            },
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            run_db_init=os.environ.get("RUN_DB_INIT", "0") == "1",
            port=port,
            debug=os.environ.get("FLASK_DEBUG", "0") == "1",
        )


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not any(getattr(handler, "_messmass", False) for handler in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._messmass = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
