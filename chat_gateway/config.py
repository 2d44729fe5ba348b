from __future__ import annotations

from dataclasses import dataclass
import logging
import os


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"


def _get_env(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    return value if value is not None else default


def _get_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value is not None else default


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value is not None else default


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    default_model: str
    default_provider: str
    openai_api_key: str | None
    openai_base_url: str
    anthropic_api_key: str | None
    anthropic_base_url: str
    gemini_api_key: str | None
    gemini_base_url: str
    replicate_api_token: str | None
    replicate_base_url: str
    request_timeout: float
    heartbeat_interval: float
    allowed_origins: tuple[str, ...]
    system_instruction: str
    max_file_tokens: int
    mock_providers: bool
    log_level: str


def get_settings() -> Settings:
    origins_raw = _get_env("ALLOWED_ORIGINS", "http://localhost:3000")
    allowed_origins = tuple(o.strip() for o in origins_raw.split(",") if o.strip())

    return Settings(
        default_model=_get_env("DEFAULT_MODEL", "gpt-5"),
        default_provider=_get_env("DEFAULT_PROVIDER", "openai"),
        openai_api_key=_get_env("OPENAI_API_KEY"),
        openai_base_url=_get_env("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        anthropic_api_key=_get_env("ANTHROPIC_API_KEY"),
        anthropic_base_url=_get_env("ANTHROPIC_BASE_URL", "https://api.anthropic.com"),
        gemini_api_key=_get_env("GEMINI_API_KEY"),
        gemini_base_url=_get_env(
            "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com"
        ),
        replicate_api_token=_get_env("REPLICATE_API_TOKEN"),
        replicate_base_url=_get_env("REPLICATE_BASE_URL", "https://api.replicate.com"),
        request_timeout=_get_float("REQUEST_TIMEOUT", 300.0),
        heartbeat_interval=_get_float("HEARTBEAT_INTERVAL", 20.0),
        allowed_origins=allowed_origins,
        system_instruction=_get_env(
            "SYSTEM_INSTRUCTION", "You are a helpful, accurate assistant."
        ),
        max_file_tokens=_get_int("MAX_FILE_TOKENS", 50000),
        mock_providers=_get_bool("MOCK_PROVIDERS", False),
        log_level=_get_env("LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str) -> None:
    """Attach a single stream handler to the package logger."""
    logger = logging.getLogger("chat_gateway")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
