"""Configuration for the AI coach relay client and relay service."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


PROJECT_ROOT = Path(__file__).parent.parent.parent

DEFAULT_RETRY_STATUSES = (408, 425, 429, 500, 502, 503, 504)
DEFAULT_OPENAI_MODEL = "gpt-4.1-mini"
DEFAULT_RESPONSES_URL = "https://api.openai.com/v1/responses"


def _env_str(name: str) -> str:
    return (os.environ.get(name) or "").strip()


def _env_int(name: str, default: int, minimum: int) -> int:
    raw = _env_str(name)
    try:
        value = int(raw) if raw else default
    except ValueError:
        value = default
    return max(minimum, value)


@dataclass
class ClientConfig:
    """Settings for the relay client (the app side of the chat)."""

    endpoint: Optional[str] = None
    token: Optional[str] = None
    timeout_seconds: float = 12.0
    retries: int = 1
    retry_statuses: tuple = DEFAULT_RETRY_STATUSES
    backoff_seconds: float = 0.25

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Build from environment. A missing AI_CHAT_URL disables the network path."""
        return cls(
            endpoint=_env_str("AI_CHAT_URL") or None,
            token=_env_str("AI_CHAT_TOKEN") or None,
        )

    @property
    def network_enabled(self) -> bool:
        return bool(self.endpoint and self.endpoint.strip())

    def validate(self) -> None:
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if self.retries < 0:
            raise ValueError("retries cannot be negative")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds cannot be negative")


@dataclass
class RelayConfig:
    """Settings for the relay service in front of the completion API."""

    openai_api_key: str = ""
    openai_model: str = DEFAULT_OPENAI_MODEL
    responses_url: str = DEFAULT_RESPONSES_URL
    chat_token: Optional[str] = None
    jwt_secret: Optional[str] = None
    redis_url: Optional[str] = None
    redis_token: Optional[str] = None
    rate_limit_max: int = 60
    rate_limit_window_ms: int = 60_000
    upstream_timeout_seconds: float = 30.0
    cors_origins: list = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "RelayConfig":
        """Build from environment variables."""
        return cls(
            openai_api_key=_env_str("OPENAI_API_KEY"),
            openai_model=_env_str("OPENAI_MODEL") or DEFAULT_OPENAI_MODEL,
            responses_url=_env_str("OPENAI_RESPONSES_URL") or DEFAULT_RESPONSES_URL,
            chat_token=_env_str("AI_CHAT_TOKEN") or None,
            jwt_secret=_env_str("AI_CHAT_JWT_SECRET") or None,
            redis_url=_env_str("AI_CHAT_RATE_LIMIT_REDIS_URL") or None,
            redis_token=_env_str("AI_CHAT_RATE_LIMIT_REDIS_TOKEN") or None,
            rate_limit_max=_env_int("AI_CHAT_RATE_LIMIT_MAX", 60, 1),
            rate_limit_window_ms=_env_int("AI_CHAT_RATE_LIMIT_WINDOW_MS", 60_000, 5_000),
        )

    @property
    def auth_mode(self) -> str:
        """'jwt' wins over 'token'; with neither secret the relay runs 'open'."""
        if self.jwt_secret:
            return "jwt"
        if self.chat_token:
            return "token"
        return "open"

    def validate(self) -> None:
        if not self.openai_api_key:
            raise ValueError("OPENAI_API_KEY must be set")
        if self.rate_limit_max < 1:
            raise ValueError("rate_limit_max must be at least 1")
        if self.rate_limit_window_ms < 5_000:
            raise ValueError("rate_limit_window_ms must be at least 5000")


def get_database_path() -> Path:
    """Path of the local key-value store used for history and profile."""
    override = _env_str("COACH_AI_DB_PATH")
    if override:
        return Path(override)
    return PROJECT_ROOT / "coach_ai.db"
