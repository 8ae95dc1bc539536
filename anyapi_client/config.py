"""Client configuration with CLI > env var > defaults precedence."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


ANYAPI_DIR = Path.home() / ".anyapi"

# Debounce window bounds for vault status polling (seconds)
MIN_REFRESH_DEBOUNCE = 0.1
MAX_REFRESH_DEBOUNCE = 0.5


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return int(raw)


@dataclass
class ClientConfig:
    """Configuration for the client core."""
    base_url: str = ""
    request_timeout: Optional[float] = None
    max_retries: Optional[int] = None
    retry_delay: float = 1.0
    health_timeout: float = 5.0
    health_interval: Optional[float] = None
    session_ttl: int = 3600
    max_unlock_attempts: int = 3
    refresh_debounce: float = 0.25
    state_dir: Optional[Path] = None

    def __post_init__(self):
        # Apply env var defaults before CLI overrides
        if not self.base_url:
            self.base_url = os.getenv("ANYAPI_BASE_URL", "http://localhost:8080")
        if self.request_timeout is None:
            self.request_timeout = _env_float("ANYAPI_REQUEST_TIMEOUT", 30.0)
        if self.max_retries is None:
            self.max_retries = _env_int("ANYAPI_MAX_RETRIES", 3)
        if self.health_interval is None:
            self.health_interval = _env_float("ANYAPI_HEALTH_INTERVAL", 30.0)
        if self.state_dir is None:
            env_dir = os.getenv("ANYAPI_STATE_DIR")
            self.state_dir = Path(env_dir) if env_dir else ANYAPI_DIR
        else:
            self.state_dir = Path(self.state_dir)

        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        if self.max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        if self.retry_delay < 0:
            raise ValueError("retry_delay cannot be negative")
        if self.session_ttl <= 0:
            raise ValueError("session_ttl must be positive")
        if self.max_unlock_attempts < 1:
            raise ValueError("max_unlock_attempts must be at least 1")
        if not MIN_REFRESH_DEBOUNCE <= self.refresh_debounce <= MAX_REFRESH_DEBOUNCE:
            raise ValueError(
                f"refresh_debounce must be between {MIN_REFRESH_DEBOUNCE}s "
                f"and {MAX_REFRESH_DEBOUNCE}s, got {self.refresh_debounce}"
            )

    @property
    def session_file(self) -> Path:
        """Where the session token and expiry are persisted."""
        return self.state_dir / "session.json"
