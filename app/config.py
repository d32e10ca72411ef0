"""
Configuration management: all values sourced from environment variables.
Defaults are the local-development values; override via env or `.env`.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ── Recommendation backend ────────────────────────────────────────────────
    backend_api_url: str = "http://localhost:8000"
    backend_timeout_seconds: Optional[float] = None   # None = no client timeout

    # ── Admission gate (per-client, in-memory, fixed window) ──────────────────
    rate_limit_requests: int = 20          # max requests per window
    rate_limit_window_ms: int = 60_000
    rate_limit_path_prefix: str = "/api/"
    rate_limit_evict_after_windows: int = 2
    rate_limit_peer_fallback: bool = True  # use socket peer when no forwarded header

    # ── HTTP ──────────────────────────────────────────────────────────────────
    cors_allow_origins: List[str] = ["*"]

    # ── Logging ───────────────────────────────────────────────────────────────
    log_level: str = "INFO"
    log_file: str = "logs/app.log"                # empty string disables file output
    log_rotation_bytes: int = 10 * 1024 * 1024    # 10 MB
    log_backup_count: int = 5


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
