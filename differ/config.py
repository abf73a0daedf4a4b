"""
Configuration for the differ service

All values can be overridden with environment variables prefixed with
``DIFFER_``, e.g. ``DIFFER_REDIS_URL=redis://localhost:6379``.
"""

from pathlib import Path
from typing import Optional, Union

from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_timeout(timeout_str: Union[str, int, None]) -> Optional[int]:
    """Parse timeout string like '10m' or '1h' to seconds.

    Args:
        timeout_str: Timeout string (e.g., '10m', '1h', '30s')

    Returns:
        Timeout in seconds, None if no timeout was given
    """
    if timeout_str is None:
        return None

    timeout_str = str(timeout_str).strip()
    if not timeout_str:
        return None

    if timeout_str.endswith("s"):
        return int(timeout_str[:-1])
    elif timeout_str.endswith("m"):
        return int(timeout_str[:-1]) * 60
    elif timeout_str.endswith("h"):
        return int(timeout_str[:-1]) * 3600
    elif timeout_str.endswith("d"):
        return int(timeout_str[:-1]) * 86400
    else:
        # Assume it's already in seconds
        return int(timeout_str)


class Settings(BaseSettings):
    """Settings for the differ service"""

    model_config = SettingsConfigDict(env_prefix="DIFFER_")

    # Storage
    database_path: Path = Path.cwd() / "differ.db"

    # Diff cache, in-memory unless a Redis URL is given
    redis_url: Optional[str] = None
    redis_timeout: float = 2.0
    cache_ttl: Optional[str] = "7d"
    cache_max_entries: int = 4096
    cache_key_prefix: str = "differ:diff:"
    coalesce_requests: bool = False

    # Service
    service_name: str = "differ"
    service_version: str = "1.0.0"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8080


# Global settings instance
settings = Settings()
