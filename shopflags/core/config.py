"""Runtime settings.

Read from environment variables (case-insensitive) and an optional ``.env``
file.
"""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ENVIRONMENT: str = "production"
    LOG_LEVEL: str = "INFO"

    # Catalog file (YAML/JSON); built-in catalog when unset
    CATALOG_PATH: Optional[str] = None

    # Assignment persistence backend (memory|file|redis|none)
    ASSIGNMENT_STORE_BACKEND: str = "memory"
    ASSIGNMENT_STORE_PATH: str = "data/experiment_assignments.json"
    ASSIGNMENT_STORAGE_KEY: str = "experiment_assignments"
    REDIS_URL: str = "redis://localhost:6379/0"

    # HTTP API; requests must carry X-API-Key when set
    API_KEY: str = ""

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
    }


_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings()
    return _settings_cache


def reset_settings() -> None:
    """Drop the cached settings so the next ``get_settings`` re-reads the environment."""
    global _settings_cache
    _settings_cache = None
