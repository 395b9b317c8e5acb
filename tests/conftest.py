import os

import pytest

from shopflags.core.config import reset_settings

# List of environment variables that may be modified by tests
_ENV_VARS_TO_ISOLATE = [
    "ENVIRONMENT",
    "LOG_LEVEL",
    "CATALOG_PATH",
    "ASSIGNMENT_STORE_BACKEND",
    "ASSIGNMENT_STORE_PATH",
    "ASSIGNMENT_STORAGE_KEY",
    "REDIS_URL",
    "API_KEY",
]


@pytest.fixture(autouse=True)
def env_isolation():
    """Isolate environment variables and cached settings between tests."""
    backup = {k: os.environ.pop(k, None) for k in _ENV_VARS_TO_ISOLATE}
    reset_settings()
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v
        reset_settings()
