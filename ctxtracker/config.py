import os
from pathlib import Path

DEFAULT_API_BASE = "http://localhost:5001"
DEFAULT_TIMEOUT = 10.0

HOME_ENV = "DEV_CONTEXT_TRACKER_HOME"
API_ENV = "CONTEXT_TRACKER_API_URL"
TIMEOUT_ENV = "CONTEXT_TRACKER_TIMEOUT"

CONTEXTS_FILENAME = "contexts.json"
LOCAL_STORAGE_FILENAME = "local_storage.db"


def resolve_home() -> Path:
    """Return the per-user data directory"""
    env_path = os.getenv(HOME_ENV)
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".dev-context-tracker"


def resolve_api_base() -> str:
    return (os.getenv(API_ENV) or DEFAULT_API_BASE).rstrip("/")


def resolve_timeout() -> float:
    raw = os.getenv(TIMEOUT_ENV)
    if raw:
        try:
            value = float(raw)
        except ValueError:
            return DEFAULT_TIMEOUT
        if value > 0:
            return value
    return DEFAULT_TIMEOUT
