import os


def _int_env(name: str, default: int) -> int:
    raw = str(os.getenv(name, str(default))).strip()
    try:
        return int(raw)
    except Exception:
        return default


def _float_env(name: str, default: float) -> float:
    raw = str(os.getenv(name, str(default))).strip()
    try:
        return float(raw)
    except Exception:
        return default


API_BASE_URL = str(os.getenv("ADMINHUB_API_URL", "http://localhost:8089/api")).strip()
API_TOKEN = os.getenv("ADMINHUB_TOKEN") or None
LOGIN_EMAIL = os.getenv("ADMINHUB_EMAIL") or None
LOGIN_PASSWORD = os.getenv("ADMINHUB_PASSWORD") or None

REQUEST_TIMEOUT = _float_env("ADMINHUB_REQUEST_TIMEOUT", 10.0)
STREAM_CONNECT_TIMEOUT = _float_env("ADMINHUB_STREAM_CONNECT_TIMEOUT", 10.0)
# Silence longer than this fails the stream (the server broadcasts every 5s)
STREAM_READ_TIMEOUT = _float_env("ADMINHUB_STREAM_READ_TIMEOUT", 30.0)

APP_STATUS_POLL_INTERVAL = _float_env("ADMINHUB_APP_STATUS_POLL_INTERVAL", 10.0)
HEALTH_POLL_INTERVAL = _float_env("ADMINHUB_HEALTH_POLL_INTERVAL", 30.0)
SERVER_POLL_INTERVAL = _float_env("ADMINHUB_SERVER_POLL_INTERVAL", 30.0)
STREAM_RECONNECT_INTERVAL = _float_env("ADMINHUB_STREAM_RECONNECT_INTERVAL", 30.0)

DEFAULT_LOG_LINES = _int_env("ADMINHUB_LOG_LINES", 1000)
PROBE_WORKERS = _int_env("ADMINHUB_PROBE_WORKERS", 8)
ACTION_WORKERS = _int_env("ADMINHUB_ACTION_WORKERS", 4)

BIND_HOST = str(os.getenv("ADMINHUB_BIND_HOST", "0.0.0.0")).strip()
PORT = _int_env("ADMINHUB_PORT", 5050)
LOG_LEVEL = str(os.getenv("ADMINHUB_LOG_LEVEL", "INFO")).strip()
LOG_FILE = os.getenv("ADMINHUB_LOG_FILE") or None
