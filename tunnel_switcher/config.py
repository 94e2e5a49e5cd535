"""
Configuration for the tunnel switcher.
Everything is read from the environment once, at import time.
"""
import os
from pathlib import Path

from .policy import PasswordPolicy


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


# Paths
PROJECT_ROOT = Path(__file__).parent
TEMPLATES_DIR = PROJECT_ROOT / "templates"
STATIC_DIR = PROJECT_ROOT / "static"
DATA_DIR = Path(os.getenv("DATA_DIR", str(PROJECT_ROOT.parent / "data")))

USERS_PATH = DATA_DIR / "security" / "users.json"
STATE_PATH = DATA_DIR / "state.json"
HISTORY_PATH = DATA_DIR / "history" / "history.json"
AUDIT_LOG_PATH = DATA_DIR / "audit.log"

LOCATIONS_FILE = Path(os.getenv("LOCATIONS_FILE", str(DATA_DIR / "locations.json")))
LOCAL_LOCATIONS_FILE = Path(os.getenv("LOCAL_LOCATIONS_FILE", str(PROJECT_ROOT.parent / "locations.local.json")))
APP_ENV = os.getenv("APP_ENV", "production")

# WireGuard configuration directory (holds the candidate configs and the active slot)
WIREGUARD_DIR = os.getenv("WIREGUARD_DIR", "")
ACTIVE_CONFIG_NAME = "wg0.conf"

# Dependent containers restarted after an activation
CONTAINERS_TO_RESTART = os.getenv("CONTAINERS_TO_RESTART", os.getenv("CONTAINER_TO_RESTART", ""))
RESTART_TIMEOUT_SECONDS = float(os.getenv("RESTART_TIMEOUT_SECONDS", "60"))

# Admin defaults
ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
ADMIN_DEFAULT_PASSWORD = os.getenv("ADMIN_DEFAULT_PASSWORD", "switcher")

# Password policy
PASSWORD_POLICY = PasswordPolicy(
    min_length=_env_int("PASSWORD_MIN_LENGTH", 12),
    require_uppercase=_env_bool("PASSWORD_REQUIRE_UPPERCASE", True),
    require_lowercase=_env_bool("PASSWORD_REQUIRE_LOWERCASE", True),
    require_digit=_env_bool("PASSWORD_REQUIRE_DIGIT", True),
    require_special=_env_bool("PASSWORD_REQUIRE_SPECIAL", True),
    max_attempts=_env_int("PASSWORD_MAX_ATTEMPTS", 5),
    lock_time_seconds=_env_int("PASSWORD_LOCK_TIME", 900),
)

# Session
SESSION_SECRET_KEY = os.getenv("SESSION_SECRET", "change-this-in-production-use-openssl-rand-hex-32")
SESSION_COOKIE_NAME = os.getenv("SESSION_NAME", "tunnel-switcher.sid")
SESSION_MAX_AGE = _env_int("SESSION_MAX_AGE", 3600)  # 1 hour

# HTTPS
HTTPS_ENABLED = _env_bool("HTTPS_ENABLED", False)
HTTPS_KEY_PATH = os.getenv("HTTPS_KEY_PATH", "")
HTTPS_CERT_PATH = os.getenv("HTTPS_CERT_PATH", "")

# Server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = _env_int("PORT", 3003)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
