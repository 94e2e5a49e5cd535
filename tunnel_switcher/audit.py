"""
Audit logging module.
Security-relevant actions are appended to a JSON-lines file.
Never logs passwords or configuration content - metadata only.
"""
import json
import logging
from datetime import datetime, timezone

from .config import AUDIT_LOG_PATH

logger = logging.getLogger(__name__)


def log_action(action: str, username: str, details: dict = None):
    """
    Append an action to the audit log.

    Args:
        action: Action type (e.g., 'login_success', 'config_activated')
        username: The account that performed or was affected by the action
        details: Additional metadata
    """
    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "action": action,
        "username": username,
        "details": details or {}
    }

    try:
        AUDIT_LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
        with open(AUDIT_LOG_PATH, "a") as f:
            f.write(json.dumps(entry) + "\n")
    except OSError as e:
        logger.error("Could not write audit log %s: %s", AUDIT_LOG_PATH, e)


def log_login(username: str, success: bool, ip: str = None, locked: bool = False):
    """Log a login attempt."""
    if success:
        action = "login_success"
    elif locked:
        action = "login_refused_locked"
    else:
        action = "login_failed"
    log_action(action, username, {"ip": ip})


def log_account_locked(username: str, until: str):
    log_action("account_locked", username, {"locked_until": until})


def log_password_changed(username: str, forced: bool = False):
    """Log a password change (forced = operator reset)."""
    log_action("password_reset" if forced else "password_changed", username)


def log_admin_bootstrapped(username: str):
    log_action("admin_bootstrapped", username)


def log_config_activated(username: str, source_name: str, restarts: list):
    """Log an activation together with the per-container restart outcome."""
    log_action(
        "config_activated",
        username,
        {
            "source": source_name,
            "restarts": {r["containerName"]: r["status"] for r in restarts},
        }
    )


def log_activation_failed(username: str, source_path: str, error: str):
    log_action("config_activation_failed", username, {"source": source_path, "error": error})
