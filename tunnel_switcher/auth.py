"""
Authentication module.
Argon2id password hashing, per-account lockout after repeated failures,
forced password change on first login, and the /api/auth routes.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from .audit import log_account_locked, log_admin_bootstrapped, log_login, log_password_changed
from .config import HTTPS_ENABLED, SESSION_COOKIE_NAME, SESSION_MAX_AGE
from .credentials import CredentialState, CredentialStore
from .deps import get_auth_service, get_optional_session, get_session_store
from .exceptions import AdminAccountMissing, PolicyViolation, UnknownAccount
from .policy import PasswordPolicy
from .sessions import Session, SessionStore

logger = logging.getLogger(__name__)

router = APIRouter()

# argon2-cffi defaults to Argon2id
hasher = PasswordHasher()


def hash_password(password: str) -> str:
    """Hash a password using Argon2id."""
    return hasher.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against its hash."""
    try:
        return hasher.verify(hashed, password)
    except InvalidHashError:
        logger.error("Stored password hash is not a valid Argon2 hash")
        return False
    except VerificationError:
        return False


@dataclass
class AuthResult:
    success: bool
    must_change_password: bool = False
    no_password: bool = False
    locked: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthService:
    """
    Login, password change and admin bootstrap over the credential store.

    Every transition that touches the counters, the lock or the hash is
    written back before the call returns.
    """

    def __init__(
        self,
        store: CredentialStore,
        policy: PasswordPolicy,
        admin_username: str,
        admin_default_password: str,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.policy = policy
        self.admin_username = admin_username
        self.admin_default_password = admin_default_password
        self.clock = clock

    async def ensure_admin_bootstrapped(self) -> bool:
        """
        Give the admin account the default password if it has none.
        Returns True if a password was set. Never touches an existing hash.
        """
        async with self.store.edit() as table:
            admin = table.find(self.admin_username)
            if admin is None:
                raise AdminAccountMissing(
                    f"Admin account '{self.admin_username}' is not provisioned in {self.store.path}"
                )
            if admin.password_hash:
                return False

            admin.password_hash = await asyncio.to_thread(hash_password, self.admin_default_password)
            admin.must_change_password = True
            table.touch()

        logger.warning("Default password set for admin '%s'; it must be changed at first login", self.admin_username)
        log_admin_bootstrapped(self.admin_username)
        return True

    async def authenticate(self, username: str, password: str) -> AuthResult:
        async with self.store.edit() as table:
            # Read under the lock
            now = self.clock()
            account = table.find(username)
            if account is None:
                return AuthResult(success=False)

            state = account.state(now)
            if state is CredentialState.NO_PASSWORD:
                # The supplied password is irrelevant: the user must create one now.
                return AuthResult(success=True, must_change_password=True, no_password=True)
            if state is CredentialState.LOCKED:
                return AuthResult(success=False, locked=True)

            ok = await asyncio.to_thread(verify_password, password or "", account.password_hash)
            if not ok:
                account.failed_attempts += 1
                if account.failed_attempts >= self.policy.max_attempts:
                    account.locked_until = now + timedelta(seconds=self.policy.lock_time_seconds)
                    account.failed_attempts = 0
                    logger.warning("Account '%s' locked until %s", username, account.locked_until.isoformat())
                    log_account_locked(username, account.locked_until.isoformat())
                table.touch()
                return AuthResult(success=False)

            account.failed_attempts = 0
            account.locked_until = None
            table.touch()
            return AuthResult(success=True, must_change_password=account.must_change_password)

    async def change_password(self, username: str, new_password: str) -> None:
        """Set a new password for an already authenticated user."""
        if not self.policy.validate_password(new_password):
            raise PolicyViolation(self.policy.violations(new_password))

        hashed = await asyncio.to_thread(hash_password, new_password)
        await self._store_hash(username, hashed, must_change_password=False)
        log_password_changed(username)

    async def reset_password(self, username: str, new_password: str) -> None:
        """Operator-forced reset: the user has to pick a new password at next login."""
        hashed = await asyncio.to_thread(hash_password, new_password)
        await self._store_hash(username, hashed, must_change_password=True)
        log_password_changed(username, forced=True)

    async def _store_hash(self, username: str, hashed: str, must_change_password: bool) -> None:
        async with self.store.edit() as table:
            account = table.find(username)
            if account is None:
                raise UnknownAccount(f"Unknown account '{username}'")
            account.password_hash = hashed
            account.must_change_password = must_change_password
            account.failed_attempts = 0
            account.locked_until = None
            table.touch()


# --- HTTP routes ---

class LoginRequest(BaseModel):
    username: str
    password: Optional[str] = ""


def client_ip(request: Request) -> str:
    """Real client IP, honouring a reverse proxy."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def set_session_cookie(response, value: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=value,
        max_age=SESSION_MAX_AGE,
        httponly=True,
        # SameSite=None is only accepted by browsers together with Secure
        samesite="none" if HTTPS_ENABLED else "lax",
        secure=HTTPS_ENABLED
    )


async def _read_new_password(request: Request) -> Optional[str]:
    """newPassword from either a JSON body or an HTML form post."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            return None
        value = body.get("newPassword") if isinstance(body, dict) else None
    else:
        form = await request.form()
        value = form.get("newPassword")
    return value if isinstance(value, str) else None


@router.post("/login")
async def login(
    request: Request,
    body: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
    sessions: SessionStore = Depends(get_session_store),
    current: Optional[Session] = Depends(get_optional_session),
):
    """Check credentials and open a session."""
    result = await auth.authenticate(body.username, body.password)
    log_login(body.username, result.success, ip=client_ip(request), locked=result.locked)

    if not result.success:
        return JSONResponse(status_code=401, content={"success": False, "locked": result.locked})

    # Never reuse a session that existed before authentication
    sessions.destroy(current)
    session = sessions.create(body.username, must_change_password=result.must_change_password)

    response = JSONResponse(content={
        "success": True,
        "mustChangePassword": result.must_change_password,
        "noPassword": result.no_password,
    })
    set_session_cookie(response, sessions.cookie_value(session))
    return response


@router.post("/logout")
async def logout(
    sessions: SessionStore = Depends(get_session_store),
    current: Optional[Session] = Depends(get_optional_session),
):
    """Destroy the session and clear the cookie."""
    sessions.destroy(current)
    response = JSONResponse(content={"success": True})
    response.delete_cookie(SESSION_COOKIE_NAME)
    return response


@router.get("/me")
async def get_me(current: Optional[Session] = Depends(get_optional_session)):
    """Get the logged-in user."""
    if current is None:
        return JSONResponse(status_code=401, content={"success": False})
    return {"success": True, "username": current.username}


@router.post("/change-password")
async def change_password(
    request: Request,
    auth: AuthService = Depends(get_auth_service),
    current: Optional[Session] = Depends(get_optional_session),
):
    """Change the password of the logged-in user, then go home."""
    if current is None:
        return JSONResponse(status_code=401, content={"success": False, "error": "Unauthorized"})

    new_password = await _read_new_password(request)
    if new_password is None:
        return JSONResponse(status_code=400, content={"success": False, "error": "newPassword is required"})

    try:
        await auth.change_password(current.username, new_password)
    except (PolicyViolation, UnknownAccount) as e:
        return JSONResponse(status_code=400, content={"success": False, "error": str(e)})

    current.must_change_password = False
    return RedirectResponse(url="/", status_code=303)


@router.get("/policy")
async def get_policy(auth: AuthService = Depends(get_auth_service)):
    """Password policy, for rendering hints next to the password field."""
    return auth.policy.describe()
