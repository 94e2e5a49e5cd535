"""
Tunnel Switcher - FastAPI Application
Main entrypoint for the control panel.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from . import __version__
from .activation import ActivationStore, ActivationWorkflow
from .activation import router as activation_router
from .auth import AuthService
from .auth import router as auth_router
from .config import (
    ACTIVE_CONFIG_NAME,
    ADMIN_DEFAULT_PASSWORD,
    ADMIN_USERNAME,
    APP_ENV,
    CONTAINERS_TO_RESTART,
    DATA_DIR,
    HISTORY_PATH,
    HOST,
    HTTPS_CERT_PATH,
    HTTPS_ENABLED,
    HTTPS_KEY_PATH,
    LOCAL_LOCATIONS_FILE,
    LOCATIONS_FILE,
    LOG_LEVEL,
    PASSWORD_POLICY,
    PORT,
    RESTART_TIMEOUT_SECONDS,
    SESSION_COOKIE_NAME,
    SESSION_MAX_AGE,
    SESSION_SECRET_KEY,
    STATE_PATH,
    STATIC_DIR,
    TEMPLATES_DIR,
    USERS_PATH,
    WIREGUARD_DIR,
)
from .containers import DockerSupervisor, parse_container_list
from .credentials import CredentialStore
from .deps import get_optional_session
from .exceptions import StorageError
from .history import HistoryStore
from .history import router as history_router
from .locations import ConfigDirectory, LocationResolver
from .locations import router as locations_router
from .sessions import Session, SessionStore

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reachable without a session; each of these answers for itself
PUBLIC_PATHS = frozenset({
    "/api/auth/login",
    "/api/auth/logout",
    "/api/auth/me",
    "/api/auth/policy",
    "/api/auth/change-password",
    "/api/version",
    "/health",
    "/login",
})
PUBLIC_PREFIXES = ("/static/",)
CHANGE_PASSWORD_PAGE = "/change-password"


def gate_redirect(path: str, session: Optional[Session]) -> Optional[str]:
    """
    Decide whether a request may proceed.
    Returns the URL to redirect to, or None to let the request through.
    Rules are checked in order; the password-change page rule must come
    before the generic authenticated rule.
    """
    if path in PUBLIC_PATHS or path.startswith(PUBLIC_PREFIXES):
        return None
    if path == CHANGE_PASSWORD_PAGE:
        if session is not None and session.must_change_password:
            return None
        return "/login"
    if session is None:
        return "/login"
    if session.must_change_password:
        return CHANGE_PASSWORD_PAGE
    return None


def build_services(app: FastAPI) -> None:
    """Wire the file-backed stores and services onto app.state."""
    directory = ConfigDirectory(WIREGUARD_DIR, active_name=ACTIVE_CONFIG_NAME)

    app.state.sessions = SessionStore(SESSION_SECRET_KEY, SESSION_MAX_AGE)
    app.state.auth_service = AuthService(
        CredentialStore(USERS_PATH),
        PASSWORD_POLICY,
        admin_username=ADMIN_USERNAME,
        admin_default_password=ADMIN_DEFAULT_PASSWORD,
    )
    app.state.location_resolver = LocationResolver(
        directory,
        LOCATIONS_FILE,
        override_file=LOCAL_LOCATIONS_FILE if APP_ENV == "development" else None,
    )
    app.state.activation = ActivationWorkflow(
        ActivationStore(STATE_PATH, directory.active_path),
        parse_container_list(CONTAINERS_TO_RESTART),
        restart_timeout=RESTART_TIMEOUT_SECONDS,
    )
    app.state.history = HistoryStore(HISTORY_PATH)
    app.state.supervisor = DockerSupervisor()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler - runs on startup/shutdown."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    build_services(app)
    # A missing admin record is a provisioning error: refuse to start
    await app.state.auth_service.ensure_admin_bootstrapped()
    if not WIREGUARD_DIR:
        logger.warning("WIREGUARD_DIR is not set; no configuration can be activated")
    logger.info("Tunnel switcher %s started", __version__)
    yield


app = FastAPI(
    title="Tunnel Switcher",
    description="Switch the active WireGuard configuration of a VPN container",
    version=__version__,
    lifespan=lifespan
)

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

app.include_router(auth_router, prefix="/api/auth", tags=["auth"])
app.include_router(locations_router)
app.include_router(activation_router)
app.include_router(history_router)


@app.middleware("http")
async def session_gate(request: Request, call_next):
    """Apply the access rules to every inbound request."""
    session = request.app.state.sessions.resolve(request.cookies.get(SESSION_COOKIE_NAME))
    target = gate_redirect(request.url.path, session)
    if target is not None:
        return RedirectResponse(url=target, status_code=303)
    return await call_next(request)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("Storage error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"success": False, "error": "Server storage is unavailable."})


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "healthy", "service": "tunnel-switcher"}


@app.get("/api/version")
async def version():
    return {"version": __version__}


@app.get("/login", response_class=HTMLResponse)
async def login_page(request: Request, session: Optional[Session] = Depends(get_optional_session)):
    """Login page."""
    # Already authenticated: go to the dashboard
    if session is not None and not session.must_change_password:
        return RedirectResponse(url="/", status_code=303)
    return templates.TemplateResponse(request, "login.html", {"version": __version__})


@app.get(CHANGE_PASSWORD_PAGE, response_class=HTMLResponse)
async def change_password_page(request: Request, session: Optional[Session] = Depends(get_optional_session)):
    """Forced password change page."""
    return templates.TemplateResponse(
        request,
        "change_password.html",
        {"username": session.username if session else None, "policy": PASSWORD_POLICY.describe()}
    )


@app.get("/", response_class=HTMLResponse)
async def dashboard(request: Request, session: Optional[Session] = Depends(get_optional_session)):
    """Control panel - main page."""
    return templates.TemplateResponse(
        request,
        "index.html",
        {"username": session.username if session else None, "version": __version__}
    )


def run():
    """Serve the app with uvicorn, over HTTPS when enabled."""
    ssl_options = {}
    if HTTPS_ENABLED:
        if not (HTTPS_KEY_PATH and HTTPS_CERT_PATH):
            raise SystemExit("HTTPS_ENABLED requires HTTPS_KEY_PATH and HTTPS_CERT_PATH")
        ssl_options = {"ssl_keyfile": HTTPS_KEY_PATH, "ssl_certfile": HTTPS_CERT_PATH}
    uvicorn.run(app, host=HOST, port=PORT, **ssl_options)
