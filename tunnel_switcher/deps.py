"""
FastAPI dependencies.
Services are built once in the application lifespan and parked on app.state.
"""
from typing import Optional

from fastapi import HTTPException, Request

from .config import SESSION_COOKIE_NAME
from .sessions import Session, SessionStore


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.sessions


def get_auth_service(request: Request):
    return request.app.state.auth_service


def get_location_resolver(request: Request):
    return request.app.state.location_resolver


def get_activation_workflow(request: Request):
    return request.app.state.activation


def get_history_store(request: Request):
    return request.app.state.history


def get_supervisor(request: Request):
    return request.app.state.supervisor


def get_optional_session(request: Request) -> Optional[Session]:
    """Session bound to the request cookie, if any."""
    return request.app.state.sessions.resolve(request.cookies.get(SESSION_COOKIE_NAME))


def get_current_session(request: Request) -> Session:
    """Dependency for API routes that need a logged-in user."""
    session = get_optional_session(request)
    if session is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return session
