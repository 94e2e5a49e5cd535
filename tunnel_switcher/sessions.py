"""
Server-side sessions.
The cookie only carries a signed, opaque token; who is logged in and whether
they still owe a password change stays in this process and is lost on restart.
"""
import secrets
import time
from dataclasses import dataclass, field
from typing import Dict, Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer


@dataclass
class Session:
    token: str
    username: str
    must_change_password: bool = False
    created_at: float = field(default_factory=time.time)

    def expired(self, ttl: int, now: float = None) -> bool:
        now = time.time() if now is None else now
        return now - self.created_at >= ttl


class SessionStore:
    def __init__(self, secret_key: str, ttl: int):
        self.ttl = ttl
        self.serializer = URLSafeTimedSerializer(secret_key, salt="session")
        self._sessions: Dict[str, Session] = {}

    def create(self, username: str, must_change_password: bool = False) -> Session:
        self._purge()
        session = Session(
            token=secrets.token_urlsafe(32),
            username=username,
            must_change_password=must_change_password,
        )
        self._sessions[session.token] = session
        return session

    def cookie_value(self, session: Session) -> str:
        return self.serializer.dumps(session.token)

    def resolve(self, cookie: Optional[str]) -> Optional[Session]:
        """Map a cookie value back to a live session, or None."""
        if not cookie:
            return None
        try:
            token = self.serializer.loads(cookie, max_age=self.ttl)
        except (BadSignature, SignatureExpired):
            return None

        session = self._sessions.get(token)
        if session is None:
            return None
        if session.expired(self.ttl):
            self._sessions.pop(token, None)
            return None
        return session

    def destroy(self, session: Optional[Session]) -> None:
        if session is not None:
            self._sessions.pop(session.token, None)

    def _purge(self) -> None:
        now = time.time()
        for token in [t for t, s in self._sessions.items() if s.expired(self.ttl, now)]:
            del self._sessions[token]

    def __len__(self) -> int:
        return len(self._sessions)
