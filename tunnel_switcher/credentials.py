"""
Credential store.
User accounts live in a single JSON file ({"users": [...]}) under the data
directory. The file is the only source of truth for password hashes and
lockout state; nothing is cached between requests.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from .exceptions import StorageError
from .storage import read_json, write_json_atomic

logger = logging.getLogger(__name__)


class CredentialState(str, Enum):
    NO_PASSWORD = "no_password"
    ACTIVE = "active"
    LOCKED = "locked"


class UserAccount(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    username: str
    password_hash: Optional[str] = None
    must_change_password: bool = False
    failed_attempts: int = Field(default=0, ge=0)
    locked_until: Optional[datetime] = None

    @field_validator("locked_until", mode="before")
    @classmethod
    def parse_epoch_millis(cls, v):
        # Stored as epoch milliseconds
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return datetime.fromtimestamp(v / 1000, tz=timezone.utc)
        return v

    @field_serializer("locked_until")
    def dump_epoch_millis(self, v: Optional[datetime]):
        if v is None:
            return None
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        return int(v.timestamp() * 1000)

    def state(self, now: datetime) -> CredentialState:
        """Where this account sits in the NO_PASSWORD -> ACTIVE <-> LOCKED machine at `now`."""
        if not self.password_hash:
            return CredentialState.NO_PASSWORD
        if self.locked_until is not None and now < _aware(self.locked_until):
            return CredentialState.LOCKED
        return CredentialState.ACTIVE


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


class AccountTable:
    """An in-memory snapshot of the store, handed out by CredentialStore.edit()."""

    def __init__(self, raw: dict, accounts: List[UserAccount]):
        self.raw = raw
        self.accounts = accounts
        self.changed = False

    def find(self, username: str) -> Optional[UserAccount]:
        for account in self.accounts:
            if account.username == username:
                return account
        return None

    def touch(self) -> None:
        """Mark the snapshot for write-back."""
        self.changed = True

    def dump(self) -> dict:
        data = dict(self.raw)
        data["users"] = [a.model_dump(by_alias=True) for a in self.accounts]
        return data


class CredentialStore:
    """File-backed account store with serialized read-modify-write."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _load(self) -> AccountTable:
        raw = read_json(self.path)
        if not isinstance(raw, dict) or not isinstance(raw.get("users", []), list):
            raise StorageError(f"Malformed credential store: {self.path}")
        try:
            accounts = [UserAccount.model_validate(u) for u in raw.get("users", [])]
        except ValidationError as e:
            raise StorageError(f"Malformed account record in {self.path}: {e}") from e
        return AccountTable(raw, accounts)

    def _save(self, table: AccountTable) -> None:
        write_json_atomic(self.path, table.dump())

    @asynccontextmanager
    async def edit(self) -> AsyncIterator[AccountTable]:
        """
        Hold the store for a read-modify-write cycle.
        The snapshot is written back on exit only if it was touched and
        the block did not raise.
        """
        async with self._lock:
            table = self._load()
            yield table
            if table.changed:
                self._save(table)
                logger.debug("Credential store saved: %s", self.path)

