"""
Operation history.
A short, newest-first list of past activation outcomes kept in a JSON file.
"""
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Literal

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from .deps import get_current_session, get_history_store
from .exceptions import StorageError
from .storage import read_json, write_json_atomic

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/operation-history", tags=["history"])

MAX_HISTORY_ENTRIES = 20


class HistoryEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Literal["success", "error"]
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class HistoryStore:
    def __init__(self, path: Path, limit: int = MAX_HISTORY_ENTRIES):
        self.path = Path(path)
        self.limit = limit

    def read(self) -> List[dict]:
        """Stored entries, newest first. No file means no history."""
        entries = read_json(self.path, default=[])
        if not isinstance(entries, list):
            raise StorageError(f"History file must hold a list: {self.path}")
        return entries

    def replace(self, entries: List[HistoryEntry]) -> None:
        self._write([e.model_dump(mode="json") for e in entries])

    def append(self, entry: HistoryEntry) -> None:
        self._write([entry.model_dump(mode="json")] + self.read())

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            raise StorageError(f"Could not delete {self.path}: {e}") from e

    def _write(self, entries: List[dict]) -> None:
        # Oldest entries fall off the end
        write_json_atomic(self.path, entries[:self.limit])


class ReplaceHistoryRequest(BaseModel):
    history: List[HistoryEntry]


@router.get("")
async def get_history(
    store: HistoryStore = Depends(get_history_store),
    _session=Depends(get_current_session),
):
    try:
        return store.read()
    except StorageError as e:
        logger.error("Could not read history: %s", e)
        return JSONResponse(status_code=500, content={"success": False, "error": "Could not read history."})


@router.post("")
async def replace_history(
    body: ReplaceHistoryRequest,
    store: HistoryStore = Depends(get_history_store),
    _session=Depends(get_current_session),
):
    """Overwrite the whole history with the client's copy."""
    try:
        store.replace(body.history)
    except StorageError as e:
        logger.error("Could not write history: %s", e)
        return JSONResponse(status_code=500, content={"success": False, "error": "Could not write history."})
    return {"success": True}


@router.delete("")
async def delete_history(
    store: HistoryStore = Depends(get_history_store),
    _session=Depends(get_current_session),
):
    try:
        store.clear()
    except StorageError as e:
        logger.error("Could not delete history: %s", e)
        return JSONResponse(status_code=500, content={"success": False, "error": "Could not delete history."})
    return {"success": True}
