"""
Configuration activation.
Promotes a chosen WireGuard config to the active slot (wg0.conf), records
which file it came from, then restarts the dependent containers.

There is no rollback: once the slot is replaced it stays replaced, even if
recording its name or restarting a container fails afterwards.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from .audit import log_activation_failed, log_config_activated
from .deps import get_activation_workflow, get_current_session, get_history_store, get_supervisor
from .exceptions import InvalidSource, StateDriftError, StorageError
from .history import HistoryEntry, HistoryStore
from .storage import read_json, write_bytes_atomic, write_json_atomic

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["activation"])

DEFAULT_ACTIVE_NAME = "wg0.conf"


@dataclass
class RestartOutcome:
    container_name: str
    status: str
    message: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"containerName": self.container_name, "status": self.status}
        if self.message is not None:
            data["message"] = self.message
        return data


@dataclass
class ActivationResult:
    source_name: str
    restarts: List[RestartOutcome] = field(default_factory=list)

    @property
    def failed_restarts(self) -> List[RestartOutcome]:
        return [r for r in self.restarts if r.status != "success"]

    def to_dict(self) -> dict:
        return {
            "success": True,
            "activated": {"sourceName": self.source_name},
            "restarts": [r.to_dict() for r in self.restarts],
        }


class ActivationStore:
    """The active slot on disk plus the record of where its content came from."""

    def __init__(self, state_path: Path, active_path: Optional[Path]):
        self.state_path = Path(state_path)
        self.active_path = Path(active_path) if active_path else None

    def require_active_path(self) -> Path:
        if self.active_path is None:
            raise StorageError("WIREGUARD_DIR is not configured on the server")
        return self.active_path

    def read_active_name(self) -> Optional[str]:
        try:
            state = read_json(self.state_path, default={})
        except StorageError as e:
            logger.warning("Ignoring unreadable activation state: %s", e)
            return None
        if not isinstance(state, dict):
            return None
        return state.get("activeConfigName") or None

    def write_active_name(self, name: str) -> None:
        write_json_atomic(self.state_path, {"activeConfigName": name}, indent=None)

    def promote(self, source: Path) -> None:
        """Replace the active slot with the bytes of `source`."""
        target = self.require_active_path()
        try:
            content = source.read_bytes()
        except OSError as e:
            raise StorageError(f"Could not read {source}: {e}") from e
        write_bytes_atomic(target, content, mode=0o600)

    def current_info(self) -> dict:
        """
        Name, size and mtime of the active slot.
        Raises FileNotFoundError when there is no active config.
        """
        target = self.require_active_path()
        stats = target.stat()
        return {
            "name": self.read_active_name() or DEFAULT_ACTIVE_NAME,
            "size": stats.st_size,
            "lastModified": datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc).isoformat(),
        }


class ActivationWorkflow:
    def __init__(self, store: ActivationStore, containers: List[str], restart_timeout: float = 60):
        self.store = store
        self.containers = list(containers)
        self.restart_timeout = restart_timeout

    async def activate(self, source_path: Optional[str], supervisor) -> ActivationResult:
        if not source_path:
            raise InvalidSource("Source path is missing")
        source = Path(source_path)
        if not source.is_file():
            raise InvalidSource(f"Source path is not a valid file: {source_path}")

        source_name = source.name
        logger.info("Activating %s -> %s", source, self.store.active_path)
        self.store.promote(source)

        try:
            self.store.write_active_name(source_name)
        except StorageError as e:
            logger.error(
                "Active config replaced with %s but the activation state could not be saved; "
                "the recorded name is now stale: %s", source_name, e
            )
            raise StateDriftError(f"Config copied but state not saved: {e}") from e

        restarts = await self.restart_dependents(supervisor)
        return ActivationResult(source_name=source_name, restarts=restarts)

    async def restart_dependents(self, supervisor) -> List[RestartOutcome]:
        """Restart every configured container concurrently and wait for all of them."""
        names = [name for name in self.containers if name]
        if not names:
            return []
        return list(await asyncio.gather(*(self._restart_one(supervisor, name) for name in names)))

    async def _restart_one(self, supervisor, name: str) -> RestartOutcome:
        try:
            await asyncio.wait_for(supervisor.restart(name), timeout=self.restart_timeout)
        except asyncio.TimeoutError:
            logger.error("Restart of %s timed out after %ss", name, self.restart_timeout)
            return RestartOutcome(name, "error", f"Restart timed out after {self.restart_timeout:g}s")
        except Exception as e:
            logger.error("Restart of %s failed: %s", name, e)
            return RestartOutcome(name, "error", str(e) or e.__class__.__name__)
        return RestartOutcome(name, "success")


def summarize(result: ActivationResult) -> HistoryEntry:
    message = f"Activated {result.source_name}"
    failed = result.failed_restarts
    if failed:
        message += "; restart failed for " + ", ".join(r.container_name for r in failed)
    return HistoryEntry(type="success", message=message)


def _record(history: HistoryStore, entry: HistoryEntry) -> None:
    try:
        history.append(entry)
    except StorageError as e:
        logger.error("Could not record operation history: %s", e)


class ActivateRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    source_path: Optional[str] = None


@router.post("/activate-config")
async def activate_config(
    body: ActivateRequest,
    workflow: ActivationWorkflow = Depends(get_activation_workflow),
    history: HistoryStore = Depends(get_history_store),
    supervisor=Depends(get_supervisor),
    session=Depends(get_current_session),
):
    """Switch the active tunnel config and restart its consumers."""
    try:
        result = await workflow.activate(body.source_path, supervisor)
    except InvalidSource as e:
        logger.warning("Activation rejected: %s", e)
        _record(history, HistoryEntry(type="error", message=f"Activation rejected: {e}"))
        return JSONResponse(status_code=400, content={"success": False, "error": str(e)})
    except StorageError as e:
        logger.error("Activation of %s failed: %s", body.source_path, e)
        log_activation_failed(session.username, body.source_path, str(e))
        if isinstance(e, StateDriftError):
            message = "Activation failed: the configuration was copied but its name could not be saved."
        else:
            message = "Activation failed: the configuration could not be written."
        _record(history, HistoryEntry(type="error", message=message))
        return JSONResponse(status_code=500, content={"success": False, "error": message})

    log_config_activated(session.username, result.source_name, [r.to_dict() for r in result.restarts])
    _record(history, summarize(result))
    return result.to_dict()


@router.get("/current-config-info")
async def current_config_info(
    workflow: ActivationWorkflow = Depends(get_activation_workflow),
    _session=Depends(get_current_session),
):
    """What is in the active slot right now."""
    try:
        info = workflow.store.current_info()
    except FileNotFoundError:
        return {"success": False, "reason": "not_found"}
    except StorageError as e:
        return JSONResponse(status_code=500, content={"success": False, "error": str(e), "reason": "config_error"})
    except OSError as e:
        return JSONResponse(status_code=500, content={
            "success": False,
            "error": f"Could not read active config: {e}",
            "reason": "read_error"
        })
    return {"success": True, **info}
