"""
Location inventory.
Cross-references the declared VPN locations with the WireGuard configs that
are actually present, so the UI only offers locations it can switch to.
"""
import logging
import os
from pathlib import Path
from typing import List, Optional, Set

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .deps import get_current_session, get_location_resolver
from .exceptions import StorageError
from .storage import read_json

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["locations"])

CONFIG_SUFFIX = ".conf"
MIN_KEYWORDS = 2


class ConfigDirectory:
    """Read-only view of the directory holding the tunnel configs."""

    def __init__(self, path: str, active_name: str = "wg0.conf"):
        self.path = Path(path) if path else None
        self.active_name = active_name

    @property
    def active_path(self) -> Optional[Path]:
        return self.path / self.active_name if self.path else None

    def list_config_files(self) -> Set[str]:
        """
        Names of the *.conf files present.
        A missing or unreadable directory simply has no files.
        """
        if self.path is None:
            return set()
        try:
            names = os.listdir(self.path)
        except OSError as e:
            logger.info("WireGuard directory %s not readable (%s), assuming no configs are available", self.path, e)
            return set()
        return {name for name in names if name.endswith(CONFIG_SUFFIX)}

    def list_sources(self) -> List[dict]:
        """Candidate configs (everything but the active slot), sorted by name."""
        if self.path is None:
            raise StorageError("WIREGUARD_DIR is not configured on the server")
        try:
            names = os.listdir(self.path)
        except OSError as e:
            raise StorageError(f"Could not read directory {self.path}: {e}") from e
        return [
            {"name": name, "fullPath": str(self.path / name)}
            for name in sorted(names)
            if name.endswith(CONFIG_SUFFIX) and name != self.active_name
        ]


class LocationRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    country_code: str
    country_name_key: Optional[str] = None
    keywords: List[str] = []
    is_available: bool = False
    file_name: Optional[str] = None
    full_path: Optional[str] = None

    @field_validator("keywords", mode="before")
    @classmethod
    def null_keywords(cls, v):
        # null means no keywords, so the location is never available
        return [] if v is None else v


class LocationResolver:
    def __init__(self, directory: ConfigDirectory, locations_file: Path, override_file: Optional[Path] = None):
        self.directory = directory
        self.locations_file = Path(locations_file)
        self.override_file = Path(override_file) if override_file else None

    def metadata_path(self) -> Path:
        # In development a local file takes precedence over the mounted one
        if self.override_file is not None and self.override_file.is_file():
            return self.override_file
        return self.locations_file

    def load_declared(self) -> dict:
        data = read_json(self.metadata_path())
        if not isinstance(data, dict):
            raise StorageError(f"Locations file must hold an object: {self.metadata_path()}")
        return data

    def resolve_locations(self) -> List[LocationRecord]:
        """Declared locations in declaration order, annotated with availability."""
        declared = self.load_declared()
        present = {name.lower(): name for name in self.directory.list_config_files()}

        records = []
        for country_code, data in declared.items():
            if not isinstance(data, dict):
                raise StorageError(f"Location '{country_code}' is not an object")
            try:
                record = LocationRecord.model_validate({**data, "countryCode": country_code})
            except ValidationError as e:
                raise StorageError(f"Location '{country_code}' is malformed: {e}") from e
            record.is_available = False
            record.file_name = None
            record.full_path = None

            if len(record.keywords) >= MIN_KEYWORDS:
                expected = f"{record.keywords[0]}{CONFIG_SUFFIX}".lower()
                found = present.get(expected)
                if found is not None:
                    record.is_available = True
                    record.file_name = found
                    record.full_path = str(self.directory.path / found)

            records.append(record)
        return records


@router.get("/locations")
async def list_locations(
    resolver: LocationResolver = Depends(get_location_resolver),
    _session=Depends(get_current_session),
):
    """Declared locations enriched with config availability."""
    try:
        locations = resolver.resolve_locations()
    except StorageError as e:
        logger.error("Could not load locations: %s", e)
        return JSONResponse(status_code=500, content={
            "success": False,
            "error": f"Could not load location data: {e}"
        })
    return {"success": True, "locations": [loc.model_dump(by_alias=True) for loc in locations]}


@router.get("/wireguard-files")
async def list_wireguard_files(
    resolver: LocationResolver = Depends(get_location_resolver),
    _session=Depends(get_current_session),
):
    """Raw listing of the candidate config files."""
    try:
        files = resolver.directory.list_sources()
    except StorageError as e:
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})
    return {"success": True, "files": files}
