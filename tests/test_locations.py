"""Tests for the location inventory."""

import json
from pathlib import Path

import pytest

from tunnel_switcher.exceptions import StorageError
from tunnel_switcher.locations import ConfigDirectory, LocationResolver


def make_resolver(tmp_path: Path, locations: dict, files=(), override: dict = None) -> LocationResolver:
    wg_dir = tmp_path / "wireguard"
    wg_dir.mkdir(exist_ok=True)
    for name in files:
        (wg_dir / name).write_text("[Interface]\n")

    locations_file = tmp_path / "locations.json"
    locations_file.write_text(json.dumps(locations))

    override_file = tmp_path / "locations.local.json"
    if override is not None:
        override_file.write_text(json.dumps(override))

    return LocationResolver(ConfigDirectory(str(wg_dir)), locations_file, override_file=override_file)


class TestResolveLocations:
    def test_available_when_file_matches_first_keyword(self, tmp_path: Path):
        resolver = make_resolver(tmp_path, {"fr": {"keywords": ["france", "paris"]}}, files=["france.conf"])

        [record] = resolver.resolve_locations()
        assert record.country_code == "fr"
        assert record.is_available is True
        assert record.file_name == "france.conf"
        assert record.full_path == str(tmp_path / "wireguard" / "france.conf")

    def test_single_keyword_is_never_available(self, tmp_path: Path):
        resolver = make_resolver(tmp_path, {"fr": {"keywords": ["france"]}}, files=["france.conf"])

        [record] = resolver.resolve_locations()
        assert record.is_available is False
        assert record.file_name is None
        assert record.full_path is None

    def test_missing_keywords_is_never_available(self, tmp_path: Path):
        resolver = make_resolver(tmp_path, {"fr": {"countryNameKey": "country.france"}}, files=["france.conf"])
        assert resolver.resolve_locations()[0].is_available is False

    def test_match_is_case_insensitive_and_keeps_real_name(self, tmp_path: Path):
        resolver = make_resolver(tmp_path, {"ch": {"keywords": ["switzerland", "zurich"]}}, files=["Switzerland.conf"])

        [record] = resolver.resolve_locations()
        assert record.is_available is True
        assert record.file_name == "Switzerland.conf"

    def test_only_first_keyword_names_the_file(self, tmp_path: Path):
        resolver = make_resolver(tmp_path, {"fr": {"keywords": ["france", "paris"]}}, files=["paris.conf"])
        assert resolver.resolve_locations()[0].is_available is False

    def test_declaration_order_is_preserved(self, tmp_path: Path):
        locations = {
            "se": {"keywords": ["sweden", "stockholm"]},
            "at": {"keywords": ["austria", "vienna"]},
            "fr": {"keywords": ["france", "paris"]},
        }
        resolver = make_resolver(tmp_path, locations, files=["france.conf"])
        assert [r.country_code for r in resolver.resolve_locations()] == ["se", "at", "fr"]

    def test_missing_directory_means_nothing_available(self, tmp_path: Path):
        locations_file = tmp_path / "locations.json"
        locations_file.write_text(json.dumps({"fr": {"keywords": ["france", "paris"]}}))
        resolver = LocationResolver(ConfigDirectory(str(tmp_path / "absent")), locations_file)

        [record] = resolver.resolve_locations()
        assert record.is_available is False

    def test_declared_fields_pass_through(self, tmp_path: Path):
        locations = {"fr": {"countryNameKey": "country.france", "keywords": ["france", "paris"], "flag": "fr.svg"}}
        resolver = make_resolver(tmp_path, locations, files=["france.conf"])

        dumped = resolver.resolve_locations()[0].model_dump(by_alias=True)
        assert dumped["countryCode"] == "fr"
        assert dumped["countryNameKey"] == "country.france"
        assert dumped["flag"] == "fr.svg"
        assert dumped["isAvailable"] is True
        assert dumped["fileName"] == "france.conf"

    def test_null_keywords_is_never_available(self, tmp_path: Path):
        locations = {"xx": {"countryNameKey": "country.unknown", "keywords": None}}
        resolver = make_resolver(tmp_path, locations, files=["france.conf"])

        [record] = resolver.resolve_locations()
        assert record.keywords == []
        assert record.is_available is False

    def test_malformed_entry_is_a_storage_error(self, tmp_path: Path):
        locations = {"xx": {"countryNameKey": ["not", "a", "string"], "keywords": ["x", "y"]}}
        resolver = make_resolver(tmp_path, locations)
        with pytest.raises(StorageError):
            resolver.resolve_locations()

    def test_missing_locations_file_is_an_error(self, tmp_path: Path):
        resolver = LocationResolver(ConfigDirectory(str(tmp_path)), tmp_path / "absent.json")
        with pytest.raises(StorageError):
            resolver.resolve_locations()

    def test_local_override_wins_when_present(self, tmp_path: Path):
        resolver = make_resolver(
            tmp_path,
            {"fr": {"keywords": ["france", "paris"]}},
            override={"de": {"keywords": ["germany", "berlin"]}},
        )
        assert [r.country_code for r in resolver.resolve_locations()] == ["de"]


class TestConfigDirectory:
    def test_lists_only_conf_files(self, tmp_path: Path):
        for name in ("france.conf", "notes.txt", "wg0.conf"):
            (tmp_path / name).write_text("")
        assert ConfigDirectory(str(tmp_path)).list_config_files() == {"france.conf", "wg0.conf"}

    def test_sources_exclude_the_active_slot(self, tmp_path: Path):
        for name in ("germany.conf", "france.conf", "wg0.conf"):
            (tmp_path / name).write_text("")

        sources = ConfigDirectory(str(tmp_path)).list_sources()
        assert [s["name"] for s in sources] == ["france.conf", "germany.conf"]
        assert sources[0]["fullPath"] == str(tmp_path / "france.conf")

    def test_unconfigured_directory(self):
        directory = ConfigDirectory("")
        assert directory.list_config_files() == set()
        assert directory.active_path is None
        with pytest.raises(StorageError):
            directory.list_sources()
