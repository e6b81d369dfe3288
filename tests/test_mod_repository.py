"""
Tests for ModRepository and the sidecar metadata schema.
"""

import json

import pytest
from pydantic import ValidationError

from errors import ModNotFoundError
from metadata_schema import METADATA_FILENAME, ModMetadata, parse_metadata
from mod_repository import ModRepository
from tests.conftest import make_mod


def write_sidecar(mod_root, **data):
    (mod_root / METADATA_FILENAME).write_text(json.dumps(data), encoding="utf-8")


def test_list_without_sidecar_uses_folder_defaults(dirs):
    mods_dir, _ = dirs
    make_mod(mods_dir, "plain", {"a.archive": b"x"})
    mods = ModRepository(mods_dir).list_mods()
    assert [m.id for m in mods] == ["plain"]
    assert mods[0].display_name == "plain"
    assert mods[0].metadata.category == "Other"
    assert mods[0].metadata.load_order == 0


def test_list_sorted_by_load_order_then_import_date(dirs):
    mods_dir, _ = dirs
    write_sidecar(make_mod(mods_dir, "late", {}), displayName="late", loadOrder=1,
                  importDate="2024-01-01T00:00:00Z")
    write_sidecar(make_mod(mods_dir, "newer", {}), displayName="newer", loadOrder=0,
                  importDate="2024-03-01T00:00:00Z")
    write_sidecar(make_mod(mods_dir, "older", {}), displayName="older", loadOrder=0,
                  importDate="2024-02-01T00:00:00")

    ids = [m.id for m in ModRepository(mods_dir).list_mods()]
    assert ids == ["older", "newer", "late"]


def test_corrupt_sidecar_falls_back_to_defaults(dirs):
    mods_dir, _ = dirs
    root = make_mod(mods_dir, "broken", {})
    (root / METADATA_FILENAME).write_text("{not json", encoding="utf-8")
    mod = ModRepository(mods_dir).get("broken")
    assert mod.display_name == "broken"


def test_list_ignores_loose_files(dirs):
    mods_dir, _ = dirs
    (mods_dir / "stray.txt").write_text("x", encoding="utf-8")
    assert ModRepository(mods_dir).list_mods() == []


def test_get_missing_mod(dirs):
    mods_dir, _ = dirs
    with pytest.raises(ModNotFoundError):
        ModRepository(mods_dir).get("nope")


def test_invalid_mod_id_rejected(dirs):
    mods_dir, _ = dirs
    with pytest.raises(ValueError):
        ModRepository(mods_dir).mod_path("../outside")


def test_update_merges_and_stamps_last_modified(dirs):
    mods_dir, _ = dirs
    make_mod(mods_dir, "m", {})
    repo = ModRepository(mods_dir)
    original = repo.create_metadata("m")

    updated = repo.update("m", display_name="Nice Name", tags=["ui", "ui", " hud "])

    assert updated.display_name == "Nice Name"
    assert updated.metadata.tags == ["ui", "hud"]
    assert updated.metadata.category == original.category
    assert updated.import_date == original.import_date
    assert updated.last_modified >= original.last_modified

    stored = json.loads((mods_dir / "m" / METADATA_FILENAME).read_text(encoding="utf-8"))
    assert stored["displayName"] == "Nice Name"


def test_update_accepts_camel_case_keys(dirs):
    mods_dir, _ = dirs
    make_mod(mods_dir, "m", {})
    repo = ModRepository(mods_dir)
    assert repo.update("m", displayName="Camel").display_name == "Camel"


def test_update_invalid_value(dirs):
    mods_dir, _ = dirs
    make_mod(mods_dir, "m", {})
    with pytest.raises(ValidationError):
        ModRepository(mods_dir).update("m", load_order="first")


def test_update_missing_mod(dirs):
    mods_dir, _ = dirs
    with pytest.raises(ModNotFoundError):
        ModRepository(mods_dir).update("ghost", display_name="x")


def test_unknown_sidecar_keys_survive_update(dirs):
    mods_dir, _ = dirs
    write_sidecar(make_mod(mods_dir, "m", {}), displayName="m", nexusId="1234")
    ModRepository(mods_dir).update("m", version="2.0")
    stored = json.loads((mods_dir / "m" / METADATA_FILENAME).read_text(encoding="utf-8"))
    assert stored["nexusId"] == "1234"
    assert stored["version"] == "2.0"


def test_delete(dirs):
    mods_dir, _ = dirs
    make_mod(mods_dir, "m", {"a.archive": b"x"})
    repo = ModRepository(mods_dir)
    repo.delete("m")
    assert not repo.exists("m")
    with pytest.raises(ModNotFoundError):
        repo.delete("m")


def test_categories_and_tags(dirs):
    mods_dir, _ = dirs
    write_sidecar(make_mod(mods_dir, "a", {}), displayName="a", category="Weapons", tags=["guns"])
    write_sidecar(make_mod(mods_dir, "b", {}), displayName="b", tags=["ui", "guns"])
    categories, tags = ModRepository(mods_dir).categories_and_tags()
    assert "Weapons" in categories
    assert "Other" in categories
    assert categories == sorted(categories)
    assert tags == ["guns", "ui"]


def test_metadata_tags_from_set():
    meta = ModMetadata(display_name="x", tags={"b", "a"})
    assert meta.tags == ["a", "b"]


def test_parse_metadata_rejects_missing_name():
    with pytest.raises(ValidationError):
        parse_metadata(b'{"category": "UI"}')
