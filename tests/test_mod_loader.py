"""
Tests for the ModLoader controller used by the GUI.
"""

import json

from launch_orchestrator import GAME_EXECUTABLE, IDLE
from mod_loader import ModLoader
from tests.conftest import make_mod, make_zip


# ── helpers ──────────────────────────────────────────────────────────────────

def make_loader(data_dir, spawner=None, **kwargs):
    return ModLoader(data_dir, log_callback=lambda _: None, spawner=spawner, **kwargs)


def data_dir_of(dirs):
    mods_dir, _ = dirs
    return mods_dir.parent


def stored_config(data_dir):
    return json.loads((data_dir / "config" / "load_order.json").read_text(encoding="utf-8"))


# ── import / delete ──────────────────────────────────────────────────────────

def test_import_adds_to_load_order(dirs, tmp_path):
    data_dir = data_dir_of(dirs)
    loader = make_loader(data_dir)

    ok, _ = loader.import_mod(make_zip(tmp_path / "foo.zip", {"foo.archive": b"x"}))

    assert ok
    assert [m.id for m in loader.list_mods()] == ["foo"]
    assert stored_config(data_dir)["modLoadOrder"] == ["foo"]
    assert stored_config(data_dir)["enabledMods"] == []


def test_import_failure_reported(dirs, tmp_path):
    loader = make_loader(data_dir_of(dirs))
    ok, message = loader.import_mod(tmp_path / "missing.zip")
    assert not ok
    assert "not found" in message


def test_existing_mod_folders_are_synced_on_start(dirs):
    mods_dir, _ = dirs
    make_mod(mods_dir, "manual", {"a.archive": b"x"})
    loader = make_loader(mods_dir.parent)
    assert loader.config.mod_load_order == ["manual"]


def test_delete_purges_configuration(dirs):
    mods_dir, _ = dirs
    make_mod(mods_dir, "A", {"a.archive": b"x"})
    loader = make_loader(mods_dir.parent)
    loader.set_mod_enabled("A", True)

    ok, _ = loader.delete_mod("A")

    assert ok
    assert loader.config.enabled_mods == []
    assert loader.config.mod_load_order == []
    assert not (mods_dir / "A").exists()
    assert loader.delete_mod("A")[0] is False


# ── enable / order ───────────────────────────────────────────────────────────

def test_enable_and_reorder(dirs):
    mods_dir, _ = dirs
    for mod_id in ("A", "B", "C"):
        make_mod(mods_dir, mod_id, {f"{mod_id}.archive": b"x"})
    loader = make_loader(mods_dir.parent)
    loader.set_mod_enabled("A", True)
    loader.set_mod_enabled("C", True)

    assert loader.enabled_mods_in_order() == ["A", "C"]
    loader.move_mod("C", -2)
    assert loader.enabled_mods_in_order() == ["C", "A"]
    assert [(m.id, enabled) for m, enabled in loader.mods_in_load_order()] == [
        ("C", True),
        ("A", True),
        ("B", False),
    ]


def test_enable_unknown_mod(dirs):
    loader = make_loader(data_dir_of(dirs))
    ok, _ = loader.set_mod_enabled("ghost", True)
    assert not ok


def test_update_mod_validation(dirs):
    mods_dir, _ = dirs
    make_mod(mods_dir, "A", {"a.archive": b"x"})
    loader = make_loader(mods_dir.parent)
    assert loader.update_mod("A", display_name="Pretty")[0]
    ok, message = loader.update_mod("A", load_order="soon")
    assert not ok
    assert "Invalid metadata" in message


def test_profiles(dirs):
    mods_dir, _ = dirs
    for mod_id in ("A", "B"):
        make_mod(mods_dir, mod_id, {f"{mod_id}.archive": b"x"})
    loader = make_loader(mods_dir.parent)
    loader.set_mod_enabled("A", True)
    loader.save_profile("solo", "Solo")
    loader.set_mod_enabled("B", True)

    ok, _ = loader.switch_profile("solo")

    assert ok
    assert loader.enabled_mods_in_order() == ["A"]
    assert stored_config(mods_dir.parent)["currentProfile"] == "solo"
    assert loader.switch_profile("nope")[0] is False


# ── installation / launch ────────────────────────────────────────────────────

def test_set_installation_path(dirs, installation, tmp_path):
    loader = make_loader(data_dir_of(dirs))
    assert loader.set_installation_path(tmp_path / "nope")[0] is False

    ok, _ = loader.set_installation_path(installation)

    assert ok
    assert loader.installation_path == installation
    assert stored_config(data_dir_of(dirs))["installationPath"] == str(installation)


def test_validate_paths(dirs, installation):
    loader = make_loader(data_dir_of(dirs))
    assert "Game installation directory is not set" in loader.validate_paths()
    loader.set_installation_path(installation)
    assert loader.validate_paths() == []


def test_launch_without_installation(dirs, spawner):
    loader = make_loader(data_dir_of(dirs), spawner)
    ok, _ = loader.launch()
    assert not ok
    assert spawner.calls == []


def test_launch_and_preview_agree(dirs, installation, spawner):
    mods_dir, _ = dirs
    make_mod(mods_dir, "A", {"r6/scripts/x.reds": "A"})
    make_mod(mods_dir, "B", {"r6/scripts/x.reds": "B"})
    loader = make_loader(mods_dir.parent, spawner, installation_path=installation)
    loader.set_mod_enabled("A", True)
    loader.set_mod_enabled("B", True)

    preview = loader.preview()
    ok, _ = loader.launch()

    assert ok
    virtual = loader.virtual_root
    assert preview.conflicts[0].contributors == ["A", "B"]
    assert (virtual / "r6/scripts/x.reds").read_text() == "B"
    assert spawner.calls == [(virtual / GAME_EXECUTABLE, virtual)]
    assert loader.game_status().is_running


def test_clean_refused_while_running(dirs, installation, spawner):
    loader = make_loader(data_dir_of(dirs), spawner, installation_path=installation)
    loader.launch()

    assert loader.clean_virtual_environment()[0] is False

    spawner.processes[0].exit(0)
    assert loader.game_status() == IDLE
    assert loader.clean_virtual_environment()[0] is True
    assert not loader.virtual_root.exists()


def test_check_dependencies(dirs, installation):
    mods_dir, _ = dirs
    make_mod(mods_dir, "A", {"r6/scripts/x.reds": "A"})
    loader = make_loader(mods_dir.parent, installation_path=installation)
    loader.set_mod_enabled("A", True)

    results = loader.check_dependencies()
    assert [(dep.key, installed, users) for dep, installed, users in results] == [
        ("redscript", False, ["A"]),
    ]

    (installation / "engine").mkdir(exist_ok=True)
    (installation / "engine" / "redscript.dll").write_bytes(b"dll")
    assert loader.check_dependencies()[0][1] is True


def test_invalid_mod_id_reported(dirs):
    mods_dir, _ = dirs
    make_mod(mods_dir, "A", {"a.archive": b"x"})
    loader = make_loader(mods_dir.parent)

    ok, message = loader.delete_mod("../A")
    assert not ok
    assert "Invalid mod id" in message
    assert loader.update_mod("..", display_name="x")[0] is False
    assert (mods_dir / "A").exists()
