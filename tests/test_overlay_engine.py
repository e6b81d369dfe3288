"""
Tests for OverlayEngine precedence and isolation from the installation.
"""

from metadata_schema import METADATA_FILENAME
from mirror_builder import MirrorBuilder
from overlay_engine import OverlayEngine, iter_mod_payload
from tests.conftest import make_mod, snapshot


def build(installation, mods_dir, virtual, mod_ids):
    MirrorBuilder().build_mirror(installation, virtual)
    return OverlayEngine(mods_dir).apply_overlay(mod_ids, virtual)


def test_last_mod_in_load_order_wins(dirs, installation, tmp_path):
    mods_dir, _ = dirs
    make_mod(mods_dir, "A", {"r6/scripts/x.reds": "from A", "r6/scripts/only_a.reds": "a"})
    make_mod(mods_dir, "B", {"r6/scripts/x.reds": "from B"})
    virtual = tmp_path / "virtual"

    stats = build(installation, mods_dir, virtual, ["A", "B"])

    assert (virtual / "r6/scripts/x.reds").read_text() == "from B"
    assert (virtual / "r6/scripts/only_a.reds").read_text() == "a"
    assert stats.total_files == 3
    assert [m.mod_id for m in stats.mods] == ["A", "B"]


def test_reversed_order_flips_winner(dirs, installation, tmp_path):
    mods_dir, _ = dirs
    make_mod(mods_dir, "A", {"r6/scripts/x.reds": "from A"})
    make_mod(mods_dir, "B", {"r6/scripts/x.reds": "from B"})
    virtual = tmp_path / "virtual"

    build(installation, mods_dir, virtual, ["B", "A"])

    assert (virtual / "r6/scripts/x.reds").read_text() == "from A"


def test_mod_overrides_game_file_without_touching_installation(dirs, installation, tmp_path):
    mods_dir, _ = dirs
    make_mod(mods_dir, "A", {"r6/scripts/base.reds": "// modded"})
    original = snapshot(installation)
    virtual = tmp_path / "virtual"

    build(installation, mods_dir, virtual, ["A"])

    replaced = virtual / "r6/scripts/base.reds"
    assert not replaced.is_symlink()
    assert replaced.read_text() == "// modded"
    assert snapshot(installation) == original


def test_missing_mod_is_skipped(dirs, installation, tmp_path):
    mods_dir, _ = dirs
    make_mod(mods_dir, "A", {"archive/pc/mod/a.archive": b"a"})
    virtual = tmp_path / "virtual"

    stats = build(installation, mods_dir, virtual, ["ghost", "A"])

    assert stats.missing_mods == ["ghost"]
    assert (virtual / "archive/pc/mod/a.archive").read_bytes() == b"a"


def test_duplicate_ids_applied_once(dirs, installation, tmp_path):
    mods_dir, _ = dirs
    make_mod(mods_dir, "A", {"r6/scripts/x.reds": "from A"})
    make_mod(mods_dir, "B", {"r6/scripts/x.reds": "from B"})
    virtual = tmp_path / "virtual"

    stats = build(installation, mods_dir, virtual, ["A", "B", "A"])

    assert [m.mod_id for m in stats.mods] == ["A", "B"]
    assert (virtual / "r6/scripts/x.reds").read_text() == "from B"


def test_sidecar_not_overlaid(dirs, installation, tmp_path):
    mods_dir, _ = dirs
    make_mod(mods_dir, "A", {"archive/pc/mod/a.archive": b"a", METADATA_FILENAME: "{}"})
    virtual = tmp_path / "virtual"

    build(installation, mods_dir, virtual, ["A"])

    assert not (virtual / METADATA_FILENAME).exists()
    assert [e.relative for e in iter_mod_payload(mods_dir / "A")] == ["archive/pc/mod/a.archive"]


def test_byte_counts(dirs, installation, tmp_path):
    mods_dir, _ = dirs
    make_mod(mods_dir, "A", {"a.txt": b"12345", "sub/b.txt": b"678"})
    stats = build(installation, mods_dir, tmp_path / "virtual", ["A"])
    assert stats.mods[0].files_processed == 2
    assert stats.mods[0].bytes_processed == 8
    assert stats.total_bytes == 8


def test_rebuild_is_idempotent(dirs, installation, tmp_path):
    mods_dir, _ = dirs
    make_mod(mods_dir, "A", {"r6/scripts/x.reds": "from A", "archive/pc/mod/a.archive": b"a"})
    make_mod(mods_dir, "B", {"r6/scripts/x.reds": "from B"})
    virtual = tmp_path / "virtual"

    build(installation, mods_dir, virtual, ["A", "B"])
    first = snapshot(virtual)
    build(installation, mods_dir, virtual, ["A", "B"])

    assert snapshot(virtual) == first


def test_write_below_installation_directory_link(dirs, tmp_path):
    mods_dir, game = dirs
    # Writing through a linked directory would modify the real folder, and
    # the folder's own files must stay visible next to the mod's.
    real = tmp_path / "shared_scripts"
    real.mkdir()
    (real / "shared.reds").write_text("shared", encoding="utf-8")
    (game / "r6").mkdir()
    (game / "r6" / "scripts").symlink_to(real, target_is_directory=True)

    make_mod(mods_dir, "A", {"r6/scripts/new.reds": "new"})
    virtual = tmp_path / "virtual"
    build(game, mods_dir, virtual, ["A"])

    assert (virtual / "r6/scripts/new.reds").read_text() == "new"
    assert (virtual / "r6/scripts/shared.reds").read_text() == "shared"
    assert not (real / "new.reds").exists()


def test_file_replaces_directory_from_earlier_mod(dirs, installation, tmp_path):
    mods_dir, _ = dirs
    make_mod(mods_dir, "A", {"r6/extra/inner.txt": "A"})
    make_mod(mods_dir, "B", {"r6/extra": "B"})
    virtual = tmp_path / "virtual"

    stats = build(installation, mods_dir, virtual, ["A", "B"])

    assert (virtual / "r6/extra").is_file()
    assert (virtual / "r6/extra").read_text() == "B"
    assert stats.errors == []


def test_file_replaces_mirrored_directory(dirs, installation, tmp_path):
    mods_dir, _ = dirs
    make_mod(mods_dir, "B", {"r6/scripts": "B"})
    virtual = tmp_path / "virtual"

    stats = build(installation, mods_dir, virtual, ["B"])

    assert (virtual / "r6/scripts").read_text() == "B"
    assert stats.total_files == 1
    assert (installation / "r6/scripts/base.reds").read_bytes() == b"// base script"


def test_directory_replaces_file_then_file_again(dirs, installation, tmp_path):
    mods_dir, _ = dirs
    make_mod(mods_dir, "A", {"r6/extra": "A"})
    make_mod(mods_dir, "B", {"r6/extra/inner.txt": "B"})
    make_mod(mods_dir, "C", {"r6/extra": "C"})
    virtual = tmp_path / "virtual"

    build(installation, mods_dir, virtual, ["A", "B"])
    assert (virtual / "r6/extra/inner.txt").read_text() == "B"

    stats = build(installation, mods_dir, virtual, ["A", "B", "C"])
    assert (virtual / "r6/extra").read_text() == "C"
    assert stats.errors == []
