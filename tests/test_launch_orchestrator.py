"""
Tests for the launch sequence and game process tracking.
"""

import threading

import pytest

from errors import (
    ExecutableNotFoundError,
    LaunchInProgressError,
    MirrorSourceMissingError,
)
from launch_orchestrator import (
    GAME_EXECUTABLE,
    IDLE,
    GameProcessCell,
    GameProcessState,
    LaunchOrchestrator,
)
from tests.conftest import make_mod


def make_orchestrator(mods_dir, tmp_path, spawner):
    return LaunchOrchestrator(mods_dir, tmp_path / "virtual_game", spawner=spawner)


def test_launch_builds_tree_and_spawns(dirs, installation, tmp_path, spawner):
    mods_dir, _ = dirs
    make_mod(mods_dir, "A", {"r6/scripts/x.reds": "A"})
    make_mod(mods_dir, "B", {"r6/scripts/x.reds": "B"})
    orch = make_orchestrator(mods_dir, tmp_path, spawner)

    result = orch.launch(installation, ["A", "B"])

    virtual = tmp_path / "virtual_game"
    assert result.virtual_path == virtual
    assert result.original_path == installation
    assert (virtual / "r6/scripts/x.reds").read_text() == "B"
    assert spawner.calls == [(virtual / GAME_EXECUTABLE, virtual)]

    status = orch.game_status()
    assert status.is_running
    assert status.process_id == spawner.processes[0].pid
    assert status.launched_at is not None
    assert result.process == status


def test_exit_resets_status(dirs, installation, tmp_path, spawner):
    mods_dir, _ = dirs
    orch = make_orchestrator(mods_dir, tmp_path, spawner)
    orch.launch(installation, [])

    spawner.processes[0].exit(0)

    assert orch.game_status() == IDLE


def test_stale_exit_does_not_clear_newer_launch(dirs, installation, tmp_path, spawner):
    mods_dir, _ = dirs
    orch = make_orchestrator(mods_dir, tmp_path, spawner)
    orch.launch(installation, [])
    orch.launch(installation, [])

    spawner.processes[0].exit(0)

    assert orch.game_status().process_id == spawner.processes[1].pid


def test_missing_installation(dirs, tmp_path, spawner):
    mods_dir, _ = dirs
    orch = make_orchestrator(mods_dir, tmp_path, spawner)
    with pytest.raises(MirrorSourceMissingError):
        orch.launch(tmp_path / "no_game", [])
    assert spawner.calls == []
    assert not orch.is_busy


def test_missing_executable(dirs, tmp_path, spawner):
    mods_dir, game = dirs
    (game / "readme.txt").write_text("no exe", encoding="utf-8")
    orch = make_orchestrator(mods_dir, tmp_path, spawner)
    with pytest.raises(ExecutableNotFoundError):
        orch.launch(game, [])
    assert spawner.calls == []
    assert orch.game_status() == IDLE


def test_overlapping_build_rejected(dirs, installation, tmp_path, spawner):
    mods_dir, _ = dirs
    orch = make_orchestrator(mods_dir, tmp_path, spawner)
    entered = threading.Event()
    release = threading.Event()
    real_apply = orch.overlay_engine.apply_overlay

    def slow_apply(*args, **kwargs):
        entered.set()
        release.wait(5)
        return real_apply(*args, **kwargs)

    orch.overlay_engine.apply_overlay = slow_apply
    worker = threading.Thread(target=orch.launch, args=(installation, []))
    worker.start()
    try:
        assert entered.wait(5)
        assert orch.is_busy
        with pytest.raises(LaunchInProgressError):
            orch.launch(installation, [])
        with pytest.raises(LaunchInProgressError):
            orch.clean_virtual_environment()
    finally:
        release.set()
        worker.join(5)
    assert not orch.is_busy
    assert len(spawner.calls) == 1


def test_build_without_launch(dirs, installation, tmp_path, spawner):
    mods_dir, _ = dirs
    make_mod(mods_dir, "A", {"archive/pc/mod/a.archive": b"a"})
    orch = make_orchestrator(mods_dir, tmp_path, spawner)

    result = orch.build_virtual_environment(installation, ["A"])

    assert result.process is None
    assert (tmp_path / "virtual_game" / "archive/pc/mod/a.archive").exists()
    assert spawner.calls == []


def test_clean_virtual_environment(dirs, installation, tmp_path, spawner):
    mods_dir, _ = dirs
    orch = make_orchestrator(mods_dir, tmp_path, spawner)
    assert orch.clean_virtual_environment() is False

    orch.build_virtual_environment(installation, [])
    assert orch.clean_virtual_environment() is True
    assert not (tmp_path / "virtual_game").exists()
    assert (installation / GAME_EXECUTABLE).exists()


def test_process_cell_transitions():
    cell = GameProcessCell()
    assert cell.get() == IDLE
    running = GameProcessState(is_running=True, process_id=42)
    cell.set(running)
    assert cell.get() is running
    assert cell.clear_if(7) is False
    assert cell.get() is running
    assert cell.clear_if(42) is True
    assert cell.get() == IDLE
