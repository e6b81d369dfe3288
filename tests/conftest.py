"""
Shared fixtures and helpers for the Cyberpunk 2077 Mod Loader test suite.
"""

import zipfile
from pathlib import Path

import pytest

from launch_orchestrator import GAME_EXECUTABLE


def make_zip(path: Path, members: dict) -> Path:
    """Write a zip at ``path`` with ``{entry name: bytes or str}`` members."""
    with zipfile.ZipFile(path, "w") as zf:
        for member, data in members.items():
            zf.writestr(member, data)
    return path


def make_mod(mods_dir: Path, mod_id: str, files: dict) -> Path:
    """Create an already-imported mod directory with the given files."""
    root = mods_dir / mod_id
    root.mkdir(parents=True, exist_ok=True)
    for rel, data in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(data, str):
            data = data.encode("utf-8")
        path.write_bytes(data)
    return root


def snapshot(root: Path) -> dict:
    """Map every file under ``root`` to its bytes."""
    return {
        p.relative_to(root).as_posix(): p.read_bytes()
        for p in sorted(root.rglob("*"))
        if p.is_file()
    }


class FakeProcess:
    def __init__(self, pid: int):
        self.pid = pid
        self.on_exit = None

    def watch(self, on_exit):
        self.on_exit = on_exit

    def exit(self, returncode: int = 0):
        self.on_exit(returncode)


class FakeSpawner:
    """Records spawn calls instead of starting a process."""

    def __init__(self):
        self.calls = []
        self.processes = []

    def spawn(self, executable: Path, cwd: Path) -> FakeProcess:
        self.calls.append((executable, cwd))
        process = FakeProcess(1000 + len(self.processes))
        self.processes.append(process)
        return process


@pytest.fixture
def dirs(tmp_path):
    """Return (mods_dir, installation_dir) as fresh tmp_path subdirectories."""
    mods = tmp_path / "data" / "mods"
    game = tmp_path / "Cyberpunk 2077"
    mods.mkdir(parents=True)
    game.mkdir()
    return mods, game


@pytest.fixture
def installation(dirs):
    """A minimal game installation with the executable and a few data files."""
    _, game = dirs
    files = {
        GAME_EXECUTABLE: b"MZ fake exe",
        "archive/pc/content/basegame_1_engine.archive": b"base archive",
        "r6/scripts/base.reds": b"// base script",
        "engine/config/base/general.ini": b"[General]\n",
    }
    for rel, data in files.items():
        path = game / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
    return game


@pytest.fixture
def spawner():
    return FakeSpawner()
