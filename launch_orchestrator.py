"""
Launch sequence: mirror the installation, overlay mods, start the game.

The orchestrator owns the virtual game directory. Every launch throws the
previous one away and builds a fresh tree, so the virtual tree never carries
state from an earlier mod selection. Only one build may run at a time; a
second caller gets ``LaunchInProgressError`` instead of waiting.

The running game is tracked in a ``GameProcessCell``. The spawned process is
detached from the launcher; when it exits, a watcher thread resets the cell.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional, Protocol

from errors import ExecutableNotFoundError, LaunchInProgressError, ProcessSpawnError
from metadata_schema import utc_now
from mirror_builder import MirrorBuilder, MirrorStats
from overlay_engine import OverlayEngine, OverlayStats

_log = logging.getLogger(__name__)

GAME_EXECUTABLE = "bin/x64/Cyberpunk2077.exe"


# ── Process state ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class GameProcessState:
    is_running: bool = False
    launched_at: Optional[datetime] = None
    process_id: Optional[int] = None


IDLE = GameProcessState()


class GameProcessCell:
    """Holds the current ``GameProcessState``; values are replaced whole."""

    def __init__(self):
        self._lock = threading.Lock()
        self._state = IDLE

    def get(self) -> GameProcessState:
        with self._lock:
            return self._state

    def set(self, state: GameProcessState):
        with self._lock:
            self._state = state

    def clear_if(self, process_id: int) -> bool:
        """Reset to ``IDLE`` if the cell still describes ``process_id``."""
        with self._lock:
            if self._state.process_id != process_id:
                return False
            self._state = IDLE
            return True


# ── Process spawning ──────────────────────────────────────────────────


class SpawnedProcess(Protocol):
    pid: int

    def watch(self, on_exit: Callable[[Optional[int]], None]) -> None: ...


class ProcessSpawner(Protocol):
    def spawn(self, executable: Path, cwd: Path) -> SpawnedProcess: ...


class _PopenProcess:
    def __init__(self, popen: subprocess.Popen):
        self._popen = popen
        self.pid = popen.pid

    def watch(self, on_exit: Callable[[Optional[int]], None]):
        def _wait():
            returncode = self._popen.wait()
            on_exit(returncode)

        threading.Thread(target=_wait, name=f"game-watch-{self.pid}", daemon=True).start()


class SubprocessSpawner:
    """Starts the game detached from the launcher with no console I/O."""

    def spawn(self, executable: Path, cwd: Path) -> _PopenProcess:
        kwargs = {}
        if sys.platform == "win32":
            kwargs["creationflags"] = (
                subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
            )
        else:
            kwargs["start_new_session"] = True
        try:
            popen = subprocess.Popen(
                [str(executable)],
                cwd=str(cwd),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                **kwargs,
            )
        except OSError as e:
            raise ProcessSpawnError(f"Could not start {executable.name}: {e}") from e
        return _PopenProcess(popen)


# ── Orchestrator ──────────────────────────────────────────────────────


@dataclass
class LaunchResult:
    virtual_path: Path
    original_path: Path
    mirror: MirrorStats
    overlay: OverlayStats
    process: Optional[GameProcessState] = None


class LaunchOrchestrator:
    def __init__(
        self,
        mods_dir: str | Path,
        virtual_root: str | Path,
        spawner: Optional[ProcessSpawner] = None,
        mirror_builder: Optional[MirrorBuilder] = None,
    ):
        self.virtual_root = Path(virtual_root)
        self.overlay_engine = OverlayEngine(mods_dir)
        self.mirror_builder = mirror_builder or MirrorBuilder()
        self.spawner = spawner or SubprocessSpawner()
        self.process_cell = GameProcessCell()
        self._busy = threading.Lock()

    @property
    def is_busy(self) -> bool:
        return self._busy.locked()

    def game_status(self) -> GameProcessState:
        return self.process_cell.get()

    def _acquire(self):
        if not self._busy.acquire(blocking=False):
            raise LaunchInProgressError()

    def _build(self, installation_path: Path, mod_ids: Iterable[str]) -> LaunchResult:
        _log.info("Building virtual environment at %s", self.virtual_root)
        mirror = self.mirror_builder.build_mirror(installation_path, self.virtual_root)
        overlay = self.overlay_engine.apply_overlay(mod_ids, self.virtual_root)
        return LaunchResult(
            virtual_path=self.virtual_root,
            original_path=installation_path,
            mirror=mirror,
            overlay=overlay,
        )

    def build_virtual_environment(
        self, installation_path: str | Path, mod_ids: Iterable[str]
    ) -> LaunchResult:
        """Mirror and overlay without starting the game."""
        self._acquire()
        try:
            return self._build(Path(installation_path), mod_ids)
        finally:
            self._busy.release()

    def launch(self, installation_path: str | Path, mod_ids: Iterable[str]) -> LaunchResult:
        """Rebuild the virtual tree with ``mod_ids`` (load order) and start the game.

        Raises ``MirrorSourceMissingError``, ``ExecutableNotFoundError``,
        ``ProcessSpawnError`` or ``LaunchInProgressError``.
        """
        self._acquire()
        try:
            result = self._build(Path(installation_path), mod_ids)
            executable = self.virtual_root / GAME_EXECUTABLE
            if not executable.is_file():
                raise ExecutableNotFoundError(executable)

            process = self.spawner.spawn(executable, self.virtual_root)
            state = GameProcessState(is_running=True, launched_at=utc_now(), process_id=process.pid)
            self.process_cell.set(state)
            process.watch(lambda returncode: self._on_exit(process.pid, returncode))
            _log.info("Game started (pid %s)", process.pid)
            result.process = state
            return result
        finally:
            self._busy.release()

    def _on_exit(self, process_id: int, returncode: Optional[int]):
        if self.process_cell.clear_if(process_id):
            _log.info("Game exited (pid %s, code %s)", process_id, returncode)

    def clean_virtual_environment(self) -> bool:
        """Delete the virtual tree. Returns False if there was none."""
        self._acquire()
        try:
            if not os.path.lexists(self.virtual_root):
                return False
            if self.virtual_root.is_symlink() or self.virtual_root.is_file():
                self.virtual_root.unlink()
            else:
                shutil.rmtree(self.virtual_root)
            _log.info("Removed virtual environment %s", self.virtual_root)
            return True
        finally:
            self._busy.release()
