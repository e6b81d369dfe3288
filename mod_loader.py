"""
Cyberpunk 2077 Mod Loader - Core Logic

Wires the mod store, configuration, conflict preview and launch sequence
together for the GUI. Data directory layout:

    <data_dir>/mods/<mod id>/...        imported mods
    <data_dir>/config/load_order.json   configuration record
    <data_dir>/virtual_game/            rebuilt on every launch
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from pydantic import ValidationError

import load_order
from archive_importer import ArchiveImporter
from config_store import ConfigStore
from conflict_detection import LaunchPreview, analyze
from dependencies import (
    Dependency,
    check_dependency,
    infer_mod_dependencies,
    parse_mod_dependencies,
)
from errors import ModLoaderError
from launch_orchestrator import (
    GAME_EXECUTABLE,
    GameProcessState,
    LaunchOrchestrator,
    ProcessSpawner,
)
from metadata_schema import LoaderConfig
from mod_repository import ModPackage, ModRepository

_log = logging.getLogger(__name__)

MODS_DIRNAME = "mods"
CONFIG_RELPATH = Path("config") / "load_order.json"
VIRTUAL_DIRNAME = "virtual_game"


class ModLoader:
    """
    Main mod loader controller.

    Workflow:
        1. import_mod() to add archives to the mod store
        2. set_mod_enabled() / move_mod() to pick mods and their order
        3. preview() to see which mod wins each contested file
        4. launch() to rebuild the virtual game folder and start the game
    """

    def __init__(
        self,
        data_dir: str | Path,
        log_callback: Optional[Callable[[str], None]] = None,
        spawner: Optional[ProcessSpawner] = None,
        installation_path: Optional[str | Path] = None,
    ):
        self.data_dir = Path(data_dir)
        self.mods_dir = self.data_dir / MODS_DIRNAME
        self.virtual_root = self.data_dir / VIRTUAL_DIRNAME
        self._log_cb = log_callback or print
        self._installation_override = Path(installation_path) if installation_path else None

        self.mods_dir.mkdir(parents=True, exist_ok=True)
        self.repository = ModRepository(self.mods_dir)
        self.importer = ArchiveImporter(self.repository)
        self.config_store = ConfigStore(self.data_dir / CONFIG_RELPATH)
        self.orchestrator = LaunchOrchestrator(self.mods_dir, self.virtual_root, spawner=spawner)

        self.config = self.config_store.load()
        synced = load_order.sync_installed(self.config, self._installed_ids())
        if synced is not self.config:
            self._save_config(synced)

    # ── Logging ───────────────────────────────────────────────────────

    def log(self, msg: str):
        _log.info(msg)
        self._log_cb(msg)

    # ── Configuration ─────────────────────────────────────────────────

    def _save_config(self, config: LoaderConfig):
        self.config = config
        self.config_store.save(config)

    def _installed_ids(self) -> list[str]:
        return [mod.id for mod in self.repository.list_mods()]

    @property
    def installation_path(self) -> Optional[Path]:
        if self._installation_override is not None:
            return self._installation_override
        if self.config.installation_path:
            return Path(self.config.installation_path)
        return None

    def set_installation_path(self, path: str | Path) -> tuple[bool, str]:
        path = Path(path)
        if not path.is_dir():
            return False, f"Directory does not exist: {path}"
        self._installation_override = None
        self._save_config(self.config.model_copy(update={"installation_path": str(path)}))
        self.log(f"Game installation set to {path}")
        if not (path / GAME_EXECUTABLE).is_file():
            return True, f"Saved, but {GAME_EXECUTABLE} was not found in that folder"
        return True, "Game installation saved"

    # ── Queries ───────────────────────────────────────────────────────

    def list_mods(self) -> list[ModPackage]:
        return self.repository.list_mods()

    def mods_in_load_order(self) -> list[tuple[ModPackage, bool]]:
        """Installed mods in launch order with their enabled flag. Mods not
        yet in the load order follow at the end."""
        mods = {mod.id: mod for mod in self.repository.list_mods()}
        ordered = [mods.pop(mod_id) for mod_id in self.config.mod_load_order if mod_id in mods]
        ordered.extend(mods.values())
        return [(mod, self.config.is_enabled(mod.id)) for mod in ordered]

    def enabled_mods_in_order(self) -> list[str]:
        return self.config.ordered_enabled_mods()

    def preview(self) -> LaunchPreview:
        return analyze(self.mods_dir, self.enabled_mods_in_order())

    def game_status(self) -> GameProcessState:
        return self.orchestrator.game_status()

    def validate_paths(self) -> list[str]:
        issues = []

        if not self.mods_dir.exists():
            issues.append(f"Mods directory does not exist: {self.mods_dir}")

        installation = self.installation_path
        if installation is None:
            issues.append("Game installation directory is not set")
        elif not installation.is_dir():
            issues.append(f"Game installation directory does not exist: {installation}")
        elif not (installation / GAME_EXECUTABLE).is_file():
            issues.append(f"Game executable not found: {installation / GAME_EXECUTABLE}")

        installed = set(self._installed_ids())
        for mod_id in self.enabled_mods_in_order():
            if mod_id not in installed:
                issues.append(f"Enabled mod is missing from the mods folder: {mod_id}")

        return issues

    def check_dependencies(self) -> list[tuple[Dependency, bool, list[str]]]:
        """Frameworks needed by enabled mods.

        Returns ``(dependency, installed, needed_by)`` tuples. A framework
        counts as installed when the game folder or any enabled mod ships
        its main file.
        """
        needed: dict[str, tuple[Dependency, list[str]]] = {}
        enabled_roots = []
        for mod_id in self.enabled_mods_in_order():
            mod_root = self.repository.mod_path(mod_id)
            if not mod_root.is_dir():
                continue
            enabled_roots.append(mod_root)
            for dep in parse_mod_dependencies(mod_root) + infer_mod_dependencies(mod_root):
                _, users = needed.setdefault(dep.key, (dep, []))
                if mod_id not in users:
                    users.append(mod_id)

        installation = self.installation_path or ""
        return [
            (dep, check_dependency(dep, installation, enabled_roots), users)
            for dep, users in needed.values()
        ]

    # ── Mod management ────────────────────────────────────────────────

    def import_mod(self, archive_path: str | Path) -> tuple[bool, str]:
        archive_path = Path(archive_path)
        self.log(f"Importing {archive_path.name}...")
        try:
            mod = self.importer.import_archive(archive_path)
        except ModLoaderError as e:
            self.log(f"  Import failed: {e}")
            return False, str(e)

        self._save_config(load_order.sync_installed(self.config, [mod.id]))
        self.log(f"  Imported '{mod.display_name}'")
        return True, f"Imported {mod.id}"

    def delete_mod(self, mod_id: str) -> tuple[bool, str]:
        try:
            self.repository.delete(mod_id)
        except (ModLoaderError, ValueError) as e:
            return False, str(e)
        self._save_config(load_order.purge_mod(self.config, mod_id))
        self.log(f"Deleted mod '{mod_id}'")
        return True, f"Deleted {mod_id}"

    def set_mod_enabled(self, mod_id: str, enabled: bool) -> tuple[bool, str]:
        if enabled and not self.repository.exists(mod_id):
            return False, f"Mod '{mod_id}' is not installed"
        self._save_config(load_order.set_enabled(self.config, mod_id, enabled))
        state = "Enabled" if enabled else "Disabled"
        self.log(f"{state} '{mod_id}'")
        return True, f"{state} {mod_id}"

    def move_mod(self, mod_id: str, offset: int) -> tuple[bool, str]:
        if mod_id not in self.config.mod_load_order:
            return False, f"Mod '{mod_id}' is not in the load order"
        self._save_config(load_order.move_mod(self.config, mod_id, offset))
        return True, f"Moved {mod_id}"

    def update_mod(self, mod_id: str, **fields) -> tuple[bool, str]:
        try:
            mod = self.repository.update(mod_id, **fields)
        except ModLoaderError as e:
            return False, str(e)
        except ValidationError as e:
            return False, f"Invalid metadata: {e.error_count()} error(s)\n{e}"
        except ValueError as e:
            return False, str(e)
        return True, f"Updated {mod.display_name}"

    # ── Profiles ──────────────────────────────────────────────────────

    def save_profile(self, key: str, name: Optional[str] = None) -> tuple[bool, str]:
        if not key.strip():
            return False, "Profile name must not be empty"
        self._save_config(load_order.save_profile(self.config, key.strip(), name))
        self.log(f"Saved profile '{key}'")
        return True, f"Saved profile {key}"

    def switch_profile(self, key: str) -> tuple[bool, str]:
        if key not in self.config.profiles:
            return False, f"Unknown profile: {key}"
        config = load_order.apply_profile(self.config, key)
        self._save_config(load_order.sync_installed(config, self._installed_ids()))
        self.log(f"Switched to profile '{self.config.profiles[key].name}'")
        return True, f"Switched to {key}"

    # ── Launch ────────────────────────────────────────────────────────

    def launch(self) -> tuple[bool, str]:
        installation = self.installation_path
        if installation is None:
            return False, "Set the game installation directory first"

        mod_ids = self.enabled_mods_in_order()
        self.log(f"Launching with {len(mod_ids)} mod(s)...")
        try:
            result = self.orchestrator.launch(installation, mod_ids)
        except ModLoaderError as e:
            self.log(f"  Launch failed: {e}")
            return False, str(e)

        self.log(f"  Mirrored game: {result.mirror.summary()}")
        if result.mirror.degraded:
            self.log(f"  WARNING: {len(result.mirror.degraded)} file(s) copied instead of linked")
        for rel, err in result.mirror.failed:
            self.log(f"  WARNING: could not mirror {rel}: {err}")
        for mod_id in result.overlay.missing_mods:
            self.log(f"  WARNING: mod folder missing, skipped: {mod_id}")
        for mod_id, rel, err in result.overlay.errors:
            self.log(f"  WARNING: {mod_id}: could not apply {rel}: {err}")
        self.log(
            f"  Applied {result.overlay.total_files} mod file(s); "
            f"game started (pid {result.process.process_id})"
        )
        return True, f"Game launched from {result.virtual_path}"

    def clean_virtual_environment(self) -> tuple[bool, str]:
        if self.game_status().is_running:
            return False, "The game is still running"
        try:
            removed = self.orchestrator.clean_virtual_environment()
        except ModLoaderError as e:
            return False, str(e)
        if not removed:
            return True, "No virtual environment to remove"
        self.log("Removed virtual environment")
        return True, "Virtual environment removed"
