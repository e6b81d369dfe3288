"""
Mod overlay onto the virtual game tree.

Mods are copied over the mirror in load order, so for any path the last
enabled mod that ships it wins. The mirror is made of links into the real
installation; every destination is unlinked before it is written so a copy
never follows a link back into the game folder.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator

from fs_walk import TreeEntry, iter_files
from load_order import unique_mod_ids
from metadata_schema import METADATA_FILENAME

_log = logging.getLogger(__name__)


def iter_mod_payload(mod_root: str | Path) -> Iterator[TreeEntry]:
    """The files a mod contributes to the game tree, in canonical order."""
    return (e for e in iter_files(mod_root) if e.relative != METADATA_FILENAME)


@dataclass
class ModOverlayStats:
    mod_id: str
    files_processed: int = 0
    bytes_processed: int = 0
    errors: list[tuple[str, str]] = field(default_factory=list)  # (relative path, error)


@dataclass
class OverlayStats:
    mods: list[ModOverlayStats] = field(default_factory=list)
    missing_mods: list[str] = field(default_factory=list)

    @property
    def total_files(self) -> int:
        return sum(m.files_processed for m in self.mods)

    @property
    def total_bytes(self) -> int:
        return sum(m.bytes_processed for m in self.mods)

    @property
    def errors(self) -> list[tuple[str, str, str]]:
        return [(m.mod_id, rel, err) for m in self.mods for rel, err in m.errors]


class OverlayEngine:
    def __init__(self, mods_dir: str | Path):
        self.mods_dir = Path(mods_dir)

    def apply_overlay(self, mod_ids: Iterable[str], virtual_root: str | Path) -> OverlayStats:
        """Copy each mod's payload into ``virtual_root``, later mods winning.

        Mods whose directory no longer exists are skipped and reported in
        ``missing_mods``. A file that cannot be written is recorded on its
        mod's stats; the overlay carries on.
        """
        virtual_root = Path(virtual_root)
        virtual_root.mkdir(parents=True, exist_ok=True)
        stats = OverlayStats()
        prepared: set[Path] = set()

        for mod_id in unique_mod_ids(mod_ids):
            mod_root = self.mods_dir / mod_id
            if not mod_root.is_dir():
                _log.warning("Mod directory missing, skipping: %s", mod_id)
                stats.missing_mods.append(mod_id)
                continue

            mod_stats = ModOverlayStats(mod_id)
            for entry in iter_mod_payload(mod_root):
                dst = virtual_root / entry.relative
                try:
                    self._prepare_parent(virtual_root, dst.parent, prepared)
                    if dst.is_symlink() or dst.is_file():
                        dst.unlink()
                    elif dst.is_dir():
                        # A file replaces a directory an earlier mod or the
                        # mirror put at the same path.
                        shutil.rmtree(dst)
                        prepared.difference_update(
                            [p for p in prepared if p == dst or dst in p.parents]
                        )
                    shutil.copy2(entry.path, dst)
                except OSError as e:
                    _log.error("Overlay of %s from %s failed: %s", entry.relative, mod_id, e)
                    mod_stats.errors.append((entry.relative, str(e)))
                    continue
                mod_stats.files_processed += 1
                mod_stats.bytes_processed += entry.size

            _log.info(
                "Applied mod %s: %d files, %d bytes",
                mod_id, mod_stats.files_processed, mod_stats.bytes_processed,
            )
            stats.mods.append(mod_stats)

        return stats

    @staticmethod
    def _prepare_parent(virtual_root: Path, parent: Path, prepared: set[Path]):
        # Parent directories must be real directories of the virtual tree; a
        # mirrored directory link or a file standing in the way is replaced.
        if parent in prepared:
            return
        current = virtual_root
        for part in parent.relative_to(virtual_root).parts:
            current = current / part
            if current in prepared:
                continue
            if current.is_symlink() or current.is_file():
                current.unlink()
            current.mkdir(exist_ok=True)
            prepared.add(current)
        prepared.add(parent)
