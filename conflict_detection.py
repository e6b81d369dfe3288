"""
Conflict detection for the Cyberpunk 2077 mod loader.

A "conflict" means two or more enabled mods ship a file at the same path
relative to the game root. Only one of them can be in the virtual game tree;
the overlay writes mods in load order, so the mod that comes last wins.

The analysis is a dry run of the overlay: it walks the same mods in the same
order and files in the same canonical sequence, and touches nothing on disk.
Whatever it reports as the winner of a path is what the next launch will
put there.

Public API
----------
analyze(mods_dir, enabled_mod_ids) -> LaunchPreview
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from load_order import unique_mod_ids
from overlay_engine import iter_mod_payload

_log = logging.getLogger(__name__)


@dataclass
class PreviewFile:
    relative_path: str
    source_mod: str  # the mod whose copy ends up in the virtual tree
    size: int
    contributors: list[str] = field(default_factory=list)

    @property
    def is_conflict(self) -> bool:
        return len(self.contributors) > 1


@dataclass
class ConflictRecord:
    relative_path: str
    contributors: list[str]  # in load order; the last one wins

    @property
    def winner(self) -> str:
        return self.contributors[-1]


@dataclass
class LaunchPreview:
    files: list[PreviewFile] = field(default_factory=list)
    conflicts: list[ConflictRecord] = field(default_factory=list)
    missing_mods: list[str] = field(default_factory=list)

    @property
    def total_files(self) -> int:
        return len(self.files)

    @property
    def conflict_count(self) -> int:
        return len(self.conflicts)

    @property
    def total_size_bytes(self) -> int:
        return sum(f.size for f in self.files)

    @property
    def total_size_mb(self) -> float:
        return round(self.total_size_bytes / (1024 * 1024), 2)


def _drop_displaced(winners: dict[str, PreviewFile], dir_paths: set[str], relative: str):
    # A file at P replaces a directory at P, and a file under P/ replaces a
    # file at P, the same way the overlay does.
    if relative in dir_paths:
        prefix = relative + "/"
        for path in [p for p in winners if p.startswith(prefix)]:
            del winners[path]
        dir_paths.difference_update([d for d in dir_paths if d == relative or d.startswith(prefix)])
    parts = relative.split("/")
    for i in range(1, len(parts)):
        parent = "/".join(parts[:i])
        winners.pop(parent, None)
        dir_paths.add(parent)


def analyze(mods_dir: str | Path, enabled_mod_ids: Iterable[str]) -> LaunchPreview:
    """Predict the result of overlaying ``enabled_mod_ids`` in order.

    ``files`` is sorted by path; ``conflicts`` lists each contested path
    once, however many mods contribute to it.
    """
    mods_dir = Path(mods_dir)
    winners: dict[str, PreviewFile] = {}
    dir_paths: set[str] = set()
    preview = LaunchPreview()

    for mod_id in unique_mod_ids(enabled_mod_ids):
        mod_root = mods_dir / mod_id
        if not mod_root.is_dir():
            _log.warning("Mod directory missing, left out of preview: %s", mod_id)
            preview.missing_mods.append(mod_id)
            continue
        for entry in iter_mod_payload(mod_root):
            _drop_displaced(winners, dir_paths, entry.relative)
            previous = winners.get(entry.relative)
            contributors = previous.contributors + [mod_id] if previous else [mod_id]
            winners[entry.relative] = PreviewFile(
                relative_path=entry.relative,
                source_mod=mod_id,
                size=entry.size,
                contributors=contributors,
            )

    preview.files = [winners[path] for path in sorted(winners)]
    preview.conflicts = [
        ConflictRecord(f.relative_path, list(f.contributors))
        for f in preview.files
        if f.is_conflict
    ]
    if preview.conflicts:
        _log.info("%d conflicting path(s) among enabled mods", preview.conflict_count)
    return preview
