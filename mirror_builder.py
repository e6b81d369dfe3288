"""
Virtual game tree construction.

The installation is mirrored file by file into a disposable directory.
Each file is linked with the first strategy in the chain that works:
a symlink, then a hardlink, then a plain copy as the last resort. Windows
without developer mode refuses symlinks and a hardlink cannot cross volumes,
so the chain degrades per file and never aborts the mirror. A directory
symlink in the installation becomes a real directory whose children are
linked, so mods can be written below it.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Sequence

from errors import MirrorSourceMissingError
from fs_walk import iter_tree

_log = logging.getLogger(__name__)


class LinkStrategy(Enum):
    SYMLINK = "symlink"
    HARDLINK = "hardlink"
    COPY = "copy"


DEFAULT_STRATEGIES: tuple[LinkStrategy, ...] = (
    LinkStrategy.SYMLINK,
    LinkStrategy.HARDLINK,
    LinkStrategy.COPY,
)


def _transfer(src: Path, dst: Path, strategy: LinkStrategy):
    if strategy is LinkStrategy.SYMLINK:
        os.symlink(src, dst)
    elif strategy is LinkStrategy.HARDLINK:
        os.link(src, dst)
    else:
        shutil.copy2(src, dst)


def _discard(path: Path):
    if path.is_symlink() or path.is_file():
        path.unlink()


@dataclass
class MirrorStats:
    linked: Counter = field(default_factory=Counter)  # LinkStrategy -> files
    dirs_created: int = 0
    degraded: list[str] = field(default_factory=list)  # files that fell back to a copy
    failed: list[tuple[str, str]] = field(default_factory=list)  # (relative path, error)

    @property
    def files_linked(self) -> int:
        return sum(self.linked.values())

    def summary(self) -> str:
        parts = [f"{self.linked[s]} {s.value}" for s in LinkStrategy if self.linked[s]]
        text = f"{self.files_linked} files ({', '.join(parts) or 'none'}), {self.dirs_created} dirs"
        if self.failed:
            text += f", {len(self.failed)} failed"
        return text


class MirrorBuilder:
    def __init__(self, strategies: Sequence[LinkStrategy] = DEFAULT_STRATEGIES):
        if not strategies:
            raise ValueError("At least one link strategy is required")
        self.strategies = tuple(strategies)

    def build_mirror(self, source_root: str | Path, target_root: str | Path) -> MirrorStats:
        """Recreate ``target_root`` as a linked mirror of ``source_root``.

        Raises ``MirrorSourceMissingError`` when the source is not a
        directory and ``ValueError`` when the target would sit inside it.
        """
        source_root = Path(source_root)
        target_root = Path(target_root)
        if not source_root.is_dir():
            raise MirrorSourceMissingError(source_root)
        source_abs = source_root.resolve()
        target_abs = target_root.resolve()
        if target_abs == source_abs or source_abs in target_abs.parents:
            raise ValueError(f"Mirror target {target_root} is inside the source {source_root}")

        if target_root.is_symlink() or target_root.is_file():
            target_root.unlink()
        elif target_root.exists():
            shutil.rmtree(target_root)
        target_root.mkdir(parents=True)

        stats = MirrorStats(dirs_created=1)
        for entry in iter_tree(source_abs, follow_links=True):
            dst = target_root / entry.relative
            if entry.is_dir:
                dst.mkdir()
                stats.dirs_created += 1
                continue
            self._link_file(entry.path, dst, entry.relative, stats)

        _log.info("Mirrored %s -> %s: %s", source_root, target_root, stats.summary())
        if stats.degraded:
            _log.warning("%d file(s) were copied instead of linked", len(stats.degraded))
        return stats

    def _link_file(self, src: Path, dst: Path, relative: str, stats: MirrorStats):
        last_error: OSError | None = None
        for strategy in self.strategies:
            try:
                _transfer(src, dst, strategy)
            except OSError as e:
                last_error = e
                _discard(dst)
                continue
            stats.linked[strategy] += 1
            if strategy is LinkStrategy.COPY:
                stats.degraded.append(relative)
            return
        _log.error("Could not mirror %s: %s", relative, last_error)
        stats.failed.append((relative, str(last_error)))
