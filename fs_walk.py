"""
Canonically ordered directory walks.

Both the overlay engine and the conflict analyzer must see a mod's files in
the same order, and that order must not depend on what the filesystem
happens to return from a directory listing. ``iter_tree`` sorts every
directory listing by name and yields entries depth first, a parent
directory always before its contents. The walk is lazy: only one sorted
listing per directory level is held at a time, and calling it again starts
over.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class TreeEntry:
    path: Path
    relative: str  # POSIX separators, relative to the walk root
    is_dir: bool
    size: int = 0


def iter_tree(root: str | Path, follow_links: bool = False) -> Iterator[TreeEntry]:
    """Yield every entry below ``root`` in canonical order.

    By default directory symlinks are reported as files and not descended
    into. With ``follow_links`` they are walked like real directories,
    except a link back to one of its own ancestors, which stays a file.
    """
    root = Path(root)
    ancestors = frozenset({os.path.realpath(root)}) if follow_links else None
    yield from _walk(root, "", ancestors)


def _walk(directory: Path, prefix: str, ancestors: frozenset[str] | None) -> Iterator[TreeEntry]:
    with os.scandir(directory) as it:
        entries = sorted(it, key=lambda e: e.name)
    for entry in entries:
        relative = f"{prefix}{entry.name}"
        if entry.is_dir(follow_symlinks=False):
            yield TreeEntry(Path(entry.path), relative, is_dir=True)
            yield from _walk(Path(entry.path), relative + "/", _descend(entry, ancestors))
            continue
        if ancestors is not None and entry.is_symlink() and entry.is_dir():
            real = os.path.realpath(entry.path)
            if real not in ancestors:
                yield TreeEntry(Path(entry.path), relative, is_dir=True)
                yield from _walk(Path(entry.path), relative + "/", ancestors | {real})
                continue
        try:
            size = entry.stat().st_size
        except OSError:
            size = 0
        yield TreeEntry(Path(entry.path), relative, is_dir=False, size=size)


def _descend(entry: os.DirEntry, ancestors: frozenset[str] | None) -> frozenset[str] | None:
    if ancestors is None:
        return None
    return ancestors | {os.path.realpath(entry.path)}


def iter_files(root: str | Path) -> Iterator[TreeEntry]:
    return (entry for entry in iter_tree(root) if not entry.is_dir)


def fold_tree(
    entries: Iterator[TreeEntry],
    action: Callable[[T, TreeEntry], T],
    initial: T,
) -> T:
    """Apply ``action`` to each entry in turn, threading the accumulator."""
    acc = initial
    for entry in entries:
        acc = action(acc, entry)
    return acc
