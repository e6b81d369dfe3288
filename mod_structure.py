"""
Structure checks for extracted mod directories.

``validate_structure`` only looks. Moving loose files into place is a
separate, explicit step (``plan_reorganization`` / ``reorganize``) that the
importer runs before validating; running it twice is harmless.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from fs_walk import iter_files
from metadata_schema import METADATA_FILENAME
from path_normalization import (
    ARCHIVE_MOD_DIR,
    CANONICAL_ROOTS,
    CET_DIR,
    CET_LOADER,
    ENGINE_DIR,
    KNOWN_PLUGINS,
    PACKED_CONTENT_EXT,
    RED4EXT_DIR,
    RED4EXT_PLUGINS_DIR,
    REDSCRIPT_COMPILER,
    find_known_plugin,
)

_log = logging.getLogger(__name__)

# Plugin libraries that may sit loose at a mod root; includes the two core
# libraries that are not RED4ext plugins themselves.
KNOWN_PLUGIN_LIBRARIES = KNOWN_PLUGINS + ("RED4ext", "redscript")

MOD_CONTENT_EXTENSIONS = (
    ".archive",
    ".reds",
    ".lua",
    ".json",
    ".yaml",
    ".xml",
    ".tweak",
    ".dll",
    ".ini",
)

# Special destinations for core libraries, keyed by lower-cased filename
_CORE_LIBRARY_DIRS = {
    "red4ext.dll": RED4EXT_DIR,
    REDSCRIPT_COMPILER: ENGINE_DIR,
    CET_LOADER: CET_DIR,
}


def _root_files(mod_root: Path) -> list[Path]:
    return sorted(
        (p for p in mod_root.iterdir() if p.is_file() and p.name != METADATA_FILENAME),
        key=lambda p: p.name,
    )


def has_canonical_root(mod_root: Path) -> bool:
    return any(
        p.is_dir() and p.name.lower() in CANONICAL_ROOTS for p in mod_root.iterdir()
    )


def _is_plugin_library(path: Path) -> bool:
    if path.suffix.lower() != ".dll":
        return False
    return (
        path.name.lower() in _CORE_LIBRARY_DIRS
        or find_known_plugin(path.name, KNOWN_PLUGIN_LIBRARIES) is not None
    )


def _has_mod_content(mod_root: Path) -> bool:
    for entry in iter_files(mod_root):
        if entry.relative == METADATA_FILENAME:
            continue
        if entry.path.suffix.lower() in MOD_CONTENT_EXTENSIONS:
            return True
    return False


def validate_structure(mod_root: str | Path) -> bool:
    """Return True if ``mod_root`` looks like an installable mod.

    Read-only. Loose root files that ``reorganize`` would move into place
    count as valid here.
    """
    mod_root = Path(mod_root)
    if not mod_root.is_dir():
        return False
    if has_canonical_root(mod_root):
        return True
    root_files = _root_files(mod_root)
    if any(p.suffix.lower() == PACKED_CONTENT_EXT for p in root_files):
        return True
    if any(_is_plugin_library(p) for p in root_files):
        return True
    return _has_mod_content(mod_root)


def _library_destination(path: Path) -> str:
    special = _CORE_LIBRARY_DIRS.get(path.name.lower())
    if special:
        return f"{special}/{path.name}"
    return f"{RED4EXT_PLUGINS_DIR}/{path.stem}/{path.name}"


def plan_reorganization(mod_root: str | Path) -> list[tuple[Path, Path]]:
    """Return the (source, destination) moves ``reorganize`` would perform."""
    mod_root = Path(mod_root)
    moves: list[tuple[Path, Path]] = []
    for path in _root_files(mod_root):
        if path.suffix.lower() == PACKED_CONTENT_EXT:
            moves.append((path, mod_root / ARCHIVE_MOD_DIR / path.name))
        elif _is_plugin_library(path):
            moves.append((path, mod_root / _library_destination(path)))
    return moves


def reorganize(mod_root: str | Path) -> list[str]:
    """Move loose root files into their canonical folders.

    Returns the mod-relative destinations that were written. A destination
    that already exists is replaced.
    """
    mod_root = Path(mod_root)
    moved: list[str] = []
    for src, dst in plan_reorganization(mod_root):
        dst.parent.mkdir(parents=True, exist_ok=True)
        if dst.exists():
            dst.unlink()
        shutil.move(str(src), str(dst))
        rel = dst.relative_to(mod_root).as_posix()
        _log.info("Organized %s -> %s", src.name, rel)
        moved.append(rel)
    return moved
