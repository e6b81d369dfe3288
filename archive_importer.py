"""
Mod archive import.

An archive is unpacked into a staging directory first; each file is then
moved to its normalized location inside a brand new mod directory named
after the archive. Nothing is left behind in the mods directory when an
import fails.
"""

from __future__ import annotations

import logging
import shutil
import sys
import tempfile
import zipfile
from pathlib import Path

import py7zr
import rarfile
from py7zr.exceptions import Bad7zFile

from errors import (
    AlreadyExistsError,
    ExtractionError,
    InvalidStructureError,
    NotFoundError,
)
from mod_repository import ModPackage, ModRepository
from mod_structure import reorganize, validate_structure
from path_normalization import is_unsafe_entry, normalize_entry_path

_log = logging.getLogger(__name__)

# Point rarfile at UnRAR.exe when one is bundled; otherwise rarfile looks
# for unrar/bsdtar on PATH.
if getattr(sys, "frozen", False):
    _unrar = Path(sys._MEIPASS) / "UnRAR.exe"
else:
    _unrar = Path(__file__).parent / "assets" / "UnRAR.exe"
if _unrar.exists():
    rarfile.UNRAR_TOOL = str(_unrar)

SUPPORTED_EXTENSIONS = {".zip", ".7z", ".rar"}

_ARCHIVE_ERRORS = (zipfile.BadZipFile, Bad7zFile, rarfile.Error, OSError)


# ── Archive access ────────────────────────────────────────────────────


def list_archive_files(filepath: Path) -> list[str]:
    """Names of the file (non-directory) entries in an archive."""
    ext = filepath.suffix.lower()
    if ext == ".zip":
        with zipfile.ZipFile(filepath, "r") as zf:
            return [info.filename for info in zf.infolist() if not info.is_dir()]
    elif ext == ".7z":
        with py7zr.SevenZipFile(filepath, "r") as sz:
            return [info.filename for info in sz.list() if not info.is_directory]
    elif ext == ".rar":
        with rarfile.RarFile(filepath, "r") as rf:
            return [info.filename for info in rf.infolist() if not info.is_dir()]
    raise ExtractionError(f"Unsupported archive format: {ext}")


def extract_archive(filepath: Path, dest: Path):
    ext = filepath.suffix.lower()
    if ext == ".zip":
        with zipfile.ZipFile(filepath, "r") as zf:
            zf.extractall(dest)
    elif ext == ".7z":
        with py7zr.SevenZipFile(filepath, "r") as sz:
            sz.extractall(path=dest)
    elif ext == ".rar":
        with rarfile.RarFile(filepath, "r") as rf:
            rf.extractall(dest)
    else:
        raise ExtractionError(f"Unsupported archive format: {ext}")


def _staged_path(staging: Path, name: str) -> Path:
    src = staging / name
    if not src.exists():
        src = staging / name.replace("\\", "/")
    return src


class ArchiveImporter:
    def __init__(self, repository: ModRepository):
        self.repository = repository

    def import_archive(self, archive_path: str | Path) -> ModPackage:
        """Import an archive as a new mod whose id is the archive's stem.

        Raises ``NotFoundError``, ``AlreadyExistsError``, ``ExtractionError``
        or ``InvalidStructureError``.
        """
        archive_path = Path(archive_path)
        if not archive_path.is_file():
            raise NotFoundError(archive_path, what="Archive")
        ext = archive_path.suffix.lower()
        if ext not in SUPPORTED_EXTENSIONS:
            raise ExtractionError(f"Unsupported archive format: {ext or archive_path.name}")

        mod_id = archive_path.stem
        mod_root = self.repository.mod_path(mod_id)
        if mod_root.exists():
            raise AlreadyExistsError(mod_id)

        try:
            names = sorted(list_archive_files(archive_path))
        except _ARCHIVE_ERRORS as e:
            raise ExtractionError(f"Could not read {archive_path.name}: {e}") from e

        unsafe = [n for n in names if is_unsafe_entry(n)]
        if unsafe:
            raise ExtractionError(
                f"{archive_path.name} contains entries outside the mod folder: "
                + ", ".join(unsafe[:5])
            )

        _log.info("Importing %s as '%s' (%d files)", archive_path.name, mod_id, len(names))
        mod_root.mkdir(parents=True)
        try:
            with tempfile.TemporaryDirectory() as tmpdir:
                staging = Path(tmpdir)
                try:
                    extract_archive(archive_path, staging)
                    self._place_entries(names, staging, mod_root)
                except _ARCHIVE_ERRORS as e:
                    raise ExtractionError(f"Extraction failed: {e}") from e

            moved = reorganize(mod_root)
            if moved:
                _log.info("Reorganized %d loose file(s) in '%s'", len(moved), mod_id)
            if not validate_structure(mod_root):
                raise InvalidStructureError(mod_id)

            self.repository.create_metadata(mod_id)
        except Exception:
            shutil.rmtree(mod_root, ignore_errors=True)
            raise

        _log.info("Imported mod: %s", mod_id)
        return self.repository.get(mod_id)

    @staticmethod
    def _place_entries(names: list[str], staging: Path, mod_root: Path):
        placed: dict[str, str] = {}
        for name in names:
            src = _staged_path(staging, name)
            if not src.is_file():
                continue
            rel = normalize_entry_path(name)
            if rel in placed:
                _log.warning(
                    "Archive entries %s and %s both map to %s; keeping %s",
                    placed[rel], name, rel, name,
                )
            dst = mod_root / rel
            dst.parent.mkdir(parents=True, exist_ok=True)
            if dst.is_file() or dst.is_symlink():
                dst.unlink()
            shutil.move(str(src), str(dst))
            placed[rel] = name
