"""
On-disk mod store.

Each imported mod lives in ``<mods_dir>/<mod id>/`` and owns that subtree.
User-facing attributes live in the sidecar file next to the payload; a
missing or unreadable sidecar never makes a mod disappear, it just falls
back to defaults derived from the folder name.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from errors import ModNotFoundError
from metadata_schema import (
    BUILTIN_CATEGORIES,
    METADATA_FILENAME,
    ModMetadata,
    parse_metadata,
    utc_now,
)

_log = logging.getLogger(__name__)


def _folder_defaults(mod_dir: Path) -> ModMetadata:
    """Defaults for a mod without a usable sidecar, dated by its folder."""
    metadata = ModMetadata.defaults(mod_dir.name)
    try:
        stamp = datetime.fromtimestamp(mod_dir.stat().st_mtime, timezone.utc)
    except OSError:
        return metadata
    return metadata.model_copy(update={"import_date": stamp, "last_modified": stamp})


@dataclass
class ModPackage:
    id: str  # directory name, unique within the mods dir
    path: Path
    metadata: ModMetadata

    @property
    def display_name(self) -> str:
        return self.metadata.display_name

    @property
    def tags(self) -> set[str]:
        return set(self.metadata.tags)

    @property
    def import_date(self) -> datetime:
        return self.metadata.import_date

    @property
    def last_modified(self) -> datetime:
        return self.metadata.last_modified


class ModRepository:
    def __init__(self, mods_dir: str | Path):
        self.mods_dir = Path(mods_dir)

    # ── Paths ─────────────────────────────────────────────────────────

    def mod_path(self, mod_id: str) -> Path:
        if not mod_id or mod_id in (".", "..") or "/" in mod_id or "\\" in mod_id:
            raise ValueError(f"Invalid mod id: {mod_id!r}")
        return self.mods_dir / mod_id

    def exists(self, mod_id: str) -> bool:
        return self.mod_path(mod_id).is_dir()

    # ── Sidecar metadata ──────────────────────────────────────────────

    def read_metadata(self, mod_dir: Path) -> ModMetadata:
        metadata_path = mod_dir / METADATA_FILENAME
        if metadata_path.exists():
            try:
                return parse_metadata(metadata_path.read_bytes())
            except (OSError, ValueError) as exc:
                _log.warning("Could not read metadata for %s: %s", mod_dir.name, exc)
        return _folder_defaults(mod_dir)

    def write_metadata(self, mod_id: str, metadata: ModMetadata):
        path = self.mod_path(mod_id) / METADATA_FILENAME
        path.write_text(metadata.to_json(), encoding="utf-8")

    def create_metadata(self, mod_id: str) -> ModMetadata:
        """Write default metadata unless the mod already has a sidecar."""
        mod_dir = self.mod_path(mod_id)
        if (mod_dir / METADATA_FILENAME).exists():
            return self.read_metadata(mod_dir)
        metadata = ModMetadata.defaults(mod_id)
        self.write_metadata(mod_id, metadata)
        _log.info("Created metadata for mod: %s", mod_id)
        return metadata

    # ── Queries ───────────────────────────────────────────────────────

    def get(self, mod_id: str) -> ModPackage:
        mod_dir = self.mod_path(mod_id)
        if not mod_dir.is_dir():
            raise ModNotFoundError(mod_id, mod_dir)
        return ModPackage(id=mod_id, path=mod_dir, metadata=self.read_metadata(mod_dir))

    def list_mods(self) -> list[ModPackage]:
        """All mods, ordered by the informational ``loadOrder`` field, then
        import date. This is display order only; launches use the
        configuration's ``modLoadOrder``."""
        if not self.mods_dir.exists():
            return []
        mods = [
            ModPackage(id=d.name, path=d, metadata=self.read_metadata(d))
            for d in self.mods_dir.iterdir()
            if d.is_dir()
        ]
        mods.sort(key=lambda m: (m.metadata.load_order, m.metadata.import_date, m.id))
        return mods

    def categories_and_tags(self) -> tuple[list[str], list[str]]:
        categories = set(BUILTIN_CATEGORIES)
        tags: set[str] = set()
        for mod in self.list_mods():
            if mod.metadata.category:
                categories.add(mod.metadata.category)
            tags.update(mod.metadata.tags)
        return sorted(categories), sorted(tags)

    # ── Mutations ─────────────────────────────────────────────────────

    def update(self, mod_id: str, **fields: Any) -> ModPackage:
        """Merge ``fields`` into the sidecar and stamp ``lastModified``.

        Keys may be given as field names (``display_name``) or JSON keys
        (``displayName``). Fields not mentioned keep their current value.
        """
        mod = self.get(mod_id)
        data = mod.metadata.model_dump(mode="json", by_alias=True)
        for key, value in fields.items():
            data[ModMetadata.field_alias(key)] = value
        data["lastModified"] = utc_now().isoformat()
        metadata = ModMetadata.model_validate(data)
        self.write_metadata(mod_id, metadata)
        _log.info("Updated metadata for mod: %s", mod_id)
        return ModPackage(id=mod_id, path=mod.path, metadata=metadata)

    def delete(self, mod_id: str):
        """Remove the mod's directory. Configuration references are the
        caller's to purge."""
        mod_dir = self.mod_path(mod_id)
        if not mod_dir.is_dir():
            raise ModNotFoundError(mod_id, mod_dir)
        shutil.rmtree(mod_dir)
        _log.info("Deleted mod: %s", mod_id)
