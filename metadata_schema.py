"""
Schemas for the JSON files the mod loader reads and writes.

Sidecar metadata
----------------
Every mod directory may carry a ``mod_loader_info.json`` next to its payload
holding the user-facing attributes shown in the mod list:

    {
        "displayName": "Better Minimap",
        "originalName": "BetterMinimap-1234-1-2",
        "description": "",
        "tags": ["ui"],
        "category": "UI",
        "author": "",
        "version": "1.2",
        "importDate": "2024-05-01T18:22:10.512000Z",
        "lastModified": "2024-05-01T18:22:10.512000Z",
        "enabled": false,
        "loadOrder": 0
    }

``enabled`` and ``loadOrder`` are informational only; the launch order comes
from the configuration record below. Keys this build does not know about are
kept when the file is rewritten.

Configuration record
--------------------
``config/load_order.json`` holds the installation path, the enabled mod ids
and ``modLoadOrder``, the ordered superset of enabled ids that decides which
mod wins a contested path (later position wins). Older files that use
``gameInstallPath`` are still read.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

METADATA_FILENAME = "mod_loader_info.json"
DEFAULT_CATEGORY = "Other"
BUILTIN_CATEGORIES = ("Other", "Gameplay", "Visual", "Audio", "UI", "Performance", "Utility", "Adult")
DEFAULT_PROFILE = "default"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ModMetadata(BaseModel):
    """Contents of a mod's sidecar metadata file."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    display_name: str
    original_name: str = ""
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    category: str = DEFAULT_CATEGORY
    author: str = ""
    version: str = ""
    import_date: datetime = Field(default_factory=utc_now)
    last_modified: datetime = Field(default_factory=utc_now)
    enabled: bool = False
    load_order: int | float = 0

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, (set, frozenset)):
            return sorted(v)
        return v

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, v: list[str]) -> list[str]:
        cleaned = (tag.strip() for tag in v)
        return list(dict.fromkeys(tag for tag in cleaned if tag))

    @field_validator("import_date", "last_modified")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)

    @classmethod
    def defaults(cls, folder_name: str) -> ModMetadata:
        return cls(display_name=folder_name, original_name=folder_name)

    @classmethod
    def field_alias(cls, key: str) -> str:
        """Map a snake_case field name to its JSON key; other keys pass through."""
        field = cls.model_fields.get(key)
        if field is not None and field.alias:
            return field.alias
        return key

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False)


def parse_metadata(data: bytes | str) -> ModMetadata:
    """Parse sidecar JSON.

    Raises ``pydantic.ValidationError`` if the data is invalid.
    Raises ``json.JSONDecodeError`` if the bytes are not valid JSON.
    """
    return ModMetadata.model_validate(json.loads(data))


class Profile(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    enabled_mods: list[str] = Field(default_factory=list)
    load_order: list[str] = Field(default_factory=list)


def _default_profiles() -> dict[str, Profile]:
    return {DEFAULT_PROFILE: Profile(name="Default Profile")}


class LoaderConfig(BaseModel):
    """Persisted launcher configuration."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    installation_path: str = Field(
        default="",
        serialization_alias="installationPath",
        validation_alias=AliasChoices("installationPath", "gameInstallPath", "installation_path"),
    )
    enabled_mods: list[str] = Field(default_factory=list)
    mod_load_order: list[str] = Field(default_factory=list)
    profiles: dict[str, Profile] = Field(default_factory=_default_profiles)
    current_profile: str = DEFAULT_PROFILE

    @model_validator(mode="after")
    def _enabled_mods_in_load_order(self) -> LoaderConfig:
        # Every enabled id appears exactly once in modLoadOrder; disabled ids
        # may stay there so they keep their slot if re-enabled.
        enabled = list(dict.fromkeys(self.enabled_mods))
        order = list(dict.fromkeys(self.mod_load_order))
        order.extend(mod_id for mod_id in enabled if mod_id not in order)
        self.enabled_mods = enabled
        self.mod_load_order = order
        return self

    def is_enabled(self, mod_id: str) -> bool:
        return mod_id in self.enabled_mods

    def ordered_enabled_mods(self) -> list[str]:
        enabled = set(self.enabled_mods)
        return [mod_id for mod_id in self.mod_load_order if mod_id in enabled]

    def to_json(self) -> str:
        return json.dumps(self.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False)
