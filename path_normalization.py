"""
Archive entry path normalization for Cyberpunk 2077 mods.

Mod archives come in every layout imaginable: some mirror the game folder
(``archive/pc/mod/foo.archive``), some are a bare ``foo.archive`` or a
single plugin DLL, some ship a Cyber Engine Tweaks folder with an
``init.lua`` at the top. Every archive entry is mapped to the location it
must occupy inside the canonical mod directory so the overlay step can copy
a mod straight onto the game tree.

The mapping is an ordered rule table. The first rule whose predicate
matches decides the destination; the last rule always matches. Nothing in
here touches the filesystem, so the table can be tested on plain strings:

    >>> normalize_entry_path("foo.archive")
    'archive/pc/mod/foo.archive'
    >>> normalize_entry_path("Codeware.dll")
    'red4ext/plugins/Codeware/Codeware.dll'
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Callable

CANONICAL_ROOTS = ("archive", "r6", "redscript", "engine", "bin", "red4ext")

PACKED_CONTENT_EXT = ".archive"
ARCHIVE_MOD_DIR = "archive/pc/mod"

# RED4ext plugins recognised by name when they sit loose at the archive root
KNOWN_PLUGINS = (
    "ArchiveXL",
    "TweakXL",
    "Codeware",
    "VirtualCarDealer",
    "EquipmentEx",
    "InputLoader",
)
RED4EXT_DIR = "red4ext"
RED4EXT_PLUGINS_DIR = "red4ext/plugins"
RED4EXT_CORE_FILES = ("red4ext.dll", "config.ini")

REDSCRIPT_EXT = ".reds"
REDSCRIPT_SCRIPTS_DIR = "r6/scripts"
REDSCRIPT_COMPILER = "redscript.dll"
ENGINE_DIR = "engine"
ENGINE_CONFIG_DIR = "engine/config/platform/pc"
CONFIG_EXTENSIONS = (".ini", ".xml")

CET_SCRIPT_EXT = ".lua"
CET_ENTRY_SCRIPT = "init.lua"
CET_LOADER = "version.dll"
CET_DIR = "bin/x64/plugins/cyber_engine_tweaks"
CET_MODS_DIR = CET_DIR + "/mods"

TWEAK_EXTENSIONS = (".yaml", ".tweak")
TWEAKS_DIR = "r6/tweaks"


@dataclass(frozen=True)
class EntryPath:
    """An archive entry path, split into the pieces the rules look at."""

    path: str
    parts: tuple[str, ...]

    @classmethod
    def parse(cls, raw: str) -> EntryPath:
        parts = tuple(p for p in raw.replace("\\", "/").split("/") if p and p != ".")
        if not parts:
            raise ValueError(f"Empty archive entry path: {raw!r}")
        return cls(path="/".join(parts), parts=parts)

    @property
    def name(self) -> str:
        return self.parts[-1]

    @property
    def lower_name(self) -> str:
        return self.name.lower()

    @property
    def suffix(self) -> str:
        return PurePosixPath(self.name).suffix.lower()

    @property
    def stem(self) -> str:
        return PurePosixPath(self.name).stem

    @property
    def at_root(self) -> bool:
        return len(self.parts) == 1


@dataclass(frozen=True)
class NormalizationRule:
    name: str
    applies: Callable[[EntryPath], bool]
    relocate: Callable[[EntryPath], str]


def find_known_plugin(filename: str, known: tuple[str, ...] = KNOWN_PLUGINS) -> str | None:
    """Return the known plugin name contained in ``filename``, if any."""
    lowered = filename.lower()
    for plugin in known:
        if plugin.lower() in lowered:
            return plugin
    return None


def is_unsafe_entry(raw: str) -> bool:
    """True for entries that would land outside the mod root when extracted."""
    normalized = raw.replace("\\", "/")
    if normalized.startswith("/"):
        return True
    parts = normalized.split("/")
    if parts and len(parts[0]) == 2 and parts[0][1] == ":":
        return True
    return ".." in parts


# ── Destinations ──────────────────────────────────────────────────────


def _keep(entry: EntryPath) -> str:
    return entry.path


def _flatten_into(prefix: str) -> Callable[[EntryPath], str]:
    return lambda entry: f"{prefix}/{entry.name}"


def _nest_under(prefix: str) -> Callable[[EntryPath], str]:
    return lambda entry: f"{prefix}/{entry.path}"


def _plugin_folder(entry: EntryPath) -> str:
    return f"{RED4EXT_PLUGINS_DIR}/{entry.stem}/{entry.name}"


# ── Predicates ────────────────────────────────────────────────────────


def _is_packed_content(entry: EntryPath) -> bool:
    return entry.at_root and entry.suffix == PACKED_CONTENT_EXT


def _has_canonical_root(entry: EntryPath) -> bool:
    return entry.parts[0].lower() in CANONICAL_ROOTS


def _is_root_plugin(entry: EntryPath) -> bool:
    return entry.at_root and entry.suffix == ".dll" and find_known_plugin(entry.name) is not None


def _is_cet_script(entry: EntryPath) -> bool:
    return entry.suffix == CET_SCRIPT_EXT or any(
        part.lower() == CET_ENTRY_SCRIPT for part in entry.parts
    )


def _is_engine_config(entry: EntryPath) -> bool:
    return "config" in entry.lower_name and entry.suffix in CONFIG_EXTENSIONS


RULES: tuple[NormalizationRule, ...] = (
    NormalizationRule("packed_content", _is_packed_content, _flatten_into(ARCHIVE_MOD_DIR)),
    NormalizationRule("canonical_root", _has_canonical_root, _keep),
    NormalizationRule("red4ext_plugin", _is_root_plugin, _plugin_folder),
    NormalizationRule(
        "redscript_source",
        lambda entry: entry.suffix == REDSCRIPT_EXT,
        _flatten_into(REDSCRIPT_SCRIPTS_DIR),
    ),
    NormalizationRule("cet_script", _is_cet_script, _nest_under(CET_MODS_DIR)),
    NormalizationRule(
        "cet_loader",
        lambda entry: entry.at_root and entry.lower_name == CET_LOADER,
        _flatten_into(CET_DIR),
    ),
    NormalizationRule(
        "red4ext_core",
        lambda entry: entry.at_root and entry.lower_name in RED4EXT_CORE_FILES,
        _flatten_into(RED4EXT_DIR),
    ),
    NormalizationRule(
        "redscript_compiler",
        lambda entry: entry.at_root and entry.lower_name == REDSCRIPT_COMPILER,
        _flatten_into(ENGINE_DIR),
    ),
    NormalizationRule("engine_config", _is_engine_config, _nest_under(ENGINE_CONFIG_DIR)),
    NormalizationRule(
        "tweak",
        lambda entry: entry.suffix in TWEAK_EXTENSIONS,
        _nest_under(TWEAKS_DIR),
    ),
    NormalizationRule("default", lambda entry: True, _keep),
)


def match_rule(entry_path: str) -> NormalizationRule:
    entry = EntryPath.parse(entry_path)
    for rule in RULES:
        if rule.applies(entry):
            return rule
    raise AssertionError("the default rule always applies")


def normalize_entry_path(entry_path: str) -> str:
    """Return the mod-root-relative POSIX path for an archive entry."""
    entry = EntryPath.parse(entry_path)
    for rule in RULES:
        if rule.applies(entry):
            return rule.relocate(entry)
    raise AssertionError("the default rule always applies")
