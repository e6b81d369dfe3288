"""
Known Cyberpunk 2077 modding frameworks and dependency checks.

Most mods need one or more community frameworks (RED4ext, REDScript,
ArchiveXL, ...) installed in the game folder. The checks here are hints for
the user: they look for the framework's main file, parse dependency
mentions from a mod's ``mod.ini`` / README, infer requirements from the
payload layout and map REDScript compile errors back to the framework that
is missing. Nothing here blocks a launch.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fs_walk import iter_files
from path_normalization import CET_MODS_DIR, RED4EXT_PLUGINS_DIR, TWEAKS_DIR

_log = logging.getLogger(__name__)

NEXUS_MOD_URL = "https://www.nexusmods.com/cyberpunk2077/mods/{}"


class Dependency(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    key: str
    name: str
    description: str = ""
    version: str = ""
    required: bool = False
    nexus_id: str
    install_path: str
    folder_structure: list[str] = Field(min_length=1)
    aliases: list[str] = Field(default_factory=list)
    category: str = "Framework"

    @property
    def nexus_url(self) -> str:
        return NEXUS_MOD_URL.format(self.nexus_id)

    @property
    def primary_file(self) -> str:
        """Game-relative path whose presence means the framework is installed."""
        return self.folder_structure[0]

    def matches(self, word: str) -> bool:
        norm = _normalize_name(word)
        return any(_normalize_name(a) == norm for a in self.aliases)


def _normalize_name(name: str) -> str:
    return re.sub(r"[\s_\-]", "", name).lower()


_DATABASE = [
    {
        "key": "archivexl",
        "name": "ArchiveXL",
        "description": "Framework for loading custom archive files",
        "version": "1.13.0+",
        "required": True,
        "nexusId": "4198",
        "installPath": "red4ext/plugins/ArchiveXL/",
        "folderStructure": ["red4ext/plugins/ArchiveXL/ArchiveXL.dll"],
        "aliases": ["ArchiveXL", "archive_xl"],
    },
    {
        "key": "tweakxl",
        "name": "TweakXL",
        "description": "Framework for loading custom tweaks and game modifications",
        "version": "1.8.0+",
        "required": True,
        "nexusId": "4197",
        "installPath": "red4ext/plugins/TweakXL/",
        "folderStructure": ["red4ext/plugins/TweakXL/TweakXL.dll"],
        "aliases": ["TweakXL", "tweak_xl"],
    },
    {
        "key": "codeware",
        "name": "Codeware",
        "description": "Library for mod developers with common utilities and frameworks",
        "version": "1.4.0+",
        "required": True,
        "nexusId": "7780",
        "installPath": "red4ext/plugins/Codeware/",
        "folderStructure": ["red4ext/plugins/Codeware/Codeware.dll"],
        "aliases": ["Codeware"],
    },
    {
        "key": "redscript",
        "name": "REDScript",
        "description": "Scripting framework for Cyberpunk 2077",
        "version": "0.5.17+",
        "required": True,
        "nexusId": "1511",
        "installPath": "engine/",
        "folderStructure": ["engine/redscript.dll", "engine/config/base/scripts.ini"],
        "aliases": ["REDScript", "red_script"],
    },
    {
        "key": "red4ext",
        "name": "RED4ext",
        "description": "Script extender for Cyberpunk 2077",
        "version": "1.18.0+",
        "required": True,
        "nexusId": "2380",
        "installPath": "red4ext/",
        "folderStructure": ["red4ext/RED4ext.dll", "red4ext/config.ini"],
        "aliases": ["RED4ext", "red_4_ext"],
    },
    {
        "key": "cyber_engine_tweaks",
        "name": "Cyber Engine Tweaks",
        "description": "Framework for Lua scripting and game modifications",
        "version": "1.31.0+",
        "nexusId": "107",
        "installPath": "bin/x64/plugins/cyber_engine_tweaks/",
        "folderStructure": [
            "bin/x64/plugins/cyber_engine_tweaks/version.dll",
            "bin/x64/plugins/cyber_engine_tweaks/mods/",
        ],
        "aliases": ["cet", "cyber_engine_tweaks", "CyberEngineTweaks"],
    },
    {
        "key": "input_loader",
        "name": "Input Loader",
        "description": "Framework for custom input bindings and controls",
        "version": "0.2.1+",
        "nexusId": "4575",
        "installPath": "red4ext/plugins/InputLoader/",
        "folderStructure": ["red4ext/plugins/InputLoader/InputLoader.dll"],
        "aliases": ["InputLoader", "input_loader"],
    },
    {
        "key": "virtual_car_dealer",
        "name": "Virtual Car Dealer",
        "description": "Framework for vehicle spawning and management",
        "version": "1.0.0+",
        "nexusId": "4454",
        "installPath": "red4ext/plugins/VirtualCarDealer/",
        "folderStructure": ["red4ext/plugins/VirtualCarDealer/VirtualCarDealer.dll"],
        "aliases": ["VirtualCarDealer", "virtual_car_dealer"],
        "category": "Gameplay",
    },
    {
        "key": "equipment_ex",
        "name": "Equipment-EX",
        "description": "Framework for custom equipment and clothing",
        "version": "1.2.5+",
        "nexusId": "6945",
        "installPath": "red4ext/plugins/EquipmentEx/",
        "folderStructure": ["red4ext/plugins/EquipmentEx/EquipmentEx.dll"],
        "aliases": ["EquipmentEx", "equipment_ex"],
    },
]

KNOWN_DEPENDENCIES: dict[str, Dependency] = {
    d["key"]: Dependency.model_validate(d) for d in _DATABASE
}

# Patterns seen in REDScript compile errors, mapped to the missing framework.
# A ``None`` key means the plugin name is taken from the first group.
DEPENDENCY_PATTERNS: list[tuple[re.Pattern, str | None]] = [
    (re.compile(r"archiveXL|archive_xl", re.I), "archivexl"),
    (re.compile(r"tweakXL|tweak_xl", re.I), "tweakxl"),
    (re.compile(r"codeware", re.I), "codeware"),
    (re.compile(r"red4ext[\\/]plugins[\\/]([^\\/\s]+)", re.I), None),
    (re.compile(r"VirtualCarDealer", re.I), "virtual_car_dealer"),
    (re.compile(r"EquipmentEx", re.I), "equipment_ex"),
    (re.compile(r"InputLoader", re.I), "input_loader"),
]


def find_dependency(name: str) -> Dependency | None:
    """Look a framework up by key or alias."""
    dep = KNOWN_DEPENDENCIES.get(name.lower())
    if dep is not None:
        return dep
    for dep in KNOWN_DEPENDENCIES.values():
        if dep.matches(name):
            return dep
    return None


def _ordered(keys: Iterable[str]) -> list[Dependency]:
    wanted = set(keys)
    return [dep for key, dep in KNOWN_DEPENDENCIES.items() if key in wanted]


# ── Installation checks ───────────────────────────────────────────────


def check_dependency(
    dep: Dependency,
    installation_path: str | Path,
    extra_roots: Iterable[str | Path] = (),
) -> bool:
    """True if the framework's main file exists in the installation or in
    any of ``extra_roots`` (e.g. enabled mods that bundle it)."""
    roots = [Path(r) for r in (installation_path, *extra_roots) if r]
    return any((root / dep.primary_file).is_file() for root in roots)


def installation_instructions(dep: Dependency) -> list[str]:
    return [
        f"Download {dep.name} from {dep.nexus_url}",
        "Extract the downloaded file",
        "Copy files to your Cyberpunk 2077 installation directory:",
        *(f"  -> {path}" for path in dep.folder_structure),
        "Restart Cyberpunk 2077 if it's running",
    ]


# ── Detection ─────────────────────────────────────────────────────────


def detect_missing_dependencies(error_text: str) -> list[Dependency]:
    """Frameworks referenced by a REDScript / RED4ext error log."""
    found: set[str] = set()
    for line in error_text.splitlines():
        for pattern, key in DEPENDENCY_PATTERNS:
            match = pattern.search(line)
            if not match:
                continue
            if key is not None:
                found.add(key)
            else:
                dep = find_dependency(match.group(1))
                if dep is not None:
                    found.add(dep.key)
    return _ordered(found)


_INI_KEY = re.compile(r"\b(requires|depends)\b", re.I)
_WORD = re.compile(r"[A-Za-z0-9][\w\-]*")


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        _log.warning("Could not read %s: %s", path, e)
        return ""


def parse_mod_dependencies(mod_root: str | Path) -> list[Dependency]:
    """Frameworks a mod declares in ``mod.ini`` or mentions in its README."""
    mod_root = Path(mod_root)
    found: set[str] = set()
    if not mod_root.is_dir():
        return []
    for path in sorted(mod_root.iterdir()):
        if not path.is_file():
            continue
        lower = path.name.lower()
        if lower == "mod.ini":
            for line in _read_text(path).splitlines():
                if not _INI_KEY.search(line):
                    continue
                for word in _WORD.findall(line):
                    dep = find_dependency(word)
                    if dep is not None:
                        found.add(dep.key)
        elif lower.startswith("readme"):
            text = _read_text(path)
            for dep in KNOWN_DEPENDENCIES.values():
                for alias in dep.aliases + [dep.name]:
                    if re.search(rf"\b{re.escape(alias)}\b", text, re.I):
                        found.add(dep.key)
                        break
    return _ordered(found)


def infer_mod_dependencies(mod_root: str | Path) -> list[Dependency]:
    """Frameworks implied by the kind of files a mod ships.

    A framework the mod bundles itself is not reported.
    """
    needed: set[str] = set()
    provided: set[str] = set()
    primary_files = {dep.primary_file.lower(): dep.key for dep in KNOWN_DEPENDENCIES.values()}

    for entry in iter_files(mod_root):
        rel = entry.relative.lower()
        if rel in primary_files:
            provided.add(primary_files[rel])
        suffix = entry.path.suffix.lower()
        if suffix == ".reds":
            needed.add("redscript")
        elif suffix == ".xl":
            needed.add("archivexl")
        elif suffix == ".lua" and rel.startswith(CET_MODS_DIR.lower() + "/"):
            needed.add("cyber_engine_tweaks")
        if rel.startswith(TWEAKS_DIR + "/"):
            needed.add("tweakxl")
        elif rel.startswith(RED4EXT_PLUGINS_DIR + "/"):
            needed.add("red4ext")

    return _ordered(needed - provided)
