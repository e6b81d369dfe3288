"""
Exceptions raised by the mod loader core.

Everything the host shell is expected to report to the user derives from
``ModLoaderError``. Non-fatal conditions (a mirrored file that had to be
copied instead of linked, a load-order entry whose mod folder is gone) are
recorded in the returned stats instead of being raised.
"""

from __future__ import annotations

from pathlib import Path


class ModLoaderError(Exception):
    """Base exception for mod loader operations."""


class NotFoundError(ModLoaderError):
    """A required file or directory does not exist."""

    def __init__(self, path: str | Path, what: str = "File"):
        super().__init__(f"{what} not found: {path}")
        self.path = Path(path)


class ModNotFoundError(NotFoundError):
    def __init__(self, mod_id: str, path: str | Path):
        super().__init__(path, what=f"Mod '{mod_id}'")
        self.mod_id = mod_id


class MirrorSourceMissingError(NotFoundError):
    def __init__(self, path: str | Path):
        super().__init__(path, what="Game installation directory")


class ExecutableNotFoundError(NotFoundError):
    def __init__(self, path: str | Path):
        super().__init__(path, what="Game executable")


class AlreadyExistsError(ModLoaderError):
    """Raised when an import would reuse the id of an existing mod."""

    def __init__(self, mod_id: str):
        super().__init__(f"Mod '{mod_id}' already exists")
        self.mod_id = mod_id


class ExtractionError(ModLoaderError):
    """The archive could not be read or contains unusable entries."""


class InvalidStructureError(ModLoaderError):
    def __init__(self, mod_id: str):
        super().__init__(
            f"Invalid mod structure in '{mod_id}'. Mod must contain archive/, r6/, "
            "redscript/, engine/, bin/ or red4ext/ folders, or recognizable mod files."
        )
        self.mod_id = mod_id


class ProcessSpawnError(ModLoaderError):
    """The operating system refused to start the game process."""


class LaunchInProgressError(ModLoaderError):
    def __init__(self):
        super().__init__("A virtual environment build is already in progress")
