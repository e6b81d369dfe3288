"""JSON persistence for the launcher configuration record."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from metadata_schema import LoaderConfig

_log = logging.getLogger(__name__)


class ConfigStore:
    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> LoaderConfig:
        """Read the configuration, falling back to defaults.

        A missing file is normal on first start. A corrupt one is logged and
        replaced by defaults the next time the configuration is saved.
        """
        if not self.path.exists():
            return LoaderConfig()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return LoaderConfig.model_validate(data)
        except (OSError, ValueError) as e:
            _log.warning("Could not read configuration %s: %s", self.path, e)
            return LoaderConfig()

    def save(self, config: LoaderConfig):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(config.to_json(), encoding="utf-8")
