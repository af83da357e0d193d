from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ConfigFsPaths:
    root: str = "."

    @property
    def config_dir(self) -> str:
        return os.path.join(self.root, "config")

    @property
    def backups_dir(self) -> str:
        return os.path.join(self.config_dir, "backups")

    @property
    def last_known_good_dir(self) -> str:
        return os.path.join(self.backups_dir, "last_known_good")

    @property
    def logs_dir(self) -> str:
        return os.path.join(self.root, "logs")

    # Files
    @property
    def identity(self) -> str:
        return os.path.join(self.config_dir, "identity.json")

    def resolve(self, path: str) -> str:
        """Relative paths from config are anchored at root."""
        return path if os.path.isabs(path) else os.path.join(self.root, path)
