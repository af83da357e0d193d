from __future__ import annotations

import os
from typing import Any, Dict, Optional

from pydantic import ValidationError

from crewid.core.config.models import CrewIdConfig, IdentityConfigFile
from crewid.core.config.paths import ConfigFsPaths
from crewid.core.errors import ConfigError
from crewid.core.jsonstore import atomic_write_json, read_json, recover_from_corrupt, write_last_known_good


FILE_MODELS: Dict[str, type] = {
    "identity.json": IdentityConfigFile,
}


class ConfigManager:
    def __init__(self, *, fs: Optional[ConfigFsPaths] = None, logger=None, read_only: bool = False, max_backups: int = 10):
        self.fs = fs or ConfigFsPaths(".")
        self.logger = logger
        self.read_only = read_only
        self.max_backups = int(max_backups)
        self._cfg: Optional[CrewIdConfig] = None

    # ---------- public API ----------
    def load_all(self) -> CrewIdConfig:
        os.makedirs(self.fs.config_dir, exist_ok=True)
        os.makedirs(self.fs.backups_dir, exist_ok=True)
        os.makedirs(self.fs.last_known_good_dir, exist_ok=True)

        files = self._load_raw_files()
        files = self._ensure_defaults(files)
        cfg = self._validate_all(files)
        self._cfg = cfg

        if not self.read_only:
            write_last_known_good(self.fs.identity, self.fs.last_known_good_dir)
        return cfg

    def get(self) -> CrewIdConfig:
        if self._cfg is None:
            raise ConfigError("Config not loaded.")
        return self._cfg

    def read_non_sensitive(self, filename: str) -> Dict[str, Any]:
        path = os.path.join(self.fs.config_dir, filename)
        ok, data, error = read_json(path)
        if ok:
            return data
        if error and error.startswith("corrupt_json"):
            data, _ = self._recover(path)
            return data
        return {}

    def save_non_sensitive(self, filename: str, data: Dict[str, Any]) -> None:
        """
        Validate, then atomic write + backup, then reload.
        Invalid data is rejected before anything touches disk.
        """
        if self.read_only:
            raise ConfigError("Config manager is read-only.")
        if not isinstance(data, dict):
            raise ConfigError("Config data must be an object.")
        model = FILE_MODELS.get(filename)
        if model is None:
            raise ConfigError(f"Unknown config file: {filename}", filename=filename)
        try:
            model.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"{filename} invalid: {e.errors()[0].get('msg', 'validation failed')}", filename=filename) from e
        atomic_write_json(os.path.join(self.fs.config_dir, filename), data, backups_dir=self.fs.backups_dir, keep=self.max_backups)
        self.load_all()

    # ---------- internals ----------
    def _load_raw_files(self) -> Dict[str, Dict[str, Any]]:
        out: Dict[str, Dict[str, Any]] = {}
        for name in FILE_MODELS:
            path = os.path.join(self.fs.config_dir, name)
            ok, data, error = read_json(path)
            if ok:
                out[name] = data
                continue
            if error == "missing":
                continue
            data, recovered = self._recover(path)
            if self.logger:
                self.logger.warning(f"Config {name} unreadable ({error}); recovered_from_lkg={recovered}")
            if data:
                out[name] = data
        return out

    def _ensure_defaults(self, files: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        out = dict(files)
        for name, model in FILE_MODELS.items():
            if name in out:
                continue
            defaults = model().model_dump()
            out[name] = defaults
            if not self.read_only:
                atomic_write_json(os.path.join(self.fs.config_dir, name), defaults, backups_dir=self.fs.backups_dir, keep=self.max_backups)
                if self.logger:
                    self.logger.info(f"Config {name} created with defaults.")
        return out

    def _recover(self, path: str):
        return recover_from_corrupt(path, backups_dir=self.fs.backups_dir, last_known_good_dir=self.fs.last_known_good_dir, keep=self.max_backups)

    def _validate_all(self, files: Dict[str, Dict[str, Any]]) -> CrewIdConfig:
        try:
            return CrewIdConfig(identity=IdentityConfigFile.model_validate(files.get("identity.json") or {}))
        except ValidationError as e:
            raise ConfigError(f"identity.json invalid: {e.errors()[0].get('msg', 'validation failed')}", filename="identity.json") from e
