from __future__ import annotations

import logging
import os
from typing import Optional

from pydantic import ValidationError

from plantops.core.config.io import (
    atomic_write_json,
    ensure_dirs,
    read_json_file,
    recover_from_corrupt,
    snapshot_last_known_good,
)
from plantops.core.config.models import AppConfig
from plantops.core.config.paths import ConfigFsPaths
from plantops.core.errors import ConfigError


class ConfigManager:
    """
    Loads config/app.json into `AppConfig`.

    - missing file: defaults are written and returned
    - corrupt JSON: file quarantined, last-known-good restored, else defaults
    - read_only: nothing is written; a corrupt file is answered from last-known-good in place
    - schema violations: ConfigError (never silently replaced)
    """

    def __init__(self, *, fs: Optional[ConfigFsPaths] = None, logger: Optional[logging.Logger] = None, read_only: bool = False):
        self.fs = fs or ConfigFsPaths(".")
        self.logger = logger or logging.getLogger("plantops.config")
        self.read_only = read_only
        self._cfg: Optional[AppConfig] = None

    def load(self) -> AppConfig:
        if not self.read_only:
            ensure_dirs(self.fs.config_dir, self.fs.backups_dir, self.fs.last_known_good_dir)
        rr = read_json_file(self.fs.app)
        raw = rr.data
        if not rr.ok:
            if rr.error == "missing":
                self.logger.info("No %s found; using defaults", self.fs.app)
                raw = {}
            elif self.read_only:
                self.logger.warning("Config %s unreadable (%s); reading last known good", self.fs.app, rr.error)
                lkg = read_json_file(os.path.join(self.fs.last_known_good_dir, os.path.basename(self.fs.app)))
                raw = lkg.data if lkg.ok else {}
            else:
                self.logger.warning("Config %s unreadable (%s); recovering", self.fs.app, rr.error)
                raw, recovered = recover_from_corrupt(self.fs.app, self.fs.backups_dir, self.fs.last_known_good_dir)
                if recovered:
                    self.logger.warning("Restored %s from last known good", self.fs.app)
        try:
            cfg = AppConfig.model_validate(raw)
        except ValidationError as e:
            raise ConfigError("Configuration file is invalid.", path=self.fs.app, errors=e.errors(include_url=False, include_context=False)) from e

        if not self.read_only and (not rr.ok or raw != cfg.model_dump(mode="json")):
            self._write(cfg)
        self._cfg = cfg
        return cfg

    def get(self) -> AppConfig:
        if self._cfg is None:
            return self.load()
        return self._cfg

    def save(self, cfg: AppConfig) -> None:
        if self.read_only:
            raise ConfigError("Configuration is read-only.", path=self.fs.app)
        self._write(cfg)
        self._cfg = cfg

    def _write(self, cfg: AppConfig) -> None:
        atomic_write_json(self.fs.app, cfg.model_dump(mode="json"), self.fs.backups_dir)
        snapshot_last_known_good(self.fs.app, self.fs.last_known_good_dir)
