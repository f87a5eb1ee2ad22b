from __future__ import annotations

import logging
import os
from typing import Dict, List, Optional, Protocol

from plantops.core.config.io import atomic_write_json, quarantine_corrupt, read_json_file


class KeyValueStore(Protocol):
    """String-to-string persistence with browser local-storage semantics."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> List[str]: ...


class MemoryKeyValueStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data.keys())


class JsonFileKeyValueStore:
    """
    One JSON object on disk, rewritten atomically on every mutation.

    An unreadable file is moved to <dir>/backups and the store starts empty.
    """

    def __init__(self, path: str, *, logger: Optional[logging.Logger] = None):
        self.path = path
        self.logger = logger or logging.getLogger("plantops.persistence")
        self._backups_dir = os.path.join(os.path.dirname(path) or ".", "backups")
        self._data: Dict[str, str] = self._load()

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)
        self._flush()

    def remove(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._flush()

    def keys(self) -> List[str]:
        return list(self._data.keys())

    def _load(self) -> Dict[str, str]:
        rr = read_json_file(self.path)
        if rr.ok:
            return {str(k): v for k, v in rr.data.items() if isinstance(v, str)}
        if rr.error != "missing":
            self.logger.warning("Persisted state %s unreadable (%s); starting empty", self.path, rr.error)
            quarantine_corrupt(self.path, self._backups_dir)
        return {}

    def _flush(self) -> None:
        atomic_write_json(self.path, dict(self._data))
