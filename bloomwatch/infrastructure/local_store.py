"""
Infrastructure layer: key-value store persisted as a single JSON document.
"""
import copy
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Optional, Union

from bloomwatch.config import settings

logger = logging.getLogger(__name__)


class LocalStore:
    """
    JSON key-value store.

    Values must be JSON-serializable. Every write rewrites the document
    atomically; without a path the store lives in memory only.
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else None
        self.lock = threading.RLock()
        self._data: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read store {self.path}, starting empty: {e}")
            return {}
        if not isinstance(data, dict):
            logger.warning(f"Store {self.path} is not a JSON object, starting empty")
            return {}
        return data

    def _flush(self, data: dict[str, Any]):
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _commit(self, data: dict[str, Any]):
        # Memory only follows the document once it is on disk
        self._flush(data)
        self._data = data

    def get(self, key: str, default: Any = None) -> Any:
        with self.lock:
            if key not in self._data:
                return default
            return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any):
        with self.lock:
            data = dict(self._data)
            data[key] = copy.deepcopy(value)
            self._commit(data)

    def remove(self, key: str):
        with self.lock:
            if key in self._data:
                data = dict(self._data)
                del data[key]
                self._commit(data)

    def pop(self, key: str, default: Any = None) -> Any:
        """Read a value and delete it in one step."""
        with self.lock:
            if key not in self._data:
                return default
            data = dict(self._data)
            value = data.pop(key)
            self._commit(data)
            return value


# Singleton instance
_local_store: Optional[LocalStore] = None


def get_local_store() -> LocalStore:
    """
    Get or create the singleton store at the configured path.

    Returns:
        LocalStore instance
    """
    global _local_store
    if _local_store is None:
        _local_store = LocalStore(settings.storage_path)
    return _local_store
