"""
Key-value persistence for inspector state.

Provides a synchronous get/set/remove API over an in-memory mirror that
is hydrated once from a durable medium. Reads issued before hydration
completes see whatever was written locally so far (usually nothing);
callers that depend on persisted state should wait_until_ready() first.
"""

import copy
import fcntl
import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote, unquote

from .output import warn


class PersistentStore(ABC):
    """Base class for stores: mirror, hydration, and write-through."""

    def __init__(self):
        """Initialize an empty, not-yet-hydrated mirror."""
        self._mirror: Dict[str, Any] = {}
        self._lock = threading.Lock()
        # Held by callers doing read-modify-write across several calls
        self.update_lock = threading.RLock()
        self._ready = threading.Event()
        # Keys touched locally before hydration finished; hydration must not clobber them
        self._touched = set()

    def get(self, key: str) -> Optional[Any]:
        """
        Read a value from the mirror.

        Args:
            key: Storage key

        Returns:
            Copy of the stored value, or None if absent
        """
        with self._lock:
            value = self._mirror.get(key)
        return copy.deepcopy(value)

    def set(self, key: str, value: Any):
        """
        Store a value in the mirror and write it through to the durable medium.

        Args:
            key: Storage key
            value: JSON-serializable value
        """
        value = copy.deepcopy(value)
        with self._lock:
            self._mirror[key] = value
            if not self._ready.is_set():
                self._touched.add(key)

        try:
            self._write(key, value)
        except Exception as e:
            warn(f"Failed to persist '{key}': {e}")

    def remove(self, key: str):
        """
        Remove a value from the mirror and the durable medium.

        Args:
            key: Storage key
        """
        with self._lock:
            self._mirror.pop(key, None)
            if not self._ready.is_set():
                self._touched.add(key)

        try:
            self._delete(key)
        except Exception as e:
            warn(f"Failed to remove '{key}': {e}")

    @property
    def is_ready(self) -> bool:
        """True once hydration has completed (successfully or not)."""
        return self._ready.is_set()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """
        Block until hydration completes.

        Args:
            timeout: Seconds to wait (None = forever)

        Returns:
            True if hydrated, False if the timeout expired
        """
        return self._ready.wait(timeout)

    def _start_hydration(self, asynchronous: bool = True):
        if asynchronous:
            thread = threading.Thread(
                target=self._hydrate,
                name=f"{type(self).__name__}-hydrate",
                daemon=True
            )
            thread.start()
        else:
            self._hydrate()

    def _hydrate(self):
        try:
            loaded = self._load_all()
        except Exception as e:
            warn(f"Failed to hydrate {type(self).__name__}: {e}")
            loaded = {}

        with self._lock:
            for key, value in loaded.items():
                if key not in self._touched:
                    self._mirror[key] = value
            self._touched.clear()
            self._ready.set()

    @abstractmethod
    def _load_all(self) -> Dict[str, Any]:
        """Read every stored key from the durable medium."""
        pass

    @abstractmethod
    def _write(self, key: str, value: Any):
        """Persist one key."""
        pass

    @abstractmethod
    def _delete(self, key: str):
        """Delete one key."""
        pass


class MemoryStore(PersistentStore):
    """
    Store backed by a plain dictionary.

    Passing the same backing dict to two stores simulates a process
    restart: the second store hydrates from what the first wrote.
    """

    def __init__(self, backing: Optional[Dict[str, Any]] = None, asynchronous: bool = False):
        """
        Initialize memory store.

        Args:
            backing: Dictionary acting as the durable medium (optional)
            asynchronous: Hydrate on a background thread
        """
        super().__init__()
        self.backing = backing if backing is not None else {}
        self._start_hydration(asynchronous)

    def _load_all(self) -> Dict[str, Any]:
        return copy.deepcopy(self.backing)

    def _write(self, key: str, value: Any):
        self.backing[key] = copy.deepcopy(value)

    def _delete(self, key: str):
        self.backing.pop(key, None)


class FileStore(PersistentStore):
    """
    Store with one JSON file per key.

    Writes go to a temporary file and are moved into place while holding
    an exclusive lock on the directory's lock file, so concurrent processes
    never observe partial files.
    """

    LOCK_FILE = ".lock"

    def __init__(self, directory: Path, asynchronous: bool = True):
        """
        Initialize file store and start hydration.

        Args:
            directory: Directory holding the key files (created if missing)
            asynchronous: Hydrate on a background thread
        """
        super().__init__()
        self.directory = Path(directory).expanduser()
        self.directory.mkdir(parents=True, exist_ok=True)
        self._start_hydration(asynchronous)

    def _path_for(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}.json"

    def _load_all(self) -> Dict[str, Any]:
        loaded = {}
        for path in sorted(self.directory.glob("*.json")):
            key = unquote(path.stem)
            try:
                with open(path, 'r') as f:
                    loaded[key] = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                # Unreadable keys behave as absent
                warn(f"Skipping unreadable {path}: {e}")
        return loaded

    def _write(self, key: str, value: Any):
        data = json.dumps(value, ensure_ascii=False, default=str)

        with open(self.directory / self.LOCK_FILE, 'a') as lock:
            try:
                fcntl.flock(lock.fileno(), fcntl.LOCK_EX)
                fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
                try:
                    with os.fdopen(fd, 'w') as f:
                        f.write(data)
                        f.flush()
                        os.fsync(f.fileno())
                    os.replace(tmp_path, self._path_for(key))
                except BaseException:
                    Path(tmp_path).unlink(missing_ok=True)
                    raise
            finally:
                fcntl.flock(lock.fileno(), fcntl.LOCK_UN)

    def _delete(self, key: str):
        with open(self.directory / self.LOCK_FILE, 'a') as lock:
            try:
                fcntl.flock(lock.fileno(), fcntl.LOCK_EX)
                self._path_for(key).unlink(missing_ok=True)
            finally:
                fcntl.flock(lock.fileno(), fcntl.LOCK_UN)


# One store per directory so instances in a process share a mirror
_file_stores: Dict[Path, FileStore] = {}
_file_stores_lock = threading.Lock()


def get_file_store(directory: Path) -> FileStore:
    """
    Get the shared file store for a directory.

    Args:
        directory: Storage directory (created if missing)

    Returns:
        FileStore instance shared by every caller using the same directory

    Raises:
        OSError: If the directory cannot be created
    """
    path = Path(directory).expanduser().resolve()
    with _file_stores_lock:
        store = _file_stores.get(path)
        if store is None:
            store = FileStore(path)
            _file_stores[path] = store
        return store
