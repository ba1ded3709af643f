"""Directory-backed shared medium.

Stores each key as ``<key>.json`` in a directory that every window can
reach, and watches that directory with watchfiles so each window hears about
changes made by the others. Writes from this store are recognized by their
modification time and are not reported back to it.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from urllib.parse import quote, unquote

from watchfiles import Change, awatch

from cantus_firmus.config import get_storage_dir
from cantus_firmus.exceptions import PersistenceWriteError, record_error
from cantus_firmus.ports import ChangeCallback, Unsubscribe

logger = logging.getLogger(__name__)

SUFFIX = ".json"


class FileStore:
    """Shared key-value store backed by a directory of JSON files.

    Provides:
    - Atomic writes (write to a temporary file, then rename)
    - Async change watching using watchfiles
    - Filtering of this store's own writes and removals
    """

    def __init__(
        self,
        directory: str | Path | None = None,
        *,
        debounce: int = 100,
        rust_timeout: int = 500,
    ) -> None:
        self.directory = Path(directory) if directory is not None else get_storage_dir()
        self.debounce = debounce
        self.rust_timeout = rust_timeout
        self.watching = False

        self._listeners: dict[str, list[ChangeCallback]] = {}
        self._own_mtimes: dict[str, int] = {}
        self._own_removals: set[str] = set()
        self._task: asyncio.Task | None = None
        self._stop_event: asyncio.Event | None = None

    # =========================================================================
    # Key/Value Access
    # =========================================================================

    def path_for(self, key: str) -> Path:
        """Return the file backing a key."""
        return self.directory / f"{quote(key, safe='')}{SUFFIX}"

    def _key_for(self, path: Path) -> str | None:
        if path.suffix != SUFFIX or path.parent.resolve() != self.directory.resolve():
            return None
        return unquote(path.stem)

    def read(self, key: str) -> str | None:
        try:
            return self.path_for(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Failed to read stored key %s: %s", key, e)
            record_error(e)
            return None

    def write(self, key: str, value: str) -> None:
        path = self.path_for(key)
        if self.read(key) == value:
            return

        tmp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, path)
            self._own_mtimes[key] = path.stat().st_mtime_ns
            self._own_removals.discard(key)
        except OSError as e:
            logger.error("Failed to write stored key %s: %s", key, e)
            record_error(e)
            raise PersistenceWriteError(
                "Failed to write snapshot",
                key=key,
                file_path=str(path),
                cause=e,
            ) from e
        logger.debug("Wrote %d bytes to %s", len(value), path)

    def remove(self, key: str) -> None:
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            logger.error("Failed to remove stored key %s: %s", key, e)
            record_error(e)
            raise PersistenceWriteError(
                "Failed to remove snapshot",
                key=key,
                file_path=str(path),
                cause=e,
            ) from e
        self._own_mtimes.pop(key, None)
        self._own_removals.add(key)
        logger.debug("Removed %s", path)

    def keys(self) -> list[str]:
        if not self.directory.exists():
            return []
        found = (self._key_for(p) for p in self.directory.iterdir())
        return sorted(key for key in found if key is not None)

    # =========================================================================
    # Change Notification
    # =========================================================================

    def subscribe(self, key: str, on_change: ChangeCallback) -> Unsubscribe:
        self._listeners.setdefault(key, []).append(on_change)

        def unsubscribe() -> None:
            callbacks = self._listeners.get(key, [])
            if on_change in callbacks:
                callbacks.remove(on_change)

        return unsubscribe

    async def start(self) -> None:
        """Start watching the storage directory."""
        if self._task is not None:
            return
        self.directory.mkdir(parents=True, exist_ok=True)
        self.watching = True
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._watch_loop())

    async def stop(self) -> None:
        """Stop watching the storage directory."""
        self.watching = False
        if self._stop_event is not None:
            self._stop_event.set()

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _watch_loop(self) -> None:
        """Main watch loop that monitors the storage directory."""
        try:
            async for changes in awatch(
                self.directory,
                stop_event=self._stop_event,
                debounce=self.debounce,
                rust_timeout=self.rust_timeout,
            ):
                if not self.watching:
                    break
                self.handle_changes(changes)
        except asyncio.CancelledError:
            pass

    def handle_changes(self, changes: set[tuple[Change, str]]) -> None:
        """Notify listeners of external changes from one watch batch."""
        changed: set[str] = set()
        for change_type, change_path in changes:
            key = self._key_for(Path(change_path))
            if key is None or key not in self._listeners:
                continue
            if self._is_own_change(key, change_type):
                continue
            changed.add(key)

        for key in sorted(changed):
            logger.debug("External change to stored key %s", key)
            for callback in list(self._listeners.get(key, [])):
                try:
                    callback()
                except Exception:
                    logger.exception("Storage change listener failed for key %s", key)

    def _is_own_change(self, key: str, change_type: Change) -> bool:
        path = self.path_for(key)
        if change_type == Change.deleted or not path.exists():
            if key in self._own_removals:
                self._own_removals.discard(key)
                return True
            return False

        try:
            mtime = path.stat().st_mtime_ns
        except OSError as e:
            logger.warning("Failed to stat %s: %s", path, e)
            return True
        return self._own_mtimes.get(key) == mtime
