"""In-process shared medium.

A `MemoryMedium` plays the role of the shared store for several windows
living in one process. Each window connects its own `MemoryStore` endpoint;
a write through one endpoint notifies the listeners of every other endpoint.

Example:
    medium = MemoryMedium()
    provider_store = medium.connect()
    subscriber_store = medium.connect()
"""

from __future__ import annotations

import logging

from cantus_firmus.ports import ChangeCallback, Unsubscribe

logger = logging.getLogger(__name__)


class MemoryMedium:
    """Key-value data shared by all connected endpoints."""

    def __init__(self, data: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(data or {})
        self._endpoints: list[MemoryStore] = []

    def connect(self) -> MemoryStore:
        """Create an endpoint for one window."""
        store = MemoryStore(self)
        self._endpoints.append(store)
        return store

    def disconnect(self, store: MemoryStore) -> None:
        """Detach an endpoint. Unknown endpoints are ignored."""
        if store in self._endpoints:
            self._endpoints.remove(store)

    def _broadcast(self, key: str, writer: MemoryStore) -> None:
        for endpoint in list(self._endpoints):
            if endpoint is not writer:
                endpoint._deliver(key)


class MemoryStore:
    """One window's view of a `MemoryMedium`.

    Notifications are delivered synchronously, and only while started.
    """

    def __init__(self, medium: MemoryMedium) -> None:
        self.medium = medium
        self.watching = False
        self._listeners: dict[str, list[ChangeCallback]] = {}

    def read(self, key: str) -> str | None:
        return self.medium.data.get(key)

    def write(self, key: str, value: str) -> None:
        if self.medium.data.get(key) == value:
            return
        self.medium.data[key] = value
        self.medium._broadcast(key, self)

    def remove(self, key: str) -> None:
        if key not in self.medium.data:
            return
        del self.medium.data[key]
        self.medium._broadcast(key, self)

    def keys(self) -> list[str]:
        return sorted(self.medium.data)

    def subscribe(self, key: str, on_change: ChangeCallback) -> Unsubscribe:
        self._listeners.setdefault(key, []).append(on_change)

        def unsubscribe() -> None:
            callbacks = self._listeners.get(key, [])
            if on_change in callbacks:
                callbacks.remove(on_change)

        return unsubscribe

    async def start(self) -> None:
        self.watching = True

    async def stop(self) -> None:
        self.watching = False

    def _deliver(self, key: str) -> None:
        if not self.watching:
            return
        for callback in list(self._listeners.get(key, [])):
            try:
                callback()
            except Exception:
                logger.exception("Storage change listener failed for key %s", key)
