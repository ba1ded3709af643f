"""Shared storage and window abstraction layer.

This module defines protocols (interfaces) for the pieces of the host
platform the synchronization protocol depends on: the shared key-value
medium, the spawned child windows, and the identity of the running window.

The abstraction follows the "ports and adapters" (hexagonal) architecture
pattern, where ports define the interfaces and adapters (the ``storage``
package, `cantus_firmus.windows`, `cantus_firmus.identity`) provide
implementations.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Callable, Protocol, runtime_checkable

ChangeCallback = Callable[[], None]
Unsubscribe = Callable[[], None]


@runtime_checkable
class SharedChannel(Protocol):
    """Protocol for the shared key-value medium.

    Values are JSON text. Change notifications carry no payload: listeners
    re-read the key. A context is never notified of its own writes, and a
    write that leaves the stored value unchanged notifies nobody.
    """

    @abstractmethod
    def read(self, key: str) -> str | None:
        """Read the value stored under key, or None if absent."""
        ...

    @abstractmethod
    def write(self, key: str, value: str) -> None:
        """Store a value under key."""
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        """Remove key. Removing an absent key is a no-op."""
        ...

    @abstractmethod
    def keys(self) -> list[str]:
        """List the stored keys."""
        ...

    @abstractmethod
    def subscribe(self, key: str, on_change: ChangeCallback) -> Unsubscribe:
        """Register a callback for external changes to key.

        Returns:
            A function that removes the callback.
        """
        ...

    @abstractmethod
    async def start(self) -> None:
        """Begin delivering change notifications."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop delivering change notifications."""
        ...


@runtime_checkable
class WindowHandle(Protocol):
    """Opaque handle to a spawned child window."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Window name the child was spawned with."""
        ...

    @property
    @abstractmethod
    def closed(self) -> bool:
        """Whether the child has been closed."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Instruct the child to terminate."""
        ...


@runtime_checkable
class WindowSpawner(Protocol):
    """Protocol for spawning child windows."""

    @abstractmethod
    def open(self, url: str, name: str, features: str = "") -> WindowHandle:
        """Spawn a child window.

        Args:
            url: What the child should load.
            name: Window name the child runs under.
            features: Comma separated ``key=value`` window features.

        Returns:
            Handle to the new child.

        Raises:
            WindowSpawnError: If the child could not be started.
        """
        ...


@runtime_checkable
class ContextIdentity(Protocol):
    """Mutable name of the running window."""

    name: str | None
