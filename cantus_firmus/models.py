"""Core dataclasses and type aliases for state, options and accessor groups.

Options models are designed for JSON serialization using dacite.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable, Union

# A state mapping. Nested dicts are traversed, lists and scalars are leaves.
State = dict[str, Any]

# An ordered key sequence addressing a nested location (length >= 2).
StatePath = tuple[str, ...]

# A private entry: a top-level key or a key sequence.
PrivatePath = Union[str, list[str], tuple[str, ...]]

Reducer = Callable[[State, Any], State]


# =============================================================================
# Roles and Lifecycle
# =============================================================================


class WindowRole(Enum):
    """Role of an execution context within a synchronized group."""

    PROVIDER = "provider"  # Owns full, unredacted state
    SUBSCRIBER = "subscriber"  # Only ever sees the redacted view


class SyncStatus(Enum):
    """Lifecycle of a synchronization controller."""

    UNINITIALIZED = "uninitialized"
    ROLE_ASSIGNED = "role_assigned"
    LISTENING = "listening"
    UNLOADED = "unloaded"


class OverwriteProtection(int, Enum):
    """Severity applied when a custom setter collides with a generated one."""

    SILENT = 0  # Drop the custom setter without a warning
    WARN = 1  # Drop the custom setter and log a warning
    STRICT = 2  # Refuse to build the provider


# =============================================================================
# Options
# =============================================================================


@dataclass
class Options:
    """Accessor generation options."""

    dynamic_setters: bool = True
    dynamic_getters: bool = True
    nested_setters: bool = False
    nested_getters: bool = True
    allow_setter_overwrite: bool = True
    development_warnings: bool = True
    overwrite_protection_level: int = OverwriteProtection.WARN.value


@dataclass
class StorageOptions:
    """Synchronization descriptor for a state shared between windows.

    ``name`` is the storage key and must be unique per synchronized instance.
    """

    name: str | None = None
    provider_window: str | None = None  # Defaults to name
    subscriber_windows: list[str] = field(default_factory=list)
    initialize_from_storage: bool = False
    remove_children_on_unload: bool = True
    clear_storage_on_unload: bool = True
    private_state_paths: list[Union[str, list[str]]] = field(default_factory=list)

    def is_subscriber(self, window_name: str | None) -> bool:
        """Check whether a window name is one of the subscriber windows."""
        return bool(window_name) and window_name in self.subscriber_windows

    def role_of(self, window_name: str | None) -> WindowRole:
        """Get the role a window name plays for this descriptor."""
        if self.is_subscriber(window_name):
            return WindowRole.SUBSCRIBER
        return WindowRole.PROVIDER


# =============================================================================
# Accessor Groups
# =============================================================================


class MethodGroup(dict):
    """A name -> callable mapping that also supports attribute access.

    Example:
        setters = provider.setters
        await setters.setCount(3)
        await setters["setCount"](3)
    """

    def __getattr__(self, name: str) -> Any:
        try:
            return self[name]
        except KeyError:
            raise AttributeError(name) from None

    def __dir__(self) -> list[str]:
        return sorted(set(super().__dir__()) | set(self.keys()))


def model_to_dict(obj: object) -> dict:
    """Convert an options dataclass to a dictionary for JSON serialization."""
    return asdict(obj)  # type: ignore[arg-type]
