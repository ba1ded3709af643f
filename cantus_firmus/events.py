"""Provider events and Textual message classes.

This module defines the events dispatched by a provider and the
corresponding Textual Message classes a host app receives when it is
connected with `Provider.connect_app`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from textual.message import Message


class StateEvent(Enum):
    """Events that can be dispatched from a provider."""

    STATE_COMMITTED = "state_committed"
    STORAGE_SYNCED = "storage_synced"
    WINDOW_OPENED = "window_opened"
    WINDOW_CLOSED = "window_closed"
    PROVIDER_UNLOADED = "provider_unloaded"


# =============================================================================
# Textual Messages for State Events
# =============================================================================


class StateMessage(Message):
    """Base class for provider messages."""

    pass


class StateCommitted(StateMessage):
    """Posted after every state commit.

    ``value`` is the provider's value bundle at the time of the commit, the
    same mapping render subscribers receive.
    """

    def __init__(self, state: dict[str, Any], value: dict[str, Any]) -> None:
        super().__init__()
        self.state = state
        self.value = value


class StorageSynced(StateMessage):
    """Posted when state was reconciled with a change made by another window."""

    def __init__(self, key: str, state: dict[str, Any]) -> None:
        super().__init__()
        self.key = key
        self.state = state


class WindowOpened(StateMessage):
    """Posted when a child window is spawned."""

    def __init__(self, window_name: str) -> None:
        super().__init__()
        self.window_name = window_name


class WindowClosed(StateMessage):
    """Posted when a child window is closed."""

    def __init__(self, window_name: str) -> None:
        super().__init__()
        self.window_name = window_name


class ProviderUnloaded(StateMessage):
    """Posted when a provider's unload handler has run."""

    def __init__(self, window_name: str | None) -> None:
        super().__init__()
        self.window_name = window_name
