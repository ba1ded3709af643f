"""Multi-window synchronization protocol.

Keeps one state in step across windows that share nothing but a storage
medium. Each window:

1. Takes a role: the provider window owns the full state; subscriber windows
   only ever see the redacted view.
2. Initializes its state from storage (always for subscribers, on request for
   the provider).
3. Persists every commit, with private paths removed when the provider writes.
4. Merges the stored snapshot back in whenever another window changes it.
5. On unload, clears storage (provider only) and closes its direct children.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Callable

from .exceptions import PersistenceError, PersistenceParseError, PersistenceWriteError, record_error
from .logging_config import log_exception
from .models import State, StorageOptions, SyncStatus, WindowRole
from .redaction import clean_state

if TYPE_CHECKING:
    from .ports import ContextIdentity, SharedChannel, Unsubscribe
    from .windows import WindowManager

logger = logging.getLogger(__name__)


def parse_snapshot(raw: str, key: str | None = None) -> State:
    """Parse a stored snapshot.

    Raises:
        PersistenceParseError: If the text is not a JSON object.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise PersistenceParseError(key=key, cause=e) from e
    if not isinstance(data, dict):
        raise PersistenceParseError(
            "Persisted snapshot is not an object",
            key=key,
            context={"type": type(data).__name__},
        )
    return data


class SyncController:
    """Synchronizes one window's state through a shared channel.

    Example:
        sync = SyncController(storage, FileStore(), ProcessIdentity())
        sync.assign_role()
        state = sync.initial_state({"count": 0})
    """

    def __init__(
        self,
        storage: StorageOptions,
        channel: SharedChannel,
        identity: ContextIdentity,
    ) -> None:
        self.storage = storage
        self.channel = channel
        self.identity = identity
        self.status = SyncStatus.UNINITIALIZED

    @property
    def key(self) -> str:
        """Storage key of the synchronized state."""
        return self.storage.name or ""

    @property
    def window_name(self) -> str | None:
        return self.identity.name

    @property
    def is_provider(self) -> bool:
        return self.identity.name == self.storage.provider_window

    @property
    def role(self) -> WindowRole:
        return self.storage.role_of(self.identity.name)

    # =========================================================================
    # Role Assignment and Initialization
    # =========================================================================

    def assign_role(self) -> WindowRole:
        """Settle this window's name against the descriptor.

        An unnamed window, or one whose name is neither the provider nor a
        subscriber (e.g. left over from an earlier run), becomes the
        provider window.
        """
        name = self.identity.name
        provider = self.storage.provider_window

        if not name:
            logger.debug("Unnamed window assigned provider name %s", provider)
            self.identity.name = provider
        elif name != provider and not self.storage.is_subscriber(name):
            logger.info(
                "Window name %s is not part of %s, reassigning to provider %s",
                name,
                self.key,
                provider,
            )
            self.identity.name = provider

        self.status = SyncStatus.ROLE_ASSIGNED
        logger.debug("Window %s has role %s", self.identity.name, self.role.value)
        return self.role

    def read_snapshot(self) -> State | None:
        """Read and parse the stored snapshot, or None if nothing is stored.

        Raises:
            PersistenceParseError: If the stored text is malformed.
        """
        raw = self.channel.read(self.key)
        if raw is None:
            return None
        return parse_snapshot(raw, self.key)

    def initial_state(self, state: State) -> State:
        """Compute this window's starting state.

        The provider merges the stored snapshot over its defaults only when
        ``initialize_from_storage`` is set. Subscribers always replace their
        defaults with the stored snapshot when there is one.
        """
        if self.status is SyncStatus.UNINITIALIZED:
            self.assign_role()

        try:
            snapshot = self.read_snapshot()
        except PersistenceParseError as e:
            logger.warning("Ignoring unreadable snapshot for %s: %s", self.key, e)
            record_error(e)
            return state

        if snapshot is None:
            return state
        if self.role is WindowRole.SUBSCRIBER:
            logger.debug("Subscriber %s initialized from storage", self.window_name)
            return snapshot
        if self.storage.initialize_from_storage:
            logger.debug("Provider %s merged stored snapshot", self.window_name)
            return {**state, **snapshot}
        return state

    # =========================================================================
    # Persistence
    # =========================================================================

    def snapshot_for(self, state: State) -> State:
        """Return the view of state this window is allowed to persist.

        Only the provider redacts. A subscriber persists its state as it
        is: normally that state came from a redacted snapshot, but a
        subscriber that started before anything was stored still holds its
        own defaults, private keys included, and writes them unchanged.
        """
        if self.storage.private_state_paths and self.is_provider:
            return clean_state(state, self.storage.private_state_paths)
        return state

    def _write(self, state: State) -> None:
        try:
            self.channel.write(self.key, json.dumps(state, sort_keys=True))
        except (TypeError, ValueError) as e:
            error = PersistenceWriteError(
                "State is not JSON serializable", key=self.key, cause=e
            )
            log_exception(logger, error, "Failed to persist state", include_traceback=False)
            record_error(error)
        except PersistenceError as e:
            log_exception(logger, e, "Failed to persist state", include_traceback=False)

    def persist(self, state: State) -> None:
        """Persist a committed state."""
        self._write(self.snapshot_for(state))

    def persist_initial(self, state: State) -> None:
        """Seed storage with the redacted initial state."""
        self._write(clean_state(state, self.storage.private_state_paths))

    # =========================================================================
    # Change Propagation
    # =========================================================================

    def listen(self, on_change: Callable[[], None]) -> Unsubscribe:
        """Subscribe to changes other windows make to the stored state."""
        unsubscribe = self.channel.subscribe(self.key, on_change)
        self.status = SyncStatus.LISTENING
        return unsubscribe

    def merge_external(self, state: State) -> State | None:
        """Merge the stored snapshot into state.

        Returns None when nothing is stored, e.g. after the provider
        cleared storage on unload. Falls back to a copy of the current state
        when the snapshot cannot be parsed; the error is logged, never raised.
        """
        try:
            snapshot = self.read_snapshot()
        except PersistenceParseError as e:
            logger.warning("Unreadable snapshot for %s, keeping current state: %s", self.key, e)
            record_error(e)
            return {**state}
        if snapshot is None:
            return None
        return {**state, **snapshot}

    # =========================================================================
    # Teardown
    # =========================================================================

    @property
    def handles_unload(self) -> bool:
        """Whether this window runs the unload handler at all."""
        return self.is_provider or self.storage.remove_children_on_unload

    def unload(self, window_manager: WindowManager | None = None) -> None:
        """Run the unload handler.

        Clears the stored state when configured and this is the provider
        window, and closes direct children when configured. Grandchildren are
        closed by their own parents' handlers.
        """
        if self.status is SyncStatus.UNLOADED:
            return

        if self.handles_unload:
            if self.storage.clear_storage_on_unload and self.is_provider:
                logger.debug("Clearing stored state %s", self.key)
                try:
                    self.channel.remove(self.key)
                except PersistenceError as e:
                    log_exception(logger, e, "Failed to clear stored state", include_traceback=False)

            if self.storage.remove_children_on_unload and window_manager is not None:
                window_manager.close_all()

        self.status = SyncStatus.UNLOADED
