"""Runtime state provider.

A `Provider` owns one window's state. Every mutation goes through
`Provider.set_state`, which commits the new state, notifies the host, persists
it to shared storage when synchronization is enabled, and then returns it.
"""

from __future__ import annotations

import atexit
import inspect
import logging
import signal
import threading
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, Sequence, Union

from cantus_firmus.accessors import bind_methods
from cantus_firmus.dispatch import generate_dispatchers
from cantus_firmus.events import (
    ProviderUnloaded,
    StateCommitted,
    StateEvent,
    StorageSynced,
)
from cantus_firmus.exceptions import ReservedNameError
from cantus_firmus.models import MethodGroup, Reducer, State, SyncStatus
from cantus_firmus.paths import get_nested_value
from cantus_firmus.windows import SubprocessWindowSpawner, WindowManager

if TYPE_CHECKING:
    from textual.app import App

    from cantus_firmus.ports import Unsubscribe, WindowSpawner
    from cantus_firmus.sync import SyncController

logger = logging.getLogger(__name__)

StateUpdate = Union[Mapping[str, Any], Callable[[State], Union[Mapping[str, Any], None]], None]
Dependency = Union[str, Sequence[str]]

# Names owned by the provider; namespaces and renames cannot take them.
RESERVED_NAMES = frozenset(
    {
        "state",
        "setters",
        "getters",
        "reducers",
        "dispatchers",
        "methods",
        "constants",
        "namespaces",
        "rename_map",
        "value",
        "sync",
        "window_manager",
        "windows",
        "set_state",
        "commit",
        "subscribe",
        "on",
        "off",
        "emit",
        "mount",
        "unload",
        "handle_unload",
        "install_unload_handler",
        "update_state_from_storage",
        "connect_app",
        "storage_options",
    }
)


def check_reserved(name: str, source: str) -> None:
    """Raise if a namespace or rename target is a reserved name.

    Raises:
        ReservedNameError: If name is reserved.
    """
    if name in RESERVED_NAMES:
        raise ReservedNameError(name, source=source)


@dataclass
class _Subscription:
    callback: Callable[[dict[str, Any]], Any]
    dependencies: tuple[tuple[str, ...], ...] | None

    def is_affected(self, previous: State, current: State) -> bool:
        if self.dependencies is None:
            return True
        return any(
            get_nested_value(previous, dep, default=None)
            is not get_nested_value(current, dep, default=None)
            for dep in self.dependencies
        )


class Provider:
    """State owner exposing accessors, methods, reducers and window control.

    Custom setters, methods and namespaced methods receive the provider as
    their first argument, so they can reach ``state``, ``set_state``,
    sibling accessors and namespaces without relying on closures.

    Example:
        cf = CantusFirmus({"count": 0})
        provider = cf.create_provider()
        await provider.setters.setCount(1)
        provider.getters.getCount()  # 1
    """

    def __init__(
        self,
        state: State,
        *,
        getters: Mapping[str, Callable[..., Any]] | None = None,
        setters: Mapping[str, Callable[..., Any]] | None = None,
        methods: Mapping[str, Callable[..., Any]] | None = None,
        namespaced_methods: Mapping[str, Mapping[str, Callable[..., Any]]] | None = None,
        constants: Mapping[str, Any] | None = None,
        reducers: Mapping[str, Reducer] | None = None,
        rename_map: Mapping[str, str] | None = None,
        sync: SyncController | None = None,
        spawner: WindowSpawner | None = None,
    ) -> None:
        self.state: State = dict(state)
        self.sync = sync

        self._listeners: dict[StateEvent, list[Callable[..., Any]]] = {e: [] for e in StateEvent}
        self._subscriptions: list[_Subscription] = []
        self._app: App | None = None
        self._unsubscribe_storage: Unsubscribe | None = None
        self._namespaces: dict[str, MethodGroup] = {}
        self._aliases: dict[str, str] = {}

        self.rename_map = dict(rename_map or {})
        for new_name in self.rename_map.values():
            check_reserved(new_name, "rename")

        self.getters = bind_methods(getters or {}, self)
        self.setters = bind_methods(setters or {}, self)
        self.constants = dict(constants or {})
        self.reducers = dict(reducers or {})
        self.dispatchers = generate_dispatchers(self, self.reducers)
        self.methods = bind_methods(methods or {}, self)

        for namespace, group in (namespaced_methods or {}).items():
            check_reserved(namespace, "namespace")
            self._namespaces[namespace] = bind_methods(group, self)

        self.window_manager: WindowManager | None = None
        if sync is not None:
            self.window_manager = WindowManager(sync.storage, spawner or SubprocessWindowSpawner())
            self.window_manager.set_emit_callback(self._emit_from_manager)

        for old_name, new_name in self.rename_map.items():
            self._aliases[new_name] = old_name

    def __getattr__(self, name: str) -> Any:
        # Only reached for names not found normally: namespaces and renames.
        namespaces = self.__dict__.get("_namespaces", {})
        if name in namespaces:
            return namespaces[name]
        aliases = self.__dict__.get("_aliases", {})
        if name in aliases:
            return getattr(self, aliases[name])
        raise AttributeError(f"{type(self).__name__!r} object has no attribute {name!r}")

    @property
    def namespaces(self) -> dict[str, MethodGroup]:
        """Bound namespaced method groups, keyed by namespace."""
        return dict(self._namespaces)

    # =========================================================================
    # Value Bundle
    # =========================================================================

    @property
    def value(self) -> dict[str, Any]:
        """The bundle handed to the host on every commit.

        Holds ``state``, ``setters``, ``getters``, ``methods``, ``constants``,
        every namespace, ``reducers`` when any were registered, and
        ``window_manager`` when synchronized, with keys renamed as requested.
        """
        value: dict[str, Any] = {
            "state": self.state,
            "setters": self.setters,
            "getters": self.getters,
            "methods": self.methods,
            "constants": self.constants,
            **self._namespaces,
        }
        if self.reducers:
            value["reducers"] = self.dispatchers
        if self.window_manager is not None:
            value["window_manager"] = self.window_manager

        for old_name, new_name in self.rename_map.items():
            if old_name in value:
                value[new_name] = value.pop(old_name)
        return value

    # =========================================================================
    # Update Pipeline
    # =========================================================================

    def commit(self, update: StateUpdate, *, replace: bool = False) -> State:
        """Apply an update and notify the host. No persistence.

        Args:
            update: Partial state, or an updater ``prev_state -> partial``.
                An updater returning None leaves the state as it is.
            replace: Replace the whole state instead of merging.

        Returns:
            The new state.
        """
        previous = self.state
        if callable(update):
            update = update(previous)

        if replace:
            new_state = dict(update or {})
        else:
            new_state = {**previous, **(update or {})}

        self.state = new_state
        self._notify_commit(previous, new_state)
        return new_state

    def _apply(self, update: StateUpdate) -> State:
        new_state = self.commit(update)
        if self.sync is not None:
            self.sync.persist(new_state)
        return new_state

    async def set_state(
        self,
        update: StateUpdate,
        callback: Callable[[State], Any] | None = None,
    ) -> State:
        """Merge an update into state, persist it, and return the new state.

        Args:
            update: Partial state, or an updater ``prev_state -> partial``.
            callback: Called with the new state before this returns; awaited
                if it returns an awaitable.

        Returns:
            The new state.
        """
        new_state = self._apply(update)
        if callback is not None:
            result = callback(new_state)
            if inspect.isawaitable(result):
                await result
        return new_state

    def update_state_from_storage(self) -> State:
        """Merge the stored snapshot written by another window into state.

        A removed key leaves state untouched and writes nothing back, so a
        provider clearing storage on unload is not undone by its subscribers.
        """
        if self.sync is None:
            return self.state

        merged = self.sync.merge_external(self.state)
        if merged is None:
            logger.debug("Stored state %s was removed, nothing to merge", self.sync.key)
            return self.state

        new_state = self._apply(merged)
        self.emit(StateEvent.STORAGE_SYNCED, key=self.sync.key, state=new_state)
        self._post_message(StorageSynced(self.sync.key, new_state))
        return new_state

    # =========================================================================
    # Host Notification
    # =========================================================================

    def connect_app(self, app: App) -> None:
        """Connect to a Textual App for message posting.

        Args:
            app: The Textual App instance to post messages to.
        """
        self._app = app
        if self.window_manager is not None:
            self.window_manager.connect_app(app)

    def _post_message(self, message: Any) -> None:
        if self._app is not None:
            self._app.post_message(message)

    def subscribe(
        self,
        callback: Callable[[dict[str, Any]], Any],
        dependencies: Iterable[Dependency] | None = None,
    ) -> Callable[[], None]:
        """Call back with the value bundle after each commit.

        Args:
            callback: Receives `value` after a commit.
            dependencies: Keys or paths to watch. When given, the callback
                only runs when one of them changed identity.

        Returns:
            A function that cancels the subscription.
        """
        deps = None
        if dependencies is not None:
            deps = tuple((d,) if isinstance(d, str) else tuple(d) for d in dependencies)
        subscription = _Subscription(callback, deps)
        self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

        return unsubscribe

    def on(self, event: StateEvent, callback: Callable[..., Any]) -> None:
        """Register callback for a provider event."""
        self._listeners.setdefault(event, []).append(callback)

    def off(self, event: StateEvent, callback: Callable[..., Any]) -> None:
        """Remove callback from a provider event."""
        try:
            self._listeners.get(event, []).remove(callback)
        except ValueError:
            pass

    def emit(self, event: StateEvent, **kwargs: Any) -> None:
        """Dispatch event to all listeners."""
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(**kwargs)
            except Exception:
                logger.exception("Listener for %s failed", event.value)

    def _emit_from_manager(self, event: StateEvent, kwargs: dict[str, Any]) -> None:
        self.emit(event, **kwargs)

    def _notify_commit(self, previous: State, current: State) -> None:
        self.emit(StateEvent.STATE_COMMITTED, state=current)
        if self._app is None and not self._subscriptions:
            return

        value = self.value
        self._post_message(StateCommitted(current, value))
        for subscription in list(self._subscriptions):
            if not subscription.is_affected(previous, current):
                continue
            try:
                subscription.callback(value)
            except Exception:
                logger.exception("Render subscriber failed")

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def mount(self) -> None:
        """Start listening for changes made by other windows."""
        if self.sync is None or self._unsubscribe_storage is not None:
            return
        self._unsubscribe_storage = self.sync.listen(self.update_state_from_storage)
        await self.sync.channel.start()
        logger.debug("Provider for %s listening as %s", self.sync.key, self.sync.window_name)

    def handle_unload(self) -> None:
        """Run the unload handler: clear storage and close children as configured."""
        if self.sync is None or self.sync.status is SyncStatus.UNLOADED:
            return
        self.sync.unload(self.window_manager)
        self.emit(StateEvent.PROVIDER_UNLOADED, window_name=self.sync.window_name)
        self._post_message(ProviderUnloaded(self.sync.window_name))

    async def unload(self) -> None:
        """Run the unload handler and stop listening for changes."""
        self.handle_unload()
        if self._unsubscribe_storage is not None:
            self._unsubscribe_storage()
            self._unsubscribe_storage = None
        if self.sync is not None:
            await self.sync.channel.stop()

    def install_unload_handler(self) -> bool:
        """Run the unload handler when the process exits or is terminated.

        Registers with `atexit`, and on the main thread also takes over
        SIGTERM, which is how a parent window closes its children. The
        previous SIGTERM handler runs after the unload handler; when there
        was none the process exits.

        Returns:
            Whether a handler was installed; windows that are neither the
            provider nor configured to close children need none.
        """
        if self.sync is None or not self.sync.handles_unload:
            return False
        atexit.register(self.handle_unload)
        if threading.current_thread() is threading.main_thread():
            previous = signal.getsignal(signal.SIGTERM)
            signal.signal(signal.SIGTERM, partial(self._on_terminate, previous))
        return True

    def _on_terminate(self, previous: Any, signum: int, frame: Any) -> None:
        logger.debug("Window %s received signal %d", self.sync.window_name, signum)
        self.handle_unload()
        if callable(previous):
            previous(signum, frame)
        elif previous != signal.SIG_IGN:
            raise SystemExit(128 + signum)
