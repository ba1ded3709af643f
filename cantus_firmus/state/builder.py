"""Provider configuration.

`CantusFirmus` collects everything a provider needs (initial state, options,
custom accessors, methods, reducers, storage connection) and builds the
`Provider` in one step with `create_provider`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping, Sequence

from cantus_firmus.accessors import build_accessors
from cantus_firmus.config import load_options, load_storage_options
from cantus_firmus.identity import ProcessIdentity
from cantus_firmus.models import Options, Reducer, State, StorageOptions
from cantus_firmus.paths import join_path
from cantus_firmus.state.provider import Provider, check_reserved
from cantus_firmus.storage import FileStore
from cantus_firmus.sync import SyncController

if TYPE_CHECKING:
    from cantus_firmus.ports import ContextIdentity, SharedChannel, WindowSpawner

logger = logging.getLogger(__name__)


class CantusFirmus:
    """Builder for a state provider.

    Example:
        cf = CantusFirmus({"count": 0, "user": {"name": "ada"}}, nested_setters=True)
        cf.add_methods({"reset": lambda provider: provider.setters.setCount(0)})
        cf.connect_to_storage({"name": "counter", "subscriber_windows": ["viewer"]})
        provider = cf.create_provider()
        await provider.mount()
    """

    def __init__(
        self,
        state: State,
        options: Options | Mapping[str, Any] | None = None,
        **option_overrides: Any,
    ) -> None:
        self.state: State = dict(state)
        if isinstance(options, Options):
            self.options = load_options(vars(options), **option_overrides)
        else:
            self.options = load_options(options, **option_overrides)

        self.setters: dict[str, Callable[..., Any]] = {}
        self.getters: dict[str, Callable[..., Any]] = {}
        self.reducers: dict[str, Reducer] = {}
        self.constants: dict[str, Any] = {}
        self.methods: dict[str, Callable[..., Any]] = {}
        self.namespaced_methods: dict[str, dict[str, Callable[..., Any]]] = {}
        self.ignored_setters: list[str] = []
        self.ignored_getters: list[str] = []
        self.rename_map: dict[str, str] = {}

        self.storage_options: StorageOptions | None = None
        self.sync: SyncController | None = None
        self.spawner: WindowSpawner | None = None

    # =========================================================================
    # Accessors
    # =========================================================================

    def add_custom_setters(self, setters: Mapping[str, Callable[..., Any]]) -> CantusFirmus:
        """Register setters; each takes the provider as its first argument."""
        self.setters.update(setters)
        return self

    def ignore_setters(self, names: Iterable[str | Sequence[str]]) -> CantusFirmus:
        """Skip setter generation for keys or paths."""
        self.ignored_setters = [join_path(name) for name in names]
        return self

    def add_custom_getters(self, getters: Mapping[str, Callable[..., Any]]) -> CantusFirmus:
        """Register getters; each takes the provider as its first argument."""
        self.getters.update(getters)
        return self

    def ignore_getters(self, names: Iterable[str | Sequence[str]]) -> CantusFirmus:
        """Skip getter generation for keys or paths."""
        self.ignored_getters = [join_path(name) for name in names]
        return self

    # =========================================================================
    # Reducers, Constants, Methods
    # =========================================================================

    def add_reducers(self, reducers: Mapping[str, Reducer]) -> CantusFirmus:
        self.reducers.update(reducers)
        return self

    def add_constants(self, constants: Mapping[str, Any]) -> CantusFirmus:
        self.constants = {**self.constants, **constants}
        return self

    def add_methods(self, methods: Mapping[str, Callable[..., Any]]) -> CantusFirmus:
        """Register methods; each takes the provider as its first argument."""
        self.methods.update(methods)
        return self

    def add_namespaced_methods(
        self, methods_map: Mapping[str, Mapping[str, Callable[..., Any]]]
    ) -> CantusFirmus:
        """Register groups of methods exposed under their own names.

        Raises:
            ReservedNameError: If a namespace is a reserved name.
        """
        for namespace in methods_map:
            check_reserved(namespace, "namespace")
        self.namespaced_methods.update({k: dict(v) for k, v in methods_map.items()})
        return self

    def rename(self, name_map: Mapping[str, str] | None) -> CantusFirmus:
        """Rename keys of the value bundle, e.g. ``{"setters": "actions"}``.

        Raises:
            ReservedNameError: If a new name is reserved.
        """
        name_map = dict(name_map or {})
        for new_name in name_map.values():
            check_reserved(new_name, "rename")
        self.rename_map = name_map
        return self

    # =========================================================================
    # Shared Storage
    # =========================================================================

    def connect_to_storage(
        self,
        options: StorageOptions | Mapping[str, Any] | None = None,
        *,
        channel: SharedChannel | None = None,
        identity: ContextIdentity | None = None,
        spawner: WindowSpawner | None = None,
        **overrides: Any,
    ) -> SyncController:
        """Synchronize this state with other windows through shared storage.

        Settles this window's role and loads its initial state from storage.

        Args:
            options: Synchronization descriptor or mapping; ``name`` is required.
            channel: Shared medium; defaults to a `FileStore`.
            identity: This window's name; defaults to `ProcessIdentity`.
            spawner: Child window spawner; defaults to subprocesses.
            **overrides: Descriptor fields applied on top of ``options``.

        Raises:
            ConfigurationError: If no name is given or an option is invalid.
        """
        if isinstance(options, StorageOptions):
            options = vars(options)
        self.storage_options = load_storage_options(options, **overrides)

        self.sync = SyncController(
            self.storage_options,
            channel if channel is not None else FileStore(),
            identity if identity is not None else ProcessIdentity(),
        )
        self.sync.assign_role()
        self.state = self.sync.initial_state(self.state)
        self.spawner = spawner
        logger.info(
            "Connected %s to shared storage as %s (%s)",
            self.storage_options.name,
            self.sync.window_name,
            self.sync.role.value,
        )
        return self.sync

    # =========================================================================
    # Build
    # =========================================================================

    def create_provider(self) -> Provider:
        """Build the accessor registry and the provider.

        Raises:
            OverwriteConflictError: If a custom setter collides with a
                generated one under strict overwrite protection.
            ReservedNameError: If a namespace or rename uses a reserved name.
        """
        getters, setters = build_accessors(
            self.state,
            self.options,
            custom_getters=self.getters,
            custom_setters=self.setters,
            ignored_getters=self.ignored_getters,
            ignored_setters=self.ignored_setters,
        )

        provider = Provider(
            self.state,
            getters=getters,
            setters=setters,
            methods=self.methods,
            namespaced_methods=self.namespaced_methods,
            constants=self.constants,
            reducers=self.reducers,
            rename_map=self.rename_map,
            sync=self.sync,
            spawner=self.spawner,
        )

        if self.sync is not None:
            self.sync.persist_initial(provider.state)
        return provider
