"""Cantus Firmus.

Application state with generated getters and setters, reducers, injected
methods, and optional synchronization of that state across windows that
share a storage medium.

Public API Usage:
    from cantus_firmus import CantusFirmus

    cf = CantusFirmus({"count": 0, "user": {"name": "ada"}}, nested_setters=True)
    cf.add_reducers({"increment": lambda state, action: {**state, "count": state["count"] + 1}})
    cf.connect_to_storage({"name": "counter", "subscriber_windows": ["viewer"]})
    provider = cf.create_provider()

    await provider.mount()
    await provider.setters.setUser_name("grace")
    provider.getters.getCount()
    await provider.dispatchers.increment.dispatch(provider.state)
    provider.window_manager.open("viewer_app", "viewer")

    # Textual hosts receive StateCommitted messages
    provider.connect_app(app)
"""

__version__ = "0.1.0"

# =============================================================================
# Main Classes
# =============================================================================

from cantus_firmus.state import RESERVED_NAMES, CantusFirmus, Provider

# =============================================================================
# Data Models
# =============================================================================

from cantus_firmus.models import (
    MethodGroup,
    Options,
    OverwriteProtection,
    StorageOptions,
    SyncStatus,
    WindowRole,
)

# =============================================================================
# Events
# =============================================================================

from cantus_firmus.events import (
    ProviderUnloaded,
    StateCommitted,
    StateEvent,
    StateMessage,
    StorageSynced,
    WindowClosed,
    WindowOpened,
)

# =============================================================================
# Synchronization, Storage and Windows
# =============================================================================

from cantus_firmus.identity import ProcessIdentity, StaticIdentity
from cantus_firmus.ports import ContextIdentity, SharedChannel, WindowHandle, WindowSpawner
from cantus_firmus.storage import FileStore, MemoryMedium, MemoryStore
from cantus_firmus.sync import SyncController
from cantus_firmus.windows import (
    SubprocessWindowSpawner,
    WindowManager,
    create_params_string,
)

# =============================================================================
# Helpers
# =============================================================================

from cantus_firmus.accessors import create_state_getters, create_state_setters
from cantus_firmus.dispatch import Dispatcher
from cantus_firmus.paths import format_state_name, get_nested_routes
from cantus_firmus.redaction import clean_state

# =============================================================================
# Configuration
# =============================================================================

from cantus_firmus.config import (
    load_config_file,
    load_options,
    load_storage_options,
    save_config_file,
)

# =============================================================================
# Exceptions
# =============================================================================

from cantus_firmus.exceptions import (
    CantusFirmusError,
    ConfigLoadError,
    ConfigurationError,
    OverwriteConflictError,
    PersistenceError,
    PersistenceParseError,
    PersistenceWriteError,
    RedactionPathError,
    ReservedNameError,
    WindowError,
    WindowSpawnError,
)

__all__ = [
    # Version
    "__version__",
    # Main classes
    "CantusFirmus",
    "Provider",
    "RESERVED_NAMES",
    # Data models
    "MethodGroup",
    "Options",
    "OverwriteProtection",
    "StorageOptions",
    "SyncStatus",
    "WindowRole",
    # Events
    "ProviderUnloaded",
    "StateCommitted",
    "StateEvent",
    "StateMessage",
    "StorageSynced",
    "WindowClosed",
    "WindowOpened",
    # Synchronization, storage and windows
    "ContextIdentity",
    "FileStore",
    "MemoryMedium",
    "MemoryStore",
    "ProcessIdentity",
    "SharedChannel",
    "StaticIdentity",
    "SubprocessWindowSpawner",
    "SyncController",
    "WindowHandle",
    "WindowManager",
    "WindowSpawner",
    "create_params_string",
    # Helpers
    "Dispatcher",
    "clean_state",
    "create_state_getters",
    "create_state_setters",
    "format_state_name",
    "get_nested_routes",
    # Configuration
    "load_config_file",
    "load_options",
    "load_storage_options",
    "save_config_file",
    # Exceptions
    "CantusFirmusError",
    "ConfigLoadError",
    "ConfigurationError",
    "OverwriteConflictError",
    "PersistenceError",
    "PersistenceParseError",
    "PersistenceWriteError",
    "RedactionPathError",
    "ReservedNameError",
    "WindowError",
    "WindowSpawnError",
]
