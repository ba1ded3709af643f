"""Child window spawning and tracking.

A window is a separate process running the same host application under its
own window name. `WindowManager` keeps the registry of the children a window
spawned; closing a window closes its direct children, and each child does the
same for its own, so a whole tree shuts down level by level.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
from typing import TYPE_CHECKING, Any, Callable, Mapping, Sequence

from cantus_firmus.events import StateEvent, WindowClosed, WindowOpened
from cantus_firmus.exceptions import WindowError, WindowSpawnError, record_error
from cantus_firmus.identity import WINDOW_FEATURES_ENV, WINDOW_NAME_ENV
from cantus_firmus.logging_config import log_exception
from cantus_firmus.ports import WindowHandle, WindowSpawner

if TYPE_CHECKING:
    from textual.app import App

    from cantus_firmus.models import StorageOptions

logger = logging.getLogger(__name__)

DEFAULT_TERMINATE_TIMEOUT = 5.0


def create_params_string(params: Mapping[str, Any] | None = None) -> str:
    """Format window features as ``key=value,`` pairs.

    Example:
        >>> create_params_string({"width": 400, "height": 300})
        'width=400,height=300,'
    """
    return "".join(f"{key}={value}," for key, value in (params or {}).items())


# =============================================================================
# Subprocess Adapter
# =============================================================================


class SubprocessWindow:
    """Handle to a child window running as a subprocess."""

    def __init__(
        self,
        name: str,
        process: subprocess.Popen,
        terminate_timeout: float = DEFAULT_TERMINATE_TIMEOUT,
    ) -> None:
        self._name = name
        self.process = process
        self.terminate_timeout = terminate_timeout
        self._closed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def closed(self) -> bool:
        return self._closed or self.process.poll() is not None

    def close(self) -> None:
        """Terminate the child, killing it if it does not exit in time."""
        if self.closed:
            self._closed = True
            return

        self.process.terminate()
        try:
            self.process.wait(timeout=self.terminate_timeout)
        except subprocess.TimeoutExpired:
            logger.warning("Window %s did not exit, killing pid %d", self._name, self.pid)
            self.process.kill()
            self.process.wait()
        self._closed = True

    def __repr__(self) -> str:
        return f"SubprocessWindow(name={self._name!r}, pid={self.pid})"


class SubprocessWindowSpawner:
    """Spawns child windows as subprocesses.

    The child runs ``command + [url]`` with its window name in
    ``CANTUS_WINDOW_NAME`` and its features in ``CANTUS_WINDOW_FEATURES``.
    The default command runs ``url`` as a Python module with the current
    interpreter.
    """

    def __init__(
        self,
        command: Sequence[str] | None = None,
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
        terminate_timeout: float = DEFAULT_TERMINATE_TIMEOUT,
    ) -> None:
        self.command = list(command) if command is not None else [sys.executable, "-m"]
        self.env = dict(env or {})
        self.cwd = cwd
        self.terminate_timeout = terminate_timeout

    def open(self, url: str, name: str, features: str = "") -> SubprocessWindow:
        env = {
            **os.environ,
            **self.env,
            WINDOW_NAME_ENV: name,
            WINDOW_FEATURES_ENV: features,
        }
        argv = [*self.command, url]
        try:
            process = subprocess.Popen(argv, env=env, cwd=self.cwd)
        except OSError as e:
            record_error(e)
            raise WindowSpawnError(
                f"Failed to spawn window {name!r}",
                window_name=name,
                context={"argv": " ".join(argv)},
                cause=e,
            ) from e

        logger.info("Spawned window %s (pid %d)", name, process.pid)
        return SubprocessWindow(name, process, self.terminate_timeout)


# =============================================================================
# Window Registry
# =============================================================================


class WindowManager:
    """Tracks the child windows spawned by one window.

    Handles:
    - Spawning children and registering their handles
    - Closing a single child or every child
    - Exposing the live registry
    """

    def __init__(self, storage: StorageOptions, spawner: WindowSpawner) -> None:
        """Initialize the window manager.

        Args:
            storage: Synchronization descriptor; children must be subscriber
                windows of it.
            spawner: Adapter that starts child windows.
        """
        self.storage = storage
        self.spawner = spawner
        self.windows: dict[str, WindowHandle] = {}
        self._app: App | None = None
        self._emit_callback: Callable[[StateEvent, dict[str, Any]], None] | None = None

    def connect_app(self, app: App) -> None:
        """Connect to a Textual App for message posting."""
        self._app = app

    def set_emit_callback(
        self, callback: Callable[[StateEvent, dict[str, Any]], None]
    ) -> None:
        """Set callback for emitting events to provider listeners."""
        self._emit_callback = callback

    def _post_message(self, message: Any) -> None:
        if self._app is not None:
            self._app.post_message(message)

    def _emit(self, event: StateEvent, **kwargs: Any) -> None:
        if self._emit_callback:
            self._emit_callback(event, kwargs)

    def open(
        self,
        url: str,
        name: str,
        params: Mapping[str, Any] | None = None,
    ) -> WindowHandle:
        """Spawn a child window and register it under its name.

        Opening a name that is already registered replaces the old handle
        without closing it.

        Args:
            url: What the child should load.
            name: Window name; must be one of the subscriber windows.
            params: Window features.

        Raises:
            WindowError: If url or name is missing, or name is not a
                subscriber window.
            WindowSpawnError: If the spawner fails.
        """
        if not url or not name:
            raise WindowError(
                "WindowManager.open requires two arguments: (url, name)",
                window_name=name or None,
            )
        if name not in self.storage.subscriber_windows:
            raise WindowError(
                f"Window name {name!r} must be listed in subscriber_windows",
                window_name=name,
                context={"subscriber_windows": self.storage.subscriber_windows},
            )

        if name in self.windows:
            logger.debug("Replacing handle for window %s", name)

        handle = self.spawner.open(url, name, create_params_string(params))
        self.windows[name] = handle
        self._emit(StateEvent.WINDOW_OPENED, name=name)
        self._post_message(WindowOpened(name))
        return handle

    def close(self, name: str) -> None:
        """Close a child window and forget it. Unknown names are ignored."""
        handle = self.windows.pop(name, None)
        if handle is None:
            return

        try:
            handle.close()
        except Exception as e:
            log_exception(logger, e, f"Failed to close window {name}")
            record_error(e)
        self._emit(StateEvent.WINDOW_CLOSED, name=name)
        self._post_message(WindowClosed(name))

    def close_all(self) -> None:
        """Close every child window."""
        for name in list(self.windows):
            self.close(name)

    def get_children(self) -> dict[str, WindowHandle]:
        """Get the live registry of child windows."""
        return self.windows
