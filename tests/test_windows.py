"""Tests for child window spawning and tracking."""

import os
import shutil
import signal
import subprocess
import sys
import textwrap
import time
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from cantus_firmus.events import StateEvent, WindowClosed, WindowOpened
from cantus_firmus.exceptions import WindowError, WindowSpawnError, error_stats
from cantus_firmus.identity import WINDOW_FEATURES_ENV, WINDOW_NAME_ENV
from cantus_firmus.models import StorageOptions
from cantus_firmus.ports import WindowHandle, WindowSpawner
from cantus_firmus.testing import MockWindowSpawner
from cantus_firmus.windows import (
    SubprocessWindow,
    SubprocessWindowSpawner,
    WindowManager,
    create_params_string,
)


@pytest.fixture
def storage():
    return StorageOptions(name="app", provider_window="app", subscriber_windows=["one", "two"])


@pytest.fixture
def spawner():
    return MockWindowSpawner()


@pytest.fixture
def manager(storage, spawner):
    return WindowManager(storage, spawner)


class TestCreateParamsString:
    """Test window feature formatting."""

    def test_pairs(self):
        assert create_params_string({"width": 400, "height": 300}) == "width=400,height=300,"

    def test_empty(self):
        assert create_params_string({}) == ""
        assert create_params_string(None) == ""


class TestWindowManager:
    """Test the child window registry."""

    def test_open_registers_handle(self, manager, spawner):
        handle = manager.open("viewer_app", "one", {"width": 400})

        assert manager.get_children() == {"one": handle}
        assert spawner.opened[0].url == "viewer_app"
        assert spawner.opened[0].features == "width=400,"

    def test_open_requires_url_and_name(self, manager):
        with pytest.raises(WindowError):
            manager.open("", "one")
        with pytest.raises(WindowError):
            manager.open("viewer_app", "")

    def test_open_rejects_unknown_name(self, manager, spawner):
        with pytest.raises(WindowError) as exc_info:
            manager.open("viewer_app", "stranger")
        assert exc_info.value.context["window_name"] == "stranger"
        assert spawner.opened == []

    def test_spawn_failure_propagates(self, manager, spawner):
        spawner.set_should_fail(True)
        with pytest.raises(WindowSpawnError):
            manager.open("viewer_app", "one")
        assert manager.get_children() == {}

    def test_reopen_replaces_without_closing(self, manager, spawner):
        first = manager.open("viewer_app", "one")
        second = manager.open("viewer_app", "one")

        assert manager.windows["one"] is second
        assert first.close_count == 0
        assert len(spawner.get_opened("one")) == 2

    def test_close(self, manager):
        handle = manager.open("viewer_app", "one")
        manager.close("one")
        manager.close("one")
        manager.close("never-opened")

        assert handle.close_count == 1
        assert manager.get_children() == {}

    def test_close_all(self, manager):
        one = manager.open("viewer_app", "one")
        two = manager.open("viewer_app", "two")

        manager.close_all()

        assert one.closed and two.closed
        assert manager.get_children() == {}

    def test_close_failure_is_recorded(self, manager, spawner):
        error_stats.reset()
        handle = manager.open("viewer_app", "one")
        handle.fail_on_close = True
        two = manager.open("viewer_app", "two")

        manager.close_all()

        assert two.closed
        assert manager.get_children() == {}
        assert error_stats.by_type.get("RuntimeError") == 1

    def test_events_and_messages(self, manager):
        app = MagicMock()
        emitted = []
        manager.connect_app(app)
        manager.set_emit_callback(lambda event, kwargs: emitted.append((event, kwargs)))

        manager.open("viewer_app", "one")
        manager.close("one")

        assert emitted == [
            (StateEvent.WINDOW_OPENED, {"name": "one"}),
            (StateEvent.WINDOW_CLOSED, {"name": "one"}),
        ]
        messages = [call[0][0] for call in app.post_message.call_args_list]
        assert isinstance(messages[0], WindowOpened)
        assert isinstance(messages[1], WindowClosed)
        assert messages[1].window_name == "one"


class TestMockAdapters:
    """Test that the mocks satisfy the window protocols."""

    def test_protocols(self, spawner):
        assert isinstance(spawner, WindowSpawner)
        assert isinstance(spawner.open("u", "one"), WindowHandle)


class TestSubprocessWindowSpawner:
    """Test spawning windows as subprocesses."""

    def test_open_passes_name_and_features(self):
        process = MagicMock(pid=1234)
        spawner = SubprocessWindowSpawner(env={"EXTRA": "1"}, cwd="/tmp")

        with patch("cantus_firmus.windows.subprocess.Popen", return_value=process) as popen:
            handle = spawner.open("viewer_app", "one", "width=400,")

        argv = popen.call_args[0][0]
        env = popen.call_args[1]["env"]
        assert argv == [sys.executable, "-m", "viewer_app"]
        assert env[WINDOW_NAME_ENV] == "one"
        assert env[WINDOW_FEATURES_ENV] == "width=400,"
        assert env["EXTRA"] == "1"
        assert popen.call_args[1]["cwd"] == "/tmp"
        assert handle.name == "one"
        assert handle.pid == 1234

    def test_custom_command(self):
        spawner = SubprocessWindowSpawner(["my-host", "--window"])
        with patch("cantus_firmus.windows.subprocess.Popen") as popen:
            spawner.open("viewer", "one")
        assert popen.call_args[0][0] == ["my-host", "--window", "viewer"]

    def test_open_failure(self):
        spawner = SubprocessWindowSpawner(["missing-binary"])
        with patch("cantus_firmus.windows.subprocess.Popen", side_effect=OSError("not found")):
            with pytest.raises(WindowSpawnError) as exc_info:
                spawner.open("viewer", "one")
        assert isinstance(exc_info.value.cause, OSError)


class TestSubprocessWindow:
    """Test closing subprocess windows."""

    def test_close_terminates(self):
        process = MagicMock(pid=1)
        process.poll.return_value = None
        window = SubprocessWindow("one", process)

        window.close()

        process.terminate.assert_called_once()
        process.wait.assert_called_once_with(timeout=window.terminate_timeout)
        assert window.closed

    def test_close_kills_after_timeout(self):
        process = MagicMock(pid=1)
        process.poll.return_value = None
        process.wait.side_effect = [subprocess.TimeoutExpired("cmd", 1), 0]
        window = SubprocessWindow("one", process, terminate_timeout=1)

        window.close()

        process.kill.assert_called_once()
        assert window.closed

    def test_close_exited_process(self):
        process = MagicMock(pid=1)
        process.poll.return_value = 0
        window = SubprocessWindow("one", process)

        window.close()

        process.terminate.assert_not_called()
        assert window.closed


CHILD_WINDOW = textwrap.dedent(
    """
    import os
    import sys
    import time

    from cantus_firmus.state import CantusFirmus
    from cantus_firmus.storage import MemoryMedium
    from cantus_firmus.windows import SubprocessWindowSpawner

    pid_file = sys.argv[1]
    cf = CantusFirmus({"count": 0})
    cf.connect_to_storage(
        {"name": "app", "subscriber_windows": ["child", "grandchild"]},
        channel=MemoryMedium().connect(),
        spawner=SubprocessWindowSpawner(["sleep"]),
    )
    provider = cf.create_provider()
    provider.install_unload_handler()
    grandchild = provider.window_manager.open("60", "grandchild")

    with open(pid_file + ".tmp", "w") as f:
        f.write(str(grandchild.pid))
    os.replace(pid_file + ".tmp", pid_file)

    while True:
        time.sleep(0.1)
    """
)


def _pid_alive(pid):
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _wait_for(predicate, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return predicate()


@pytest.mark.skipif(
    sys.platform == "win32" or shutil.which("sleep") is None,
    reason="needs POSIX signals and a sleep command",
)
class TestCascadeClose:
    """Test teardown across real window processes."""

    def test_closing_child_closes_grandchild(self, tmp_path):
        script = tmp_path / "child_window.py"
        script.write_text(CHILD_WINDOW)
        pid_file = tmp_path / "grandchild.pid"
        root = str(Path(__file__).resolve().parents[1])
        python_path = os.pathsep.join(filter(None, [root, os.environ.get("PYTHONPATH")]))
        spawner = SubprocessWindowSpawner(
            [sys.executable, str(script)], env={"PYTHONPATH": python_path}
        )

        child = spawner.open(str(pid_file), "child")
        grandchild_pid = None
        try:
            assert _wait_for(pid_file.exists), "child window never opened its grandchild"
            grandchild_pid = int(pid_file.read_text())
            assert _pid_alive(grandchild_pid)

            child.close()

            assert child.process.returncode == 128 + signal.SIGTERM
            assert _wait_for(lambda: not _pid_alive(grandchild_pid), timeout=5.0)
        finally:
            if child.process.poll() is None:
                child.process.kill()
                child.process.wait()
            if grandchild_pid is not None and _pid_alive(grandchild_pid):
                os.kill(grandchild_pid, signal.SIGKILL)
