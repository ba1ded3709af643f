"""Tests for the in-process shared medium."""

import pytest

from cantus_firmus.ports import SharedChannel
from cantus_firmus.storage import MemoryMedium, MemoryStore


@pytest.fixture
def medium():
    return MemoryMedium()


class TestMemoryStore:
    """Test reading and writing through an endpoint."""

    def test_satisfies_protocol(self, medium):
        assert isinstance(medium.connect(), SharedChannel)

    def test_read_write_remove(self, medium):
        store = medium.connect()
        assert store.read("k") is None

        store.write("k", "v")
        assert store.read("k") == "v"
        assert medium.connect().read("k") == "v"

        store.remove("k")
        store.remove("k")
        assert store.read("k") is None

    def test_keys_are_sorted(self, medium):
        store = medium.connect()
        store.write("b", "1")
        store.write("a", "2")
        assert store.keys() == ["a", "b"]


class TestNotifications:
    """Test change delivery between endpoints."""

    @pytest.mark.asyncio
    async def test_writer_is_not_notified(self, medium):
        writer = medium.connect()
        reader = medium.connect()
        writer_calls, reader_calls = [], []
        writer.subscribe("k", lambda: writer_calls.append(1))
        reader.subscribe("k", lambda: reader_calls.append(1))
        await writer.start()
        await reader.start()

        writer.write("k", "v")

        assert writer_calls == []
        assert reader_calls == [1]

    @pytest.mark.asyncio
    async def test_unchanged_write_is_silent(self, medium):
        writer = medium.connect()
        reader = medium.connect()
        calls = []
        reader.subscribe("k", lambda: calls.append(1))
        await reader.start()

        writer.write("k", "v")
        writer.write("k", "v")

        assert calls == [1]

    @pytest.mark.asyncio
    async def test_removal_notifies(self, medium):
        writer = medium.connect()
        reader = medium.connect()
        calls = []
        reader.subscribe("k", lambda: calls.append(1))
        writer.write("k", "v")
        await reader.start()

        writer.remove("k")

        assert calls == [1]

    @pytest.mark.asyncio
    async def test_only_delivered_while_started(self, medium):
        writer = medium.connect()
        reader = medium.connect()
        calls = []
        reader.subscribe("k", lambda: calls.append(1))

        writer.write("k", "1")
        await reader.start()
        writer.write("k", "2")
        await reader.stop()
        writer.write("k", "3")

        assert calls == [1]

    @pytest.mark.asyncio
    async def test_other_keys_are_ignored(self, medium):
        writer = medium.connect()
        reader = medium.connect()
        calls = []
        reader.subscribe("k", lambda: calls.append(1))
        await reader.start()

        writer.write("other", "v")

        assert calls == []

    @pytest.mark.asyncio
    async def test_unsubscribe_and_disconnect(self, medium):
        writer = medium.connect()
        reader = medium.connect()
        calls = []
        unsubscribe = reader.subscribe("k", lambda: calls.append(1))
        await reader.start()

        unsubscribe()
        writer.write("k", "1")
        reader.subscribe("k", lambda: calls.append(2))
        medium.disconnect(reader)
        medium.disconnect(reader)
        writer.write("k", "2")

        assert calls == []

    @pytest.mark.asyncio
    async def test_failing_listener_is_logged(self, medium, caplog):
        writer = medium.connect()
        reader = medium.connect()
        calls = []

        def broken():
            raise RuntimeError("boom")

        reader.subscribe("k", broken)
        reader.subscribe("k", lambda: calls.append(1))
        await reader.start()

        writer.write("k", "v")

        assert calls == [1]
        assert "listener failed" in caplog.text

    def test_standalone_store(self):
        store = MemoryStore(MemoryMedium({"k": "v"}))
        assert store.read("k") == "v"
