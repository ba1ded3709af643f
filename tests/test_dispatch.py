"""Tests for reducer dispatchers."""

import pytest

from cantus_firmus.dispatch import Dispatcher, generate_dispatchers
from cantus_firmus.identity import StaticIdentity
from cantus_firmus.models import StorageOptions
from cantus_firmus.state.provider import Provider
from cantus_firmus.storage import MemoryMedium
from cantus_firmus.sync import SyncController
from cantus_firmus.testing import MockWindowSpawner


def add(state, action):
    return {**state, "count": state["count"] + action["by"]}


def replace_all(state, action):
    return {"only": True}


class TestDispatcher:
    """Test dispatching reducers."""

    @pytest.mark.asyncio
    async def test_dispatch_replaces_state(self):
        provider = Provider({"count": 1, "other": "x"}, reducers={"add": add})
        new_state = await provider.dispatchers.add.dispatch(provider.state, {"by": 2})
        assert new_state == {"count": 3, "other": "x"}
        assert provider.state == new_state

    @pytest.mark.asyncio
    async def test_dispatch_does_not_merge(self):
        provider = Provider({"count": 1, "other": "x"}, reducers={"replace": replace_all})
        await provider.dispatchers.replace.dispatch(provider.state)
        assert provider.state == {"only": True}

    @pytest.mark.asyncio
    async def test_dispatch_does_not_persist(self):
        medium = MemoryMedium()
        storage = StorageOptions(name="counter", provider_window="counter")
        sync = SyncController(storage, medium.connect(), StaticIdentity("counter"))
        sync.assign_role()
        provider = Provider(
            {"count": 1}, reducers={"add": add}, sync=sync, spawner=MockWindowSpawner()
        )

        await provider.dispatchers.add.dispatch(provider.state, {"by": 1})

        assert provider.state == {"count": 2}
        assert "counter" not in medium.data

    def test_generate_dispatchers(self):
        provider = Provider({"count": 0})
        dispatchers = generate_dispatchers(provider, {"add": add})
        assert isinstance(dispatchers["add"], Dispatcher)
        assert dispatchers.add.name == "add"
        assert dispatchers.add.reducer is add

    def test_reducers_in_value_bundle(self):
        provider = Provider({"count": 0}, reducers={"add": add})
        assert provider.value["reducers"] is provider.dispatchers

    def test_no_reducers_key_without_reducers(self):
        provider = Provider({"count": 0})
        assert "reducers" not in provider.value
