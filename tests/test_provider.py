"""Tests for the runtime provider and its update pipeline."""

import asyncio
from unittest.mock import MagicMock

import pytest

from cantus_firmus.events import StateCommitted, StateEvent
from cantus_firmus.exceptions import ReservedNameError
from cantus_firmus.state import CantusFirmus, Provider


class TestUpdatePipeline:
    """Test set_state semantics."""

    @pytest.mark.asyncio
    async def test_setter_resolves_with_new_state(self):
        provider = CantusFirmus({"a": 1}).create_provider()
        result = await provider.setters.setA(5)
        assert result == {"a": 5}

    @pytest.mark.asyncio
    async def test_sequential_updaters_see_previous_state(self):
        provider = CantusFirmus({"a": 1}).create_provider()
        for _ in range(3):
            await provider.setters.setA(lambda prev: {"a": prev["a"] + 1})
        assert provider.state == {"a": 4}

    @pytest.mark.asyncio
    async def test_nested_setter_copy_on_write(self):
        provider = CantusFirmus(
            {"nested": {"v": "x", "sibling": {"k": 1}}}, nested_setters=True
        ).create_provider()
        before = provider.state

        await provider.setters.setNested_v("y")

        assert provider.state["nested"]["v"] == "y"
        assert provider.state["nested"] is not before["nested"]
        assert provider.state["nested"]["sibling"] is before["nested"]["sibling"]
        assert before["nested"]["v"] == "x"

    @pytest.mark.asyncio
    async def test_setting_current_value_keeps_state(self):
        provider = CantusFirmus(
            {"a": 1, "nested": {"v": "x", "sibling": {"k": 1}}}, nested_setters=True
        ).create_provider()
        before = {"a": 1, "nested": {"v": "x", "sibling": {"k": 1}}}

        await provider.setters.setA(provider.state["a"])
        assert provider.state == before

        await provider.setters.setNested_v(provider.state["nested"]["v"])
        assert provider.state == before

        await provider.setters.setNested(provider.state["nested"])
        assert provider.state == before

    @pytest.mark.asyncio
    async def test_set_state_merges_partial(self):
        provider = Provider({"a": 1, "b": 2})
        await provider.set_state({"b": 3})
        assert provider.state == {"a": 1, "b": 3}

    @pytest.mark.asyncio
    async def test_updater_returning_none_keeps_state(self):
        provider = Provider({"a": 1})
        result = await provider.set_state(lambda prev: None)
        assert result == {"a": 1}

    @pytest.mark.asyncio
    async def test_async_callback_is_awaited(self):
        provider = Provider({"a": 1})
        seen = []

        async def callback(state):
            await asyncio.sleep(0)
            seen.append(state["a"])

        await provider.set_state({"a": 2}, callback)
        assert seen == [2]

    @pytest.mark.asyncio
    async def test_setter_without_storage_is_not_persisted(self):
        provider = CantusFirmus({"a": 1}).create_provider()
        await provider.setters.setA(2)
        assert provider.sync is None
        assert provider.window_manager is None


class TestCustomAccessorsAndMethods:
    """Test injected setters, getters, methods and namespaces."""

    @pytest.mark.asyncio
    async def test_custom_setter_receives_provider(self):
        async def increment(provider, by=1):
            return await provider.set_state(lambda prev: {"count": prev["count"] + by})

        cf = CantusFirmus({"count": 0}).add_custom_setters({"increment": increment})
        provider = cf.create_provider()

        await provider.setters.increment(2)

        assert provider.state["count"] == 2

    def test_custom_getter_reads_state(self):
        cf = CantusFirmus({"items": [1, 2, 3]})
        cf.add_custom_getters({"getTotal": lambda provider: sum(provider.state["items"])})
        provider = cf.create_provider()
        assert provider.getters.getTotal() == 6

    @pytest.mark.asyncio
    async def test_methods_reach_setters(self):
        async def reset(provider):
            await provider.setters.setCount(0)

        cf = CantusFirmus({"count": 5}).add_methods({"reset": reset})
        provider = cf.create_provider()

        await provider.methods.reset()

        assert provider.state["count"] == 0

    def test_namespaced_methods(self):
        cf = CantusFirmus({"user": "ada"})
        cf.add_namespaced_methods({"auth": {"whoami": lambda provider: provider.state["user"]}})
        provider = cf.create_provider()

        assert provider.auth.whoami() == "ada"
        assert provider.value["auth"] is provider.namespaces["auth"]

    def test_namespace_cannot_use_reserved_name(self):
        with pytest.raises(ReservedNameError):
            CantusFirmus({}).add_namespaced_methods({"setters": {}})

    def test_constants(self):
        cf = CantusFirmus({}).add_constants({"A": 1}).add_constants({"B": 2})
        provider = cf.create_provider()
        assert provider.constants == {"A": 1, "B": 2}
        assert provider.value["constants"] == {"A": 1, "B": 2}

    def test_ignored_accessors(self):
        cf = CantusFirmus({"a": 1, "b": {"c": 2}})
        cf.ignore_getters(["a", ["b", "c"]]).ignore_setters(["b"])
        provider = cf.create_provider()
        assert set(provider.getters) == {"getB"}
        assert set(provider.setters) == {"setA"}


class TestValueBundle:
    """Test the value bundle and renaming."""

    def test_default_keys(self):
        provider = CantusFirmus({"a": 1}).create_provider()
        assert set(provider.value) == {"state", "setters", "getters", "methods", "constants"}

    def test_rename(self):
        provider = CantusFirmus({"a": 1}).rename({"setters": "actions"}).create_provider()
        value = provider.value
        assert "setters" not in value
        assert value["actions"] is provider.setters
        assert provider.actions is provider.setters

    def test_rename_to_reserved_name(self):
        with pytest.raises(ReservedNameError) as exc_info:
            CantusFirmus({"a": 1}).rename({"setters": "state"})
        assert exc_info.value.name == "state"

    def test_unknown_attribute(self):
        provider = Provider({})
        with pytest.raises(AttributeError):
            provider.nothing


class TestHostNotification:
    """Test subscriptions, listeners and Textual messages."""

    @pytest.mark.asyncio
    async def test_subscriber_receives_value(self):
        provider = Provider({"a": 1})
        received = []
        provider.subscribe(received.append)

        await provider.set_state({"a": 2})

        assert len(received) == 1
        assert received[0]["state"] == {"a": 2}

    @pytest.mark.asyncio
    async def test_dependencies_filter_callbacks(self):
        provider = Provider({"a": 1, "b": {"c": 1}})
        received = []
        provider.subscribe(received.append, dependencies=[("b", "c")])

        await provider.set_state({"a": 2})
        assert received == []

        await provider.set_state({"b": {"c": 2}})
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        provider = Provider({"a": 1})
        received = []
        unsubscribe = provider.subscribe(received.append)
        unsubscribe()
        unsubscribe()

        await provider.set_state({"a": 2})

        assert received == []

    @pytest.mark.asyncio
    async def test_failing_subscriber_does_not_break_commit(self):
        provider = Provider({"a": 1})

        def broken(value):
            raise RuntimeError("boom")

        provider.subscribe(broken)
        result = await provider.set_state({"a": 2})
        assert result == {"a": 2}

    @pytest.mark.asyncio
    async def test_event_listeners(self):
        provider = Provider({"a": 1})
        callback = MagicMock()
        provider.on(StateEvent.STATE_COMMITTED, callback)

        await provider.set_state({"a": 2})
        callback.assert_called_once_with(state={"a": 2})

        provider.off(StateEvent.STATE_COMMITTED, callback)
        provider.off(StateEvent.STATE_COMMITTED, callback)
        await provider.set_state({"a": 3})
        callback.assert_called_once()

    @pytest.mark.asyncio
    async def test_app_receives_state_committed(self):
        provider = Provider({"a": 1})
        app = MagicMock()
        provider.connect_app(app)

        await provider.set_state({"a": 2})

        app.post_message.assert_called_once()
        message = app.post_message.call_args[0][0]
        assert isinstance(message, StateCommitted)
        assert message.state == {"a": 2}
        assert message.value["state"] == {"a": 2}
