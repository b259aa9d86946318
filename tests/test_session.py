"""Tests for TreeSession state transitions."""

import asyncio

import pytest

from reltree.events import EventCollector, EventDispatcher, RenderEndEvent, SelectEvent, ToggleEvent
from reltree.exceptions import MalformedIdentifier
from reltree.records import InMemoryRecordService
from reltree.session import NavigationRequest, TreeSession
from reltree.tree.config import RenderConfig
from reltree.tree.view import ViewNodeType

from conftest import RECORDS


class SlowService(InMemoryRecordService):
    async def get_by_id(self, entity, record_id):
        await asyncio.sleep(0.01)
        return await super().get_by_id(entity, record_id)


@pytest.fixture
def collector():
    return EventCollector()


@pytest.fixture
def session(provider, service, collector):
    return TreeSession(provider, service, dispatcher=EventDispatcher([collector]))


class TestLoadRoots:
    async def test_selected_root_pre_expanded(self, session, flights):
        await session.load_roots("Flight", flights, selected_id=1)

        assert session.state.selected == "Flight-1"
        assert session.state.expanded == {
            "Flight-1",
            "fk-Aircraft-3-from-1",
            "fk-Airport-1-from-1",
            "fk-Airport-2-from-1",
            "fk-Employee-11-from-1",
        }
        assert session.state.parent_of("fk-Aircraft-3-from-1") == "Flight-1"

    async def test_two_levels(self, session, flights):
        await session.load_roots("Flight", flights, selected_id=1, expand_levels=2)

        assert "fk-Manufacturer-7-from-3" in session.state
        assert "fk-Airport-1-from-11" in session.state
        assert session.state.parent_of("fk-Manufacturer-7-from-3") == "fk-Aircraft-3-from-1"

    async def test_null_fks_not_expanded(self, session, flights):
        await session.load_roots("Flight", flights, selected_id=2)
        assert not any(k.startswith("fk-Employee") for k in session.state.expanded)

    async def test_unknown_selected_id_rejected(self, session, flights):
        await session.load_roots("Flight", flights, selected_id=1)

        with pytest.raises(ValueError):
            await session.load_roots("Flight", flights, selected_id=99)

        assert session.state.selected == "Flight-1"
        assert "Flight-99" not in session.state

    async def test_reload_clears_state(self, session, flights):
        await session.load_roots("Flight", flights, selected_id=1)
        generation = session.generation
        await session.load_roots("Flight", flights)

        assert len(session.state) == 0
        assert session.state.selected is None
        assert session.generation == generation + 1


class TestRender:
    async def test_all_roots_without_selection(self, session, flights):
        await session.load_roots("Flight", flights)
        tree = await session.render()
        assert len(tree.roots) == 3
        assert session.last_tree is tree

    async def test_focus_on_selected_root(self, session, flights):
        await session.load_roots("Flight", flights, selected_id=1)
        tree = await session.render()

        assert [r.key for r in tree.roots] == ["Flight-1"]
        root = tree.roots[0]
        assert root.selected and root.expanded
        assert all(n.expanded for n in root.children if n.type == ViewNodeType.FK)

    async def test_render_before_load_fails(self, session):
        with pytest.raises(RuntimeError):
            await session.render()

    async def test_stale_render_discarded(self, provider, collector, flights):
        session = TreeSession(provider, SlowService(RECORDS, provider), dispatcher=EventDispatcher([collector]))
        await session.load_roots("Flight", flights, selected_id=1)

        task = asyncio.ensure_future(session.render())
        await asyncio.sleep(0.005)
        session.set_config(RenderConfig(attribute_layout="row"))

        assert await task is None
        assert session.last_tree is None
        ends = collector.of_type(RenderEndEvent)
        assert len(ends) == 1 and ends[0].stale

        tree = await session.render()
        assert tree is not None
        assert tree.generation == session.generation

    async def test_render_events(self, session, collector, flights):
        await session.load_roots("Flight", flights)
        tree = await session.render()

        end = collector.of_type(RenderEndEvent)[-1]
        assert not end.stale
        assert end.node_count == len(tree)
        assert end.entity == "Flight"


class TestToggle:
    async def test_records_parent_from_last_tree(self, session, flights):
        await session.load_roots("Flight", flights)
        session.on_toggle("Flight-1")
        await session.render()

        assert session.on_toggle("fk-Aircraft-3-from-1") is True
        assert session.state.parent_of("fk-Aircraft-3-from-1") == "Flight-1"

    async def test_collapse_cascades(self, session, collector, flights):
        await session.load_roots("Flight", flights, selected_id=1, expand_levels=2)

        assert session.on_toggle("fk-Aircraft-3-from-1") is False
        assert "fk-Manufacturer-7-from-3" not in session.state

        event = collector.of_type(ToggleEvent)[-1]
        assert event.expanded is False
        assert event.removed == {"fk-Aircraft-3-from-1", "fk-Manufacturer-7-from-3"}

    async def test_shared_aircraft_collapse_removes_manufacturer(self, session, flights):
        # Flight-1 and Flight-2 both use Aircraft#3, so its FK keys are shown twice.
        await session.load_roots("Flight", flights)
        session.on_toggle("Flight-1")
        session.on_toggle("Flight-2")
        await session.render()
        session.on_toggle("fk-Aircraft-3-from-1")
        session.on_toggle("fk-Aircraft-3-from-2")
        await session.render()
        session.on_toggle("fk-Manufacturer-7-from-3")

        assert session.state.parents_of("fk-Manufacturer-7-from-3") == {"fk-Aircraft-3-from-1", "fk-Aircraft-3-from-2"}

        assert session.on_toggle("fk-Aircraft-3-from-2") is False
        assert "fk-Manufacturer-7-from-3" not in session.state
        assert session.state.expanded == {"Flight-1", "Flight-2", "fk-Aircraft-3-from-1"}

        tree = await session.render()
        assert not tree.find("fk-Manufacturer-7-from-3").expanded

    async def test_malformed_key_rejected(self, session, flights):
        await session.load_roots("Flight", flights)
        with pytest.raises(MalformedIdentifier):
            session.on_toggle("no such key")
        assert len(session.state) == 0


class TestSelect:
    async def test_select_toggles(self, session, collector, flights):
        await session.load_roots("Flight", flights)
        assert session.on_select("Flight-2") is True
        assert session.on_select("Flight-2") is False
        assert [e.selected for e in collector.of_type(SelectEvent)] == [True, False]

    async def test_only_roots_selectable(self, session, flights):
        await session.load_roots("Flight", flights)
        with pytest.raises(ValueError):
            session.on_select("fk-Aircraft-3-from-1")
        with pytest.raises(ValueError):
            session.on_select("Flight-99")
        with pytest.raises(ValueError):
            session.on_select("Aircraft-3")


class TestNavigate:
    def test_navigation_request(self, session):
        request = session.on_navigate("Aircraft", 3)
        assert request == NavigationRequest("Aircraft", "3", False)
        assert request.root_key == "Aircraft-3"

    async def test_navigate_and_expand(self, session, flights):
        await session.load_roots("Flight", flights, selected_id=1)
        tree = await session.navigate_and_expand("Aircraft", 3)

        assert session.entity == "Aircraft"
        assert session.state.selected == "Aircraft-3"
        assert [r.key for r in tree.roots] == ["Aircraft-3"]
        manufacturer = tree.find("fk-Manufacturer-7-from-3")
        assert manufacturer is not None and manufacturer.expanded
        assert "fk-Aircraft-3-from-1" not in session.state
