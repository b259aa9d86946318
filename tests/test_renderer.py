"""Tests for GraphTreeRenderer."""

import asyncio

import pytest

from reltree.exceptions import MalformedIdentifier
from reltree.expansion import ExpansionState
from reltree.records import InMemoryRecordService, UnpagedRecordService
from reltree.tree.config import RenderConfig
from reltree.tree.renderer import GraphTreeRenderer
from reltree.tree.template import DetailTemplate, TemplateChild
from reltree.tree.view import ViewNodeType

from conftest import RECORDS

T = ViewNodeType


def types(nodes):
    return [n.type for n in nodes]


def by_key(nodes, key):
    return next(n for n in nodes if n.key == key)


async def render_one(renderer, entity, record_id, state, config=None, **kwargs):
    record = await renderer.records.get_by_id(entity, record_id)
    tree = await renderer.render_roots(entity, [record], state, config, **kwargs)
    return tree.roots[0]


class SlowService(InMemoryRecordService):
    """Answers lookups for earlier entities later, to shuffle completion order."""

    DELAYS = {"Aircraft": 0.03, "Airport": 0.02, "Employee": 0.0}

    async def get_by_id(self, entity, record_id):
        await asyncio.sleep(self.DELAYS.get(entity, 0.0))
        return await super().get_by_id(entity, record_id)


class BrokenFlightsService(InMemoryRecordService):
    async def get_back_reference_page(self, entity, record_id, ref, **kwargs):
        if ref.entity == "Flight":
            raise TimeoutError("flights unavailable")
        return await super().get_back_reference_page(entity, record_id, ref, **kwargs)


class TestRootSet:
    async def test_collapsed_roots(self, renderer, state, flights):
        tree = await renderer.render_roots("Flight", flights, state)

        assert [r.key for r in tree.roots] == ["Flight-1", "Flight-2", "Flight-3"]
        assert [r.label for r in tree.roots] == ["LH100", "LH101", "LH200"]
        assert all(r.type == T.ROOT and r.expandable and not r.expanded for r in tree.roots)
        assert all(not r.children for r in tree.roots)

    async def test_expanded_root_default_layout(self, renderer, state):
        state.expand("Flight-1")
        root = await render_one(renderer, "Flight", 1, state)

        assert types(root.children) == [T.ATTRIBUTE] * 3 + [T.FK] * 4
        assert [(n.label, n.value) for n in root.children[:3]] == [
            ("id", "1"),
            ("flight number", "LH100"),
            ("departure", "08:15"),
        ]
        fks = root.children[3:]
        assert [n.key for n in fks] == [
            "fk-Aircraft-3-from-1",
            "fk-Airport-1-from-1",
            "fk-Airport-2-from-1",
            "fk-Employee-11-from-1",
        ]
        assert [n.label for n in fks] == ["D-AIUA", "FRA · Frankfurt", "MUC · Munich", "Anna Weber"]
        assert [n.name for n in fks] == ["aircraft", "origin", "destination", "captain"]
        assert fks[0].area_color == "#fff3e0"
        assert all(n.expandable and not n.expanded for n in fks)

    async def test_selected_root_flagged(self, renderer, state, flights):
        state.select("Flight-2")
        tree = await renderer.render_roots("Flight", flights, state)
        assert [r.selected for r in tree.roots] == [False, True, False]

    async def test_generation_and_config_recorded(self, renderer, state, flights):
        config = RenderConfig(attribute_layout="row")
        tree = await renderer.render_roots("Flight", flights, state, config, generation=4)
        assert tree.generation == 4
        assert tree.config is config


class TestForeignKeys:
    async def test_null_fk_skipped_by_default(self, renderer, state):
        state.expand("Flight-2")
        root = await render_one(renderer, "Flight", 2, state)
        assert "captain" not in [n.name for n in root.children]

    async def test_null_fk_marker(self, renderer, state):
        state.expand("Flight-2")
        root = await render_one(renderer, "Flight", 2, state, RenderConfig(show_null_fks=True))
        null = [n for n in root.children if n.type == T.NULL_FK]
        assert len(null) == 1
        assert null[0].name == "captain"

    async def test_preloaded_label_used(self, provider, state):
        records = {**RECORDS, "Flight": [{**RECORDS["Flight"][0], "aircraft_label": "Preloaded"}]}
        renderer = GraphTreeRenderer(provider, InMemoryRecordService(records, provider))
        state.expand("Flight-1")
        root = await render_one(renderer, "Flight", 1, state)
        assert by_key(root.children, "fk-Aircraft-3-from-1").label == "Preloaded"

    async def test_expanded_fk_recurses(self, renderer, state):
        state.expand("Flight-1")
        state.expand("fk-Aircraft-3-from-1")
        root = await render_one(renderer, "Flight", 1, state)

        aircraft = by_key(root.children, "fk-Aircraft-3-from-1")
        assert aircraft.expanded
        assert types(aircraft.children) == [T.ATTRIBUTE] * 3 + [T.FK, T.BACKREF_GROUP]
        # System column _version stays hidden.
        assert "_version" not in [n.name for n in aircraft.children]
        group = aircraft.children[-1]
        assert group.key == "backref-Flight-to-Aircraft-3"
        assert group.label == "Flight"
        assert group.total_count == 2

    async def test_path_scoped_expansion(self, renderer, state, flights):
        state.expand("Flight-1")
        state.expand("Flight-2")
        state.expand("fk-Aircraft-3-from-1")
        tree = await renderer.render_roots("Flight", flights[:2], state)

        assert by_key(tree.roots[0].children, "fk-Aircraft-3-from-1").expanded
        assert not by_key(tree.roots[1].children, "fk-Aircraft-3-from-2").expanded

    async def test_missing_target(self, provider, state):
        records = {**RECORDS, "Flight": [{**RECORDS["Flight"][0], "aircraft_id": 99}]}
        renderer = GraphTreeRenderer(provider, InMemoryRecordService(records, provider))
        state.expand("Flight-1")
        state.expand("fk-Aircraft-99-from-1")
        root = await render_one(renderer, "Flight", 1, state)

        aircraft = by_key(root.children, "fk-Aircraft-99-from-1")
        assert aircraft.label == "#99"
        assert types(aircraft.children) == [T.MISSING]
        # Siblings still render.
        assert by_key(root.children, "fk-Airport-1-from-1").label == "FRA · Frankfurt"


class TestCycles:
    async def test_reencountered_record_marked(self, renderer, state):
        for key in ("Flight-1", "fk-Aircraft-3-from-1", "fk-Manufacturer-7-from-3", "backref-Aircraft-to-Manufacturer-7"):
            state.expand(key)
        root = await render_one(renderer, "Flight", 1, state)

        aircraft = by_key(root.children, "fk-Aircraft-3-from-1")
        assert aircraft.type == T.FK
        assert aircraft.expandable and aircraft.expanded

        manufacturer = by_key(aircraft.children, "fk-Manufacturer-7-from-3")
        group = by_key(manufacturer.children, "backref-Aircraft-to-Manufacturer-7")
        assert group.label == "Aircraft"
        rows = group.children
        assert types(rows) == [T.CYCLE, T.BACKREF_ROW]
        assert rows[0].key == "backref-row-Aircraft-3-in-Manufacturer-7"
        assert rows[0].message == "reference cycle"
        assert not rows[0].expandable
        assert rows[1].label == "D-AIUB"
        assert rows[1].expandable

    async def test_hidden_cycles_omitted(self, renderer, state):
        for key in ("Flight-1", "fk-Aircraft-3-from-1", "fk-Manufacturer-7-from-3", "backref-Aircraft-to-Manufacturer-7"):
            state.expand(key)
        root = await render_one(renderer, "Flight", 1, state, RenderConfig(show_cycles=False))

        manufacturer = by_key(by_key(root.children, "fk-Aircraft-3-from-1").children, "fk-Manufacturer-7-from-3")
        rows = by_key(manufacturer.children, "backref-Aircraft-to-Manufacturer-7").children
        assert [r.record_id for r in rows] == ["4"]

    async def test_root_seeds_path(self, renderer, state):
        for key in ("Flight-1", "fk-Aircraft-3-from-1", "backref-Flight-to-Aircraft-3"):
            state.expand(key)
        root = await render_one(renderer, "Flight", 1, state)

        group = by_key(by_key(root.children, "fk-Aircraft-3-from-1").children, "backref-Flight-to-Aircraft-3")
        assert [(r.type, r.record_id) for r in group.children] == [(T.CYCLE, "1"), (T.BACKREF_ROW, "2")]

    async def test_cycle_nodes_never_expand(self, renderer, state):
        keys = (
            "Flight-1",
            "fk-Aircraft-3-from-1",
            "backref-Flight-to-Aircraft-3",
            "backref-row-Flight-1-in-Aircraft-3",
        )
        for key in keys:
            state.expand(key)
        root = await render_one(renderer, "Flight", 1, state)

        group = by_key(by_key(root.children, "fk-Aircraft-3-from-1").children, "backref-Flight-to-Aircraft-3")
        cycle = by_key(group.children, "backref-row-Flight-1-in-Aircraft-3")
        assert cycle.type == T.CYCLE
        assert cycle.children == []

    async def test_expanded_row_renders_references(self, renderer, state):
        keys = (
            "Flight-1",
            "fk-Aircraft-3-from-1",
            "fk-Manufacturer-7-from-3",
            "backref-Aircraft-to-Manufacturer-7",
            "backref-row-Aircraft-4-in-Manufacturer-7",
        )
        for key in keys:
            state.expand(key)
        root = await render_one(renderer, "Flight", 1, state)

        manufacturer = by_key(by_key(root.children, "fk-Aircraft-3-from-1").children, "fk-Manufacturer-7-from-3")
        row = by_key(by_key(manufacturer.children, "backref-Aircraft-to-Manufacturer-7").children,
                     "backref-row-Aircraft-4-in-Manufacturer-7")
        # Manufacturer#7 is already on the path; Aircraft#4 has no flights.
        assert types(row.children) == [T.CYCLE]
        assert [c.name for c in row.cells] == ["id", "registration", "model", "manufacturer_label"]
        assert row.cells[-1].value == "#7"

    async def test_terminates_on_deep_expansion(self, renderer, state):
        # Expand every key that could appear, several times over.
        for _ in range(4):
            tree = await renderer.render_roots("Flight", await renderer.records.get_all("Flight"), state)
            for key in tree.keys():
                state.expand(key)
        for root in tree.roots:
            for node, _depth in root.walk():
                assert node.type != T.ERROR


class TestBackReferences:
    async def test_zero_count_groups_omitted(self, renderer, state):
        # Aircraft#4 has no flights.
        state.expand("Aircraft-4")
        root = await render_one(renderer, "Aircraft", 4, state)
        assert [n for n in root.children if n.type == T.BACKREF_GROUP] == []
        assert types(root.children) == [T.ATTRIBUTE] * 3 + [T.FK]

    async def test_role_labels(self, renderer, state):
        state.expand("Airport-1")
        root = await render_one(renderer, "Airport", 1, state)
        labels = [n.label for n in root.children if n.type == T.BACKREF_GROUP]
        assert "is origin of Flight" in labels
        assert "is destination of Flight" in labels
        assert "is home_airport of Employee" in labels

    @pytest.mark.parametrize("paged", [True, False])
    async def test_truncated_group(self, provider, state, paged):
        service = InMemoryRecordService(RECORDS, provider)
        renderer = GraphTreeRenderer(provider, service if paged else UnpagedRecordService(service))
        state.expand("Aircraft-3")
        state.expand("backref-Flight-to-Aircraft-3")
        root = await render_one(renderer, "Aircraft", 3, state, RenderConfig(back_ref_preview_limit=1))

        group = by_key(root.children, "backref-Flight-to-Aircraft-3")
        assert group.is_truncated
        assert (group.shown_count, group.total_count) == (1, 2)
        assert types(group.children) == [T.BACKREF_ROW, T.MORE]
        assert group.children[-1].label == "1 more"

    async def test_group_error_is_local(self, provider, state):
        renderer = GraphTreeRenderer(provider, BrokenFlightsService(RECORDS, provider))
        state.expand("Airport-1")
        root = await render_one(renderer, "Airport", 1, state)

        errors = [n for n in root.children if n.type == T.ERROR]
        assert len(errors) == 2
        assert "flights unavailable" in errors[0].message
        groups = [n for n in root.children if n.type == T.BACKREF_GROUP]
        assert [g.entity for g in groups] == ["Employee"]


class TestLayout:
    async def test_start_position(self, renderer, state):
        state.expand("Aircraft-3")
        root = await render_one(renderer, "Aircraft", 3, state, RenderConfig(reference_position="start"))
        assert types(root.children) == [T.FK, T.BACKREF_GROUP] + [T.ATTRIBUTE] * 3

    async def test_start_position_row_layout(self, renderer, state):
        state.expand("Aircraft-3")
        config = RenderConfig(reference_position="start", attribute_layout="row")
        root = await render_one(renderer, "Aircraft", 3, state, config)
        assert types(root.children) == [T.ATTRIBUTE_ROW, T.FK, T.BACKREF_GROUP]

    async def test_row_layout_cells(self, renderer, state):
        state.expand("Aircraft-3")
        root = await render_one(renderer, "Aircraft", 3, state, RenderConfig(attribute_layout="row"))
        row = root.children[0]
        assert row.type == T.ATTRIBUTE_ROW
        assert [(c.name, c.value) for c in row.cells] == [("id", "3"), ("registration", "D-AIUA"), ("model", "A320")]

    async def test_inline_follows_column_order(self, renderer, state):
        state.expand("Flight-1")
        config = RenderConfig(reference_position="inline", attribute_order="alpha")
        root = await render_one(renderer, "Flight", 1, state, config)
        assert [n.name for n in root.children] == [
            "aircraft", "captain", "departure", "destination", "flight_number", "id", "origin",
        ]

    async def test_alpha_order(self, renderer, state):
        state.expand("Flight-1")
        root = await render_one(renderer, "Flight", 1, state, RenderConfig(attribute_order="alpha"))
        assert [n.name for n in root.children if n.type == T.ATTRIBUTE] == ["departure", "flight_number", "id"]

    async def test_system_columns_on_request(self, renderer, state):
        state.expand("Aircraft-3")
        root = await render_one(renderer, "Aircraft", 3, state, RenderConfig(show_system_columns=True))
        assert "_version" in [n.name for n in root.children]


class TestDeterminism:
    async def test_order_independent_of_completion(self, provider, state):
        renderer = GraphTreeRenderer(provider, SlowService(RECORDS, provider))
        state.expand("Flight-1")
        root = await render_one(renderer, "Flight", 1, state)
        assert [n.name for n in root.children if n.type == T.FK] == ["aircraft", "origin", "destination", "captain"]

    async def test_rerender_is_equal(self, renderer, state, flights):
        for key in ("Flight-1", "fk-Aircraft-3-from-1", "backref-Flight-to-Aircraft-3"):
            state.expand(key)
        first = await renderer.render_roots("Flight", flights, state)
        second = await renderer.render_roots("Flight", flights, state)
        assert first.to_dict() == second.to_dict()

    async def test_stale_pass_stops_descending(self, renderer, state):
        state.expand("Flight-1")
        root = await render_one(renderer, "Flight", 1, state, is_stale=lambda: True)
        assert root.expanded
        assert root.children == []


class TestMalformedIdentities:
    async def test_strict_raises(self, renderer, state):
        with pytest.raises(MalformedIdentifier):
            await renderer.render_roots("Flight", [{"id": "bad id", "flight_number": "X"}], state)

    async def test_lenient_keeps_node_without_key(self, provider, service, state):
        renderer = GraphTreeRenderer(provider, service, strict=False)
        tree = await renderer.render_roots("Flight", [{"id": "bad id", "flight_number": "X"}], state)
        assert tree.roots[0].key is None
        assert not tree.roots[0].expandable


class TestTemplate:
    TEMPLATE = DetailTemplate(
        attributes=("registration",),
        children=(
            TemplateChild("fk", field="manufacturer", attributes=("name", "country")),
            TemplateChild("backref", entity="Flight", attributes=("flight_number",), order_by="departure",
                          descending=True, limit=1),
        ),
    )

    async def test_template_content(self, renderer, state):
        state.expand("Aircraft-3")
        state.expand("backref-Flight-to-Aircraft-3")
        root = await render_one(renderer, "Aircraft", 3, state, template=self.TEMPLATE)

        assert types(root.children) == [T.ATTRIBUTE_ROW, T.FK, T.BACKREF_GROUP]
        assert [c.value for c in root.children[0].cells] == ["D-AIUA"]

        manufacturer = root.children[1]
        assert manufacturer.expanded
        assert [(c.name, c.value) for c in manufacturer.children[0].cells] == [("name", "Airbus"), ("country", "France")]

        group = root.children[2]
        assert (group.shown_count, group.total_count) == (1, 2)
        row, more = group.children
        assert row.label == "LH101"
        assert [c.value for c in row.cells] == ["LH101"]
        assert not row.expandable
        assert more.type == T.MORE
