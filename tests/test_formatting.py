"""Tests for labels and value formatting."""

from reltree.formatting import (
    DefaultValueFormatter,
    backref_label,
    fk_display_name,
    full_label,
    humanize,
    record_label,
    truncate,
)
from reltree.schema import BackReferenceDef, Column, ForeignKey, Schema


class TestValueFormatter:
    def setup_method(self):
        self.fmt = DefaultValueFormatter(max_chars=10)
        self.schema = Schema("A")

    def test_none_is_empty(self):
        assert self.fmt.format(None, Column("x"), self.schema) == ""

    def test_enum_values(self):
        col = Column("role", enum_values={"P": "pilot"})
        assert self.fmt.format("P", col, self.schema) == "pilot"
        assert self.fmt.format("X", col, self.schema) == "X"

    def test_bool_and_float(self):
        assert self.fmt.format(True, Column("x"), self.schema) == "yes"
        assert self.fmt.format(2.50, Column("x"), self.schema) == "2.5"

    def test_structured_values_as_json(self):
        assert self.fmt.format([1, 2], Column("x"), self.schema) == "[1,2]"

    def test_truncation(self):
        assert self.fmt.format("abcdefghijklmnop", Column("x"), self.schema) == "abcdefghi…"
        assert truncate("short", None) == "short"


class TestRecordLabel:
    def test_label_fields(self, schemas):
        label = record_label({"id": 1, "code": "FRA", "name": "Frankfurt"}, schemas["Airport"])
        assert label.title == "FRA"
        assert label.subtitle == "Frankfurt"
        assert full_label({"id": 1, "code": "FRA", "name": "Frankfurt"}, schemas["Airport"]) == "FRA · Frankfurt"

    def test_candidate_columns(self, schemas):
        assert full_label({"id": 7, "name": "Airbus"}, schemas["Manufacturer"]) == "Airbus"

    def test_id_fallback(self, schemas):
        assert full_label({"id": 7}, schemas["Manufacturer"]) == "#7"

    def test_computed_label(self):
        schema = Schema("A", has_computed_label=True)
        label = record_label({"id": 1, "_label": "Computed", "_label2": "sub"}, schema)
        assert (label.title, label.subtitle) == ("Computed", "sub")


class TestReferenceLabels:
    def test_backref_implied_by_parent(self):
        ref = BackReferenceDef("EngineType", "aircraft_type_id")
        assert backref_label(ref, "AircraftType") == "EngineType"

    def test_backref_role(self):
        ref = BackReferenceDef("Flight", "origin_id")
        assert backref_label(ref, "Airport") == "is origin of Flight"

    def test_fk_display_name(self):
        assert fk_display_name(Column("captain_id", foreign_key=ForeignKey("Employee"))) == "captain"

    def test_humanize(self):
        assert humanize("flight_number") == "flight number"
