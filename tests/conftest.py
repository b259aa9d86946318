"""Shared fixtures: a small aviation dataset.

Flight#1 -> Aircraft#3 -> Manufacturer#7, and Manufacturer#7 is referenced
back by Aircraft#3 and Aircraft#4, which gives the classic reference cycle.
"""

from __future__ import annotations

import json

import pytest

from reltree.expansion import ExpansionState
from reltree.records import InMemoryRecordService
from reltree.schema import Schema, StaticSchemaProvider
from reltree.tree.renderer import GraphTreeRenderer

SCHEMAS = {
    "Manufacturer": {
        "area_color": "#e3f2fd",
        "columns": [
            {"name": "id", "type": "INTEGER"},
            {"name": "name"},
            {"name": "country"},
        ],
    },
    "Aircraft": {
        "area_color": "#fff3e0",
        "columns": [
            {"name": "id", "type": "INTEGER"},
            {"name": "registration", "label": True},
            {"name": "model"},
            {"name": "manufacturer_id", "type": "INTEGER", "references": "Manufacturer"},
            {"name": "_version", "type": "INTEGER"},
        ],
    },
    "Airport": {
        "columns": [
            {"name": "id", "type": "INTEGER"},
            {"name": "code", "label": True},
            {"name": "name", "label2": True},
        ],
    },
    "Employee": {
        "columns": [
            {"name": "id", "type": "INTEGER"},
            {"name": "name"},
            {"name": "role", "enum_values": {"P": "pilot", "C": "cabin crew"}},
            {"name": "home_airport_id", "type": "INTEGER", "references": "Airport"},
        ],
    },
    "Flight": {
        "columns": [
            {"name": "id", "type": "INTEGER"},
            {"name": "flight_number", "label": True},
            {"name": "departure"},
            {"name": "aircraft_id", "type": "INTEGER", "references": "Aircraft"},
            {"name": "origin_id", "type": "INTEGER", "references": "Airport"},
            {"name": "destination_id", "type": "INTEGER", "references": "Airport"},
            {"name": "captain_id", "type": "INTEGER", "references": "Employee"},
        ],
    },
}

RECORDS = {
    "Manufacturer": [
        {"id": 7, "name": "Airbus", "country": "France"},
        {"id": 8, "name": "Boeing", "country": "USA"},
    ],
    "Aircraft": [
        {"id": 3, "registration": "D-AIUA", "model": "A320", "manufacturer_id": 7, "_version": 2},
        {"id": 4, "registration": "D-AIUB", "model": "A321", "manufacturer_id": 7, "_version": 1},
        {"id": 5, "registration": "N737BA", "model": "737-800", "manufacturer_id": 8, "_version": 1},
    ],
    "Airport": [
        {"id": 1, "code": "FRA", "name": "Frankfurt"},
        {"id": 2, "code": "MUC", "name": "Munich"},
    ],
    "Employee": [
        {"id": 11, "name": "Anna Weber", "role": "P", "home_airport_id": 1},
        {"id": 12, "name": "Ben Ortiz", "role": "P", "home_airport_id": 2},
    ],
    "Flight": [
        {"id": 1, "flight_number": "LH100", "departure": "08:15", "aircraft_id": 3, "origin_id": 1,
         "destination_id": 2, "captain_id": 11},
        {"id": 2, "flight_number": "LH101", "departure": "11:40", "aircraft_id": 3, "origin_id": 2,
         "destination_id": 1, "captain_id": None},
        {"id": 3, "flight_number": "LH200", "departure": "14:05", "aircraft_id": 5, "origin_id": 1,
         "destination_id": 2, "captain_id": 12},
    ],
}


@pytest.fixture
def schemas() -> dict[str, Schema]:
    return {name: Schema.from_dict(name, definition) for name, definition in SCHEMAS.items()}


@pytest.fixture
def provider(schemas) -> StaticSchemaProvider:
    return StaticSchemaProvider(schemas)


@pytest.fixture
def service(provider) -> InMemoryRecordService:
    return InMemoryRecordService(RECORDS, provider)


@pytest.fixture
def state() -> ExpansionState:
    return ExpansionState()


@pytest.fixture
def renderer(provider, service) -> GraphTreeRenderer:
    return GraphTreeRenderer(provider, service)


@pytest.fixture
def flights():
    return [dict(r) for r in RECORDS["Flight"]]


@pytest.fixture
def dataset_path(tmp_path):
    """The aviation dataset as a JSON file."""
    path = tmp_path / "aviation.json"
    path.write_text(json.dumps({"schemas": SCHEMAS, "records": RECORDS}))
    return str(path)


@pytest.fixture
def sqlite_path(tmp_path):
    """The aviation dataset as a SQLite database with declared foreign keys."""
    import sqlite3

    path = tmp_path / "aviation.db"
    conn = sqlite3.connect(path)
    try:
        conn.executescript(
            """
            CREATE TABLE Manufacturer (id INTEGER PRIMARY KEY, name TEXT, country TEXT);
            CREATE TABLE Aircraft (
                id INTEGER PRIMARY KEY, registration TEXT, model TEXT,
                manufacturer_id INTEGER REFERENCES Manufacturer(id), _version INTEGER
            );
            CREATE TABLE Airport (id INTEGER PRIMARY KEY, code TEXT, name TEXT);
            CREATE TABLE Employee (
                id INTEGER PRIMARY KEY, name TEXT, role TEXT,
                home_airport_id INTEGER REFERENCES Airport(id)
            );
            CREATE TABLE Flight (
                id INTEGER PRIMARY KEY, flight_number TEXT, departure TEXT,
                aircraft_id INTEGER REFERENCES Aircraft(id),
                origin_id INTEGER REFERENCES Airport(id),
                destination_id INTEGER REFERENCES Airport(id),
                captain_id INTEGER REFERENCES Employee(id)
            );
            """
        )
        for table, rows in RECORDS.items():
            columns = list(rows[0])
            placeholders = ", ".join("?" for _ in columns)
            conn.executemany(
                f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
                [tuple(r[c] for c in columns) for r in rows],
            )
        conn.commit()
    finally:
        conn.close()
    return str(path)
