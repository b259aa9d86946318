"""The `schema` command: entities, columns, references and cycles."""

from __future__ import annotations

import sys
from typing import Annotated

import typer

from reltree.cli._config import load_config
from reltree.cli._db import DbOption, open_source, resolve_db, run_async
from reltree.cli._format import print_json, print_lines, print_table
from reltree.exceptions import SchemaNotFound
from reltree.schema import Schema, build_reference_graph, reference_cycles


async def _load_schemas(db: str, entity: str | None) -> list[Schema]:
    async with open_source(db) as (schemas, _records):
        names = [entity] if entity else await schemas.list_entities()
        return [await schemas.get_extended(name) for name in names]


def _schema_dict(schema: Schema) -> dict:
    return {
        "entity": schema.entity,
        "area_color": schema.area_color,
        "label_fields": list(schema.label_fields or ()),
        "columns": [
            {
                "name": c.name,
                "type": c.type,
                "references": c.foreign_key.entity if c.foreign_key else None,
                "hidden": c.hidden,
                "system": c.is_system,
            }
            for c in schema.columns
        ],
        "back_references": [{"entity": r.entity, "column": r.column} for r in schema.back_references],
    }


def _print_entity(schema: Schema) -> None:
    print(f"\n  {schema.entity}\n")
    rows = [[c.name, c.type, c.foreign_key.entity if c.foreign_key else ""] for c in schema.columns]
    print_lines(print_table(["Column", "Type", "References"], rows))
    if schema.back_references:
        print("\n  Referenced by:\n")
        print_lines(print_table(["Entity", "Column"], [[r.entity, r.column] for r in schema.back_references]))


def register_commands(app: typer.Typer) -> None:
    """Register `schema` as a top-level command on the app."""

    @app.command("schema")
    def schema_cmd(
        entity: Annotated[str | None, typer.Argument(help="Show one entity in detail")] = None,
        as_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
        output: Annotated[str | None, typer.Option("--output", help="Write JSON to file")] = None,
        db: DbOption = None,
    ):
        """Show entities, their columns and references, and reference cycles."""
        db = resolve_db(db, load_config().db)
        try:
            schemas = run_async(_load_schemas(db, entity))
        except SchemaNotFound as e:
            print(f"Error: {e.message}", file=sys.stderr)
            raise typer.Exit(1) from e

        cycles = reference_cycles(build_reference_graph(schemas)) if entity is None else []

        if as_json:
            data = {"entities": [_schema_dict(s) for s in schemas]}
            if entity is None:
                data["cycles"] = cycles
            print_json("schema", data, output)
            return

        if entity is not None:
            _print_entity(schemas[0])
            return

        headers = ["Entity", "Columns", "FKs", "Back-refs"]
        rows = [
            [s.entity, str(len(s.columns)), str(len(s.fk_columns)), str(len(s.back_references))] for s in schemas
        ]
        print(f"\n  Entities ({len(schemas)}):\n")
        print_lines(print_table(headers, rows))
        if cycles:
            print(f"\n  Reference cycles ({len(cycles)}):\n")
            for cycle in cycles:
                print("  " + " → ".join([*cycle, cycle[0]]))
