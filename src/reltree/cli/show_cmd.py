"""The `show` command: render records of an entity as a tree."""

from __future__ import annotations

import sys
from typing import Annotated

import typer

from reltree.cli._config import load_config
from reltree.cli._db import DbOption, open_source, resolve_db, run_async
from reltree.cli._format import print_json
from reltree.exceptions import ReltreeError
from reltree.identity import root_node
from reltree.session import TreeSession


async def _show(
    db: str,
    entity: str,
    ids: list[str],
    expand: list[str],
    levels: int,
    config,
):
    """Load, expand and render; returns the ViewTree."""
    async with open_source(db) as (schemas, records):
        session = TreeSession(schemas, records, config, strict=False)
        await session.schemas.get_extended(entity)
        all_records = await records.get_all(entity)

        if ids:
            by_id = {str(r.get("id")): r for r in all_records}
            missing = [i for i in ids if i not in by_id]
            if missing:
                raise typer.BadParameter(f"no {entity} record with id {', '.join(missing)}", param_hint="IDS")
            roots = [by_id[i] for i in ids]
        else:
            roots = all_records

        if len(ids) == 1:
            await session.load_roots(entity, roots, selected_id=ids[0], expand_levels=levels)
        else:
            await session.load_roots(entity, roots)
            for record in roots if ids else ():
                key = root_node(entity, record.get("id")).key
                session.state.expand(key)
                await session.expand_fk_levels(entity, record, levels, parent_key=key)

        for key in expand:
            if not session.state.is_expanded(key):
                session.on_toggle(key)

        return await session.render()


def register_commands(app: typer.Typer) -> None:
    """Register `show` as a top-level command on the app."""

    @app.command("show")
    def show_cmd(
        entity: Annotated[str, typer.Argument(help="Entity (table) of the root records")],
        ids: Annotated[list[str] | None, typer.Argument(help="Root record ids (default: all)")] = None,
        expand: Annotated[list[str] | None, typer.Option("--expand", "-e", help="Node key to expand (repeatable)")] = None,
        levels: Annotated[int, typer.Option("--levels", help="FK levels to open below selected roots")] = 1,
        order: Annotated[str | None, typer.Option("--order", help="'schema' or 'alpha'")] = None,
        position: Annotated[str | None, typer.Option("--position", help="'start', 'end' or 'inline'")] = None,
        layout: Annotated[str | None, typer.Option("--layout", help="'row' or 'list'")] = None,
        hide_cycles: Annotated[bool, typer.Option("--hide-cycles", help="Omit cycle markers")] = False,
        show_system: Annotated[bool, typer.Option("--show-system", help="Show system columns")] = False,
        limit: Annotated[int | None, typer.Option("--limit", help="Back-reference preview limit")] = None,
        as_json: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
        output: Annotated[str | None, typer.Option("--output", help="Write JSON to file")] = None,
        db: DbOption = None,
    ):
        """Render records of ENTITY as an expandable tree."""
        project = load_config()
        db = resolve_db(db, project.db)
        try:
            config = project.render_config(
                attribute_order=order,
                reference_position=position,
                attribute_layout=layout,
                show_cycles=False if hide_cycles else None,
                show_system_columns=show_system or None,
                back_ref_preview_limit=limit,
            )
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            raise typer.Exit(1) from e

        try:
            tree = run_async(_show(db, entity, ids or [], expand or [], levels, config))
        except ReltreeError as e:
            print(f"Error: {e}", file=sys.stderr)
            raise typer.Exit(1) from e

        if as_json:
            print_json("show", tree.to_dict(), output)
            return

        if not tree.roots:
            print(f"\n  No {entity} records.")
            return

        from reltree.console import print_tree

        print_tree(tree)
