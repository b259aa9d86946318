"""Data source helpers for CLI commands.

Opens a SQLite database (via aiosqlite) or a JSON dataset from a DB path
and provides async helpers.
"""

from __future__ import annotations

import asyncio
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, Any, AsyncIterator

import typer

DbOption = Annotated[str | None, typer.Option("--db", help="SQLite database or JSON dataset (default: [tool.reltree] db)")]


def _require_aiosqlite() -> None:
    """Check that aiosqlite is available."""
    try:
        import aiosqlite  # noqa: F401
    except ImportError:
        print("Error: aiosqlite is required for SQLite databases. Install with: pip install reltree[sqlite]", file=sys.stderr)
        raise SystemExit(1) from None


def run_async(coro: Any) -> Any:
    """Run an async coroutine from sync CLI context."""
    return asyncio.run(coro)


def resolve_db(db: str | None, default: str | None) -> str:
    """The DB path to use, exiting with a message if there is none."""
    path = db or default
    if not path:
        print("Error: no database given. Pass --db or set db in [tool.reltree].", file=sys.stderr)
        raise SystemExit(1)
    if not Path(path).exists():
        print(f"Error: database '{path}' not found.", file=sys.stderr)
        raise SystemExit(1)
    return path


@asynccontextmanager
async def open_source(db: str) -> AsyncIterator[tuple[Any, Any]]:
    """Yield ``(schema_provider, record_service)`` for a DB path.

    ``*.json`` files are loaded as in-memory datasets, anything else is
    opened as SQLite.
    """
    if db.endswith(".json"):
        from reltree.records import load_json_dataset

        yield load_json_dataset(db)
        return

    _require_aiosqlite()
    from reltree.sqlite import SqliteDataSource

    source = SqliteDataSource(db)
    await source.initialize()
    try:
        yield source, source
    finally:
        await source.close()
