"""reltree CLI: browse a relational dataset as a tree.

Entry point for the `reltree` command. Requires ``pip install reltree[cli]``.

Commands:
    show      Render records of an entity as an expandable tree
    schema    Show entities, columns, references and reference cycles
"""

from __future__ import annotations


def _require_typer():
    """Check that typer is available."""
    try:
        import typer  # noqa: F401
    except ImportError:
        import sys

        print("Error: typer is required for the CLI. Install with: pip install reltree[cli]", file=sys.stderr)
        raise SystemExit(1) from None


def create_app():
    """Create the Typer app with all commands."""
    _require_typer()

    import typer

    from reltree.cli.schema_cmd import register_commands as register_schema
    from reltree.cli.show_cmd import register_commands as register_show

    app = typer.Typer(
        name="reltree",
        help="Explore relational data as an expandable tree.",
        no_args_is_help=True,
    )
    register_show(app)
    register_schema(app)

    return app


def main():
    """CLI entry point."""
    app = create_app()
    app()
