"""Project-level configuration from pyproject.toml.

Reads the [tool.reltree] section to provide CLI defaults.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path

from reltree.tree.config import RenderConfig


@dataclass(frozen=True)
class ReltreeConfig:
    """Configuration from [tool.reltree] in pyproject.toml."""

    db: str | None = None
    preview_limit: int | None = None
    attribute_order: str | None = None
    reference_position: str | None = None
    attribute_layout: str | None = None
    show_cycles: bool | None = None

    def render_config(self, **overrides: object) -> RenderConfig:
        """A RenderConfig from these defaults; ``None`` overrides are ignored."""
        values = {
            "back_ref_preview_limit": self.preview_limit,
            "attribute_order": self.attribute_order,
            "reference_position": self.reference_position,
            "attribute_layout": self.attribute_layout,
            "show_cycles": self.show_cycles,
        }
        values.update(overrides)
        return RenderConfig(**{k: v for k, v in values.items() if v is not None})


def find_pyproject(start: Path | None = None) -> Path | None:
    """Walk up from start directory to find pyproject.toml."""
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / "pyproject.toml"
        if candidate.is_file():
            return candidate
    return None


def load_config(start: Path | None = None) -> ReltreeConfig:
    """Load [tool.reltree] from the nearest pyproject.toml.

    Returns default config if no pyproject.toml or no [tool.reltree] section.
    """
    path = find_pyproject(start)
    if path is None:
        return ReltreeConfig()

    if sys.version_info >= (3, 11):
        import tomllib
    else:
        try:
            import tomli as tomllib
        except ImportError:
            return ReltreeConfig()

    with open(path, "rb") as f:
        data = tomllib.load(f)

    section = data.get("tool", {}).get("reltree", {})
    if not section:
        return ReltreeConfig()

    return ReltreeConfig(
        db=section.get("db"),
        preview_limit=section.get("preview_limit"),
        attribute_order=section.get("attribute_order"),
        reference_position=section.get("reference_position"),
        attribute_layout=section.get("attribute_layout"),
        show_cycles=section.get("show_cycles"),
    )
