"""Notification template registry - Load message templates from files.

Templates are Markdown files next to this module. The first heading line
is the notification title, the rest is the message body. Variables are
substituted using {variable_name} syntax.

Usage:
    from mentra.notifications.templates import render_template

    title, message = render_template(
        "achievement_earned",
        title="First Reflection",
        description="Wrote your first journal entry",
        points=10,
    )
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "templates"


def _get_template_uncached(key: str) -> str:
    """Load raw template from file without caching.

    Raises:
        FileNotFoundError: If template file doesn't exist
    """
    file_path = TEMPLATES_DIR / f"{key}.md"
    if not file_path.exists():
        raise FileNotFoundError(f"Template not found: {key} (looked at {file_path})")

    return file_path.read_text(encoding="utf-8")


@lru_cache(maxsize=32)
def _get_cached_template(key: str) -> str:
    return _get_template_uncached(key)


def get_template(key: str, use_cache: bool = True, **variables: object) -> str:
    """Load template from file and substitute variables."""
    content = _get_cached_template(key) if use_cache else _get_template_uncached(key)

    for var_name, var_value in variables.items():
        content = content.replace(f"{{{var_name}}}", str(var_value))

    return content


def render_template(key: str, **variables: object) -> tuple[str, str]:
    """Render a template into (title, message)."""
    content = get_template(key, **variables).strip()
    first_line, _, body = content.partition("\n")
    if first_line.startswith("#"):
        return first_line.lstrip("#").strip(), body.strip()
    return key.replace("_", " ").capitalize(), content


def list_templates() -> list[str]:
    """Sorted template keys."""
    if not TEMPLATES_DIR.exists():
        logger.warning("notifications.templates_dir_not_found", path=str(TEMPLATES_DIR))
        return []
    return sorted(path.stem for path in TEMPLATES_DIR.glob("*.md"))


def clear_cache() -> None:
    """Clear the template cache."""
    _get_cached_template.cache_clear()
