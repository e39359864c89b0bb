"""Helper utilities for rendering descriptor and prompt templates from files."""

import logging
from pathlib import Path


# Path to template directory
TEMPLATE_DIR = Path(__file__).parent / "templates"


def load_template(filename: str) -> str:
    """
    Load a template file shipped with the package.

    Args:
        filename: Name of the template file (e.g., "reminder.timer")

    Returns:
        The template text

    Raises:
        FileNotFoundError: If the template file doesn't exist
    """
    filepath = TEMPLATE_DIR / filename
    if not filepath.exists():
        raise FileNotFoundError(f"Template file not found: {filepath}")

    with open(filepath, "r", encoding="utf-8") as f:
        return f.read()


def format_template(template: str, **params: str) -> str:
    """
    Format a template with parameters.

    Args:
        template: Template text with {param} placeholders
        **params: Parameters to substitute in the template

    Example:
        >>> text = format_template(template, id="reminder-1", on_calendar="2025-12-01 09:00:00 UTC")
    """
    return template.format(**params)


def render_template(filename: str, **params: str) -> str:
    """
    Load and format a template file.

    Raises:
        ValueError: If the template references a parameter that was not given
    """
    template = load_template(filename)
    try:
        return format_template(template, **params)
    except KeyError as e:
        logging.error(f"Template {filename} needs parameter {e}")
        raise ValueError(f"Missing parameter for template {filename}: {e}")
