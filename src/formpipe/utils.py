"""Small filesystem helpers."""

from pathlib import Path


def get_templates_dir() -> Path:
    """Get the directory holding the bundled configuration templates.

    Raises:
        RuntimeError: If the templates directory is missing from the install
    """
    templates_dir = Path(__file__).parent / "templates"
    if not templates_dir.is_dir():
        raise RuntimeError(f"Templates directory not found: {templates_dir}")
    return templates_dir


def parse_header_args(values: list[str] | None) -> dict[str, str]:
    """Parse ``Name: value`` strings into a header mapping.

    Entries without a colon are ignored.
    """
    headers: dict[str, str] = {}
    for item in values or []:
        name, sep, value = item.partition(":")
        if sep and name.strip():
            headers[name.strip()] = value.strip()
    return headers
