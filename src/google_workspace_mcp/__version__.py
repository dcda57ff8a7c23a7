"""Version information for google-workspace-mcp."""

from pathlib import Path


def _get_version() -> str:
    """Get version from the project VERSION file or fallback to hardcoded."""
    root_version = Path(__file__).parent.parent.parent / "VERSION"
    if root_version.exists():
        return root_version.read_text().strip()

    return "1.0.0"


__version__ = _get_version()
