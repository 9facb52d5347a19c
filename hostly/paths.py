"""Site name checks shared by every component that maps names to directories."""

from .errors import InvalidSiteName


def validate_site_name(name: str) -> str:
    """Check that a site name is a single, valid path segment."""
    if not name or name in (".", ".."):
        raise InvalidSiteName(f"Invalid site name: '{name}'")
    if "/" in name or "\\" in name or "\x00" in name:
        raise InvalidSiteName(f"Invalid site name: '{name}'")
    return name
