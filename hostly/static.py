"""
Static file serving for hosted sites.

Serves files from a site's directory. Requests that match nothing fall back
to the site's root index.html (one level only, not a router). Paths that
would leave the site root are refused outright, and sites classified as
runnable Node.js projects are not served as files at all.
"""

import logging
from pathlib import Path

from .detector import detect_project_type
from .errors import InvalidSiteName, NotFound
from .paths import validate_site_name

logger = logging.getLogger(__name__)

INDEX_FILE = "index.html"


class StaticSiteServer:
    """Resolves request paths to files under a site's root."""

    def __init__(self, sites_dir: Path):
        self.sites_dir = Path(sites_dir)

    def resolve(self, site_name: str, request_path: str = "") -> Path:
        """Return the file to serve for a request, or raise NotFound."""
        try:
            site_root = self.sites_dir / validate_site_name(site_name)
        except InvalidSiteName:
            raise NotFound("Site not found")
        if not site_root.is_dir():
            raise NotFound("Site not found")

        # Runnable projects are reached through their own port, never as files
        if detect_project_type(site_root).runnable:
            raise NotFound("Site not found")
        root = site_root.resolve()

        parts = [part for part in request_path.replace("\\", "/").split("/") if part]
        if ".." in parts:
            logger.warning(f"Rejected traversal attempt on site {site_name}: {request_path}")
            raise NotFound("File not found")

        # Dotfiles are never served, same as a missing file
        if not any(part.startswith(".") for part in parts):
            target = self._match(root, parts)
            if target:
                return target

        index = root / INDEX_FILE
        if index.is_file():
            return index

        raise NotFound("File not found")

    def _match(self, root: Path, parts: list[str]) -> Path | None:
        try:
            target = root.joinpath(*parts).resolve()
        except (OSError, ValueError):
            return None

        if not target.is_relative_to(root):
            logger.warning(f"Rejected path escaping {root}: {target}")
            return None

        try:
            if target.is_file():
                return target
            if target.is_dir() and (target / INDEX_FILE).is_file():
                return target / INDEX_FILE
        except (OSError, ValueError):
            return None
        return None
