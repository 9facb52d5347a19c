"""
Site registry.

Enumerates site directories and merges on-disk metadata, project type
detection and live process state into the listings the dashboard consumes.
Also owns the operations that create and remove site directories: uploads,
git clones and deletion.
"""

import logging
import shlex
import shutil
import subprocess
from datetime import datetime
from pathlib import Path

from .detector import detect_project_type
from .errors import (
    DisallowedFileType,
    InvalidSiteName,
    MissingField,
    NameCollision,
    NotFound,
    NotRunning,
    SourceFetchFailed,
)
from .logstore import LogStore
from .monitor import get_directory_size
from .paths import validate_site_name
from .process import ProcessSupervisor
from .static import INDEX_FILE

logger = logging.getLogger(__name__)

DEFAULT_SITE_NAME = "unnamed-site"

ALLOWED_EXTENSIONS = frozenset({
    "html", "css", "js", "json",
    "png", "jpg", "jpeg", "gif", "svg", "ico",
    "woff", "woff2", "ttf", "eot",
    "pdf", "txt", "md",
})


def is_allowed_file(filename: str) -> bool:
    suffix = Path(filename).suffix.lower().lstrip(".")
    return suffix in ALLOWED_EXTENSIONS


def _timestamp(value: float) -> str:
    return datetime.fromtimestamp(value).isoformat()


def created_at(stats) -> str:
    """Creation time where the platform records it.

    Linux stat() exposes no birth time, so there the inode change time
    stands in; it moves when the directory's metadata changes.
    """
    birthtime = getattr(stats, "st_birthtime", None)
    if birthtime is None:
        birthtime = min(stats.st_ctime, stats.st_mtime)
    return _timestamp(birthtime)


class SiteRegistry:
    """Lists, creates and removes hosted sites."""

    def __init__(
        self,
        sites_dir: Path,
        supervisor: ProcessSupervisor,
        log_store: LogStore,
        git_command: str = "git",
        clone_timeout: int = 300,
    ):
        self.sites_dir = Path(sites_dir)
        self.supervisor = supervisor
        self.log_store = log_store
        self.git_command = git_command
        self.clone_timeout = clone_timeout

    def site_path(self, site_name: str) -> Path:
        return self.sites_dir / validate_site_name(site_name)

    def exists(self, site_name: str) -> bool:
        try:
            return self.site_path(site_name).is_dir()
        except InvalidSiteName:
            return False

    def describe(self, site_path: Path) -> dict:
        """Build the listing entry for one site directory."""
        stats = site_path.stat()
        detection = detect_project_type(site_path)
        status = self.supervisor.status(site_path.name)

        return {
            "name": site_path.name,
            "path": str(site_path),
            "type": detection.type.value,
            "hasManifest": detection.has_manifest,
            "hasIndex": (site_path / INDEX_FILE).is_file(),
            "status": "running" if status["running"] else "stopped",
            "state": status["state"],
            "port": status["port"],
            "pid": status["pid"],
            "size": get_directory_size(site_path),
            "createdAt": created_at(stats),
            "updatedAt": _timestamp(stats.st_mtime),
        }

    def list_sites(self) -> list[dict]:
        """List all sites with their type, status and size."""
        sites = []
        for site_path in sorted(self.sites_dir.iterdir()):
            if not site_path.is_dir():
                continue
            try:
                sites.append(self.describe(site_path))
            except FileNotFoundError:
                # Removed while listing
                logger.debug(f"Site {site_path.name} vanished during listing")
        return sites

    def save_upload(self, site_name: str, files: list[tuple[str, bytes]]) -> dict:
        """Write uploaded files into a site directory."""
        site_name = site_name or DEFAULT_SITE_NAME
        site_path = self.site_path(site_name)

        if not files:
            raise MissingField("No files uploaded")

        names = []
        for filename, _ in files:
            name = Path((filename or "").replace("\\", "/")).name
            if not name or not is_allowed_file(name):
                raise DisallowedFileType(f"File type not allowed: {filename}")
            names.append(name)

        site_path.mkdir(parents=True, exist_ok=True)
        for name, (_, content) in zip(names, files):
            (site_path / name).write_bytes(content)

        detection = detect_project_type(site_path)
        logger.info(f"Uploaded {len(files)} files to site {site_name} ({detection.type.value})")

        return {
            "message": "Site uploaded successfully",
            "siteName": site_name,
            "fileCount": len(files),
            "type": detection.type.value,
            "hasManifest": detection.has_manifest,
        }

    def clone(self, repo_url: str, site_name: str) -> dict:
        """Clone a git repository into a new site directory."""
        if not repo_url or not site_name:
            raise MissingField("Repository URL and site name are required")

        site_path = self.site_path(site_name)
        if site_path.exists():
            raise NameCollision(f"Site name already exists: {site_name}")

        cmd = [*shlex.split(self.git_command), "clone", "--", repo_url, str(site_path)]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.clone_timeout,
            )
        except subprocess.TimeoutExpired:
            self._remove_partial(site_path)
            raise SourceFetchFailed(f"git clone timed out after {self.clone_timeout}s")
        except OSError as e:
            self._remove_partial(site_path)
            raise SourceFetchFailed(f"Failed to run git: {e}") from e

        if result.returncode != 0:
            self._remove_partial(site_path)
            error = result.stderr.strip() or f"exit code {result.returncode}"
            logger.error(f"Clone of {repo_url} into {site_name} failed: {error}")
            raise SourceFetchFailed(f"git clone failed: {error}")

        detection = detect_project_type(site_path)
        logger.info(f"Cloned {repo_url} into site {site_name} ({detection.type.value})")

        return {
            "message": "Repository cloned successfully",
            "siteName": site_name,
            "repoUrl": repo_url,
            "type": detection.type.value,
            "hasManifest": detection.has_manifest,
        }

    def _remove_partial(self, site_path: Path):
        if site_path.exists():
            shutil.rmtree(site_path, ignore_errors=True)

    def delete(self, site_name: str) -> dict:
        """Stop a site if running, then remove its directory and logs."""
        site_path = self.site_path(site_name)
        if not site_path.is_dir():
            raise NotFound(f"Site '{site_name}' not found")

        # Starts are refused until the directory is gone
        with self.supervisor.exclusive(site_name):
            if self.supervisor.is_running(site_name):
                try:
                    if not self.supervisor.stop_and_wait(site_name):
                        logger.error(f"Site {site_name} did not exit before deletion")
                except NotRunning:
                    pass

            shutil.rmtree(site_path)
            self.log_store.clear(site_name)

        logger.info(f"Deleted site {site_name}")
        return {"message": "Site deleted successfully"}
