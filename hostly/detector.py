"""
Project type detection.

Classifies a site directory by inspecting its package.json. The checks run
in a fixed order and the first match wins; detection never raises, a broken
manifest just makes the site static.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

MANIFEST_NAME = "package.json"


class ProjectType(str, Enum):
    STATIC = "static"
    VITE = "vite"
    NEXT = "next"
    EXPRESS = "express"
    NODE = "node"


RUNNABLE_TYPES = frozenset({ProjectType.VITE, ProjectType.NEXT, ProjectType.EXPRESS, ProjectType.NODE})


@dataclass
class Detection:
    """Result of classifying a site directory."""

    type: ProjectType
    has_manifest: bool
    manifest: dict = None
    error: str = None

    @property
    def runnable(self) -> bool:
        return self.has_manifest and self.type in RUNNABLE_TYPES

    @property
    def scripts(self) -> dict:
        return _section(self.manifest, "scripts")

    @property
    def dependencies(self) -> dict:
        """Merged dependencies and devDependencies."""
        return {
            **_section(self.manifest, "dependencies"),
            **_section(self.manifest, "devDependencies"),
        }


def _section(manifest: dict | None, key: str) -> dict:
    if not manifest:
        return {}
    value = manifest.get(key)
    return value if isinstance(value, dict) else {}


def _script(scripts: dict, name: str) -> str:
    value = scripts.get(name)
    return value if isinstance(value, str) else ""


def classify_manifest(manifest: dict) -> ProjectType:
    """Classify a parsed package.json."""
    scripts = _section(manifest, "scripts")
    dependencies = {
        **_section(manifest, "dependencies"),
        **_section(manifest, "devDependencies"),
    }
    start = _script(scripts, "start")
    dev = _script(scripts, "dev")

    if "vite" in dependencies or "vite" in dev:
        return ProjectType.VITE

    if "next" in dependencies or "next" in dev:
        return ProjectType.NEXT

    if "express" in dependencies or "node" in start or "nodemon" in dev:
        return ProjectType.EXPRESS

    if start or dev:
        return ProjectType.NODE

    return ProjectType.STATIC


def detect_project_type(project_path: str | Path) -> Detection:
    """Detect the project type of a site directory."""
    manifest_path = Path(project_path) / MANIFEST_NAME
    if not manifest_path.is_file():
        return Detection(type=ProjectType.STATIC, has_manifest=False)

    try:
        manifest = json.loads(manifest_path.read_text(encoding="utf-8"))
        if not isinstance(manifest, dict):
            raise ValueError(f"{MANIFEST_NAME} must contain a JSON object")
    except (OSError, ValueError) as e:
        logger.error(f"Error detecting project type for {project_path}: {e}")
        return Detection(type=ProjectType.STATIC, has_manifest=False, error=str(e))

    return Detection(
        type=classify_manifest(manifest),
        has_manifest=True,
        manifest=manifest,
    )
