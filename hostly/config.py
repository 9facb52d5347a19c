"""
Configuration for the hostly service.

Loads settings from environment variables with sensible defaults.
All persistent data (sites, per-site logs, the service log) is stored
under ~/.hostly/ unless HOSTLY_DATA_DIR points elsewhere.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


@dataclass
class Config:
    """Hostly configuration."""

    # Paths
    data_dir: Path = Path(os.environ.get("HOSTLY_DATA_DIR", str(Path.home() / ".hostly")))
    sites_dir: Path = None
    logs_dir: Path = None
    hostly_log: Path = None

    # Logging
    log_max_bytes: int = int(os.environ.get("LOG_MAX_BYTES", str(10 * 1024 * 1024)))  # 10MB
    log_backup_count: int = int(os.environ.get("LOG_BACKUP_COUNT", "5"))
    log_capacity: int = int(os.environ.get("LOG_CAPACITY", "1000"))

    # Server
    host: str = os.environ.get("HOSTLY_HOST", "0.0.0.0")
    port: int = int(os.environ.get("HOSTLY_PORT", "3001"))

    # Process management
    stop_grace_seconds: float = float(os.environ.get("STOP_GRACE_SECONDS", "5"))
    install_timeout: int = int(os.environ.get("INSTALL_TIMEOUT", "600"))
    clone_timeout: int = int(os.environ.get("CLONE_TIMEOUT", "300"))

    # External tools
    npm_command: str = os.environ.get("NPM_COMMAND", "npm")
    node_command: str = os.environ.get("NODE_COMMAND", "node")
    git_command: str = os.environ.get("GIT_COMMAND", "git")

    def __post_init__(self):
        """Initialize derived paths and create directories."""
        self.data_dir = Path(self.data_dir)
        if self.sites_dir is None:
            self.sites_dir = self.data_dir / "sites"
        if self.logs_dir is None:
            self.logs_dir = self.data_dir / "logs"
        if self.hostly_log is None:
            self.hostly_log = self.data_dir / "hostly.log"

        # Create directories
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.sites_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)


config = Config()
