"""
Process supervisor for hosted sites.

Handles installing dependencies, starting and stopping site processes.
Captures stdout/stderr line by line into the log store and watches each
process group so a record is dropped only once the leader and everything it
spawned have exited.
"""

import logging
import os
import shlex
import signal
import subprocess
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

import psutil

from .detector import RUNNABLE_TYPES, Detection, ProjectType, detect_project_type
from .errors import (
    AlreadyRunning,
    DependencyInstallFailed,
    HostlyError,
    NotFound,
    NotRunning,
    SpawnFailed,
    UnsupportedType,
)
from .logstore import Channel, LogStore
from .paths import validate_site_name
from .ports import PortAllocator

logger = logging.getLogger(__name__)

# Presence of this directory means dependencies are already installed
INSTALL_MARKER = "node_modules"


class SiteState(str, Enum):
    STOPPED = "stopped"
    INSTALLING = "installing"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    DELETING = "deleting"


@dataclass
class ProcessRecord:
    """Information about a running site process."""

    site_name: str
    process: subprocess.Popen
    port: int
    project_type: ProjectType
    started_at: datetime = field(default_factory=datetime.now)
    stopping: bool = False
    exited: threading.Event = field(default_factory=threading.Event)
    readers: list[threading.Thread] = field(default_factory=list)
    kill_timer: threading.Timer = None


@dataclass
class StartResult:
    port: int
    type: ProjectType

    def to_dict(self) -> dict:
        return {"success": True, "port": self.port, "type": self.type.value}


class ProcessSupervisor:
    """Owns the install/start/stop lifecycle of site processes."""

    def __init__(
        self,
        sites_dir: Path,
        log_store: LogStore,
        port_allocator: PortAllocator,
        grace_seconds: float = 5,
        install_timeout: int = 600,
        npm_command: str = "npm",
        node_command: str = "node",
    ):
        self.sites_dir = Path(sites_dir)
        self.log_store = log_store
        self.port_allocator = port_allocator
        self.grace_seconds = grace_seconds
        self.install_timeout = install_timeout
        self.npm_command = npm_command
        self.node_command = node_command
        self._processes: dict[str, ProcessRecord] = {}
        self._pending: dict[str, SiteState] = {}
        self._lock = threading.Lock()

    def start(self, site_name: str) -> StartResult:
        """Install (if needed) and start a site. Blocks until the process is spawned."""
        site_path = self.sites_dir / validate_site_name(site_name)
        if not site_path.is_dir():
            raise NotFound(f"Site '{site_name}' not found")

        with self._lock:
            if site_name in self._processes or site_name in self._pending:
                raise AlreadyRunning(f"Site '{site_name}' is already running")
            self._pending[site_name] = SiteState.STARTING

        try:
            return self._start(site_name, site_path)
        except HostlyError as e:
            self._log(site_name, f"Failed to start project: {e.message}")
            logger.error(f"Failed to start site {site_name}: {e.message}")
            raise
        finally:
            with self._lock:
                self._pending.pop(site_name, None)

    def _start(self, site_name: str, site_path: Path) -> StartResult:
        detection = detect_project_type(site_path)
        if not detection.has_manifest:
            raise UnsupportedType("Not a Node.js project")
        if detection.type not in RUNNABLE_TYPES:
            raise UnsupportedType(f"Unsupported project type: {detection.type.value}")

        if not (site_path / INSTALL_MARKER).exists():
            self._set_pending(site_name, SiteState.INSTALLING)
            self._install(site_name, site_path)
            self._set_pending(site_name, SiteState.STARTING)

        port = self.port_allocator.next()
        cmd = self.build_command(detection, port)

        self._log(site_name, f"Starting {detection.type.value} project on port {port}...")

        env = os.environ.copy()
        env["PORT"] = str(port)
        try:
            process = subprocess.Popen(
                cmd,
                cwd=site_path,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=env,
                start_new_session=True,  # Create new process group
            )
        except OSError as e:
            self._log(site_name, f"Process error: {e}")
            raise SpawnFailed(f"Failed to spawn {cmd[0]}: {e}") from e

        record = ProcessRecord(
            site_name=site_name,
            process=process,
            port=port,
            project_type=detection.type,
        )
        record.readers = self._attach_readers(site_name, process)

        with self._lock:
            self._processes[site_name] = record

        self._log(site_name, "Project started successfully")
        logger.info(f"Started site {site_name} ({detection.type.value}) on port {port} with PID {process.pid}")

        threading.Thread(
            target=self._watch_exit,
            args=(record,),
            name=f"hostly-watch-{site_name}",
            daemon=True,
        ).start()

        return StartResult(port=port, type=detection.type)

    def build_command(self, detection: Detection, port: int) -> list[str]:
        """Select the start command for a project type."""
        npm = shlex.split(self.npm_command)

        if detection.type == ProjectType.VITE:
            return [*npm, "run", "dev", "--", "--port", str(port)]

        if detection.type == ProjectType.NEXT:
            return [*npm, "run", "dev", "--", "-p", str(port)]

        if detection.type in (ProjectType.EXPRESS, ProjectType.NODE):
            scripts = detection.scripts
            if "nodemon" in detection.dependencies and scripts.get("dev"):
                return [*npm, "run", "dev"]
            if scripts.get("start"):
                return [*npm, "start"]
            main_file = (detection.manifest or {}).get("main") or "index.js"
            return [*shlex.split(self.node_command), main_file]

        raise UnsupportedType("Unsupported project type")

    def _install(self, site_name: str, site_path: Path):
        """Run npm install, streaming its output into the site's logs."""
        self._log(site_name, "Installing dependencies...")
        cmd = [*shlex.split(self.npm_command), "install"]

        try:
            process = subprocess.Popen(
                cmd,
                cwd=site_path,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise DependencyInstallFailed(f"Failed to run {cmd[0]} install: {e}") from e

        readers = self._attach_readers(site_name, process)
        try:
            returncode = process.wait(timeout=self.install_timeout)
        except subprocess.TimeoutExpired:
            self._signal(process.pid, signal.SIGKILL)
            process.wait()
            raise DependencyInstallFailed(f"npm install timed out after {self.install_timeout}s")
        finally:
            for reader in readers:
                reader.join(timeout=5)

        if returncode != 0:
            raise DependencyInstallFailed(f"npm install failed with code {returncode}")

        self._log(site_name, "Dependencies installed successfully")

    def stop(self, site_name: str):
        """Ask a site process to stop. Returns without waiting for it to exit."""
        with self._lock:
            record = self._processes.get(site_name)
            if not record:
                raise NotRunning(f"Site '{site_name}' is not running")
            if record.stopping:
                return
            record.stopping = True

        self._log(site_name, "Stopping project...")
        self._terminate(record)
        logger.info(f"Sent SIGTERM to site {site_name} (PID {record.process.pid})")

    def stop_and_wait(self, site_name: str, timeout: float = None) -> bool:
        """Stop a site and wait for its process to exit. Returns True if it exited."""
        record = self.get_record(site_name)
        if not record:
            raise NotRunning(f"Site '{site_name}' is not running")

        self.stop(site_name)
        if timeout is None:
            timeout = self.grace_seconds + 5
        return record.exited.wait(timeout)

    def _terminate(self, record: ProcessRecord):
        """SIGTERM the site's process group and arm the grace-window kill."""
        self._signal(record.process.pid, signal.SIGTERM)

        # Force kill after the grace window if still alive
        timer = threading.Timer(self.grace_seconds, self._force_kill, args=(record,))
        timer.daemon = True
        record.kill_timer = timer
        timer.start()

    def _force_kill(self, record: ProcessRecord):
        # The group id is the leader's pid, so this still reaches children
        # after the leader (npm) has exited on its own.
        if not self._signal(record.process.pid, signal.SIGKILL):
            return
        logger.warning(f"Site {record.site_name} did not stop gracefully, forcing kill")
        self._log(record.site_name, "Project force killed")

    def _signal(self, pgid: int, sig: int) -> bool:
        """Signal a whole process group. Returns False if the group is gone."""
        try:
            os.killpg(pgid, sig)
        except ProcessLookupError:
            return False
        return True

    def _group_alive(self, pgid: int) -> bool:
        """Check for live members of a process group, ignoring zombies."""
        try:
            if not self._signal(pgid, 0):
                return False
        except PermissionError:
            pass

        # Orphaned children may linger as zombies when nothing reaps them
        for proc in psutil.process_iter(["status"]):
            try:
                if proc.info["status"] == psutil.STATUS_ZOMBIE:
                    continue
                if os.getpgid(proc.pid) == pgid:
                    return True
            except (OSError, psutil.Error):
                continue
        return False

    def _watch_exit(self, record: ProcessRecord):
        """Wait for a site's process group to exit, then drop its record."""
        returncode = record.process.wait()
        pgid = record.process.pid

        if self._group_alive(pgid):
            # Leader is gone but children still hold the port
            with self._lock:
                already_stopping = record.stopping
                record.stopping = True
            if not already_stopping:
                self._log(record.site_name, "Stopping leftover child processes...")
                self._terminate(record)

            deadline = time.monotonic() + self.grace_seconds + 5
            while self._group_alive(pgid) and time.monotonic() < deadline:
                time.sleep(0.1)
            if self._group_alive(pgid):
                logger.error(f"Process group {pgid} of site {record.site_name} outlived its leader")

        for reader in record.readers:
            reader.join(timeout=2)
        if record.kill_timer:
            record.kill_timer.cancel()

        self._log(record.site_name, f"Process exited with code {returncode}")

        with self._lock:
            if self._processes.get(record.site_name) is record:
                del self._processes[record.site_name]

        record.exited.set()
        logger.info(f"Site {record.site_name} exited with code {returncode}")

    def _attach_readers(self, site_name: str, process: subprocess.Popen) -> list[threading.Thread]:
        readers = [
            threading.Thread(
                target=self._capture_output,
                args=(site_name, process.stdout, Channel.STDOUT),
                daemon=True,
            ),
            threading.Thread(
                target=self._capture_output,
                args=(site_name, process.stderr, Channel.STDERR),
                daemon=True,
            ),
        ]
        for reader in readers:
            reader.start()
        return readers

    def _capture_output(self, site_name: str, stream, channel: Channel):
        """Forward each line of process output to the log store."""
        try:
            for line in iter(stream.readline, b""):
                decoded = line.decode("utf-8", errors="replace").strip()
                if not decoded:
                    continue
                self.log_store.append(site_name, channel, decoded)
        except (OSError, ValueError) as e:
            logger.error(f"Error in log capture for {site_name}: {e}")
        finally:
            try:
                stream.close()
            except OSError:
                pass

    def _log(self, site_name: str, message: str):
        self.log_store.append(site_name, Channel.SYSTEM, message)

    def _set_pending(self, site_name: str, state: SiteState):
        with self._lock:
            self._pending[site_name] = state

    def is_running(self, site_name: str) -> bool:
        """Check if a site has a live process record."""
        with self._lock:
            return site_name in self._processes

    def get_record(self, site_name: str) -> ProcessRecord | None:
        with self._lock:
            return self._processes.get(site_name)

    def get_pid(self, site_name: str) -> int | None:
        record = self.get_record(site_name)
        return record.process.pid if record else None

    def get_port(self, site_name: str) -> int | None:
        record = self.get_record(site_name)
        return record.port if record else None

    def get_state(self, site_name: str) -> SiteState:
        with self._lock:
            record = self._processes.get(site_name)
            if record:
                return SiteState.STOPPING if record.stopping else SiteState.RUNNING
            return self._pending.get(site_name, SiteState.STOPPED)

    @contextmanager
    def exclusive(self, site_name: str, state: SiteState = SiteState.DELETING):
        """Hold a site's pending slot so no start can begin until the block exits."""
        with self._lock:
            if site_name in self._pending:
                raise AlreadyRunning(f"Site '{site_name}' is {self._pending[site_name].value}")
            self._pending[site_name] = state
        try:
            yield
        finally:
            with self._lock:
                self._pending.pop(site_name, None)

    def status(self, site_name: str) -> dict:
        record = self.get_record(site_name)
        return {
            "name": site_name,
            "running": record is not None,
            "state": self.get_state(site_name).value,
            "port": record.port if record else None,
            "pid": record.process.pid if record else None,
        }

    def get_all_running(self) -> list[str]:
        """Get list of all running site names."""
        with self._lock:
            return list(self._processes)

    def running_count(self) -> int:
        with self._lock:
            return len(self._processes)

    def shutdown_all(self):
        """Stop all running site processes and wait for them to exit."""
        with self._lock:
            records = list(self._processes.values())

        for record in records:
            try:
                self.stop(record.site_name)
            except NotRunning:
                pass

        for record in records:
            if not record.exited.wait(self.grace_seconds + 5):
                logger.error(f"Site {record.site_name} did not exit during shutdown")
