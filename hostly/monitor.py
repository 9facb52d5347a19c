"""
Resource statistics for the host and for running sites.

Collects host CPU, memory and uptime figures, per-site process usage
(including child processes, since npm spawns the real server as a child)
and on-disk site sizes.
"""

import logging
import os
import platform
import socket
import time
from datetime import datetime

import psutil

logger = logging.getLogger(__name__)


def get_directory_size(path: str | os.PathLike) -> int:
    """Get total size of a directory in bytes."""
    total = 0
    try:
        for dirpath, dirnames, filenames in os.walk(path):
            for filename in filenames:
                filepath = os.path.join(dirpath, filename)
                try:
                    if not os.path.islink(filepath):
                        total += os.path.getsize(filepath)
                except OSError:
                    pass
    except OSError:
        pass
    return total


def get_system_stats(running_count: int) -> dict:
    """Get host CPU, memory and uptime statistics."""
    memory = psutil.virtual_memory()
    used = memory.total - memory.available

    try:
        load_average = list(psutil.getloadavg())
    except (AttributeError, OSError):
        load_average = [0.0, 0.0, 0.0]

    return {
        "cpu": {
            "loadAverage": load_average,
            "cores": psutil.cpu_count() or 0,
            "percent": psutil.cpu_percent(interval=None),
        },
        "memory": {
            "total": memory.total,
            "used": used,
            "free": memory.available,
            "percentage": round(used / memory.total * 100, 2) if memory.total else 0.0,
        },
        "uptime": int(time.time() - psutil.boot_time()),
        "platform": platform.system().lower(),
        "hostname": socket.gethostname(),
        "runningProjects": running_count,
    }


def get_site_metrics(pid: int, started_at: datetime = None) -> dict | None:
    """Get current resource usage for a site process and its children."""
    try:
        proc = psutil.Process(pid)
        cpu_percent = proc.cpu_percent(interval=0.1)
        memory_mb = proc.memory_info().rss / 1024 / 1024

        # Include children
        child_count = 0
        try:
            children = proc.children(recursive=True)
            child_count = len(children)
            for child in children:
                cpu_percent += child.cpu_percent(interval=0.1)
                memory_mb += child.memory_info().rss / 1024 / 1024
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            pass

    except psutil.NoSuchProcess:
        logger.warning(f"Process {pid} no longer exists")
        return None
    except psutil.AccessDenied:
        logger.warning(f"Access denied for process {pid}")
        return None

    return {
        "pid": pid,
        "cpu_percent": round(cpu_percent, 1),
        "memory_mb": round(memory_mb, 1),
        "child_processes": child_count,
        "uptime_seconds": (datetime.now() - started_at).total_seconds() if started_at else 0,
    }
