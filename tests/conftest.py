"""Shared test fixtures for hostly tests."""

import json
import os
import stat
import tempfile
import time

# Keep the module-level config away from the real home directory
os.environ.setdefault("HOSTLY_DATA_DIR", tempfile.mkdtemp(prefix="hostly-test-"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from hostly.config import Config  # noqa: E402
from hostly.logstore import LogStore  # noqa: E402
from hostly.main import create_app  # noqa: E402
from hostly.ports import PortAllocator  # noqa: E402
from hostly.process import ProcessSupervisor  # noqa: E402
from hostly.sites import SiteRegistry  # noqa: E402

CONTROL_PORT = 4100

# Stands in for npm: `install` creates node_modules unless the site has a
# fail-install marker; anything else behaves like a long-running dev server.
FAKE_NPM = """#!/bin/sh
if [ "$1" = "install" ]; then
    echo "added 42 packages"
    if [ -f fail-install ]; then
        echo "npm ERR! install failed" >&2
        exit 1
    fi
    mkdir -p node_modules
    exit 0
fi
if [ -f ignore-term ]; then
    trap '' TERM
fi
if [ -f child-ignore-term ]; then
    # Leader exits on TERM, its child server does not
    sh -c 'trap "" TERM; echo $$ > child.pid; while true; do sleep 0.1; done' &
    echo "listening on port $PORT"
    wait
    exit 0
fi
echo "listening on port $PORT"
echo "args: $*"
echo "ready" >&2
while true; do
    sleep 0.1
done
"""


def wait_for(predicate, timeout: float = 10.0, interval: float = 0.05) -> bool:
    """Poll until predicate() is truthy or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return bool(predicate())


@pytest.fixture
def fake_npm(tmp_path):
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    script = bin_dir / "npm"
    script.write_text(FAKE_NPM)
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


@pytest.fixture
def cfg(tmp_path, fake_npm):
    return Config(
        data_dir=tmp_path / "data",
        port=CONTROL_PORT,
        npm_command=str(fake_npm),
        stop_grace_seconds=1,
        install_timeout=30,
        clone_timeout=30,
    )


@pytest.fixture
def log_store(cfg):
    store = LogStore(cfg.logs_dir, capacity=cfg.log_capacity)
    yield store
    store.close()


@pytest.fixture
def supervisor(cfg, log_store):
    sup = ProcessSupervisor(
        cfg.sites_dir,
        log_store,
        PortAllocator(cfg.port),
        grace_seconds=cfg.stop_grace_seconds,
        install_timeout=cfg.install_timeout,
        npm_command=cfg.npm_command,
    )
    yield sup
    sup.shutdown_all()


@pytest.fixture
def registry(cfg, supervisor, log_store):
    return SiteRegistry(cfg.sites_dir, supervisor, log_store, clone_timeout=cfg.clone_timeout)


@pytest.fixture
def make_site(cfg):
    """Create a site directory with an optional package.json and extra files."""

    def _make(name: str, manifest: dict | None = None, files: dict | None = None):
        site_path = cfg.sites_dir / name
        site_path.mkdir(parents=True, exist_ok=True)
        if manifest is not None:
            (site_path / "package.json").write_text(json.dumps(manifest))
        for relpath, content in (files or {}).items():
            target = site_path / relpath
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content)
        return site_path

    return _make


@pytest.fixture
def vite_manifest():
    return {
        "name": "demo",
        "scripts": {"dev": "vite", "build": "vite build"},
        "dependencies": {"vite": "^5.0.0"},
    }


@pytest.fixture
def client(cfg):
    app = create_app(cfg)
    with TestClient(app) as test_client:
        yield test_client
