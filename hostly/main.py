"""
Hostly FastAPI application.

Provides the REST API the dashboard uses to upload, clone, start, stop and
delete sites, read their logs and host statistics, and serves static sites
under /sites/{name}/ with an index.html fallback.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from typing import Optional

from fastapi import APIRouter, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from . import __version__
from .config import Config, config
from .errors import HostlyError, NotFound
from .logstore import LogStore
from .monitor import get_site_metrics, get_system_stats
from .ports import PortAllocator
from .process import ProcessSupervisor
from .sites import SiteRegistry
from .static import StaticSiteServer

# Configure logging with rotation
log_formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

# Rotating file handler (auto-compaction)
file_handler = RotatingFileHandler(
    config.hostly_log,
    maxBytes=config.log_max_bytes,
    backupCount=config.log_backup_count,
)
file_handler.setFormatter(log_formatter)

# Console handler
console_handler = logging.StreamHandler()
console_handler.setFormatter(log_formatter)

# Configure root logger
logging.basicConfig(
    level=logging.INFO,
    handlers=[file_handler, console_handler],
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    cfg = app.state.config
    logger.info(f"Starting hostly on port {cfg.port}")
    logger.info(f"Sites directory: {cfg.sites_dir}")
    logger.info(f"Logs directory: {cfg.logs_dir}")

    yield

    logger.info("Shutting down hostly...")
    await asyncio.to_thread(app.state.supervisor.shutdown_all)
    app.state.log_store.close()


# Pydantic models for API
class CloneRequest(BaseModel):
    repoUrl: Optional[str] = Field(None, description="Git repository URL")
    siteName: Optional[str] = Field(None, description="Name of the site directory to create")


router = APIRouter(prefix="/api")


@router.get("/sites")
async def list_sites(request: Request):
    """List all sites with type detection and process status."""
    return await asyncio.to_thread(request.app.state.registry.list_sites)


@router.post("/sites/upload")
async def upload_site(
    request: Request,
    siteName: str = Form(""),
    files: Optional[list[UploadFile]] = File(None),
):
    """Upload site files."""
    payload = [(upload.filename, await upload.read()) for upload in files or []]
    return await asyncio.to_thread(request.app.state.registry.save_upload, siteName, payload)


@router.post("/sites/clone")
async def clone_site(request: Request, data: CloneRequest):
    """Clone a git repository as a new site."""
    return await asyncio.to_thread(request.app.state.registry.clone, data.repoUrl, data.siteName)


@router.post("/sites/{name}/start")
async def start_site(request: Request, name: str):
    """Start a site, installing dependencies first if needed."""
    result = await asyncio.to_thread(request.app.state.supervisor.start, name)
    return result.to_dict()


@router.post("/sites/{name}/stop")
async def stop_site(request: Request, name: str):
    """Stop a running site. Returns before the process has exited."""
    request.app.state.supervisor.stop(name)
    return {"success": True}


@router.get("/sites/{name}/status")
async def get_site_status(request: Request, name: str):
    """Get process status for a site."""
    return request.app.state.supervisor.status(name)


@router.get("/sites/{name}/logs")
async def get_site_logs(
    request: Request,
    name: str,
    lines: int = Query(100, ge=1),
):
    """Get recent log entries for a site, at most the retained window."""
    log_store = request.app.state.log_store
    entries, total = log_store.read(name, min(lines, log_store.capacity))
    return {"logs": [entry.to_dict() for entry in entries], "total": total}


@router.get("/sites/{name}/metrics")
async def get_site_current_metrics(request: Request, name: str):
    """Get current resource usage for a running site."""
    record = request.app.state.supervisor.get_record(name)
    if not record:
        raise NotFound("Site not running")

    metrics = await asyncio.to_thread(get_site_metrics, record.process.pid, record.started_at)
    if not metrics:
        raise NotFound("Site not running")
    metrics["port"] = record.port
    return metrics


@router.delete("/sites/{name}")
async def delete_site(request: Request, name: str):
    """Delete a site, stopping it first if running."""
    return await asyncio.to_thread(request.app.state.registry.delete, name)


@router.get("/system/stats")
async def get_stats(request: Request):
    """Get host statistics."""
    return get_system_stats(request.app.state.supervisor.running_count())


@router.get("/hostly/logs")
async def get_hostly_logs(request: Request, lines: int = Query(100, ge=1, le=1000)):
    """Get recent hostly service log entries."""
    try:
        with open(request.app.state.config.hostly_log, "r") as f:
            all_lines = f.readlines()
            return {"lines": all_lines[-lines:], "total": len(all_lines)}
    except FileNotFoundError:
        return {"lines": [], "total": 0}


async def serve_site(request: Request, site_name: str, file_path: str = ""):
    """Serve a static site file, falling back to the site's index.html."""
    try:
        target = request.app.state.static_server.resolve(site_name, file_path)
    except NotFound as e:
        return PlainTextResponse(e.message, status_code=404)
    return FileResponse(target)


async def handle_hostly_error(request: Request, exc: HostlyError):
    logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def create_app(cfg: Config = config) -> FastAPI:
    """Build the hostly application and its components."""
    log_store = LogStore(cfg.logs_dir, capacity=cfg.log_capacity)
    port_allocator = PortAllocator(cfg.port)
    supervisor = ProcessSupervisor(
        cfg.sites_dir,
        log_store,
        port_allocator,
        grace_seconds=cfg.stop_grace_seconds,
        install_timeout=cfg.install_timeout,
        npm_command=cfg.npm_command,
        node_command=cfg.node_command,
    )
    registry = SiteRegistry(
        cfg.sites_dir,
        supervisor,
        log_store,
        git_command=cfg.git_command,
        clone_timeout=cfg.clone_timeout,
    )

    app = FastAPI(
        title="Hostly",
        description="Hosting manager for static and Node.js sites",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = cfg
    app.state.log_store = log_store
    app.state.port_allocator = port_allocator
    app.state.supervisor = supervisor
    app.state.registry = registry
    app.state.static_server = StaticSiteServer(cfg.sites_dir)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(HostlyError, handle_hostly_error)
    app.include_router(router)
    app.add_api_route("/sites/{site_name}", serve_site, methods=["GET"])
    app.add_api_route("/sites/{site_name}/{file_path:path}", serve_site, methods=["GET"])

    return app


app = create_app()
