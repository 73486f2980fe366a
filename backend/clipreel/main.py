"""
clipreel backend service.

Wires settings, persistence, the job registry, admission control, the clip
source clients and the compositor into one CompilationService, and exposes
it over HTTP.

Run with:
    uvicorn clipreel.main:app --app-dir backend
or:
    python -m clipreel.main
"""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

import httpx
from fastapi import FastAPI

from clipreel import __version__
from clipreel.config import CompilationSettings
from clipreel.execution.ffmpeg import FFmpegCompositor
from clipreel.execution.scheduler import AdmissionController
from clipreel.jobs.cleanup import CleanupScheduler
from clipreel.jobs.registry import JobRegistry
from clipreel.persistence.credentials import UserCredentialStore
from clipreel.persistence.manager import PersistenceManager
from clipreel.persistence.records import CompilationRecordStore
from clipreel.routes import compilation
from clipreel.service import CompilationService
from clipreel.sources.downloader import Downloader
from clipreel.sources.resolver import ClipResolver

logger = logging.getLogger(__name__)


def configure_logging(level: int = logging.INFO) -> None:
    """Install the root handler. A no-op once the root logger has handlers."""
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def build_service(
    settings: CompilationSettings,
    http_client: httpx.AsyncClient,
    compositor: Optional[FFmpegCompositor] = None,
) -> CompilationService:
    """Assemble a CompilationService from settings."""
    persistence = PersistenceManager(db_path=str(settings.db_path))
    registry = JobRegistry()
    records = CompilationRecordStore(persistence)
    
    return CompilationService(
        settings=settings,
        registry=registry,
        admission=AdmissionController(
            max_concurrent=settings.max_concurrent_jobs,
            poll_interval=settings.admission_poll_seconds,
        ),
        resolver=ClipResolver(
            http_client,
            api_url=settings.clip_api_url,
            client_id=settings.client_id,
        ),
        downloader=Downloader(http_client),
        compositor=compositor or FFmpegCompositor(ffmpeg_path=settings.ffmpeg_path),
        records=records,
        credentials=UserCredentialStore(persistence),
        cleanup=CleanupScheduler(
            records,
            registry,
            record_max_age=timedelta(days=settings.record_max_age_days),
            stale_job_age=timedelta(hours=settings.stale_job_hours),
        ),
    )


def create_app(
    settings: Optional[CompilationSettings] = None,
    start_cleanup: bool = True,
    compositor: Optional[FFmpegCompositor] = None,
    http_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the FastAPI application.
    
    Args:
        settings: Explicit settings (read from the environment if omitted)
        start_cleanup: Schedule the retention sweep at startup
        compositor: Compositor to use instead of one built from settings
        http_transport: Transport for the clip registry and asset client
    """
    
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        resolved = settings or CompilationSettings.from_env()
        resolved.compilation_dir.mkdir(parents=True, exist_ok=True)
        
        async with httpx.AsyncClient(
            follow_redirects=True,
            timeout=resolved.http_timeout_seconds,
            transport=http_transport,
        ) as http_client:
            service = build_service(resolved, http_client, compositor)
            app.state.compilation_service = service
            
            if start_cleanup:
                service.start_compilation_cleanup(resolved.cleanup_interval_hours)
            
            logger.info(
                f"clipreel ready: {resolved.max_concurrent_jobs} concurrent job(s), "
                f"output in {resolved.compilation_dir}"
            )
            try:
                yield
            finally:
                await service.shutdown()
    
    app = FastAPI(title="clipreel", version=__version__, lifespan=lifespan)
    app.include_router(compilation.router)
    
    @app.get("/")
    async def root():
        return {"service": "clipreel", "status": "running"}
    
    return app


app = create_app()


def run_server(host: str = "127.0.0.1", port: int = 8000) -> None:
    """Serve the app with uvicorn."""
    import uvicorn
    
    configure_logging()
    logger.info(f"Starting clipreel on {host}:{port}")
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
