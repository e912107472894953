"""
QBWC Sync Application

FastAPI application exposing the QuickBooks Web Connector SOAP endpoint.
This is the main entry point for running the service.

Endpoints:
- POST /qbwc: SOAP endpoint polled by the Web Connector
- GET /qbwc: Human-readable info page
- GET /qbwc/qwc: .qwc descriptor for the active connection
- GET /health: Session count, storage backend and queue depth

Storage is configured via environment variables:
- QBWC_STORAGE_BACKEND: "memory", "sqlite", "postgresql", "mysql"
- QBWC_DATABASE_URL: SQLAlchemy async connection URL
- QBWC_REDIS_URL: Redis URL for shared sessions

Service behaviour (versions, TTLs, paths) is configured via the QBWC_*
variables documented in qbwc.config.

Environment variables can be loaded from a .env file in the project root.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from html import escape

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import HTMLResponse

# Load environment variables from .env file
load_dotenv()

from qbwc import __version__
from qbwc.config import ServiceSettings, settings_from_env
from qbwc.dispatch import ConnectionCredentialValidator, ProtocolDispatcher
from qbwc.protocol import EnvelopeError
from qbwc.qbxml import (
    QbxmlDirectoryQueryBuilder,
    QbxmlPayloadBuilder,
    TimeExportRecorder,
    qwc_file,
)
from qbwc.session import SessionRegistry
from qbwc.storage import (
    ConnectionRecord,
    StorageSettings,
    create_storage,
    settings_from_env as storage_settings_from_env,
)
from qbwc.storage.factory import StorageBundleImpl

# Configure logging
logging.basicConfig(
    level=settings_from_env().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

SOAP_MEDIA_TYPE = "text/xml; charset=utf-8"


async def _seed_connection(storage: StorageBundleImpl, settings: ServiceSettings) -> None:
    """Create the connection from QBWC_USERNAME/QBWC_PASSWORD if none exists."""
    if not settings.has_bootstrap_connection:
        return
    if await storage.connections.get() is not None:
        return

    await storage.connections.save(ConnectionRecord(
        company_name=settings.bootstrap_company,
        wc_username=settings.bootstrap_username,
        wc_password=settings.bootstrap_password,
    ))
    logger.info(f"Seeded QuickBooks connection for Web Connector user {settings.bootstrap_username}")


async def _reclaim_loop(storage: StorageBundleImpl, settings: ServiceSettings) -> None:
    """Periodically return abandoned "processing" items to the queue."""
    while True:
        try:
            await asyncio.sleep(settings.cleanup_interval_seconds)
            cutoff = datetime.utcnow() - timedelta(seconds=settings.stale_item_seconds)
            await storage.work.reclaim_stale(cutoff)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"Error in queue reclaim loop: {e}")


def create_app(
    settings: ServiceSettings | None = None,
    storage_settings: StorageSettings | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Service settings (default: from environment)
        storage_settings: Storage settings (default: from environment)
    """
    settings = settings or settings_from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Initializes and tears down storage, the session registry and the
        dispatcher.
        """
        # Startup
        logger.info("Starting QBWC sync service...")

        storage = await create_storage(storage_settings or storage_settings_from_env())
        logger.info(f"Storage initialized: {type(storage.sessions).__name__}")
        await _seed_connection(storage, settings)

        registry = SessionRegistry(
            store=storage.sessions,
            session_ttl_seconds=settings.session_ttl_seconds,
            cleanup_interval_seconds=settings.cleanup_interval_seconds,
        )
        await registry.start()

        dispatcher = ProtocolDispatcher(
            registry=registry,
            credentials=ConnectionCredentialValidator(storage.connections),
            connections=storage.connections,
            work=storage.work,
            sync_log=storage.sync_log,
            payloads=QbxmlPayloadBuilder(storage.exports, app_name=settings.app_name),
            directory=QbxmlDirectoryQueryBuilder(),
            recorder=TimeExportRecorder(storage.exports),
            server_version=settings.server_version,
            min_client_version=settings.min_client_version,
        )
        reclaim_task = asyncio.create_task(_reclaim_loop(storage, settings))

        app.state.storage = storage
        app.state.registry = registry
        app.state.dispatcher = dispatcher

        logger.info(f"QBWC sync service started on {settings.endpoint_path}")

        yield

        # Shutdown
        logger.info("Shutting down QBWC sync service...")
        reclaim_task.cancel()
        try:
            await reclaim_task
        except asyncio.CancelledError:
            pass
        await registry.stop()
        await storage.close()
        logger.info("QBWC sync service stopped")

    app = FastAPI(
        title="QBWC Sync",
        description="QuickBooks Web Connector synchronization endpoint",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    async def soap_endpoint(request: Request) -> Response:
        """
        SOAP endpoint for the Web Connector.

        Protocol failures are answered with HTTP 200 and a sentinel reply;
        only an undecodable envelope (400) or an internal fault (500) is not.
        """
        dispatcher: ProtocolDispatcher | None = getattr(request.app.state, "dispatcher", None)
        if dispatcher is None:
            return Response("Service not initialized", status_code=503, media_type="text/plain")

        body = await request.body()
        try:
            reply = await dispatcher.handle(body)
        except EnvelopeError as e:
            logger.warning(f"Rejected SOAP request: {e}")
            return Response(f"Bad Request: {e}", status_code=400, media_type="text/plain")
        except Exception:
            logger.exception("QBWC request failed outside any handler")
            return Response("Internal Server Error", status_code=500, media_type="text/plain")

        return Response(reply, media_type=SOAP_MEDIA_TYPE)

    async def info_page(request: Request) -> HTMLResponse:
        """Info page for humans who open the endpoint in a browser."""
        endpoint = escape(f"{settings.public_url}{settings.endpoint_path}")
        return HTMLResponse(
            "<!DOCTYPE html>\n"
            "<html>\n"
            f"<head><title>{escape(settings.app_name)} - QuickBooks Web Connector</title></head>\n"
            "<body>\n"
            f"<h1>{escape(settings.app_name)}</h1>\n"
            "<p>This is the QuickBooks Web Connector SOAP endpoint.</p>\n"
            f"<p>Endpoint: <code>{endpoint}</code></p>\n"
            f"<p>Server version: {escape(settings.server_version)}</p>\n"
            f'<p>Download the <a href="{escape(settings.endpoint_path)}/qwc">.qwc file</a> '
            "and add it to the Web Connector.</p>\n"
            "</body>\n"
            "</html>\n"
        )

    async def qwc_download(request: Request, app_name: str | None = None) -> Response:
        """.qwc descriptor for the active connection."""
        storage: StorageBundleImpl | None = getattr(request.app.state, "storage", None)
        connection = await storage.connections.get() if storage else None
        if connection is None:
            raise HTTPException(status_code=404, detail="No active QuickBooks connection")

        name = app_name or settings.app_name
        content = qwc_file(
            app_name=name,
            app_url=f"{settings.public_url}{settings.endpoint_path}",
            username=connection.wc_username,
            run_every_minutes=connection.sync_interval_minutes,
        )
        filename = "".join(c if c.isalnum() else "_" for c in name) or "qbwc"
        return Response(
            content,
            media_type="application/xml",
            headers={"Content-Disposition": f'attachment; filename="{filename}.qwc"'},
        )

    async def health_check(request: Request) -> dict:
        """Health check endpoint."""
        registry: SessionRegistry | None = getattr(request.app.state, "registry", None)
        storage: StorageBundleImpl | None = getattr(request.app.state, "storage", None)
        return {
            "status": "healthy" if registry and storage else "starting",
            "version": __version__,
            "sessions": await registry.count() if registry else 0,
            "storage": storage.backend.value if storage else None,
            "queue": await storage.work.counts() if storage else {},
        }

    app.add_api_route(settings.endpoint_path, soap_endpoint, methods=["POST"])
    app.add_api_route(settings.endpoint_path, info_page, methods=["GET"], response_class=HTMLResponse)
    app.add_api_route(f"{settings.endpoint_path}/qwc", qwc_download, methods=["GET"])
    app.add_api_route("/health", health_check, methods=["GET"])

    return app


app = create_app()
