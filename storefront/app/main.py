# storefront/app/main.py
"""
FastAPI application entrypoint with the Socket.IO server mounted in front.

Features:
- App factory (create_app) for tests
- RealtimeServer built once per app and stored on app.state.realtime
- Prometheus metrics endpoint
- Health & readiness endpoints (DB, presence store checks)
- Startup: create tables, start periodic emitter + presence reaper
- Shutdown: stop loops, drop connections, dispose the engine
- Use: uvicorn storefront.app.main:asgi_app --reload
"""

import logging
from typing import Optional

import socketio
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront.app.config import settings
from storefront.app.db import init_db, make_engine, make_sessionmaker
from storefront.app.middleware.cors import add_cors, allowed_origins
from storefront.app.middleware.request_logger import RequestLoggerMiddleware
from storefront.app.routers import realtime as realtime_router
from storefront.app.routers.socket_events import make_socket_server, register_socket_handlers
from storefront.app.services.auth_service import JWTVerifier
from storefront.app.services.dashboard_service import DashboardService
from storefront.app.services.document_store import DocumentStore
from storefront.app.services.presence import PresenceStore, PresenceTracker, make_presence_store
from storefront.app.services.realtime.registry import TokenVerifier
from storefront.app.services.realtime.server import RealtimeServer
from storefront.app.services.realtime.transport import SocketIOTransport

logger = logging.getLogger(__name__)
logging.basicConfig(level=settings.LOG_LEVEL)


def create_app(database_url: Optional[str] = None,
               presence_store: Optional[PresenceStore] = None,
               verifier: Optional[TokenVerifier] = None,
               periodic: Optional[bool] = None) -> FastAPI:
    app = FastAPI(title=settings.APP_TITLE, version=settings.APP_VERSION)

    # ---------------------
    # Middleware
    # ---------------------
    add_cors(app)
    app.add_middleware(RequestLoggerMiddleware)

    # ---------------------
    # Collaborators
    # ---------------------
    engine = make_engine(database_url)
    store = DocumentStore(make_sessionmaker(engine))
    presence = PresenceTracker(presence_store or make_presence_store())

    origins = allowed_origins()
    sio = make_socket_server("*" if "*" in origins else origins)
    realtime = RealtimeServer(
        transport=SocketIOTransport(sio),
        verifier=verifier or JWTVerifier(),
        dashboard=DashboardService(store),
        presence=presence,
    )
    register_socket_handlers(sio, realtime)

    app.state.engine = engine
    app.state.store = store
    app.state.sio = sio
    app.state.realtime = realtime

    app.include_router(realtime_router.router)

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.detail})

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={"success": False, "error": "Validation failed", "details": jsonable_encoder(exc.errors())},
        )

    # ---------------------
    # Metrics / health
    # ---------------------
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    @app.get("/")
    async def root():
        return {"status": "ok", "service": "storefront-realtime", "version": app.version}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/ready")
    async def ready():
        checks = {}

        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            checks["db"] = "ok"
        except Exception as e:
            checks["db"] = f"error: {str(e)[:200]}"

        try:
            await realtime.presence.get_online_count()
            checks["presence"] = "ok"
        except Exception as e:
            checks["presence"] = f"error: {str(e)[:200]}"

        ready_ok = all(v == "ok" for v in checks.values())
        return JSONResponse(
            status_code=200 if ready_ok else 503,
            content={"status": "ready" if ready_ok else "not_ready", "checks": checks},
        )

    # ---------------------
    # Startup / shutdown
    # ---------------------
    @app.on_event("startup")
    async def _startup():
        await init_db(engine)
        await realtime.start(periodic=settings.PERIODIC_UPDATES_ENABLED if periodic is None else periodic)
        logger.info("%s %s started", settings.APP_TITLE, settings.APP_VERSION)

    @app.on_event("shutdown")
    async def _shutdown():
        await realtime.stop()
        await engine.dispose()

    return app


# Global app instances for uvicorn to import
app = create_app()
asgi_app = socketio.ASGIApp(app.state.sio, other_asgi_app=app)
