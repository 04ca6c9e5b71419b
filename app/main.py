"""FastAPI application entry point."""

import logging
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, WebSocket, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import TimeoutError as SQLAlchemyTimeoutError

from .config import settings
from .database import warmup_connection_pool
from .middleware import RateLimitMiddleware, SlidingWindowLimiter
from .routers import (
    auth_router,
    comments_router,
    dashboard_router,
    notifications_router,
    projects_router,
    tasks_router,
    users_router,
)
from .services.auth_service import verify_token
from .websocket import (
    ConnectionLifecycle,
    ConnectionManager,
    SessionRegistry,
    check_room_access,
    load_active_identity,
)

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown tasks."""
    # Startup
    if settings.db_warmup_on_startup:
        logger.info("Warming up database connection pool...")
        await warmup_connection_pool()
        logger.info("Database connection pool ready")

    yield

    # Shutdown
    logger.info("Closing WebSocket connections...")
    await app.state.ws_lifecycle.shutdown()
    logger.info("WebSocket connections closed")


def create_app() -> FastAPI:
    """
    Build the application with its own session registry, connection manager
    and connection lifecycle, so every instance has isolated real-time state.
    """
    app = FastAPI(
        title="TaskFlow API",
        description="Team task management API with real-time collaboration",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    registry = SessionRegistry()
    manager = ConnectionManager()
    app.state.ws_registry = registry
    app.state.ws_manager = manager
    app.state.ws_lifecycle = ConnectionLifecycle(
        registry=registry,
        manager=manager,
        verifier=verify_token,
        heartbeat_interval=settings.ws_heartbeat_interval,
        room_authorizer=check_room_access,
        identity_loader=load_active_identity,
    )

    # Per-app limiter state; added before CORS so 429s still carry CORS headers
    app.state.rate_limiter = SlidingWindowLimiter()
    if settings.rate_limit_enabled:
        app.add_middleware(RateLimitMiddleware, limiter=app.state.rate_limiter)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Database pool exhaustion handler - return 503 so clients can retry
    @app.exception_handler(SQLAlchemyTimeoutError)
    async def db_pool_exhausted_handler(request: Request, exc: SQLAlchemyTimeoutError):
        logger.warning(f"Database pool exhausted on {request.method} {request.url}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "detail": "Service temporarily unavailable. Please retry.",
                "retry_after": 5,
            },
            headers={"Retry-After": "5"},
        )

    # Global exception handler to log errors
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled exception on {request.method} {request.url}: "
            f"{type(exc).__name__}: {exc}\n{traceback.format_exc()}"
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(projects_router)
    app.include_router(tasks_router)
    app.include_router(comments_router)
    app.include_router(notifications_router)
    app.include_router(dashboard_router)

    @app.get("/")
    async def root():
        """Root endpoint - health check."""
        return {
            "status": "healthy",
            "service": "TaskFlow API",
            "version": "1.0.0",
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring."""
        return {
            "status": "healthy",
            "websocket": {
                "connections": manager.total_connections,
                "rooms": manager.total_rooms,
                "online_users": len(registry.online_user_ids()),
            },
        }

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket, token: Optional[str] = None):
        """
        WebSocket endpoint for real-time collaboration.

        Browsers cannot set headers on the handshake, so the JWT is read
        from the ``token`` query parameter, falling back to the
        ``Authorization`` header for other clients.

        Usage:
            ws://localhost:8000/ws?token=<jwt_token>
        """
        raw_token = token or websocket.headers.get("authorization")
        remote_address = (
            f"{websocket.client.host}:{websocket.client.port}" if websocket.client else None
        )
        await app.state.ws_lifecycle.run(websocket, raw_token, remote_address)

    return app


app = create_app()
