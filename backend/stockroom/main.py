"""
在庫管理・循環棚卸API
Stockroom Inventory & Cycle Count API
"""
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import structlog

from stockroom.core.config import settings
from stockroom.core.database import init_db
from stockroom.core.exceptions import StockroomError
from stockroom.core.logging_setup import setup_logging
from stockroom.core.redis_client import init_redis, close_redis
from stockroom.api.v1.api import api_router
from stockroom.services.websocket_manager import manager

# Configure structured logging
setup_logging(settings)
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events"""
    # Startup
    logger.info("Starting Stockroom Inventory API", environment=settings.ENVIRONMENT)
    await init_db()
    if settings.REALTIME_ENABLED:
        await init_redis()
        logger.info("Database and Redis connections established")
    else:
        logger.info("Database connection established, realtime disabled")

    yield

    # Shutdown
    logger.info("Shutting down Stockroom Inventory API")
    await manager.stop()
    if settings.REALTIME_ENABLED:
        await close_redis()


# FastAPI application instance
app = FastAPI(
    title=settings.APP_NAME,
    description="バーコードスキャン在庫管理・循環棚卸システム",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StockroomError)
async def stockroom_error_handler(request: Request, exc: StockroomError):
    """Render domain errors with the same detail shape the endpoints use"""
    log = logger.error if exc.status_code >= 500 else logger.info
    log("Request failed",
        path=request.url.path,
        status_code=exc.status_code,
        error_code=exc.error_code,
        message=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})


# Include API routes
app.include_router(api_router, prefix="/api/v1")


@app.get("/")
async def root():
    """API root endpoint"""
    return {
        "message": settings.APP_NAME,
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "stockroom-api",
        "realtime": settings.REALTIME_ENABLED,
        "websocket_connections": manager.connection_count,
    }


@app.websocket("/ws/inventory")
async def websocket_inventory_endpoint(websocket: WebSocket):
    """WebSocket endpoint for real-time inventory updates"""
    await manager.connect(websocket)

    try:
        while True:
            # Keep connection alive and listen for any client messages
            data = await websocket.receive_text()
            logger.info("Received WebSocket message", data=data)

            # Echo back for connection test
            await websocket.send_text(f"Message received: {data}")

    except WebSocketDisconnect:
        manager.disconnect(websocket)


@app.websocket("/ws/cycle-counts")
async def websocket_cycle_count_endpoint(websocket: WebSocket):
    """WebSocket endpoint for cycle count progress"""
    await manager.connect(websocket)

    try:
        while True:
            data = await websocket.receive_text()
            await websocket.send_text(f"Message received: {data}")

    except WebSocketDisconnect:
        manager.disconnect(websocket)
