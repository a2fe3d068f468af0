"""
Call Orchestrator - Main Application Entry Point

Places outbound calls to prospects through Twilio, alone or bridged to an
ElevenLabs conversational agent, and tracks each call to completion.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from call_orchestrator import __version__
from call_orchestrator.core.config import settings
from call_orchestrator.core.logging import setup_logging, get_logger
from call_orchestrator.core.exceptions import OrchestratorError, AuthenticationError
from call_orchestrator.api.routes import calls, credentials, webhooks, health

# Setup logging
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler for startup and shutdown events
    """
    # Startup
    logger.info("=" * 60)
    logger.info("Starting Call Orchestrator")
    logger.info(f"Version: {__version__}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"API Base URL: {settings.api_base_url}")
    logger.info(f"Database Type: {settings.database_type}")
    logger.info(f"Status tracking: {settings.status_tracking_backend}")
    logger.info("=" * 60)

    from call_orchestrator.db.repository import close_database
    from call_orchestrator.services.call_manager import initialize_call_manager, set_call_manager
    from call_orchestrator.services.redis_service import close_redis

    manager = await initialize_call_manager()
    logger.info("All services initialized successfully")

    yield

    # Shutdown
    logger.info("Shutting down Call Orchestrator")

    await manager.dispatcher.drain()
    await close_database()
    set_call_manager(None)
    await close_redis()

    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Call Orchestrator API",
    description="""
    ## Outbound Call Orchestrator

    Places AI-assisted outbound calls to real-estate prospects and tracks
    each call from dispatch to a terminal status.

    ### Provider paths

    - **telephony**: Twilio places the call and runs a scripted greeting
      with speech capture
    - **telephony+conversation**: ElevenLabs bridges the Twilio call to a
      conversational agent

    ### Authentication

    When `SERVICE_API_KEY` is set, include it in requests using:
    - Header: `X-API-Key: your-api-key`
    - Bearer Token: `Authorization: Bearer your-api-key`
    """,
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Custom Exception Handlers
@app.exception_handler(AuthenticationError)
async def auth_exception_handler(request: Request, exc: AuthenticationError):
    """Handle authentication errors"""
    logger.warning(f"AuthenticationError: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
        headers={"WWW-Authenticate": "Bearer"}
    )


@app.exception_handler(OrchestratorError)
async def orchestrator_exception_handler(request: Request, exc: OrchestratorError):
    """Handle orchestrator exceptions that escape a route"""
    logger.warning(f"OrchestratorError: {exc.error_code} - {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "details": {"exception": str(exc)} if settings.debug else {}
        }
    )


# Include routers
app.include_router(health.router)
app.include_router(calls.router, prefix="/api/v1")
app.include_router(credentials.router, prefix="/api/v1")
app.include_router(webhooks.router, prefix="/api/v1")


@app.get("/api")
async def api_info():
    """API information endpoint"""
    return {
        "service": "Call Orchestrator API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "calls": "/api/v1/calls",
            "credentials": "/api/v1/credentials",
            "webhooks": "/api/v1/webhooks"
        }
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "call_orchestrator.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.debug
    )
