"""
FastAPI backend for modelrelay.

API server with endpoints for:
- Chat with automatic model failover, deep search and SSE streaming
- Code generation, including the multi-agent project pipeline
- Web search and weather lookups
- Health checks
"""

import logging
import traceback
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from modelrelay import __version__
from modelrelay.agent.failover import FailoverEngine
from modelrelay.agent.weather import WeatherClient
from modelrelay.agent.web_search import WebSearchGatherer
from modelrelay.core.config import Settings, get_settings
from modelrelay.core.exceptions import ConfigurationError, InvalidRequestError
from modelrelay.core.llm_transport import LLMTransport
from modelrelay.core.rate_limit import (
    InMemoryRateLimitStore,
    RateLimiter,
    RateLimitMiddleware,
    RateLimitStore,
)
from modelrelay.core.security import SecurityHeadersMiddleware
from modelrelay.routers import chat, code, search, weather
from modelrelay.services.chat_service import ChatService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


def _get_error_id() -> str:
    """Generate a unique error ID for tracking."""
    return str(uuid.uuid4())[:8]


# ============== Exception Handlers ==============

async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors with user-friendly messages."""
    error_id = _get_error_id()
    logger.error(
        f"Validation error [{error_id}] on {request.method} {request.url.path}: "
        f"{exc.errors()}"
    )
    return JSONResponse(
        status_code=400,
        content={
            "error": "validation_error",
            "message": "Invalid request data. Please check your input and try again.",
            "error_id": error_id,
        }
    )


async def invalid_request_handler(request: Request, exc: InvalidRequestError):
    logger.warning(f"Rejected {request.method} {request.url.path}: {exc.error_code} - {exc.message}")
    return JSONResponse(
        status_code=400,
        content={"error": exc.error_code, "message": exc.message}
    )


async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.error(f"Configuration error on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=500,
        content={"message": exc.message, "error": "API_KEY_MISSING"}
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions with appropriate detail levels."""
    error_id = _get_error_id()
    logger.warning(
        f"HTTP {exc.status_code} [{error_id}] on {request.method} {request.url.path}: "
        f"{exc.detail}"
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": f"http_{exc.status_code}",
            "message": exc.detail,
            "error_id": error_id,
        },
        headers=getattr(exc, "headers", None),
    )


async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors.

    Clients get a friendly message with an error ID; the full stack trace
    only goes to the logs.
    """
    error_id = _get_error_id()
    logger.error(
        f"Unhandled exception [{error_id}]\n"
        f"  Request: {request.method} {request.url.path}\n"
        f"  Client: {request.client.host if request.client else 'unknown'}\n"
        f"  Exception Type: {type(exc).__name__}\n"
        f"  Exception Message: {str(exc)}\n"
        f"  Stack Trace:\n{traceback.format_exc()}"
    )
    content = {
        "message": (
            "We encountered an issue processing your request. "
            f"Please try again. Error ID: {error_id}"
        ),
        "error": "UNKNOWN_ERROR",
        "error_id": error_id,
    }
    if request.app.state.settings.debug:
        content["technical_details"] = {
            "exception_type": type(exc).__name__,
            "exception_message": str(exc),
        }
    return JSONResponse(status_code=500, content=content)


# ============== Application Factory ==============

def create_app(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    rate_limit_store: Optional[RateLimitStore] = None,
) -> FastAPI:
    """Build the application and wire its components.

    Tests pass their own settings, an ``httpx.AsyncClient`` backed by a mock
    transport and, if needed, a rate limit store.
    """
    settings = settings or get_settings()
    client = http_client or httpx.AsyncClient(follow_redirects=True)

    transport = LLMTransport(settings, client)
    engine = FailoverEngine(transport, settings)
    gatherer = WebSearchGatherer(
        client,
        provider_timeout=settings.search_provider_timeout,
        brave_api_key=settings.brave_api_key,
    )
    weather_client = WeatherClient(client, timeout=settings.weather_timeout_seconds)
    limiter = RateLimiter(
        rate_limit_store or InMemoryRateLimitStore(),
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
        sweep_interval=settings.rate_limit_sweep_interval,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """Application lifespan manager - startup and shutdown."""
        logger.info("Starting modelrelay API...")
        if not settings.has_api_key:
            logger.warning("OPENROUTER_API_KEY is not configured; chat requests will fail")
        await limiter.start()
        logger.info(f"API ready at http://0.0.0.0:{settings.api_port}")

        yield

        logger.info("Shutting down modelrelay API...")
        await limiter.stop()
        await transport.close()
        logger.info("HTTP client closed")

    app = FastAPI(
        title="modelrelay API",
        description="""
        Chat gateway over free OpenAI-compatible models.

        ## Features
        - **Chat**: Automatic model selection and failover, streaming, deep search
        - **Code**: Single-model generation or a multi-agent project pipeline
        - **Search**: Concurrent web search with ranking and de-duplication
        - **Weather**: Current conditions and forecast
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan
    )

    app.state.settings = settings
    app.state.transport = transport
    app.state.engine = engine
    app.state.gatherer = gatherer
    app.state.weather_client = weather_client
    app.state.rate_limiter = limiter
    app.state.chat_service = ChatService(engine, gatherer, weather_client, settings)

    # Middleware added last runs first: CORS, rate limit, security headers
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RateLimitMiddleware, limiter=limiter)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(InvalidRequestError, invalid_request_handler)
    app.add_exception_handler(ConfigurationError, configuration_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(chat.router, prefix="/api/v1/chat", tags=["Chat"])
    app.include_router(code.router, prefix="/api/v1/code", tags=["Code"])
    app.include_router(search.router, prefix="/api/v1/search", tags=["Search"])
    app.include_router(weather.router, prefix="/api/v1/weather", tags=["Weather"])

    # Root endpoint
    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "modelrelay API",
            "version": __version__,
            "status": "running",
            "docs": "/docs",
            "health": "/health"
        }

    # Health check at root level for load balancers
    @app.get("/health", tags=["Health"])
    async def health():
        """Quick health check for load balancers."""
        return {"status": "healthy", "api_key_configured": settings.has_api_key}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    from modelrelay.core.config import settings

    uvicorn.run(
        "modelrelay.main:app",
        host="0.0.0.0",
        port=settings.api_port,
        reload=settings.debug,
    )
