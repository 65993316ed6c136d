"""
JetVein backend: flight lookup API with cache-first reads, per-user search
history and a request gate in front of every route.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from core.container import container
from core.exceptions import JetVeinError
from core.health import set_startup_time
from core.logging import configure_logging, get_logger
from middleware.gate import RequestGate
from routers import auth, flights, health, search_history

settings = container.settings()
configure_logging(settings)
logger = get_logger(__name__)

# Suppress noisy loggers
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
logging.getLogger("aiosqlite").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    logger.info("Starting JetVein services", environment=settings.environment)
    set_startup_time()

    await container.database().startup()
    await container.kv().startup()
    await container.rate_limiter().start()

    logger.info("Services started successfully")
    yield

    await container.rate_limiter().stop()
    await container.kv().shutdown()
    await container.database().shutdown()
    logger.info("Services shutdown complete")


class CatchAllExceptionsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error("Unhandled exception", error_type=type(e).__name__, error=str(e), exc_info=True)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "Internal server error", "code": "INTERNAL_ERROR"},
            )


async def jetvein_error_handler(request: Request, exc: JetVeinError):
    if exc.status_code >= 500:
        logger.error("Request failed", code=exc.code, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        details.append(f"{location}: {error.get('msg')}" if location else error.get("msg"))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request", "code": "VALIDATION_ERROR", "details": details},
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="JetVein API",
        version="1.0.0",
        description="Flight and aircraft lookup with cached upstream data",
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
    )

    app.add_exception_handler(JetVeinError, jetvein_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Last added runs first: the gate wraps the catch-all
    app.add_middleware(CatchAllExceptionsMiddleware)
    app.add_middleware(RequestGate)

    app.include_router(auth.router)
    app.include_router(flights.router)
    app.include_router(search_history.router)
    app.include_router(health.router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting JetVein API", host=settings.host, port=settings.port, debug=settings.debug)
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        reload_dirs=["."] if settings.debug else None,
        workers=1 if settings.debug else settings.workers
    )
