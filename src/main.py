"""
Kanji SRS

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from src.api.deps import DbSession, get_bonus_calendar
from src.api.middleware.rate_limit import RateLimitMiddleware
from src.api.middleware.request_id import RequestIdMiddleware
from src.api.v1 import router as api_v1_router
from src.config import get_settings
from src.database import close_db, init_db
from src.engines.srs.errors import SRSError
from src.logging_config import configure_logging, get_logger
from src.schemas.common import HealthResponse

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Configure logging, check the bonus timezone and create tables; dispose the pool on exit."""
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )
    calendar = get_bonus_calendar()  # raises on an unknown timezone name
    logger.info(
        "Starting %s v%s",
        settings.project_name,
        settings.version,
        extra={"access_mode": settings.access_mode, "bonus_timezone": calendar.timezone_name},
    )
    await init_db()

    yield

    await close_db()
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.project_name,
    description="""
    Kanji SRS

    Spaced-repetition learning of Japanese characters and vocabulary.

    ## Features

    - **Lessons**: Levels unlock once every item of the previous level is started
    - **Reviews**: Ten-stage schedule from Apprentice to Burned
    - **Answer checking**: Meanings in English, readings in kana or romaji
    - **Weekly XP**: Double XP on Sundays, weekly leaderboard
    - **Burned items**: Manual burn, unburn and skipping ahead
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# add_middleware stacks innermost-first; CORS is added last so it wraps the
# rate limiter and 429 responses carry CORS headers.
_cors_origins = list(settings.cors_origins)

app.add_middleware(RateLimitMiddleware)
app.add_middleware(RequestIdMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _cors_headers(request: Request) -> dict:
    """CORS headers for error responses, which can bypass the CORS middleware."""
    origin = request.headers.get("origin")
    if not origin or origin not in _cors_origins:
        return {}
    return {
        "Access-Control-Allow-Origin": origin,
        "Access-Control-Allow-Credentials": "true",
        "Vary": "Origin",
    }


def _error_response(
    request: Request,
    status_code: int,
    content: dict,
    headers: Optional[dict] = None,
) -> JSONResponse:
    """JSON error body with CORS headers and the request id in both body and headers."""
    response_headers = _cors_headers(request)
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        response_headers["X-Request-ID"] = req_id
        content.setdefault("request_id", req_id)
    if headers:
        response_headers.update(headers)
    return JSONResponse(status_code=status_code, content=content, headers=response_headers)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """401/403 from authentication and any other HTTPException."""
    return _error_response(request, exc.status_code, {"detail": exc.detail}, exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
):
    """Request body, path or query failed schema validation."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return _error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        {"detail": "Validation error", "code": "validation_error", "errors": errors},
    )


@app.exception_handler(SRSError)
async def srs_exception_handler(request: Request, exc: SRSError):
    """Map engine errors to their HTTP status with a machine-readable code."""
    if exc.status_code >= 500:
        logger.error("SRS error: %s", exc.message, extra={"code": exc.code})
    else:
        logger.info("Request rejected: %s", exc.message, extra={"code": exc.code})
    content = {"detail": exc.message, "code": exc.code}
    if exc.details:
        content["details"] = exc.details
    return _error_response(request, exc.status_code, content)


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """Storage failure; the request transaction has already been rolled back."""
    logger.exception("Database error: %s", type(exc).__name__)
    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        {"detail": "Database error", "code": "database_error"},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception: %s", exc)
    content = {"detail": "Internal server error", "code": "internal_error"}
    if settings.debug:
        content.update(detail=str(exc), type=type(exc).__name__)
    return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, content)


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(db: DbSession):
    """Check application and database health."""
    try:
        await db.execute(text("SELECT 1"))
        database = "connected"
    except SQLAlchemyError:
        logger.warning("Health check could not reach the database")
        database = "unavailable"
    return HealthResponse(
        status="ok" if database == "connected" else "degraded",
        version=settings.version,
        database=database,
    )


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.project_name,
        "version": settings.version,
        "docs": "/docs" if settings.debug else "disabled",
        "access_mode": settings.access_mode,
        "bonus_timezone": settings.bonus_timezone,
        "api": {
            "v1": settings.api_v1_prefix,
        },
    }


app.include_router(
    api_v1_router,
    prefix=settings.api_v1_prefix,
)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
