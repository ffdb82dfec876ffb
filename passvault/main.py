from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import inspect
from starlette.exceptions import HTTPException as StarletteHTTPException

from passvault.config import settings
from passvault.database import engine
from passvault.exceptions import VaultError
from passvault.logging_config import setup_logging
from passvault.middleware.logging import CORRELATION_HEADER, LoggingMiddleware
from passvault.middleware.rate_limit import limiter
from passvault.routers import auth, records
from passvault.scheduler import shutdown_scheduler, start_scheduler

# Database tables are managed by Alembic migrations
# Run: alembic upgrade head
REQUIRED_TABLES = {"kv_entries"}

setup_logging()
logger = structlog.get_logger()


def check_database_tables() -> None:
    """Fail fast when migrations have not been applied."""
    tables = set(inspect(engine).get_table_names())
    missing = REQUIRED_TABLES - tables
    if missing:
        raise RuntimeError(
            f"Database tables missing: {', '.join(sorted(missing))}. "
            "Run `alembic upgrade head` before starting the server."
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Check the schema, then start/stop the cleanup scheduler."""
    check_database_tables()
    start_scheduler()
    yield
    shutdown_scheduler()


app = FastAPI(
    title="passvault",
    description="Multi-tenant encrypted credential vault",
    version="0.1.0",
    lifespan=lifespan,
)


def error_response(status_code: int, message: str, code: str) -> JSONResponse:
    response = JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "code": code},
    )
    correlation_id = structlog.contextvars.get_contextvars().get("correlation_id")
    if correlation_id:
        response.headers[CORRELATION_HEADER] = correlation_id
    return response


@app.exception_handler(VaultError)
async def vault_error_handler(request: Request, exc: VaultError):
    if exc.status_code >= 500:
        logger.error("vault_error", code=exc.code, path=request.url.path)
    return error_response(exc.status_code, exc.message, exc.code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if any(error.get("type") == "json_invalid" for error in errors):
        return error_response(400, "Request body must be valid JSON", "INVALID_JSON")
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return error_response(400, message, "VALIDATION_ERROR")


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = "METHOD_NOT_ALLOWED" if exc.status_code == 405 else "HTTP_ERROR"
    return error_response(exc.status_code, str(exc.detail), code)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    # Traceback is logged by LoggingMiddleware; never echo internals to the client
    return error_response(500, "Internal server error, please retry later", "INTERNAL_ERROR")


# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# Middleware
app.add_middleware(LoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(auth.router, prefix="/api", tags=["auth"])
app.include_router(records.router, prefix="/api", tags=["records"])


@app.get("/health")
async def health_check():
    return {"status": "healthy"}
