# account_security/main.py
import asyncio
import contextlib
import logging
import math
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from account_security.api.routers.auth import router as auth_router
from account_security.api.routers.mfa import router as mfa_router
from account_security.api.routers.sessions import router as sessions_router
from account_security.core.config import settings
from account_security.core.rate_limit import get_real_client_ip, limiter
from account_security.core.request_context import RequestContextMiddleware
from account_security.core.security_logger import security_log
from account_security.exceptions import AccountSecurityError, RateLimited
from account_security.services.accounts import InMemoryAccountStore
from account_security.services.container import SecurityServices, build_services

# Configure basic logging (ensure this is done early)
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def error_body(exc: AccountSecurityError) -> dict:
    return {
        "error": {
            "code": exc.code,
            "message": exc.message,
            "details": exc.public_details(),
        }
    }


async def _housekeeping_loop(services: SecurityServices, interval_seconds: int) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            purged = services.attempts.purge_expired()
            cleaned = services.sessions.cleanup_expired()
            logger.debug(f"Housekeeping: purged {purged} store entries, {cleaned} sessions")
        except Exception:
            logger.error("Housekeeping run failed", exc_info=True)


# --- Lifespan Management ---
@asynccontextmanager
async def lifespan(app_instance: FastAPI):
    engine = None
    if app_instance.state.services is None:
        if settings.DATABASE_URL:
            from account_security.crud import SqlAlchemyAccountStore
            from account_security.db.session import create_engine_and_sessionmaker, create_tables

            engine, session_maker = create_engine_and_sessionmaker()
            await create_tables(engine)
            accounts = SqlAlchemyAccountStore(session_maker)
            logger.info("LIFESPAN: Using the SQLAlchemy account store.")
        else:
            accounts = InMemoryAccountStore()
            logger.warning("LIFESPAN: DATABASE_URL not set; using an empty in-memory account store.")
        app_instance.state.services = build_services(accounts)

    housekeeping = None
    if settings.HOUSEKEEPING_INTERVAL_SECONDS > 0:
        housekeeping = asyncio.create_task(
            _housekeeping_loop(app_instance.state.services, settings.HOUSEKEEPING_INTERVAL_SECONDS)
        )
    logger.info(f"LIFESPAN: {settings.APP_NAME} startup complete ({settings.ENVIRONMENT}).")

    yield

    if housekeeping is not None:
        housekeeping.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await housekeeping
    if engine is not None:
        await engine.dispose()
        logger.info("LIFESPAN: Database engine disposed.")
    logger.info("LIFESPAN: Shutdown complete.")


# --- Exception Handlers ---
def jsonable_errors(errors) -> list[dict]:
    # ctx may carry exception instances that JSONResponse cannot encode
    return [{key: value for key, value in err.items() if key != "ctx"} for err in errors]


async def account_security_exception_handler(request: Request, exc: AccountSecurityError):
    logger.info(
        f"{type(exc).__name__} ({exc.code}) for {request.method} {request.url.path}"
    )
    headers = None
    retry_after_ms = exc.details.get("retryAfterMs")
    if retry_after_ms:
        headers = {"Retry-After": str(max(1, math.ceil(retry_after_ms / 1000)))}
    return JSONResponse(status_code=exc.status_code, content=error_body(exc), headers=headers)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    security_log.rate_limited(get_real_client_ip(request), request.url.path)
    error = RateLimited()
    return JSONResponse(status_code=error.status_code, content=error_body(error))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    error_details = exc.errors()
    logger.warning(
        f"Request validation error: {request.method} {request.url.path} - Errors: {error_details}",
        extra={"errors": error_details},
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Invalid request",
                "details": {"errors": jsonable_errors(error_details)},
            }
        },
    )


async def http_exception_handler_custom(request: Request, exc: HTTPException):
    log_message = f"HTTPException: Status={exc.status_code}, Detail='{exc.detail}' for {request.method} {request.url.path}"
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(log_message, exc_info=True)
    else:
        logger.warning(log_message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": {"code": "HTTP_ERROR", "message": str(exc.detail), "details": None}},
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler_custom(request: Request, exc: Exception):
    logger.error(
        f"Unhandled exception during request: {request.method} {request.url.path}", exc_info=exc
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected internal server error occurred.",
                "details": None,
            }
        },
    )


def create_app(services: SecurityServices | None = None) -> FastAPI:
    """
    Build the application.

    ``services`` is used as-is when given; otherwise the lifespan wires the
    services around the configured account store.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=settings.APP_DESCRIPTION,
        lifespan=lifespan,
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        docs_url=f"{settings.API_PREFIX}/docs",
    )
    app.state.services = services

    # --- Rate Limiting Setup ---
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    # --- Middleware ---
    if settings.BACKEND_CORS_ORIGINS:
        origins = [
            str(origin).strip("/") for origin in settings.BACKEND_CORS_ORIGINS if str(origin).strip("/")
        ]
        if origins:
            app.add_middleware(
                CORSMiddleware,
                allow_origins=origins,
                allow_credentials=True,
                allow_methods=["*"],
                allow_headers=["*"],
            )
            logger.info(f"CORS enabled for origins: {origins}")
    # Added last so it runs first and every later layer sees the context
    app.add_middleware(RequestContextMiddleware)

    app.add_exception_handler(AccountSecurityError, account_security_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler_custom)
    app.add_exception_handler(Exception, generic_exception_handler_custom)

    api_router = APIRouter()
    api_router.include_router(auth_router)
    api_router.include_router(mfa_router)
    api_router.include_router(sessions_router)
    app.include_router(api_router, prefix=settings.API_PREFIX)

    @app.get(
        "/health",
        tags=["System Health"],
        summary="Basic System Liveness Check",
        status_code=status.HTTP_200_OK,
        include_in_schema=False,
    )
    async def health_check_basic_system():
        return {"status": "healthy"}

    return app


app = create_app()


# --- Main entry point for Uvicorn direct run ---
if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting Uvicorn server directly for {settings.APP_NAME} (local debugging)...")
    uvicorn.run(
        "account_security.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )
