from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from api.v1 import admin, cards, records, referrals, users, wallet
from core.config import settings
from core.errors import STATUS_BY_KIND, AppError, ErrorKind, UnauthorizedError
from db.base import initialize_database
from db.session import SessionLocal, engine
from utils.logging_config import RequestContextMiddleware, configure_logging

logger = configure_logging("creditodds")

ROUTERS = (
    (cards.router, "Cards"),
    (records.router, "Records"),
    (referrals.router, "Referrals"),
    (wallet.router, "Wallet"),
    (users.router, "Profile"),
    (admin.router, "Admin"),
)


def _error_response(kind: ErrorKind, detail: str, headers: dict = None, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_BY_KIND[kind],
        content={"error": kind.value, "detail": detail, **extra},
        headers=headers,
    )


async def handle_app_error(request: Request, exc: AppError):
    log = logger.error if exc.status_code >= 500 else logger.info
    log(f"{exc.kind.value} at {request.url.path}: {exc.message}")
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=headers)


async def handle_validation_error(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        path = [str(part) for part in err.get("loc", ()) if part not in ("body", "query")]
        errors.append({"field": ".".join(path) or None, "message": err.get("msg", "invalid value")})
    if not errors:
        return _error_response(ErrorKind.VALIDATION, "invalid request", errors=[])
    first = errors[0]
    detail = f"{first['field']}: {first['message']}" if first["field"] else first["message"]
    return _error_response(ErrorKind.VALIDATION, detail, errors=errors)


async def handle_unexpected_error(request: Request, exc: Exception):
    # Internals stay in the log; clients only see a generic body
    logger.exception(f"Unhandled error at {request.url.path}: {exc}")
    return _error_response(ErrorKind.INTERNAL, "Internal server error")


@asynccontextmanager
async def lifespan(application: FastAPI):
    await initialize_database()
    logger.info(f"{settings.APP_NAME} {settings.VERSION} started")
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Database pool closed")


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    application.add_exception_handler(AppError, handle_app_error)
    application.add_exception_handler(RequestValidationError, handle_validation_error)
    application.add_exception_handler(Exception, handle_unexpected_error)

    # CORS must stay outermost (added last)
    application.add_middleware(GZipMiddleware, minimum_size=500)
    application.add_middleware(RequestContextMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for router, tag in ROUTERS:
        application.include_router(router, tags=[tag])

    return application


app = create_app()


@app.get("/")
async def root():
    return {"message": settings.APP_NAME, "version": settings.VERSION}


@app.get("/health")
async def health_check():
    try:
        async with SessionLocal() as db:
            await db.execute(text("SELECT 1"))
        database = "sql_connected"
    except Exception as e:
        logger.warning(f"Health SQL check failed: {e}")
        database = "sql_unavailable"
    return {"status": "healthy" if database == "sql_connected" else "degraded", "database": database}
