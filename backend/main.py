import logging
import logging.config
import json
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.application.services.auth_service import AuthService
from app.application.services.status_errors import (
    NotFoundError,
    PersistenceError,
    StatusPageError,
    ValidationFailedError,
    VersionCheckInProgressError,
)
from app.application.services.version_check_scheduler import VersionCheckScheduler
from app.application.services.version_check_service import get_version_check_service
from app.core.config import settings
from app.domain import models  # noqa: F401
from app.infrastructure.db.base import Base
from app.infrastructure.db.session import SessionLocal, engine
from app.interfaces.api.router import api_router
from app.interfaces.http.middleware import (
    MetricsMiddleware,
    RequestIDMiddleware,
    SecurityHeadersMiddleware,
)

logging_config_path = Path(__file__).with_name("logging.json")
if logging_config_path.exists():
    logging.config.dictConfig(json.loads(logging_config_path.read_text(encoding="utf-8")))
else:
    logging.basicConfig(level=logging.INFO)

logger = logging.getLogger("app")

ERROR_STATUS_CODES: tuple[tuple[type[StatusPageError], int], ...] = (
    (NotFoundError, 404),
    (ValidationFailedError, 400),
    (VersionCheckInProgressError, 409),
    (PersistenceError, 500),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.database_auto_create:
        Base.metadata.create_all(bind=engine)
        with SessionLocal() as db:
            AuthService.ensure_default_admin(db)

    scheduler: VersionCheckScheduler | None = None
    if settings.version_check_scheduler_enabled:
        scheduler = VersionCheckScheduler(
            get_version_check_service().run_scheduled_cycle,
            interval_seconds=settings.version_check_interval_seconds,
            initial_delay_seconds=settings.version_check_initial_delay_seconds,
        )
        scheduler.start()
    app.state.version_check_scheduler = scheduler
    logger.info("app_started version=%s env=%s", settings.app_version, settings.app_env)

    try:
        yield
    finally:
        if scheduler is not None:
            await scheduler.stop()
        logger.info("app_stopped")


app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(MetricsMiddleware)


def _error_payload(*, request: Request, error_code: str, message: str) -> dict:
    trace_id = getattr(request.state, "request_id", None)
    return {
        "error_code": error_code,
        "message": message,
        "trace_id": trace_id,
    }


@app.exception_handler(StatusPageError)
async def status_page_exception_handler(request: Request, exc: StatusPageError) -> JSONResponse:
    status_code = next((code for error_type, code in ERROR_STATUS_CODES if isinstance(exc, error_type)), 500)
    if status_code >= 500:
        logger.error("request_failed path=%s error_code=%s message=%s", request.url.path, exc.error_code, exc)
    return JSONResponse(
        status_code=status_code,
        content=_error_payload(request=request, error_code=exc.error_code, message=str(exc)),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    if isinstance(exc.detail, dict) and "error_code" in exc.detail and "message" in exc.detail:
        error_code = str(exc.detail["error_code"])
        detail = str(exc.detail["message"])
    else:
        error_code = str(exc.status_code)
        detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_payload(request=request, error_code=error_code, message=detail),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content=_error_payload(
            request=request,
            error_code="validation_error",
            message="Request validation failed",
        ),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception path=%s method=%s", request.url.path, request.method)
    return JSONResponse(
        status_code=500,
        content=_error_payload(
            request=request,
            error_code="internal_server_error",
            message="Internal server error",
        ),
    )

app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.api_host, port=settings.api_port, log_config=None)
