# chartbuddies/main.py
import structlog
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from . import crud
from .config import get_settings
from .core.logging import setup_logging
from .database import create_tables
from .routers import (
    onboarding, hospitals, users, patients, mar_forms, mar_medications,
    mar_administrations, mar_vitals, mar_prn, legends, logs, health,
)
from .security import add_security_headers

settings = get_settings()
setup_logging(settings.log_level, json_output=settings.log_json)
logger = structlog.get_logger(__name__)

app = FastAPI(title=settings.app_name, version=settings.app_version, debug=settings.debug)


# Lifespan for startup events
@app.on_event("startup")
def on_startup():
    create_tables()
    logger.info("application_started", environment=settings.environment)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
    allow_headers=["*"],
)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(path=request.url.path, method=request.method)
    response = await call_next(request)
    return add_security_headers(response)


# --- Error translation ---

@app.exception_handler(crud.CRUDError)
async def crud_error_handler(request: Request, exc: crud.CRUDError):
    if exc.status_code >= 500:
        logger.error("request_failed", error_type=type(exc).__name__, detail=str(exc))
    else:
        logger.info("request_rejected", error_type=type(exc).__name__, status_code=exc.status_code, detail=str(exc))
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("database_error", detail=str(exc), exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "A database error occurred. Please try again."},
    )


app.include_router(health.router, prefix="/api/v1")
app.include_router(onboarding.router, prefix="/api/v1")
app.include_router(hospitals.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(patients.router, prefix="/api/v1")
app.include_router(mar_forms.router, prefix="/api/v1")
app.include_router(mar_medications.router, prefix="/api/v1")
app.include_router(mar_administrations.router, prefix="/api/v1")
app.include_router(mar_vitals.router, prefix="/api/v1")
app.include_router(mar_prn.router, prefix="/api/v1")
app.include_router(legends.router, prefix="/api/v1")
app.include_router(logs.router, prefix="/api/v1")


if __name__ == "__main__":
    uvicorn.run("chartbuddies.main:app", host="0.0.0.0", port=8000, reload=settings.is_development)
