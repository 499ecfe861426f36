# chartbuddies/routers/health.py
from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import security
from ..config import get_settings
from ..database import get_db

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/health",
    tags=["Health Checks"],
    responses={404: {"description": "Not found"}},
)


@router.get("/live")
def liveness():
    """Process is up. No authentication, no database."""
    settings = get_settings()
    return {"status": "ok", "version": settings.app_version, "time": datetime.now(timezone.utc).isoformat()}


@router.get("/ready", dependencies=[Depends(security.get_current_profile)])
def readiness(db: Session = Depends(get_db)):
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("readiness_check_failed", error=str(e))
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                            content={"status": "unavailable", "database": "unreachable"})
    return {"status": "ok", "database": "ok"}
