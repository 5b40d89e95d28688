from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.application.services.status_page_service import build_status_summary
from app.core.config import settings
from app.infrastructure.db.session import get_db

router = APIRouter(tags=["status"])


@router.get("/status", status_code=status.HTTP_200_OK)
def status_summary(db: Session = Depends(get_db)) -> dict:
    return build_status_summary(db)


@router.get("/version", status_code=status.HTTP_200_OK)
def app_version() -> dict:
    return {"version": settings.app_version}
