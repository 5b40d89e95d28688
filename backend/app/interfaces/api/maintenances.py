from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.application.services.maintenance_service import (
    MaintenancePatch,
    component_ids_by_maintenance,
    create_maintenance,
    delete_maintenance,
    get_maintenance,
    list_maintenances,
    serialize_maintenance,
    update_maintenance,
)
from app.application.services.partial_update import patch_from_model
from app.domain.models.maintenance import Maintenance, MaintenanceStatus
from app.domain.models.user import User
from app.interfaces.api.deps import require_staff
from app.infrastructure.db.session import get_db

router = APIRouter(prefix="/maintenances", tags=["maintenances"])


class MaintenanceCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    window_start: datetime
    window_end: datetime
    status: MaintenanceStatus = MaintenanceStatus.SCHEDULED
    affected_component_ids: list[UUID] = Field(default_factory=list)


class MaintenanceUpdateRequest(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    window_start: datetime | None = None
    window_end: datetime | None = None
    status: MaintenanceStatus | None = None
    affected_component_ids: list[UUID] | None = None


def _serialize_one(db: Session, maintenance: Maintenance) -> dict:
    linked = component_ids_by_maintenance(db, [maintenance.id])
    return serialize_maintenance(maintenance, linked.get(maintenance.id, []))


@router.get("", status_code=status.HTTP_200_OK)
def list_all_maintenances(
    maintenance_status: MaintenanceStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
) -> list[dict]:
    statuses = [maintenance_status.value] if maintenance_status else None
    maintenances = list_maintenances(db, statuses=statuses)
    linked = component_ids_by_maintenance(db, [maintenance.id for maintenance in maintenances])
    return [serialize_maintenance(maintenance, linked.get(maintenance.id, [])) for maintenance in maintenances]


@router.get("/{maintenance_id}", status_code=status.HTTP_200_OK)
def get_single_maintenance(maintenance_id: UUID, db: Session = Depends(get_db)) -> dict:
    return _serialize_one(db, get_maintenance(db, maintenance_id))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_new_maintenance(
    payload: MaintenanceCreateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
) -> dict:
    maintenance = create_maintenance(
        db,
        title=payload.title,
        window_start=payload.window_start,
        window_end=payload.window_end,
        status=payload.status.value,
        affected_component_ids=payload.affected_component_ids,
    )
    return _serialize_one(db, maintenance)


@router.patch("/{maintenance_id}", status_code=status.HTTP_200_OK)
def patch_maintenance(
    maintenance_id: UUID,
    payload: MaintenanceUpdateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
) -> dict:
    maintenance = update_maintenance(db, maintenance_id, patch_from_model(payload, MaintenancePatch))
    return _serialize_one(db, maintenance)


@router.delete("/{maintenance_id}", status_code=status.HTTP_200_OK)
def remove_maintenance(
    maintenance_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
) -> dict:
    delete_maintenance(db, maintenance_id)
    return {"message": "Maintenance deleted successfully"}
