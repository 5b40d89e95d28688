from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.application.services.incident_service import (
    IncidentPatch,
    add_incident_update,
    create_incident,
    delete_incident,
    edit_incident_update,
    get_incident,
    list_incidents,
    serialize_incident,
    serialize_incident_update,
    update_incident,
)
from app.application.services.partial_update import patch_from_model
from app.domain.models.incident import IncidentImpact, IncidentStatus, IncidentVisibility
from app.domain.models.user import User
from app.interfaces.api.deps import require_staff
from app.infrastructure.db.session import get_db

router = APIRouter(prefix="/incidents", tags=["incidents"])


class IncidentCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    started_at: datetime
    impact: IncidentImpact = IncidentImpact.P2
    current_status: IncidentStatus = IncidentStatus.IDENTIFIED
    visibility: IncidentVisibility = IncidentVisibility.PUBLIC
    incident_number: str | None = Field(default=None, max_length=32)
    summary: str | None = None
    affected_services: str | None = None
    root_cause: str | None = None
    resolution_notes: str | None = None
    domain_distribution: str | None = None
    affected_component_ids: list[UUID] = Field(default_factory=list)


class IncidentUpdateRequest(BaseModel):
    title: str | None = Field(default=None, max_length=255)
    summary: str | None = None
    incident_number: str | None = Field(default=None, max_length=32)
    affected_services: str | None = None
    root_cause: str | None = None
    resolution_notes: str | None = None
    domain_distribution: str | None = None
    impact: IncidentImpact | None = None
    current_status: IncidentStatus | None = None
    visibility: IncidentVisibility | None = None
    started_at: datetime | None = None
    resolved_at: datetime | None = None
    affected_component_ids: list[UUID] | None = None


class IncidentUpdateMessageRequest(BaseModel):
    message: str = Field(min_length=1)
    status: IncidentStatus | None = None


@router.get("", status_code=status.HTTP_200_OK)
def list_all_incidents(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=200),
    visibility: IncidentVisibility = Query(default=IncidentVisibility.PUBLIC),
    db: Session = Depends(get_db),
) -> list[dict]:
    return [
        serialize_incident(details)
        for details in list_incidents(db, page=page, limit=limit, visibility=visibility.value)
    ]


@router.get("/{incident_id}", status_code=status.HTTP_200_OK)
def get_single_incident(incident_id: UUID, db: Session = Depends(get_db)) -> dict:
    return serialize_incident(get_incident(db, incident_id))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_new_incident(
    payload: IncidentCreateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
) -> dict:
    details = create_incident(
        db,
        title=payload.title,
        started_at=payload.started_at,
        impact=payload.impact.value,
        current_status=payload.current_status.value,
        visibility=payload.visibility.value,
        incident_number=payload.incident_number,
        summary=payload.summary,
        affected_services=payload.affected_services,
        root_cause=payload.root_cause,
        resolution_notes=payload.resolution_notes,
        domain_distribution=payload.domain_distribution,
        affected_component_ids=payload.affected_component_ids,
    )
    return serialize_incident(details)


@router.patch("/{incident_id}", status_code=status.HTTP_200_OK)
def patch_incident(
    incident_id: UUID,
    payload: IncidentUpdateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
) -> dict:
    details = update_incident(db, incident_id, patch_from_model(payload, IncidentPatch))
    return serialize_incident(details)


@router.delete("/{incident_id}", status_code=status.HTTP_200_OK)
def remove_incident(
    incident_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
) -> dict:
    delete_incident(db, incident_id)
    return {"message": "Incident deleted successfully"}


@router.post("/{incident_id}/updates", status_code=status.HTTP_201_CREATED)
def post_incident_update(
    incident_id: UUID,
    payload: IncidentUpdateMessageRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
) -> dict:
    update = add_incident_update(
        db,
        incident_id,
        message=payload.message,
        status=payload.status.value if payload.status else None,
    )
    return serialize_incident_update(update)


@router.patch("/{incident_id}/updates/{update_id}", status_code=status.HTTP_200_OK)
def patch_incident_update(
    incident_id: UUID,
    update_id: UUID,
    payload: IncidentUpdateMessageRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
) -> dict:
    update = edit_incident_update(
        db,
        incident_id,
        update_id,
        message=payload.message,
        status=payload.status.value if payload.status else None,
    )
    return serialize_incident_update(update)
