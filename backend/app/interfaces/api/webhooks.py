import logging
from datetime import UTC, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.application.services.component_service import set_component_status
from app.application.services.incident_service import create_incident, resolve_latest_for_component
from app.application.services.status_errors import ValidationFailedError
from app.domain.models.component import ComponentStatus
from app.domain.models.incident import IncidentImpact
from app.interfaces.api.deps import verify_webhook_token
from app.infrastructure.db.session import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

WEBHOOK_ACTIONS = ("create", "resolve", "update_component")


class IncidentWebhookRequest(BaseModel):
    token: str | None = None
    action: str | None = None
    component_id: UUID | None = None
    title: str | None = None
    impact: IncidentImpact = IncidentImpact.P2
    message: str | None = None
    status: ComponentStatus | None = None


@router.post("/incident", status_code=status.HTTP_200_OK)
def incident_webhook(payload: IncidentWebhookRequest, db: Session = Depends(get_db)) -> dict:
    verify_webhook_token(payload.token)
    logger.info("incident_webhook_received action=%s component_id=%s", payload.action, payload.component_id)

    if payload.action == "create":
        details = create_incident(
            db,
            title=(payload.title or "").strip() or "Automated Incident",
            started_at=datetime.now(UTC),
            impact=payload.impact.value,
            affected_component_ids=[payload.component_id] if payload.component_id else [],
            initial_message=payload.message,
        )
        return {"message": "Incident created", "incident_id": str(details.incident.id)}

    if payload.action == "resolve":
        if payload.component_id is None:
            raise ValidationFailedError("component_id required for resolve action")
        incident = resolve_latest_for_component(db, payload.component_id, message=payload.message)
        return {"message": "Incident resolved", "incident_id": str(incident.id)}

    if payload.action == "update_component":
        if payload.component_id is None:
            raise ValidationFailedError("component_id required")
        if payload.status is None:
            raise ValidationFailedError("status required")
        set_component_status(db, payload.component_id, payload.status.value)
        return {"message": "Component updated", "component_id": str(payload.component_id)}

    raise ValidationFailedError(f"Invalid action. Use: {', '.join(WEBHOOK_ACTIONS)}")
