import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.application.services.component_service import require_component_ids
from app.application.services.incident_impact_service import heal_resolved_at, reconcile_component_statuses
from app.application.services.partial_update import UNSET, Unset, assigned_fields, blank_to_none, is_set
from app.application.services.status_errors import (
    IncidentNotFoundError,
    IncidentUpdateNotFoundError,
    ValidationFailedError,
    commit_or_raise,
)
from app.domain.models.incident import (
    Incident,
    IncidentComponent,
    IncidentImpact,
    IncidentStatus,
    IncidentUpdate,
    IncidentVisibility,
)

logger = logging.getLogger(__name__)

_TEXT_FIELDS = {
    "summary",
    "incident_number",
    "affected_services",
    "root_cause",
    "resolution_notes",
    "domain_distribution",
}
_REQUIRED_FIELDS = {"title", "impact", "current_status", "visibility", "started_at"}


@dataclass
class IncidentPatch:
    title: str | Unset = UNSET
    summary: str | None | Unset = UNSET
    incident_number: str | None | Unset = UNSET
    affected_services: str | None | Unset = UNSET
    root_cause: str | None | Unset = UNSET
    resolution_notes: str | None | Unset = UNSET
    domain_distribution: str | None | Unset = UNSET
    impact: str | Unset = UNSET
    current_status: str | Unset = UNSET
    visibility: str | Unset = UNSET
    started_at: datetime | Unset = UNSET
    resolved_at: datetime | None | Unset = UNSET
    affected_component_ids: list[UUID] | Unset = UNSET


@dataclass
class IncidentDetails:
    incident: Incident
    updates: list[IncidentUpdate]
    affected_component_ids: list[UUID]


def generate_incident_number(now: datetime | None = None) -> str:
    millis = int((now or datetime.now(UTC)).timestamp() * 1000)
    return f"PRB{str(millis)[-6:]}"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def serialize_incident_update(update: IncidentUpdate) -> dict:
    return {
        "id": str(update.id),
        "incident_id": str(update.incident_id),
        "message": update.message,
        "status": update.status,
        "timestamp": _iso(update.timestamp),
    }


def serialize_incident(details: IncidentDetails) -> dict:
    incident = details.incident
    return {
        "id": str(incident.id),
        "incident_number": incident.incident_number,
        "title": incident.title,
        "summary": incident.summary,
        "affected_services": incident.affected_services,
        "root_cause": incident.root_cause,
        "resolution_notes": incident.resolution_notes,
        "domain_distribution": incident.domain_distribution,
        "impact": incident.impact,
        "current_status": incident.current_status,
        "visibility": incident.visibility,
        "started_at": _iso(incident.started_at),
        "resolved_at": _iso(incident.resolved_at),
        "created_at": _iso(incident.created_at),
        "updated_at": _iso(incident.updated_at),
        "affected_component_ids": [str(component_id) for component_id in details.affected_component_ids],
        "updates": [serialize_incident_update(update) for update in details.updates],
    }


def sync_resolution(incident: Incident, *, now: datetime | None = None) -> None:
    """``current_status`` decides ``resolved_at``: stamped when resolved, cleared otherwise."""
    if incident.current_status == IncidentStatus.RESOLVED.value:
        if incident.resolved_at is None:
            incident.resolved_at = now or datetime.now(UTC)
    else:
        incident.resolved_at = None


def load_incident_details(
    db: Session,
    incidents: Sequence[Incident],
    *,
    newest_updates_first: bool = False,
) -> list[IncidentDetails]:
    incident_ids = [incident.id for incident in incidents]
    updates_by_incident: dict[UUID, list[IncidentUpdate]] = defaultdict(list)
    components_by_incident: dict[UUID, list[UUID]] = defaultdict(list)

    if incident_ids:
        order = IncidentUpdate.timestamp.desc() if newest_updates_first else IncidentUpdate.timestamp.asc()
        for update in db.execute(
            select(IncidentUpdate).where(IncidentUpdate.incident_id.in_(incident_ids)).order_by(order)
        ).scalars():
            updates_by_incident[update.incident_id].append(update)
        for incident_id, component_id in db.execute(
            select(IncidentComponent.incident_id, IncidentComponent.component_id).where(
                IncidentComponent.incident_id.in_(incident_ids)
            )
        ).all():
            components_by_incident[incident_id].append(component_id)

    return [
        IncidentDetails(
            incident=incident,
            updates=updates_by_incident.get(incident.id, []),
            affected_component_ids=components_by_incident.get(incident.id, []),
        )
        for incident in incidents
    ]


def _heal_on_read(db: Session) -> None:
    if heal_resolved_at(db):
        commit_or_raise(db, action="heal_incident_resolution")


def list_incidents(
    db: Session,
    *,
    page: int = 1,
    limit: int = 20,
    visibility: str = IncidentVisibility.PUBLIC.value,
) -> list[IncidentDetails]:
    _heal_on_read(db)
    incidents = db.execute(
        select(Incident)
        .where(Incident.visibility == visibility)
        .order_by(Incident.started_at.desc())
        .offset((max(page, 1) - 1) * limit)
        .limit(limit)
    ).scalars().all()
    return load_incident_details(db, incidents)


def _get_incident(db: Session, incident_id: UUID) -> Incident:
    incident = db.execute(select(Incident).where(Incident.id == incident_id)).scalar_one_or_none()
    if incident is None:
        raise IncidentNotFoundError("Incident not found")
    return incident


def get_incident(db: Session, incident_id: UUID) -> IncidentDetails:
    _heal_on_read(db)
    return load_incident_details(db, [_get_incident(db, incident_id)])[0]


def _replace_links(db: Session, incident_id: UUID, component_ids: Iterable[UUID]) -> None:
    db.execute(delete(IncidentComponent).where(IncidentComponent.incident_id == incident_id))
    for component_id in component_ids:
        db.add(IncidentComponent(incident_id=incident_id, component_id=component_id))


def create_incident(
    db: Session,
    *,
    title: str,
    started_at: datetime,
    impact: str = IncidentImpact.P2.value,
    current_status: str = IncidentStatus.IDENTIFIED.value,
    visibility: str = IncidentVisibility.PUBLIC.value,
    incident_number: str | None = None,
    summary: str | None = None,
    affected_services: str | None = None,
    root_cause: str | None = None,
    resolution_notes: str | None = None,
    domain_distribution: str | None = None,
    affected_component_ids: Iterable[UUID] = (),
    initial_message: str | None = None,
) -> IncidentDetails:
    if not title or not title.strip():
        raise ValidationFailedError("Title and started_at are required")
    component_ids = require_component_ids(db, affected_component_ids)

    incident = Incident(
        incident_number=blank_to_none(incident_number) or generate_incident_number(),
        title=title.strip(),
        summary=blank_to_none(summary),
        affected_services=blank_to_none(affected_services),
        root_cause=blank_to_none(root_cause),
        resolution_notes=blank_to_none(resolution_notes),
        domain_distribution=blank_to_none(domain_distribution),
        impact=impact,
        current_status=current_status,
        visibility=visibility,
        started_at=started_at,
    )
    sync_resolution(incident)
    db.add(incident)
    db.flush()

    _replace_links(db, incident.id, component_ids)
    db.add(
        IncidentUpdate(
            incident_id=incident.id,
            timestamp=datetime.now(UTC),
            message=initial_message or f"Incident created: {incident.title}",
            status=current_status,
        )
    )
    commit_or_raise(db, action="create_incident")
    logger.info(
        "incident_created incident_id=%s impact=%s components=%s",
        incident.id,
        incident.impact,
        len(component_ids),
    )

    reconcile_component_statuses(db)
    return get_incident(db, incident.id)


def update_incident(db: Session, incident_id: UUID, patch: IncidentPatch) -> IncidentDetails:
    incident = _get_incident(db, incident_id)
    values: dict[str, Any] = assigned_fields(patch)
    component_ids = values.pop("affected_component_ids", UNSET)
    resolved_at = values.pop("resolved_at", UNSET)
    if not values and not is_set(component_ids) and not is_set(resolved_at):
        raise ValidationFailedError("No fields to update")

    for field_name, value in values.items():
        if field_name in _TEXT_FIELDS:
            value = blank_to_none(value)
        if value is None and field_name in _REQUIRED_FIELDS:
            raise ValidationFailedError(f"{field_name} cannot be null")
        if field_name == "title":
            value = value.strip()
            if not value:
                raise ValidationFailedError("Title cannot be empty")
        setattr(incident, field_name, value)

    if is_set(resolved_at):
        if resolved_at is not None and "current_status" not in values:
            incident.current_status = IncidentStatus.RESOLVED.value
        if incident.current_status == IncidentStatus.RESOLVED.value:
            incident.resolved_at = resolved_at
    sync_resolution(incident)

    if is_set(component_ids):
        _replace_links(db, incident.id, require_component_ids(db, component_ids))

    commit_or_raise(db, action="update_incident")
    logger.info("incident_updated incident_id=%s status=%s", incident_id, incident.current_status)

    reconcile_component_statuses(db)
    return get_incident(db, incident_id)


def delete_incident(db: Session, incident_id: UUID) -> None:
    incident = _get_incident(db, incident_id)
    db.execute(delete(IncidentComponent).where(IncidentComponent.incident_id == incident.id))
    db.execute(delete(IncidentUpdate).where(IncidentUpdate.incident_id == incident.id))
    db.delete(incident)
    commit_or_raise(db, action="delete_incident")
    logger.info("incident_deleted incident_id=%s", incident_id)
    reconcile_component_statuses(db)


def _apply_update_status(incident: Incident, status: str | None) -> bool:
    if not status:
        return False
    incident.current_status = status
    sync_resolution(incident)
    return True


def add_incident_update(
    db: Session,
    incident_id: UUID,
    *,
    message: str,
    status: str | None = None,
) -> IncidentUpdate:
    if not message or not message.strip():
        raise ValidationFailedError("Message is required")
    incident = _get_incident(db, incident_id)

    update = IncidentUpdate(
        incident_id=incident.id,
        timestamp=datetime.now(UTC),
        message=message.strip(),
        status=status or IncidentStatus.MONITORING.value,
    )
    db.add(update)
    status_changed = _apply_update_status(incident, status)
    commit_or_raise(db, action="create_incident_update")
    logger.info("incident_update_added incident_id=%s status=%s", incident_id, update.status)

    if status_changed:
        reconcile_component_statuses(db)
    db.refresh(update)
    return update


def edit_incident_update(
    db: Session,
    incident_id: UUID,
    update_id: UUID,
    *,
    message: str,
    status: str | None = None,
) -> IncidentUpdate:
    if not message or not message.strip():
        raise ValidationFailedError("Message is required")
    update = db.execute(
        select(IncidentUpdate).where(IncidentUpdate.id == update_id, IncidentUpdate.incident_id == incident_id)
    ).scalar_one_or_none()
    if update is None:
        raise IncidentUpdateNotFoundError("Update not found")

    update.message = message.strip()
    update.status = status or IncidentStatus.MONITORING.value
    status_changed = _apply_update_status(_get_incident(db, incident_id), status)
    commit_or_raise(db, action="update_incident_update")

    if status_changed:
        reconcile_component_statuses(db)
    db.refresh(update)
    return update


def resolve_latest_for_component(
    db: Session,
    component_id: UUID,
    *,
    message: str | None = None,
) -> Incident:
    incident = db.execute(
        select(Incident)
        .join(IncidentComponent, IncidentComponent.incident_id == Incident.id)
        .where(
            IncidentComponent.component_id == component_id,
            Incident.current_status != IncidentStatus.RESOLVED.value,
        )
        .order_by(Incident.started_at.desc())
        .limit(1)
    ).scalar_one_or_none()
    if incident is None:
        raise IncidentNotFoundError("No active incident found for component")

    incident.current_status = IncidentStatus.RESOLVED.value
    sync_resolution(incident)
    if message and message.strip():
        db.add(
            IncidentUpdate(
                incident_id=incident.id,
                timestamp=datetime.now(UTC),
                message=message.strip(),
                status=IncidentStatus.RESOLVED.value,
            )
        )
    commit_or_raise(db, action="resolve_incident")
    logger.info("incident_resolved incident_id=%s component_id=%s", incident.id, component_id)

    reconcile_component_statuses(db)
    return incident
