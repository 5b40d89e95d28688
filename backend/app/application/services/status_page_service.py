from collections.abc import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.application.services.component_service import list_components, serialize_component
from app.application.services.incident_impact_service import heal_resolved_at
from app.application.services.incident_service import load_incident_details, serialize_incident
from app.application.services.maintenance_service import (
    component_ids_by_maintenance,
    list_maintenances,
    serialize_maintenance,
)
from app.application.services.status_errors import commit_or_raise
from app.domain.models.component import ComponentStatus
from app.domain.models.incident import Incident, IncidentStatus, IncidentVisibility
from app.domain.models.maintenance import MaintenanceStatus

# Worst first; potential_outage is a probe hint and never drives the headline.
OVERALL_STATUS_PRECEDENCE = (
    ComponentStatus.MAJOR_OUTAGE.value,
    ComponentStatus.PARTIAL_OUTAGE.value,
    ComponentStatus.DEGRADED.value,
)


def overall_status(statuses: Iterable[str]) -> str:
    present = set(statuses)
    for status in OVERALL_STATUS_PRECEDENCE:
        if status in present:
            return status
    return ComponentStatus.OPERATIONAL.value


def build_status_summary(db: Session) -> dict:
    if heal_resolved_at(db):
        commit_or_raise(db, action="heal_incident_resolution")

    components = list_components(db, visible_only=True)
    active_incidents = db.execute(
        select(Incident)
        .where(
            Incident.current_status != IncidentStatus.RESOLVED.value,
            Incident.visibility == IncidentVisibility.PUBLIC.value,
        )
        .order_by(Incident.started_at.desc())
    ).scalars().all()
    maintenances = list_maintenances(
        db,
        statuses=(MaintenanceStatus.SCHEDULED.value, MaintenanceStatus.IN_PROGRESS.value),
        oldest_first=True,
    )
    linked_components = component_ids_by_maintenance(db, [maintenance.id for maintenance in maintenances])

    return {
        "status": overall_status(component.status for component in components),
        "components": [serialize_component(component) for component in components],
        "active_incidents": [
            serialize_incident(details)
            for details in load_incident_details(db, active_incidents, newest_updates_first=True)
        ],
        "maintenances": [
            serialize_maintenance(maintenance, linked_components.get(maintenance.id, []))
            for maintenance in maintenances
        ],
    }
