import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.domain.models.component import Component, ComponentStatus
from app.domain.models.incident import Incident, IncidentComponent, IncidentImpact, IncidentStatus
from app.infrastructure.observability.metrics import COMPONENT_RECONCILIATIONS_TOTAL

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    affected: dict[UUID, str] = field(default_factory=dict)
    reset: list[UUID] = field(default_factory=list)


def derive_component_impacts(links: Iterable[tuple[UUID, str]]) -> dict[UUID, str]:
    """Worst status per component from ``(component_id, impact)`` pairs; P1 always wins."""
    derived: dict[UUID, str] = {}
    for component_id, impact in links:
        if impact == IncidentImpact.P1.value:
            derived[component_id] = ComponentStatus.MAJOR_OUTAGE.value
        elif derived.get(component_id) != ComponentStatus.MAJOR_OUTAGE.value:
            derived[component_id] = ComponentStatus.PARTIAL_OUTAGE.value
    return derived


def heal_resolved_at(db: Session, *, now: datetime | None = None) -> int:
    """Bring ``resolved_at`` back in line with ``current_status``; returns rows fixed."""
    stamped = db.execute(
        update(Incident)
        .where(Incident.current_status == IncidentStatus.RESOLVED.value, Incident.resolved_at.is_(None))
        .values(resolved_at=now or datetime.now(UTC))
        .execution_options(synchronize_session=False)
    ).rowcount
    cleared = db.execute(
        update(Incident)
        .where(Incident.current_status != IncidentStatus.RESOLVED.value, Incident.resolved_at.is_not(None))
        .values(resolved_at=None)
        .execution_options(synchronize_session=False)
    ).rowcount
    healed = (stamped or 0) + (cleared or 0)
    if healed:
        logger.info("incident_resolved_at_healed stamped=%s cleared=%s", stamped, cleared)
    return healed


def _active_links(db: Session) -> list[tuple[UUID, str]]:
    return list(
        db.execute(
            select(IncidentComponent.component_id, Incident.impact)
            .join(Incident, Incident.id == IncidentComponent.incident_id)
            .where(Incident.current_status != IncidentStatus.RESOLVED.value)
        ).all()
    )


def _has_active_incident(db: Session, component_id: UUID) -> bool:
    return (
        db.execute(
            select(IncidentComponent.incident_id)
            .join(Incident, Incident.id == IncidentComponent.incident_id)
            .where(
                IncidentComponent.component_id == component_id,
                Incident.current_status != IncidentStatus.RESOLVED.value,
            )
            .limit(1)
        ).first()
        is not None
    )


def reconcile_component_statuses(db: Session) -> ReconciliationResult:
    """Recompute every component's production status from unresolved incidents.

    Affected components are written first. Only then are the remaining
    non-operational components checked one by one and reset when no unresolved
    incident links them. ``potential_outage`` belongs to the prober and is left
    alone, as are shadow and website statuses. Commits.
    """
    heal_resolved_at(db)
    result = ReconciliationResult(affected=derive_component_impacts(_active_links(db)))

    for component_id, derived_status in result.affected.items():
        db.execute(
            update(Component)
            .where(Component.id == component_id)
            .values(status=derived_status)
            .execution_options(synchronize_session=False)
        )

    candidates = db.execute(
        select(Component.id).where(
            Component.status.not_in(
                (ComponentStatus.OPERATIONAL.value, ComponentStatus.POTENTIAL_OUTAGE.value)
            )
        )
    ).scalars().all()
    for component_id in candidates:
        if component_id in result.affected or _has_active_incident(db, component_id):
            continue
        db.execute(
            update(Component)
            .where(Component.id == component_id)
            .values(status=ComponentStatus.OPERATIONAL.value)
            .execution_options(synchronize_session=False)
        )
        result.reset.append(component_id)

    db.commit()
    COMPONENT_RECONCILIATIONS_TOTAL.inc()
    logger.info(
        "component_statuses_reconciled affected=%s reset=%s",
        len(result.affected),
        len(result.reset),
    )
    return result
