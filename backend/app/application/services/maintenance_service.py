import logging
from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.application.services.component_service import require_component_ids
from app.application.services.partial_update import UNSET, Unset, assigned_fields, is_set
from app.application.services.status_errors import (
    MaintenanceNotFoundError,
    ValidationFailedError,
    commit_or_raise,
)
from app.domain.models.maintenance import Maintenance, MaintenanceComponent, MaintenanceStatus

logger = logging.getLogger(__name__)


@dataclass
class MaintenancePatch:
    title: str | Unset = UNSET
    window_start: datetime | Unset = UNSET
    window_end: datetime | Unset = UNSET
    status: str | Unset = UNSET
    affected_component_ids: list[UUID] | Unset = UNSET


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns.
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


def _validate_window(window_start: datetime, window_end: datetime) -> None:
    if _as_utc(window_end) <= _as_utc(window_start):
        raise ValidationFailedError("window_end must be after window_start")


def serialize_maintenance(maintenance: Maintenance, component_ids: Sequence[UUID]) -> dict:
    return {
        "id": str(maintenance.id),
        "title": maintenance.title,
        "window_start": maintenance.window_start.isoformat(),
        "window_end": maintenance.window_end.isoformat(),
        "status": maintenance.status,
        "affected_component_ids": [str(component_id) for component_id in component_ids],
        "created_at": maintenance.created_at.isoformat() if maintenance.created_at else None,
        "updated_at": maintenance.updated_at.isoformat() if maintenance.updated_at else None,
    }


def component_ids_by_maintenance(db: Session, maintenance_ids: Sequence[UUID]) -> dict[UUID, list[UUID]]:
    linked: dict[UUID, list[UUID]] = defaultdict(list)
    if not maintenance_ids:
        return linked
    rows = db.execute(
        select(MaintenanceComponent.maintenance_id, MaintenanceComponent.component_id).where(
            MaintenanceComponent.maintenance_id.in_(maintenance_ids)
        )
    ).all()
    for maintenance_id, component_id in rows:
        linked[maintenance_id].append(component_id)
    return linked


def list_maintenances(
    db: Session,
    *,
    statuses: Iterable[str] | None = None,
    oldest_first: bool = False,
) -> list[Maintenance]:
    order = Maintenance.window_start.asc() if oldest_first else Maintenance.window_start.desc()
    query = select(Maintenance).order_by(order)
    if statuses is not None:
        query = query.where(Maintenance.status.in_(list(statuses)))
    return list(db.execute(query).scalars().all())


def get_maintenance(db: Session, maintenance_id: UUID) -> Maintenance:
    maintenance = db.execute(select(Maintenance).where(Maintenance.id == maintenance_id)).scalar_one_or_none()
    if maintenance is None:
        raise MaintenanceNotFoundError("Maintenance not found")
    return maintenance


def _replace_links(db: Session, maintenance_id: UUID, component_ids: Iterable[UUID]) -> None:
    db.execute(delete(MaintenanceComponent).where(MaintenanceComponent.maintenance_id == maintenance_id))
    for component_id in component_ids:
        db.add(MaintenanceComponent(maintenance_id=maintenance_id, component_id=component_id))


def create_maintenance(
    db: Session,
    *,
    title: str,
    window_start: datetime,
    window_end: datetime,
    status: str = MaintenanceStatus.SCHEDULED.value,
    affected_component_ids: Iterable[UUID] = (),
) -> Maintenance:
    if not title or not title.strip():
        raise ValidationFailedError("Title, window_start, and window_end are required")
    _validate_window(window_start, window_end)
    component_ids = require_component_ids(db, affected_component_ids)

    maintenance = Maintenance(
        title=title.strip(),
        window_start=window_start,
        window_end=window_end,
        status=status,
    )
    db.add(maintenance)
    db.flush()
    _replace_links(db, maintenance.id, component_ids)
    commit_or_raise(db, action="create_maintenance")
    db.refresh(maintenance)
    logger.info("maintenance_created maintenance_id=%s components=%s", maintenance.id, len(component_ids))
    return maintenance


def update_maintenance(db: Session, maintenance_id: UUID, patch: MaintenancePatch) -> Maintenance:
    maintenance = get_maintenance(db, maintenance_id)
    values = assigned_fields(patch)
    component_ids = values.pop("affected_component_ids", UNSET)
    if not values and not is_set(component_ids):
        raise ValidationFailedError("No fields to update")

    for field_name, value in values.items():
        if value is None:
            raise ValidationFailedError(f"{field_name} cannot be null")
        if field_name == "title":
            value = value.strip()
            if not value:
                raise ValidationFailedError("Title cannot be empty")
        setattr(maintenance, field_name, value)
    _validate_window(maintenance.window_start, maintenance.window_end)

    if is_set(component_ids):
        _replace_links(db, maintenance.id, require_component_ids(db, component_ids))

    commit_or_raise(db, action="update_maintenance")
    db.refresh(maintenance)
    logger.info("maintenance_updated maintenance_id=%s", maintenance_id)
    return maintenance


def delete_maintenance(db: Session, maintenance_id: UUID) -> None:
    maintenance = get_maintenance(db, maintenance_id)
    db.execute(delete(MaintenanceComponent).where(MaintenanceComponent.maintenance_id == maintenance.id))
    db.delete(maintenance)
    commit_or_raise(db, action="delete_maintenance")
    logger.info("maintenance_deleted maintenance_id=%s", maintenance_id)
