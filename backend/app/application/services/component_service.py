import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.application.services.partial_update import UNSET, Unset, assigned_fields, blank_to_none
from app.application.services.status_errors import (
    ComponentNotFoundError,
    ValidationFailedError,
    commit_or_raise,
)
from app.domain.models.component import Component, ComponentStatus
from app.domain.models.incident import IncidentComponent
from app.domain.models.maintenance import MaintenanceComponent

logger = logging.getLogger(__name__)

_NULLABLE_TEXT_FIELDS = {
    "group_name",
    "version",
    "version_url",
    "namespace",
    "detected_version",
    "shadow_version_url",
    "shadow_namespace",
    "shadow_detected_version",
    "website_url",
}
_STATUS_FIELDS = {"status", "shadow_status", "website_status"}
_REQUIRED_FIELDS = {"name", "sort_order", "visible", *_STATUS_FIELDS}


@dataclass
class ComponentPatch:
    name: str | Unset = UNSET
    group_name: str | None | Unset = UNSET
    sort_order: int | Unset = UNSET
    visible: bool | Unset = UNSET
    version: str | None | Unset = UNSET
    status: str | Unset = UNSET
    version_url: str | None | Unset = UNSET
    namespace: str | None | Unset = UNSET
    detected_version: str | None | Unset = UNSET
    version_last_checked: datetime | None | Unset = UNSET
    shadow_status: str | Unset = UNSET
    shadow_version_url: str | None | Unset = UNSET
    shadow_namespace: str | None | Unset = UNSET
    shadow_detected_version: str | None | Unset = UNSET
    shadow_version_last_checked: datetime | None | Unset = UNSET
    website_status: str | Unset = UNSET
    website_url: str | None | Unset = UNSET
    website_last_checked: datetime | None | Unset = UNSET


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def serialize_component(component: Component) -> dict:
    return {
        "id": str(component.id),
        "name": component.name,
        "group_name": component.group_name,
        "sort_order": component.sort_order,
        "visible": component.visible,
        "version": component.version,
        "status": component.status,
        "version_url": component.version_url,
        "namespace": component.namespace,
        "detected_version": component.detected_version,
        "version_last_checked": _iso(component.version_last_checked),
        "shadow_status": component.shadow_status,
        "shadow_version_url": component.shadow_version_url,
        "shadow_namespace": component.shadow_namespace,
        "shadow_detected_version": component.shadow_detected_version,
        "shadow_version_last_checked": _iso(component.shadow_version_last_checked),
        "website_status": component.website_status,
        "website_url": component.website_url,
        "website_last_checked": _iso(component.website_last_checked),
        "created_at": _iso(component.created_at),
        "updated_at": _iso(component.updated_at),
    }


def list_components(db: Session, *, visible_only: bool = False) -> list[Component]:
    query = select(Component).order_by(Component.sort_order.asc(), Component.name.asc())
    if visible_only:
        query = query.where(Component.visible.is_(True))
    return list(db.execute(query).scalars().all())


def get_component(db: Session, component_id: UUID) -> Component:
    component = db.execute(select(Component).where(Component.id == component_id)).scalar_one_or_none()
    if component is None:
        raise ComponentNotFoundError("Component not found")
    return component


def require_component_ids(db: Session, component_ids: Iterable[UUID]) -> list[UUID]:
    """De-duplicate ``component_ids`` keeping order; every id must exist."""
    unique_ids = list(dict.fromkeys(component_ids))
    if not unique_ids:
        return []
    existing = set(db.execute(select(Component.id).where(Component.id.in_(unique_ids))).scalars().all())
    missing = [str(component_id) for component_id in unique_ids if component_id not in existing]
    if missing:
        raise ValidationFailedError(f"Unknown component ids: {', '.join(missing)}")
    return unique_ids


def create_component(
    db: Session,
    *,
    name: str,
    group_name: str | None = None,
    status: str = ComponentStatus.OPERATIONAL.value,
    sort_order: int = 0,
    version: str | None = None,
    visible: bool = True,
    version_url: str | None = None,
    shadow_version_url: str | None = None,
    website_url: str | None = None,
) -> Component:
    if not name or not name.strip():
        raise ValidationFailedError("Component name is required")

    component = Component(
        name=name.strip(),
        group_name=blank_to_none(group_name),
        status=status,
        sort_order=sort_order,
        version=blank_to_none(version),
        visible=visible,
        version_url=blank_to_none(version_url),
        shadow_version_url=blank_to_none(shadow_version_url),
        website_url=blank_to_none(website_url),
    )
    db.add(component)
    commit_or_raise(db, action="create_component")
    db.refresh(component)
    logger.info("component_created component_id=%s name=%s", component.id, component.name)
    return component


def update_component(db: Session, component_id: UUID, patch: ComponentPatch) -> Component:
    component = get_component(db, component_id)
    values: dict[str, Any] = assigned_fields(patch)
    if not values:
        raise ValidationFailedError("No fields to update")

    for field_name, value in values.items():
        if field_name in _NULLABLE_TEXT_FIELDS:
            value = blank_to_none(value)
        if value is None and field_name in _REQUIRED_FIELDS:
            raise ValidationFailedError(f"{field_name} cannot be null")
        if field_name == "name":
            value = value.strip()
            if not value:
                raise ValidationFailedError("Component name is required")
        setattr(component, field_name, value)

    commit_or_raise(db, action="update_component")
    db.refresh(component)
    logger.info("component_updated component_id=%s fields=%s", component.id, ",".join(sorted(values)))
    return component


def set_component_status(db: Session, component_id: UUID, status: str) -> Component:
    component = get_component(db, component_id)
    component.status = status
    commit_or_raise(db, action="update_component_status")
    db.refresh(component)
    return component


def delete_component(db: Session, component_id: UUID) -> None:
    component = get_component(db, component_id)
    db.execute(delete(IncidentComponent).where(IncidentComponent.component_id == component.id))
    db.execute(delete(MaintenanceComponent).where(MaintenanceComponent.component_id == component.id))
    db.delete(component)
    commit_or_raise(db, action="delete_component")
    logger.info("component_deleted component_id=%s", component_id)
