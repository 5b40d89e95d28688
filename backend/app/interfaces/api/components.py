from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.application.services.component_service import (
    ComponentPatch,
    create_component,
    delete_component,
    get_component,
    list_components,
    serialize_component,
    update_component,
)
from app.application.services.partial_update import patch_from_model
from app.application.services.status_errors import ValidationFailedError
from app.application.services.version_check_service import VersionCheckService
from app.domain.models.component import ComponentStatus, ProbeChannel
from app.domain.models.user import User
from app.interfaces.api.deps import get_version_checker, require_staff
from app.infrastructure.db.session import get_db

router = APIRouter(prefix="/components", tags=["components"])


class ComponentCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    group_name: str | None = Field(default=None, max_length=255)
    status: ComponentStatus = ComponentStatus.OPERATIONAL
    sort_order: int = 0
    version: str | None = Field(default=None, max_length=64)
    visible: bool = True
    version_url: str | None = None
    shadow_version_url: str | None = None
    website_url: str | None = None


class ComponentUpdateRequest(BaseModel):
    name: str | None = Field(default=None, max_length=255)
    group_name: str | None = Field(default=None, max_length=255)
    sort_order: int | None = None
    visible: bool | None = None
    version: str | None = Field(default=None, max_length=64)
    status: ComponentStatus | None = None
    version_url: str | None = None
    namespace: str | None = Field(default=None, max_length=128)
    detected_version: str | None = Field(default=None, max_length=64)
    shadow_status: ComponentStatus | None = None
    shadow_version_url: str | None = None
    shadow_namespace: str | None = Field(default=None, max_length=128)
    shadow_detected_version: str | None = Field(default=None, max_length=64)
    website_status: ComponentStatus | None = None
    website_url: str | None = None


class PreviewVersionUrlRequest(BaseModel):
    url: str = Field(min_length=1)


@router.get("", status_code=status.HTTP_200_OK)
def list_all_components(db: Session = Depends(get_db)) -> list[dict]:
    return [serialize_component(component) for component in list_components(db)]


@router.post("", status_code=status.HTTP_201_CREATED)
def create_new_component(
    payload: ComponentCreateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
) -> dict:
    component = create_component(
        db,
        name=payload.name,
        group_name=payload.group_name,
        status=payload.status.value,
        sort_order=payload.sort_order,
        version=payload.version,
        visible=payload.visible,
        version_url=payload.version_url,
        shadow_version_url=payload.shadow_version_url,
        website_url=payload.website_url,
    )
    return serialize_component(component)


@router.post("/check-all-versions", status_code=status.HTTP_200_OK)
async def check_all_component_versions(
    db: Session = Depends(get_db),
    checker: VersionCheckService = Depends(get_version_checker),
    current_user: User = Depends(require_staff),
) -> dict:
    results = await checker.check_all_versions(db)
    return {
        "message": "Version check completed for all components",
        "updated": len(results),
        "components": [result.to_dict() for result in results],
    }


@router.post("/preview-version-url", status_code=status.HTTP_200_OK)
async def preview_version_url(
    payload: PreviewVersionUrlRequest,
    checker: VersionCheckService = Depends(get_version_checker),
    current_user: User = Depends(require_staff),
) -> dict:
    metadata = await checker.preview_version_url(payload.url)
    if metadata is None:
        raise ValidationFailedError("Failed to fetch version info from URL")
    return {"success": True, "data": metadata.to_dict()}


@router.get("/{component_id}", status_code=status.HTTP_200_OK)
def get_single_component(component_id: UUID, db: Session = Depends(get_db)) -> dict:
    return serialize_component(get_component(db, component_id))


@router.patch("/{component_id}", status_code=status.HTTP_200_OK)
def patch_component(
    component_id: UUID,
    payload: ComponentUpdateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
) -> dict:
    component = update_component(db, component_id, patch_from_model(payload, ComponentPatch))
    return serialize_component(component)


@router.delete("/{component_id}", status_code=status.HTTP_200_OK)
def remove_component(
    component_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_staff),
) -> dict:
    delete_component(db, component_id)
    return {"message": "Component deleted successfully"}


@router.post("/{component_id}/check/{channel}", status_code=status.HTTP_200_OK)
async def check_component_channel(
    component_id: UUID,
    channel: ProbeChannel,
    db: Session = Depends(get_db),
    checker: VersionCheckService = Depends(get_version_checker),
    current_user: User = Depends(require_staff),
) -> dict:
    component, result = await checker.check_single_component(db, component_id, channel)
    return {
        "message": f"{channel.value.capitalize()} check completed",
        "component": serialize_component(component),
        "result": result.to_dict(),
    }


@router.post("/{component_id}/rescan", status_code=status.HTTP_200_OK)
async def rescan_component(
    component_id: UUID,
    db: Session = Depends(get_db),
    checker: VersionCheckService = Depends(get_version_checker),
) -> dict:
    results = await checker.rescan_potential_outages(db, component_id)
    return {channel: result.to_dict() if result else None for channel, result in results.items()}
