import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.application.services.version_metadata import VersionMetadata
from app.domain.models.component import CHANNEL_COLUMNS, Component, ComponentStatus, ProbeChannel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChannelOutcome:
    reachable: bool
    metadata: VersionMetadata | None = None


def resolve_channel(
    component: Component,
    channel: ProbeChannel,
    outcome: ChannelOutcome,
    *,
    now: datetime,
) -> dict[str, Any]:
    """Turn one probe outcome into the column updates for ``channel``.

    A failed probe only marks the channel ``potential_outage`` and keeps the last
    known namespace/version. A successful probe refreshes metadata and clears
    ``potential_outage``; any other status (manual or incident driven) is kept.
    """
    columns = CHANNEL_COLUMNS[channel]
    updates: dict[str, Any] = {columns.last_checked: now}

    if not outcome.reachable:
        updates[columns.status] = ComponentStatus.POTENTIAL_OUTAGE.value
        return updates

    if columns.carries_metadata and outcome.metadata is not None:
        updates[columns.namespace] = outcome.metadata.namespace
        updates[columns.detected_version] = outcome.metadata.detected_version

    if component.channel_status(channel) == ComponentStatus.POTENTIAL_OUTAGE.value:
        updates[columns.status] = ComponentStatus.OPERATIONAL.value
    return updates


def apply_channel_outcome(
    db: Session,
    component: Component,
    channel: ProbeChannel,
    outcome: ChannelOutcome,
    *,
    now: datetime | None = None,
) -> tuple[dict[str, Any], bool]:
    """Write the resolved fields; returns ``(updates, persisted)``.

    A failed write is rolled back and logged, the computed updates are still
    returned so callers can report what the probe found.
    """
    component_id = component.id
    updates = resolve_channel(component, channel, outcome, now=now or datetime.now(UTC))
    for field_name, value in updates.items():
        setattr(component, field_name, value)

    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("component_status_persist_failed component_id=%s channel=%s", component_id, channel.value)
        return updates, False
    return updates, True
