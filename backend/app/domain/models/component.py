import uuid
from dataclasses import dataclass
from enum import StrEnum

from sqlalchemy import Boolean, CheckConstraint, DateTime, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.infrastructure.db.base import Base


class ComponentStatus(StrEnum):
    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    PARTIAL_OUTAGE = "partial_outage"
    MAJOR_OUTAGE = "major_outage"
    POTENTIAL_OUTAGE = "potential_outage"


class ProbeChannel(StrEnum):
    PRODUCTION = "production"
    SHADOW = "shadow"
    WEBSITE = "website"


@dataclass(frozen=True)
class ChannelColumns:
    """Column names backing one probe channel on a component row."""

    url: str
    status: str
    last_checked: str
    namespace: str | None = None
    detected_version: str | None = None

    @property
    def carries_metadata(self) -> bool:
        return self.namespace is not None


CHANNEL_COLUMNS: dict[ProbeChannel, ChannelColumns] = {
    ProbeChannel.PRODUCTION: ChannelColumns(
        url="version_url",
        status="status",
        last_checked="version_last_checked",
        namespace="namespace",
        detected_version="detected_version",
    ),
    ProbeChannel.SHADOW: ChannelColumns(
        url="shadow_version_url",
        status="shadow_status",
        last_checked="shadow_version_last_checked",
        namespace="shadow_namespace",
        detected_version="shadow_detected_version",
    ),
    ProbeChannel.WEBSITE: ChannelColumns(
        url="website_url",
        status="website_status",
        last_checked="website_last_checked",
    ),
}

_STATUS_VALUES = "'operational', 'degraded', 'partial_outage', 'major_outage', 'potential_outage'"


class Component(Base):
    __tablename__ = "components"
    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="status_values"),
        CheckConstraint(f"shadow_status IN ({_STATUS_VALUES})", name="shadow_status_values"),
        CheckConstraint(f"website_status IN ({_STATUS_VALUES})", name="website_status_values"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    group_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    visible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    version: Mapped[str | None] = mapped_column(String(64), nullable=True)

    status: Mapped[str] = mapped_column(
        String(32), nullable=False, default=ComponentStatus.OPERATIONAL.value, index=True
    )
    version_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    namespace: Mapped[str | None] = mapped_column(String(128), nullable=True)
    detected_version: Mapped[str | None] = mapped_column(String(64), nullable=True)
    version_last_checked: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    shadow_status: Mapped[str] = mapped_column(String(32), nullable=False, default=ComponentStatus.OPERATIONAL.value)
    shadow_version_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    shadow_namespace: Mapped[str | None] = mapped_column(String(128), nullable=True)
    shadow_detected_version: Mapped[str | None] = mapped_column(String(64), nullable=True)
    shadow_version_last_checked: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    website_status: Mapped[str] = mapped_column(String(32), nullable=False, default=ComponentStatus.OPERATIONAL.value)
    website_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    website_last_checked: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def channel_url(self, channel: ProbeChannel) -> str | None:
        value = getattr(self, CHANNEL_COLUMNS[channel].url)
        if value is None or not value.strip():
            return None
        return value.strip()

    def channel_status(self, channel: ProbeChannel) -> str:
        return getattr(self, CHANNEL_COLUMNS[channel].status) or ComponentStatus.OPERATIONAL.value

    def configured_channels(self) -> list[ProbeChannel]:
        return [channel for channel in ProbeChannel if self.channel_url(channel) is not None]
