import uuid
from enum import StrEnum

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from app.infrastructure.db.base import Base


class IncidentImpact(StrEnum):
    P1 = "P1"
    P2 = "P2"


class IncidentStatus(StrEnum):
    IDENTIFIED = "identified"
    MONITORING = "monitoring"
    RESOLVED = "resolved"


class IncidentVisibility(StrEnum):
    PUBLIC = "public"
    INTERNAL = "internal"


class Incident(Base):
    __tablename__ = "incidents"
    __table_args__ = (
        CheckConstraint("impact IN ('P1', 'P2')", name="impact_values"),
        CheckConstraint("current_status IN ('identified', 'monitoring', 'resolved')", name="current_status_values"),
        CheckConstraint("visibility IN ('public', 'internal')", name="visibility_values"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    incident_number: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    affected_services: Mapped[str | None] = mapped_column(Text, nullable=True)
    root_cause: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    domain_distribution: Mapped[str | None] = mapped_column(Text, nullable=True)
    impact: Mapped[str] = mapped_column(String(8), nullable=False, default=IncidentImpact.P2.value)
    current_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=IncidentStatus.IDENTIFIED.value, index=True
    )
    visibility: Mapped[str] = mapped_column(String(16), nullable=False, default=IncidentVisibility.PUBLIC.value)
    started_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), nullable=False)
    resolved_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[DateTime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class IncidentComponent(Base):
    __tablename__ = "incident_components"

    incident_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("incidents.id", ondelete="CASCADE"), primary_key=True
    )
    component_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("components.id", ondelete="CASCADE"), primary_key=True, index=True
    )


class IncidentUpdate(Base):
    __tablename__ = "incident_updates"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    incident_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("incidents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=IncidentStatus.MONITORING.value)
    timestamp: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
