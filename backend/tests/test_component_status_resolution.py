from datetime import UTC, datetime

from sqlalchemy.exc import OperationalError

from app.application.services.component_service import create_component
from app.application.services.component_status_service import (
    ChannelOutcome,
    apply_channel_outcome,
    resolve_channel,
)
from app.application.services.version_metadata import VersionMetadata
from app.domain.models.component import Component, ProbeChannel

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
GREEN = VersionMetadata(
    namespace="green",
    detected_version="25.10.2.0",
    full_namespace="mojito-green",
    full_version_tag="25.10.2.0-5048fea",
)


def test_failed_probe_marks_potential_outage_and_keeps_metadata():
    component = Component(name="API", status="operational", namespace="blue", detected_version="1.0.0.0")

    updates = resolve_channel(component, ProbeChannel.PRODUCTION, ChannelOutcome(reachable=False), now=NOW)

    assert updates == {"version_last_checked": NOW, "status": "potential_outage"}


def test_success_clears_potential_outage_and_refreshes_metadata():
    component = Component(name="API", shadow_status="potential_outage")

    updates = resolve_channel(component, ProbeChannel.SHADOW, ChannelOutcome(True, GREEN), now=NOW)

    assert updates == {
        "shadow_version_last_checked": NOW,
        "shadow_namespace": "green",
        "shadow_detected_version": "25.10.2.0",
        "shadow_status": "operational",
    }


def test_success_leaves_incident_driven_status_alone():
    component = Component(name="API", status="major_outage")

    updates = resolve_channel(component, ProbeChannel.PRODUCTION, ChannelOutcome(True, GREEN), now=NOW)

    assert "status" not in updates
    assert updates["namespace"] == "green"


def test_website_channel_never_writes_metadata():
    component = Component(name="Site", website_status="potential_outage")

    updates = resolve_channel(component, ProbeChannel.WEBSITE, ChannelOutcome(True, GREEN), now=NOW)

    assert updates == {"website_last_checked": NOW, "website_status": "operational"}


def test_apply_channel_outcome_persists(db_session):
    component = create_component(db_session, name="API", version_url="http://api.test/version")

    updates, persisted = apply_channel_outcome(
        db_session, component, ProbeChannel.PRODUCTION, ChannelOutcome(reachable=False), now=NOW
    )

    assert persisted is True
    assert updates["status"] == "potential_outage"
    db_session.expire_all()
    stored = db_session.get(Component, component.id)
    assert stored.status == "potential_outage"
    assert stored.version_last_checked is not None


class FailingSession:
    def __init__(self) -> None:
        self.rolled_back = False

    def commit(self) -> None:
        raise OperationalError("UPDATE components", {}, Exception("database is locked"))

    def rollback(self) -> None:
        self.rolled_back = True


def test_apply_channel_outcome_reports_failed_write():
    component = Component(name="API", status="operational")
    session = FailingSession()

    updates, persisted = apply_channel_outcome(
        session, component, ProbeChannel.PRODUCTION, ChannelOutcome(reachable=False), now=NOW
    )

    assert persisted is False
    assert session.rolled_back is True
    assert updates["status"] == "potential_outage"
