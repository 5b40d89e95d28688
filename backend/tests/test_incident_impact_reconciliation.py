import uuid
from datetime import UTC, datetime, timedelta

from app.application.services.component_service import create_component
from app.application.services.incident_impact_service import (
    derive_component_impacts,
    heal_resolved_at,
    reconcile_component_statuses,
)
from app.application.services.incident_service import (
    IncidentPatch,
    create_incident,
    delete_incident,
    update_incident,
)
from app.domain.models.component import Component
from app.domain.models.incident import Incident

STARTED_AT = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def _status(db_session, component_id) -> str:
    db_session.expire_all()
    return db_session.get(Component, component_id).status


def test_derive_component_impacts_prefers_p1():
    first, second = uuid.uuid4(), uuid.uuid4()

    derived = derive_component_impacts([(first, "P2"), (first, "P1"), (first, "P2"), (second, "P2")])

    assert derived == {first: "major_outage", second: "partial_outage"}


def test_incident_lifecycle_drives_component_status(db_session):
    api = create_component(db_session, name="API")
    search = create_component(db_session, name="Search")

    major = create_incident(
        db_session,
        title="API down",
        started_at=STARTED_AT,
        impact="P1",
        affected_component_ids=[api.id],
    )
    create_incident(
        db_session,
        title="Search slow",
        started_at=STARTED_AT,
        impact="P2",
        affected_component_ids=[search.id, api.id],
    )

    assert _status(db_session, api.id) == "major_outage"
    assert _status(db_session, search.id) == "partial_outage"

    update_incident(db_session, major.incident.id, IncidentPatch(current_status="resolved"))

    assert _status(db_session, api.id) == "partial_outage"
    assert _status(db_session, search.id) == "partial_outage"


def test_reconcile_resets_components_without_active_incidents(db_session):
    degraded = create_component(db_session, name="Docs", status="degraded")
    suspect = create_component(db_session, name="CDN", status="potential_outage")
    suspect.shadow_status = "potential_outage"
    db_session.commit()

    result = reconcile_component_statuses(db_session)

    assert result.reset == [degraded.id]
    assert _status(db_session, degraded.id) == "operational"
    stored = db_session.get(Component, suspect.id)
    assert stored.status == "potential_outage"
    assert stored.shadow_status == "potential_outage"


def test_deleting_only_incident_restores_component(db_session):
    api = create_component(db_session, name="API")
    details = create_incident(
        db_session,
        title="API down",
        started_at=STARTED_AT,
        impact="P1",
        affected_component_ids=[api.id],
    )
    assert _status(db_session, api.id) == "major_outage"

    delete_incident(db_session, details.incident.id)

    assert _status(db_session, api.id) == "operational"


def test_unlinking_component_falls_back_to_remaining_incident(db_session):
    api = create_component(db_session, name="API")
    search = create_component(db_session, name="Search")
    major = create_incident(
        db_session,
        title="Platform down",
        started_at=STARTED_AT,
        impact="P1",
        affected_component_ids=[api.id, search.id],
    )
    create_incident(
        db_session,
        title="Search slow",
        started_at=STARTED_AT,
        impact="P2",
        affected_component_ids=[search.id],
    )
    assert _status(db_session, search.id) == "major_outage"

    update_incident(db_session, major.incident.id, IncidentPatch(affected_component_ids=[api.id]))

    assert _status(db_session, api.id) == "major_outage"
    assert _status(db_session, search.id) == "partial_outage"


def test_resolved_at_without_status_resolves_incident(db_session):
    api = create_component(db_session, name="API")
    details = create_incident(
        db_session,
        title="API errors",
        started_at=STARTED_AT,
        impact="P1",
        affected_component_ids=[api.id],
    )

    resolved = update_incident(
        db_session,
        details.incident.id,
        IncidentPatch(resolved_at=STARTED_AT + timedelta(hours=1)),
    )

    assert resolved.incident.current_status == "resolved"
    assert resolved.incident.resolved_at is not None
    assert _status(db_session, api.id) == "operational"


def test_heal_resolved_at_aligns_with_current_status(db_session):
    unstamped = Incident(
        title="Resolved without timestamp",
        impact="P2",
        current_status="resolved",
        visibility="public",
        started_at=STARTED_AT,
    )
    stale = Incident(
        title="Reopened",
        impact="P2",
        current_status="monitoring",
        visibility="public",
        started_at=STARTED_AT,
        resolved_at=STARTED_AT + timedelta(hours=2),
    )
    db_session.add_all([unstamped, stale])
    db_session.commit()

    healed = heal_resolved_at(db_session)
    db_session.commit()

    assert healed == 2
    db_session.expire_all()
    assert db_session.get(Incident, unstamped.id).resolved_at is not None
    assert db_session.get(Incident, stale.id).resolved_at is None
