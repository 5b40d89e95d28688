from app.application.services.component_service import create_component
from app.application.services.component_status_service import ChannelOutcome, apply_channel_outcome
from app.domain.models.component import Component, ProbeChannel
from workers import tasks


def test_check_all_task_reports_unreachable_channels(monkeypatch, db_session, version_checker, fake_prober):
    create_component(db_session, name="Site", website_url="http://site.test/")
    create_component(db_session, name="Docs", website_url="http://docs.test/")
    fake_prober.reachable["http://docs.test/"] = True
    counters: list[tuple[str, int]] = []
    monkeypatch.setattr(tasks, "build_version_check_service", lambda **overrides: version_checker)
    monkeypatch.setattr(
        tasks,
        "increment_background_counter",
        lambda metric_name, amount=1: counters.append((metric_name, amount)),
    )

    outcome = tasks.check_all_component_versions()

    assert outcome == {"status": "completed", "checked": 2, "unreachable": 1}
    assert counters == [("version_check_cycles_total", 1), ("version_probe_failures_total", 1)]


def test_reconcile_task_resets_orphaned_statuses(monkeypatch, db_session, session_factory):
    create_component(db_session, name="Docs", status="degraded")
    monkeypatch.setattr(tasks, "SessionLocal", session_factory)

    assert tasks.reconcile_component_statuses() == {"affected": 0, "reset": 1}


def test_reconcile_task_keeps_failed_probe_status(monkeypatch, db_session, session_factory):
    component = create_component(db_session, name="API", version_url="http://api.test/version")
    apply_channel_outcome(db_session, component, ProbeChannel.PRODUCTION, ChannelOutcome(reachable=False))
    monkeypatch.setattr(tasks, "SessionLocal", session_factory)

    assert tasks.reconcile_component_statuses() == {"affected": 0, "reset": 0}

    db_session.expire_all()
    assert db_session.get(Component, component.id).status == "potential_outage"


def test_rescan_task_handles_missing_component(monkeypatch, session_factory, version_checker):
    monkeypatch.setattr(tasks, "SessionLocal", session_factory)
    monkeypatch.setattr(tasks, "build_version_check_service", lambda **overrides: version_checker)

    assert tasks.rescan_component("00000000-0000-0000-0000-000000000000") == {"status": "missing"}
