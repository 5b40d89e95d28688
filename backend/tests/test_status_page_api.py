import uuid

from fastapi.testclient import TestClient

from app.application.services.version_metadata import VersionMetadata

WEBHOOK_TOKEN = "webhook-secret-token"


def _create_component(client: TestClient, headers: dict, **overrides) -> dict:
    payload = {"name": "API", "group_name": "Platform"}
    payload.update(overrides)
    response = client.post("/components", headers=headers, json=payload)
    assert response.status_code == 201
    return response.json()


def _create_incident(client: TestClient, headers: dict, **overrides) -> dict:
    payload = {"title": "API outage", "started_at": "2026-03-01T09:00:00Z", "impact": "P1"}
    payload.update(overrides)
    response = client.post("/incidents", headers=headers, json=payload)
    assert response.status_code == 201
    return response.json()


def _component_status(client: TestClient, component_id: str) -> str:
    return client.get(f"/components/{component_id}").json()["status"]


def test_login_and_me(client: TestClient, admin_headers: dict):
    me_response = client.get("/auth/me", headers=admin_headers)
    assert me_response.status_code == 200
    assert me_response.json()["username"] == "admin"
    assert me_response.json()["role"] == "admin"

    bad_login = client.post("/auth/login", json={"username": "admin", "password": "wrong"})
    assert bad_login.status_code == 401


def test_manage_routes_require_authentication(client: TestClient):
    response = client.post("/components", json={"name": "API"})

    assert response.status_code == 401
    body = response.json()
    assert body["error_code"] == "401"
    assert body["trace_id"]


def test_component_crud(client: TestClient, admin_headers: dict):
    second = _create_component(client, admin_headers, name="Search", sort_order=2)
    first = _create_component(client, admin_headers, name="Checkout", sort_order=1, version_url=" ")

    assert first["status"] == "operational"
    assert first["version_url"] is None
    listed = client.get("/components").json()
    assert [component["name"] for component in listed] == ["Checkout", "Search"]

    patched = client.patch(
        f"/components/{second['id']}",
        headers=admin_headers,
        json={"status": "degraded", "group_name": None, "website_url": "https://search.test"},
    )
    assert patched.status_code == 200
    assert patched.json()["status"] == "degraded"
    assert patched.json()["group_name"] is None
    assert patched.json()["website_url"] == "https://search.test"

    empty_patch = client.patch(f"/components/{second['id']}", headers=admin_headers, json={})
    assert empty_patch.status_code == 400
    assert empty_patch.json()["message"] == "No fields to update"

    deleted = client.delete(f"/components/{second['id']}", headers=admin_headers)
    assert deleted.status_code == 200
    missing = client.get(f"/components/{second['id']}")
    assert missing.status_code == 404
    assert missing.json()["error_code"] == "component_not_found"


def test_incident_lifecycle_updates_component_and_status_page(client: TestClient, admin_headers: dict):
    component = _create_component(client, admin_headers)
    incident = _create_incident(client, admin_headers, affected_component_ids=[component["id"]])

    assert incident["incident_number"].startswith("PRB")
    assert incident["current_status"] == "identified"
    assert incident["resolved_at"] is None
    assert incident["affected_component_ids"] == [component["id"]]
    assert [update["message"] for update in incident["updates"]] == ["Incident created: API outage"]
    assert _component_status(client, component["id"]) == "major_outage"

    summary = client.get("/status").json()
    assert summary["status"] == "major_outage"
    assert [active["id"] for active in summary["active_incidents"]] == [incident["id"]]

    update_response = client.post(
        f"/incidents/{incident['id']}/updates",
        headers=admin_headers,
        json={"message": "Fix deployed, watching error rates", "status": "monitoring"},
    )
    assert update_response.status_code == 201
    assert client.get(f"/incidents/{incident['id']}").json()["current_status"] == "monitoring"

    resolved = client.patch(
        f"/incidents/{incident['id']}",
        headers=admin_headers,
        json={"current_status": "resolved", "resolution_notes": "Rolled back"},
    )
    assert resolved.status_code == 200
    assert resolved.json()["resolved_at"] is not None
    assert _component_status(client, component["id"]) == "operational"

    summary = client.get("/status").json()
    assert summary["status"] == "operational"
    assert summary["active_incidents"] == []

    reopened = client.patch(
        f"/incidents/{incident['id']}", headers=admin_headers, json={"current_status": "identified"}
    )
    assert reopened.json()["resolved_at"] is None
    assert _component_status(client, component["id"]) == "major_outage"


def test_editing_an_update_defaults_status_to_monitoring(client: TestClient, admin_headers: dict):
    incident = _create_incident(client, admin_headers, impact="P2")
    update_id = incident["updates"][0]["id"]

    response = client.patch(
        f"/incidents/{incident['id']}/updates/{update_id}",
        headers=admin_headers,
        json={"message": "Investigating elevated latency"},
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Investigating elevated latency"
    assert response.json()["status"] == "monitoring"
    assert client.get(f"/incidents/{incident['id']}").json()["current_status"] == "identified"

    missing = client.patch(
        f"/incidents/{incident['id']}/updates/{uuid.uuid4()}",
        headers=admin_headers,
        json={"message": "nope"},
    )
    assert missing.status_code == 404


def test_incident_rejects_unknown_components(client: TestClient, admin_headers: dict):
    response = client.post(
        "/incidents",
        headers=admin_headers,
        json={"title": "Ghost", "started_at": "2026-03-01T09:00:00Z", "affected_component_ids": [str(uuid.uuid4())]},
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "validation_failed"


def test_incident_list_filters_visibility_and_paginates(client: TestClient, admin_headers: dict):
    _create_incident(client, admin_headers, title="Older", started_at="2026-03-01T08:00:00Z", impact="P2")
    _create_incident(client, admin_headers, title="Newer", started_at="2026-03-02T08:00:00Z", impact="P2")
    _create_incident(client, admin_headers, title="Internal only", impact="P2", visibility="internal")

    public = client.get("/incidents").json()
    assert [incident["title"] for incident in public] == ["Newer", "Older"]
    assert [incident["title"] for incident in client.get("/incidents?page=2&limit=1").json()] == ["Older"]
    internal = client.get("/incidents", params={"visibility": "internal"}).json()
    assert [incident["title"] for incident in internal] == ["Internal only"]

    summary = client.get("/status").json()
    assert {incident["title"] for incident in summary["active_incidents"]} == {"Newer", "Older"}


def test_status_summary_ignores_hidden_components(client: TestClient, admin_headers: dict):
    _create_component(client, admin_headers, name="Visible", status="degraded")
    _create_component(client, admin_headers, name="Hidden", status="major_outage", visible=False)

    summary = client.get("/status").json()

    assert summary["status"] == "degraded"
    assert [component["name"] for component in summary["components"]] == ["Visible"]


def test_maintenance_crud_and_status_listing(client: TestClient, admin_headers: dict):
    component = _create_component(client, admin_headers)
    created = client.post(
        "/maintenances",
        headers=admin_headers,
        json={
            "title": "Database upgrade",
            "window_start": "2026-04-01T01:00:00Z",
            "window_end": "2026-04-01T02:00:00Z",
            "affected_component_ids": [component["id"]],
        },
    )
    assert created.status_code == 201
    maintenance = created.json()
    assert maintenance["status"] == "scheduled"
    assert maintenance["affected_component_ids"] == [component["id"]]

    invalid = client.post(
        "/maintenances",
        headers=admin_headers,
        json={"title": "Backwards", "window_start": "2026-04-01T02:00:00Z", "window_end": "2026-04-01T01:00:00Z"},
    )
    assert invalid.status_code == 400

    assert [item["title"] for item in client.get("/status").json()["maintenances"]] == ["Database upgrade"]

    completed = client.patch(
        f"/maintenances/{maintenance['id']}", headers=admin_headers, json={"status": "completed"}
    )
    assert completed.status_code == 200
    assert client.get("/status").json()["maintenances"] == []
    assert [item["id"] for item in client.get("/maintenances?status=completed").json()] == [maintenance["id"]]
    assert client.get("/maintenances?status=scheduled").json() == []

    assert client.delete(f"/maintenances/{maintenance['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"/maintenances/{maintenance['id']}").status_code == 404


def test_channel_checks_and_rescan(client: TestClient, admin_headers: dict, fake_prober):
    component = _create_component(
        client,
        admin_headers,
        version_url="http://api.test/version",
        website_url="http://www.api.test/",
    )
    fake_prober.metadata["http://api.test/version"] = VersionMetadata("green", "25.10.2.0", "prod-green", "25.10.2.0-a")

    checked = client.post(f"/components/{component['id']}/check/production", headers=admin_headers)
    assert checked.status_code == 200
    assert checked.json()["component"]["namespace"] == "green"
    assert checked.json()["result"]["reachable"] is True

    unconfigured = client.post(f"/components/{component['id']}/check/shadow", headers=admin_headers)
    assert unconfigured.status_code == 404
    assert unconfigured.json()["error_code"] == "channel_not_configured"
    assert client.post(f"/components/{component['id']}/check/bogus", headers=admin_headers).status_code == 422

    website = client.post(f"/components/{component['id']}/check/website", headers=admin_headers)
    assert website.json()["component"]["website_status"] == "potential_outage"
    assert website.json()["component"]["status"] == "operational"

    fake_prober.calls.clear()
    fake_prober.reachable["http://www.api.test/"] = True
    rescan = client.post(f"/components/{component['id']}/rescan")
    assert rescan.status_code == 200
    body = rescan.json()
    assert body["production"] is None
    assert body["shadow"] is None
    assert body["website"]["status"] == "operational"
    assert fake_prober.calls == [("probe", "http://www.api.test/")]


def test_check_all_versions_and_preview(client: TestClient, admin_headers: dict, fake_prober):
    _create_component(client, admin_headers, name="API", version_url="http://api.test/version")
    _create_component(client, admin_headers, name="Site", website_url="http://site.test/")
    fake_prober.reachable["http://site.test/"] = True

    response = client.post("/components/check-all-versions", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["updated"] == 2
    assert {(item["component_name"], item["reachable"]) for item in body["components"]} == {
        ("API", False),
        ("Site", True),
    }

    failed_preview = client.post(
        "/components/preview-version-url", headers=admin_headers, json={"url": "http://nowhere.test/version"}
    )
    assert failed_preview.status_code == 400

    fake_prober.metadata["http://api.test/version"] = VersionMetadata("blue", "1.2.3.4", "x-blue", "1.2.3.4-z")
    preview = client.post(
        "/components/preview-version-url", headers=admin_headers, json={"url": "http://api.test/version"}
    )
    assert preview.status_code == 200
    assert preview.json()["data"]["namespace"] == "blue"


def test_incident_webhook_actions(client: TestClient, admin_headers: dict):
    component = _create_component(client, admin_headers)

    unauthorized = client.post("/webhooks/incident", json={"token": "wrong", "action": "create"})
    assert unauthorized.status_code == 401

    created = client.post(
        "/webhooks/incident",
        json={
            "token": WEBHOOK_TOKEN,
            "action": "create",
            "component_id": component["id"],
            "title": "Monitor alert",
            "impact": "P1",
            "message": "Synthetic check failing",
        },
    )
    assert created.status_code == 200
    incident_id = created.json()["incident_id"]
    incident = client.get(f"/incidents/{incident_id}").json()
    assert incident["updates"][0]["message"] == "Synthetic check failing"
    assert _component_status(client, component["id"]) == "major_outage"

    resolved = client.post(
        "/webhooks/incident",
        json={"token": WEBHOOK_TOKEN, "action": "resolve", "component_id": component["id"], "message": "Recovered"},
    )
    assert resolved.status_code == 200
    assert resolved.json()["incident_id"] == incident_id
    assert client.get(f"/incidents/{incident_id}").json()["current_status"] == "resolved"
    assert _component_status(client, component["id"]) == "operational"

    nothing_open = client.post(
        "/webhooks/incident",
        json={"token": WEBHOOK_TOKEN, "action": "resolve", "component_id": component["id"]},
    )
    assert nothing_open.status_code == 404

    updated = client.post(
        "/webhooks/incident",
        json={"token": WEBHOOK_TOKEN, "action": "update_component", "component_id": component["id"], "status": "degraded"},
    )
    assert updated.status_code == 200
    assert _component_status(client, component["id"]) == "degraded"

    invalid = client.post("/webhooks/incident", json={"token": WEBHOOK_TOKEN, "action": "explode"})
    assert invalid.status_code == 400


def test_version_endpoint(client: TestClient):
    response = client.get("/version")

    assert response.status_code == 200
    assert response.json()["version"]
