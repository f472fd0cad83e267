"""
HTTP API Tests.

Covers:
- Probes and organization bootstrap without a tenant header
- Tenant header and role checks
- Register flow: risk, control, link, residual
- Indicator flow: appetite statement, tolerance, measurement, alert acknowledge
- Period commit and its 409 on repeat
- Structured error body
"""

import uuid

import pytest_asyncio

API = "/api/v1"


@pytest_asyncio.fixture
async def operational(client, headers):
    resp = await client.post(f"{API}/categories", json={"name": "Operational"}, headers=headers(role="manager"))
    assert resp.status_code == 201
    return resp.json()


async def _create_risk(client, headers, category_id, **overrides):
    payload = {
        "title": "Payment fraud",
        "category_id": category_id,
        "division": "Finance",
        "likelihood_inherent": 4,
        "impact_inherent": 5,
    }
    payload.update(overrides)
    resp = await client.post(f"{API}/risks", json=payload, headers=headers())
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestHealth:
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"


class TestTenancy:
    async def test_create_organization_needs_no_tenant(self, client):
        resp = await client.post(f"{API}/organizations", json={"name": "Delta", "slug": "delta"})
        assert resp.status_code == 201
        body = resp.json()
        assert body["slug"] == "delta"
        assert body["likelihood_scale"] == 5

    async def test_duplicate_slug(self, client):
        await client.post(f"{API}/organizations", json={"name": "Delta", "slug": "delta"})
        resp = await client.post(f"{API}/organizations", json={"name": "Delta 2", "slug": "delta"})
        assert resp.status_code == 400
        assert resp.json()["error"]["field"] == "slug"

    async def test_missing_tenant_header(self, client):
        resp = await client.get(f"{API}/risks")
        assert resp.status_code == 400
        error = resp.json()["error"]
        assert error["kind"] == "ValidationError"
        assert error["field"] == "X-Organization-ID"

    async def test_current_organization(self, client, headers, org):
        resp = await client.get(f"{API}/organizations/current", headers=headers(role="viewer"))
        assert resp.status_code == 200
        assert resp.json()["id"] == str(org.id)

    async def test_viewer_cannot_write(self, client, headers, operational):
        resp = await client.post(
            f"{API}/risks",
            json={
                "title": "x",
                "category_id": operational["id"],
                "division": "Finance",
                "likelihood_inherent": 1,
                "impact_inherent": 1,
            },
            headers=headers(role="viewer"),
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["kind"] == "AuthorizationError"

    async def test_analyst_cannot_commit(self, client, headers, org):
        resp = await client.post(f"{API}/periods/commit", json={"period": "Q1 2026"}, headers=headers(role="analyst"))
        assert resp.status_code == 403

    async def test_write_needs_actor(self, client, org):
        resp = await client.post(
            f"{API}/codes",
            json={"entity_kind": "CONTROL"},
            headers={"X-Organization-ID": str(org.id), "X-Actor-Role": "admin"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["field"] == "X-Actor-ID"

    async def test_other_organization_sees_nothing(self, client, headers, operational, other_org):
        risk = await _create_risk(client, headers, operational["id"])
        resp = await client.get(f"{API}/risks/{risk['id']}", headers=headers(organization_id=other_org.id))
        assert resp.status_code == 404
        assert resp.json()["error"]["kind"] == "NotFound"


class TestRegister:
    async def test_residual_after_linking_control(self, client, headers, operational):
        risk = await _create_risk(client, headers, operational["id"])
        assert risk["code"] == "FIN-OPE-001"

        resp = await client.post(
            f"{API}/controls",
            json={
                "name": "Dual approval",
                "control_type": "PREVENTIVE",
                "target": "LIKELIHOOD",
                "design_score": 3,
                "implementation_score": 3,
                "monitoring_score": 3,
                "evaluation_score": 0,
            },
            headers=headers(),
        )
        assert resp.status_code == 201
        control = resp.json()
        assert control["code"] == "CTRL-001"
        assert control["effectiveness"] == 0.75

        resp = await client.post(
            f"{API}/risks/{risk['id']}/controls", json={"target_id": control["id"]}, headers=headers()
        )
        assert resp.status_code == 204

        resp = await client.get(f"{API}/risks/{risk['id']}/residual", headers=headers(role="viewer"))
        assert resp.status_code == 200
        residual = resp.json()
        assert residual["likelihood_residual"] == 2
        assert residual["impact_residual"] == 5
        assert residual["score"] == 10
        assert residual["level"] == "HIGH"

    async def test_allocate_code(self, client, headers, org):
        resp = await client.post(
            f"{API}/codes", json={"entity_kind": "RISK", "prefix_parts": ["Legal", "Compliance"]}, headers=headers()
        )
        assert resp.status_code == 201
        assert resp.json() == {"code": "LEG-COM-001", "prefix": "LEG-COM", "sequence": 1}

    async def test_out_of_scale_score(self, client, headers, operational):
        resp = await client.post(
            f"{API}/risks",
            json={
                "title": "x",
                "category_id": operational["id"],
                "division": "Finance",
                "likelihood_inherent": 7,
                "impact_inherent": 1,
            },
            headers=headers(),
        )
        assert resp.status_code == 400
        assert resp.json()["error"]["field"] == "likelihood_inherent"

    async def test_request_shape_error_uses_same_body(self, client, headers, org):
        resp = await client.post(f"{API}/risks", json={"title": "x"}, headers=headers())
        assert resp.status_code == 400
        assert resp.json()["error"]["kind"] == "ValidationError"


class TestIndicatorFlow:
    async def test_measurement_alert_and_acknowledge(self, client, headers, operational):
        manager = headers(role="manager")
        statement = (await client.post(f"{API}/appetite/statements", json={"title": "FY26"}, headers=manager)).json()
        appetite_category = (await client.post(
            f"{API}/appetite/statements/{statement['id']}/categories",
            json={"category_id": operational["id"], "appetite_level": "LOW"},
            headers=manager,
        )).json()
        indicator = (await client.post(
            f"{API}/indicators", json={"name": "Failed logins", "indicator_type": "LEADING"}, headers=headers()
        )).json()
        assert indicator["code"] == "KRI-001"

        resp = await client.post(
            f"{API}/indicators/{indicator['id']}/measurements", json={"value": 10}, headers=headers()
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["kind"] == "ThresholdNotConfigured"

        resp = await client.post(
            f"{API}/tolerances",
            json={
                "appetite_category_id": appetite_category["id"],
                "metric_name": "Failed login rate",
                "metric_type": "MAXIMUM",
                "green_max": 70,
                "amber_max": 90,
                "indicator_id": indicator["id"],
            },
            headers=manager,
        )
        assert resp.status_code == 201, resp.text

        resp = await client.post(
            f"{API}/indicators/{indicator['id']}/measurements", json={"value": 85}, headers=headers()
        )
        assert resp.status_code == 201
        result = resp.json()
        assert result["alert_status"] == "YELLOW"
        assert result["breach_id"] is not None

        alert_id = result["alert_id"]
        resp = await client.post(f"{API}/alerts/{alert_id}/acknowledge", json={"note": "on it"}, headers=headers())
        assert resp.status_code == 200
        assert resp.json()["status"] == "ACKNOWLEDGED"
        assert resp.json()["acknowledged_by"] == "alice"

        resp = await client.post(
            f"{API}/alerts/{alert_id}/acknowledge", json={"note": "me too"}, headers=headers(actor="bob")
        )
        assert resp.status_code == 409
        error = resp.json()["error"]
        assert error["kind"] == "ConcurrentModification"
        assert error["details"]["current_status"] == "ACKNOWLEDGED"

    async def test_invalid_tolerance_bands(self, client, headers, operational):
        manager = headers(role="manager")
        statement = (await client.post(f"{API}/appetite/statements", json={"title": "FY26"}, headers=manager)).json()
        appetite_category = (await client.post(
            f"{API}/appetite/statements/{statement['id']}/categories",
            json={"category_id": operational["id"], "appetite_level": "LOW"},
            headers=manager,
        )).json()
        resp = await client.post(
            f"{API}/tolerances",
            json={
                "appetite_category_id": appetite_category["id"],
                "metric_name": "Broken",
                "metric_type": "MAXIMUM",
                "green_max": 70,
                "amber_min": 75,
                "amber_max": 90,
            },
            headers=manager,
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["kind"] == "InvalidThresholdConfiguration"
        assert resp.json()["error"]["field"] == "amber_min"


class TestPeriods:
    async def test_commit_then_repeat(self, client, headers, operational):
        await _create_risk(client, headers, operational["id"])
        resp = await client.post(
            f"{API}/periods/commit", json={"period": "Q1 2026", "note": "close"}, headers=headers()
        )
        assert resp.status_code == 201, resp.text
        assert resp.json()["risks_count"] == 1
        assert resp.json()["next_period"] == "Q2 2026"

        resp = await client.post(f"{API}/periods/commit", json={"period": "Q1 2026"}, headers=headers())
        assert resp.status_code == 409
        assert resp.json()["error"]["kind"] == "AlreadyCommitted"

        resp = await client.get(f"{API}/periods/Q1-2026/snapshot", headers=headers(role="viewer"))
        assert resp.status_code == 200
        assert [s["risk_code"] for s in resp.json()] == ["FIN-OPE-001"]

        resp = await client.get(f"{API}/periods/active", headers=headers(role="viewer"))
        assert resp.json()["current_period"] == "Q2 2026"

    async def test_unknown_period_snapshot(self, client, headers, org):
        resp = await client.get(f"{API}/periods/Q4-2030/snapshot", headers=headers())
        assert resp.status_code == 404


class TestErrorBody:
    async def test_shape(self, client, headers, org):
        resp = await client.get(f"{API}/risks/{uuid.uuid4()}", headers=headers())
        assert resp.status_code == 404
        body = resp.json()
        assert set(body) == {"error", "request_id", "timestamp"}
        assert set(body["error"]) == {"code", "kind", "message", "field", "details"}
        assert body["error"]["code"] == "E1002"
        assert body["request_id"]
