"""
Tests for FastAPI endpoints: health, tree, stats, breadcrumbs, writes, levels.
Uses TestClient with the store replaced by the in-memory fake. Most tests run with
DISABLE_AUTH=true; secured_client exercises bearer-token authentication.
"""

import pytest
from unittest.mock import patch
from fastapi.testclient import TestClient

from conftest import ORG, OTHER_ORG

ACME = {"X-Organization-Id": ORG, "X-User-Id": "user-1"}


@pytest.fixture()
def api_client(fetcher, mutations):
    from hierarchy_service.app.main import app
    from hierarchy_service.core.services.hierarchy_tree import get_hierarchy_fetcher, get_mutation_service

    app.dependency_overrides[get_hierarchy_fetcher] = lambda: fetcher
    app.dependency_overrides[get_mutation_service] = lambda: mutations
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealthEndpoint:
    def test_health_returns_200(self, api_client):
        resp = api_client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert data["service"] == "asset-hierarchy-service"
        assert "version" in data


class TestOrganizationValidation:
    def test_invalid_org_returns_400(self, api_client):
        resp = api_client.get("/api/v1/hierarchy/tree", headers={"X-Organization-Id": "bad org!"})
        assert resp.status_code == 400

    def test_injection_attempt_returns_400(self, api_client):
        resp = api_client.get("/api/v1/hierarchy/tree", headers={"X-Organization-Id": "'; DROP TABLE --"})
        assert resp.status_code == 400


class TestTreeEndpoint:
    def test_returns_scoped_forest(self, api_client):
        resp = api_client.get("/api/v1/hierarchy/tree", headers=ACME)
        assert resp.status_code == 200
        data = resp.json()

        assert data["organization_id"] == ORG
        assert data["total_nodes"] == 3
        assert data["total_assets"] == 2
        assert [r["id"] for r in data["roots"]] == ["A"]

        site = data["roots"][0]
        assert site["kind"] == "node"
        assert site["asset_count"] == 2
        room = site["children"][0]["children"][0]
        assert room["id"] == "C"
        assert room["children"][0]["kind"] == "asset"
        assert room["children"][0]["children"][0]["id"] == "a2"

    def test_no_organization_returns_empty_forest(self, api_client, fake_client):
        resp = api_client.get("/api/v1/hierarchy/tree")
        assert resp.status_code == 200
        assert resp.json()["roots"] == []
        assert fake_client.queries == []

    def test_odd_asset_row_still_renders_tree(self, api_client, fake_client):
        fake_client.tables["assets"].append(
            {"id": "a9", "name": "Legacy Pump", "status": "scrapped", "criticality": None,
             "hierarchy_node_id": "A", "parent_asset_id": None, "organization_id": ORG}
        )

        resp = api_client.get("/api/v1/hierarchy/tree", headers=ACME)

        assert resp.status_code == 200
        assert resp.json()["total_assets"] == 3
        legacy = resp.json()["roots"][0]["children"][0]
        assert legacy["id"] == "a9"
        assert legacy["status"] is None

    def test_fetch_failure_returns_502(self, api_client, fake_client):
        fake_client.fail("assets", RuntimeError("upstream timeout"))

        resp = api_client.get("/api/v1/hierarchy/tree", headers=ACME)
        assert resp.status_code == 502
        data = resp.json()
        assert data["error"] == "FETCH_FAILED"
        assert data["context"]["collection"] == "assets"
        assert "upstream timeout" in data["message"]


@pytest.fixture()
def secured_client(api_client, fake_client, monkeypatch):
    """API client with DISABLE_AUTH=false and the token store backed by the fake."""
    from hierarchy_service.app.config import get_settings
    monkeypatch.setenv("DISABLE_AUTH", "false")
    get_settings.cache_clear()
    fake_client.auth.tokens["token-user-1"] = "user-1"
    fake_client.auth.tokens["token-user-2"] = "user-2"

    with patch("hierarchy_service.app.dependencies.auth.get_supabase_client", return_value=fake_client):
        yield api_client


def bearer(token, org=ORG):
    headers = {"Authorization": f"Bearer {token}"}
    if org:
        headers["X-Organization-Id"] = org
    return headers


class TestAuthentication:
    def test_missing_credential_is_401(self, secured_client):
        resp = secured_client.get("/api/v1/hierarchy/tree", headers={"X-Organization-Id": OTHER_ORG})
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_missing_credential_on_write_is_401(self, secured_client, fake_client):
        resp = secured_client.delete("/api/v1/hierarchy/nodes/G", headers={"X-Organization-Id": OTHER_ORG})
        assert resp.status_code == 401
        assert any(r["id"] == "G" for r in fake_client.tables["hierarchy_nodes"])

    def test_invalid_token_is_401(self, secured_client, fake_client):
        resp = secured_client.get("/api/v1/hierarchy/tree", headers=bearer("forged-token"))
        assert resp.status_code == 401
        assert fake_client.auth.checked == ["forged-token"]
        assert fake_client.queries_for("hierarchy_nodes") == []

    def test_org_mismatch_is_401(self, secured_client, fake_client):
        resp = secured_client.get("/api/v1/hierarchy/tree", headers=bearer("token-user-1", org=OTHER_ORG))
        assert resp.status_code == 401
        assert fake_client.queries_for("hierarchy_nodes") == []

    def test_member_reads_own_org(self, secured_client):
        resp = secured_client.get("/api/v1/hierarchy/tree", headers=bearer("token-user-1"))
        assert resp.status_code == 200
        assert resp.json()["total_nodes"] == 3
        assert resp.json()["cross_tenant"] is False

    def test_user_id_header_is_ignored(self, secured_client, fake_client):
        fake_client.rpc_results["admin-1"] = True
        headers = {**bearer("token-user-2", org=OTHER_ORG), "X-User-Id": "admin-1"}

        resp = secured_client.get("/api/v1/hierarchy/tree", headers=headers)

        assert resp.status_code == 200
        assert resp.json()["cross_tenant"] is False
        assert resp.json()["total_nodes"] == 1
        assert fake_client.rpc_calls == [("has_cross_project_access", {"_user_id": "user-2"})]

    def test_membership_lookup_failure_is_401(self, secured_client, fake_client):
        fake_client.fail("user_organizations", RuntimeError("connection reset"))
        resp = secured_client.get("/api/v1/hierarchy/tree", headers=bearer("token-user-1"))
        assert resp.status_code == 401


class TestCrossTenantAccess:
    def test_rpc_grant_reads_every_tenant(self, secured_client, fake_client):
        fake_client.rpc_results["user-1"] = True

        resp = secured_client.get("/api/v1/hierarchy/tree", headers=bearer("token-user-1"))

        assert resp.status_code == 200
        data = resp.json()
        assert data["cross_tenant"] is True
        assert data["total_nodes"] == 4
        assert fake_client.rpc_calls == [("has_cross_project_access", {"_user_id": "user-1"})]

    def test_grant_skips_membership_check(self, secured_client, fake_client):
        fake_client.rpc_results["user-1"] = True

        resp = secured_client.get("/api/v1/hierarchy/tree", headers=bearer("token-user-1", org=OTHER_ORG))

        assert resp.status_code == 200
        assert fake_client.queries_for("user_organizations") == []

    def test_rpc_failure_means_no_grant(self, secured_client, fake_client):
        fake_client.rpc_error = RuntimeError("function does not exist")

        resp = secured_client.get("/api/v1/hierarchy/tree", headers=bearer("token-user-1"))

        assert resp.status_code == 200
        assert resp.json()["cross_tenant"] is False
        assert resp.json()["total_nodes"] == 3

    def test_no_organization_without_grant_reads_nothing(self, secured_client):
        resp = secured_client.get("/api/v1/hierarchy/tree", headers=bearer("token-user-1", org=None))
        assert resp.status_code == 200
        assert resp.json()["roots"] == []

    def test_dev_mode_flag(self, api_client, monkeypatch):
        from hierarchy_service.app.config import get_settings
        monkeypatch.setenv("DEV_CROSS_TENANT_ACCESS", "true")
        get_settings.cache_clear()

        resp = api_client.get("/api/v1/hierarchy/tree")
        assert resp.status_code == 200
        assert resp.json()["total_nodes"] == 4
class TestStatsAndBreadcrumb:
    def test_stats(self, api_client):
        resp = api_client.get("/api/v1/hierarchy/stats", headers=ACME)
        assert resp.status_code == 200
        data = resp.json()
        assert data["total_levels"] == 3
        assert data["max_depth"] == 3
        assert data["coverage"] == 100.0
        assert data["nodes_by_level"] == {"Site": 1, "Building": 1, "Room": 1}

    def test_stats_failure_cancels_level_fetch(self, api_client, fetcher):
        import asyncio
        from hierarchy_service.core.exceptions import FetchError

        levels_started = asyncio.Event()
        cancelled = []

        async def slow_levels(scope, include_inactive=False):
            levels_started.set()
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.append(True)
                raise
            return []

        async def failing_collections(scope):
            await levels_started.wait()
            raise FetchError("Failed to fetch hierarchy nodes: boom", collection="nodes")

        fetcher.fetch_levels = slow_levels
        fetcher.fetch_collections = failing_collections

        resp = api_client.get("/api/v1/hierarchy/stats", headers=ACME)

        assert resp.status_code == 502
        assert cancelled == [True]

    def test_breadcrumb(self, api_client):
        resp = api_client.get("/api/v1/hierarchy/nodes/C/breadcrumb", headers=ACME)
        assert resp.status_code == 200
        data = resp.json()
        assert [e["id"] for e in data["breadcrumb"]] == ["A", "B", "C"]
        assert data["path"] == "North Site / Building 2 / Plant Room"

    def test_breadcrumb_unknown_node_404(self, api_client):
        resp = api_client.get("/api/v1/hierarchy/nodes/nope/breadcrumb", headers=ACME)
        assert resp.status_code == 404


class TestNodeWrites:
    def test_create_node_returns_record_and_tree(self, api_client):
        resp = api_client.post(
            "/api/v1/hierarchy/nodes",
            headers=ACME,
            json={"name": "Annex", "hierarchy_level_id": "lvl-building", "parent_id": "A"},
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["record"]["organization_id"] == ORG
        assert data["record"]["path"] == "North Site / Annex"
        assert data["tree"]["total_nodes"] == 4
        assert data["refresh_error"] is None

    def test_create_without_scope_is_403(self, api_client):
        resp = api_client.post(
            "/api/v1/hierarchy/nodes",
            json={"name": "Annex", "hierarchy_level_id": "lvl-building"},
        )
        assert resp.status_code == 403
        assert resp.json()["error"] == "TENANT_SCOPE_UNRESOLVED"

    def test_reparent_under_descendant_is_400(self, api_client):
        resp = api_client.patch("/api/v1/hierarchy/nodes/A", headers=ACME, json={"parent_id": "C"})
        assert resp.status_code == 400
        assert resp.json()["error"] == "INVALID_PARENT"

    def test_empty_update_is_422(self, api_client):
        resp = api_client.patch("/api/v1/hierarchy/nodes/A", headers=ACME, json={})
        assert resp.status_code == 422

    def test_update_missing_node_is_404(self, api_client):
        resp = api_client.patch("/api/v1/hierarchy/nodes/missing", headers=ACME, json={"name": "X"})
        assert resp.status_code == 404
        assert resp.json()["error"] == "RECORD_NOT_FOUND"

    def test_store_failure_is_502(self, api_client, fake_client):
        fake_client.fail("hierarchy_nodes", RuntimeError("violates foreign key"), op="delete")
        resp = api_client.delete("/api/v1/hierarchy/nodes/B", headers=ACME)
        assert resp.status_code == 502
        assert resp.json()["message"] == "Failed to delete hierarchy node: violates foreign key"


class TestAssetWrites:
    def test_delete_asset_promotes_child(self, api_client):
        resp = api_client.delete("/api/v1/hierarchy/assets/a1", headers=ACME)
        assert resp.status_code == 200
        tree = resp.json()["tree"]
        assert [r["id"] for r in tree["roots"]] == ["A", "a2"]
        assert tree["warnings"][0]["issue"] == "dangling_parent"

    def test_create_asset_with_empty_refs(self, api_client, fake_client):
        resp = api_client.post(
            "/api/v1/hierarchy/assets",
            headers=ACME,
            json={"name": "Loose Part", "hierarchy_node_id": "", "parent_asset_id": ""},
        )
        assert resp.status_code == 201
        sent = fake_client.queries_for("assets", "insert")[0].payload
        assert sent["hierarchy_node_id"] is None
        assert sent["parent_asset_id"] is None

    def test_invalid_health_score_is_422(self, api_client):
        resp = api_client.post("/api/v1/hierarchy/assets", headers=ACME, json={"name": "X", "health_score": 140})
        assert resp.status_code == 422


class TestLevels:
    def test_list_active_levels(self, api_client):
        resp = api_client.get("/api/v1/hierarchy/levels", headers=ACME)
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 3
        assert data["max_depth"] == 3

    def test_list_including_inactive(self, api_client):
        resp = api_client.get("/api/v1/hierarchy/levels?include_inactive=true", headers=ACME)
        assert resp.json()["total"] == 4

    def test_create_level(self, api_client):
        resp = api_client.post(
            "/api/v1/hierarchy/levels",
            headers=ACME,
            json={"name": "Floor", "level_order": 4, "parent_level_id": "lvl-building"},
        )
        assert resp.status_code == 201
        assert resp.json()["record"]["name"] == "Floor"

    def test_delete_level(self, api_client, fake_client):
        resp = api_client.delete("/api/v1/hierarchy/levels/lvl-legacy", headers=ACME)
        assert resp.status_code == 200
        assert all(r["id"] != "lvl-legacy" for r in fake_client.tables["hierarchy_levels"])
