"""
Shared fixtures for hierarchy service tests.

Replaces Supabase with an in-memory fake of the supabase-py client
(table().select().eq().order().execute(), insert/update/delete, rpc and
auth.get_user) so tests run without a network. Failures can be injected per table and operation.
"""

import os
import copy
import itertools
from typing import Any, Dict, List, Optional, Tuple

import pytest

# Set test environment BEFORE any imports that read settings
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DISABLE_AUTH", "true")
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")


ORG = "org-acme"
OTHER_ORG = "org-globex"


# ─── Fake Supabase ────────────────────────────────────────────────────


class FakeResult:
    def __init__(self, data: Any):
        self.data = data


class FakeQuery:
    """Chainable stand-in for a PostgREST request builder."""

    def __init__(self, client: "FakeSupabaseClient", table: str):
        self.client = client
        self.table = table
        self.op = "select"
        self.columns = "*"
        self.payload: Optional[Dict[str, Any]] = None
        self.filters: List[Tuple[str, Any]] = []
        self.order_by: Optional[Tuple[str, bool]] = None

    def select(self, columns: str = "*"):
        self.op = "select"
        self.columns = columns
        return self

    def insert(self, payload: Dict[str, Any]):
        self.op = "insert"
        self.payload = payload
        return self

    def update(self, payload: Dict[str, Any]):
        self.op = "update"
        self.payload = payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column: str, value: Any):
        self.filters.append((column, value))
        return self

    def order(self, column: str, desc: bool = False):
        self.order_by = (column, desc)
        return self

    def execute(self) -> FakeResult:
        return self.client.run(self)


class FakeRpc:
    def __init__(self, client: "FakeSupabaseClient", fn: str, params: Dict[str, Any]):
        self.client = client
        self.fn = fn
        self.params = params

    def execute(self) -> FakeResult:
        self.client.rpc_calls.append((self.fn, self.params))
        if self.client.rpc_error is not None:
            raise self.client.rpc_error
        return FakeResult(self.client.rpc_results.get(self.params.get("_user_id"), False))


class FakeUser:
    def __init__(self, user_id: str):
        self.id = user_id


class FakeUserResponse:
    def __init__(self, user: Optional[FakeUser]):
        self.user = user


class FakeAuth:
    """Stand-in for client.auth: access tokens map to user ids."""

    def __init__(self):
        self.tokens: Dict[str, str] = {}
        self.checked: List[str] = []

    def get_user(self, jwt: Optional[str] = None) -> FakeUserResponse:
        self.checked.append(jwt)
        if jwt not in self.tokens:
            raise RuntimeError("invalid JWT: unable to parse or verify signature")
        return FakeUserResponse(FakeUser(self.tokens[jwt]))


class FakeSupabaseClient:
    """
    In-memory tables keyed by name.

    cascades maps a table to the self-referencing column whose children are
    deleted along with their parent (emulates ON DELETE CASCADE).
    """

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = copy.deepcopy(tables or {})
        self.failures: Dict[Tuple[str, Optional[str]], Exception] = {}
        self.cascades: Dict[str, str] = {}
        self.queries: List[FakeQuery] = []
        self.rpc_calls: List[Tuple[str, Dict[str, Any]]] = []
        self.rpc_results: Dict[str, Any] = {}
        self.rpc_error: Optional[Exception] = None
        self.auth = FakeAuth()
        self._ids = itertools.count(1)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, fn: str, params: Dict[str, Any]) -> FakeRpc:
        return FakeRpc(self, fn, params)

    def fail(self, table: str, error: Exception, op: Optional[str] = None) -> None:
        self.failures[(table, op)] = error

    def queries_for(self, table: str, op: Optional[str] = None) -> List[FakeQuery]:
        return [q for q in self.queries if q.table == table and (op is None or q.op == op)]

    def run(self, query: FakeQuery) -> FakeResult:
        self.queries.append(query)
        error = self.failures.get((query.table, query.op)) or self.failures.get((query.table, None))
        if error is not None:
            raise error

        rows = self.tables.setdefault(query.table, [])
        matches = [r for r in rows if all(r.get(col) == val for col, val in query.filters)]

        if query.op == "select":
            result = copy.deepcopy(matches)
            if query.order_by:
                column, desc = query.order_by
                result.sort(key=lambda r: (r.get(column) is None, r.get(column)), reverse=desc)
            return FakeResult(result)

        if query.op == "insert":
            row = dict(query.payload)
            row.setdefault("id", f"{query.table}-{next(self._ids)}")
            rows.append(row)
            return FakeResult([copy.deepcopy(row)])

        if query.op == "update":
            for row in matches:
                row.update(query.payload)
            return FakeResult(copy.deepcopy(matches))

        if query.op == "delete":
            removed = list(matches)
            column = self.cascades.get(query.table)
            if column:
                frontier = {r["id"] for r in removed}
                while frontier:
                    children = [r for r in rows if r.get(column) in frontier and r not in removed]
                    removed.extend(children)
                    frontier = {r["id"] for r in children}
            self.tables[query.table] = [r for r in rows if r not in removed]
            return FakeResult(copy.deepcopy(removed))

        raise AssertionError(f"Unsupported fake operation: {query.op}")


# ─── Seed data ────────────────────────────────────────────────────────


def seed_tables() -> Dict[str, List[Dict[str, Any]]]:
    """
    Acme: Site A > Building B > Room C; asset a1 in C, a2 under a1.
    Globex: one node and one asset that Acme must never see.
    user-1 belongs to Acme and user-2 to Globex.
    """
    level_site = {"id": "lvl-site", "name": "Site", "level_order": 1, "icon_name": "map", "color_code": "#111111"}
    level_building = {"id": "lvl-building", "name": "Building", "level_order": 2, "icon_name": "building", "color_code": "#222222"}
    level_room = {"id": "lvl-room", "name": "Room", "level_order": 3, "icon_name": "door", "color_code": "#333333"}

    return {
        "hierarchy_levels": [
            {**level_site, "is_active": True, "parent_level_id": None, "organization_id": ORG},
            {**level_building, "is_active": True, "parent_level_id": "lvl-site", "organization_id": ORG},
            {**level_room, "is_active": True, "parent_level_id": "lvl-building", "organization_id": ORG},
            {"id": "lvl-legacy", "name": "Legacy", "level_order": 9, "is_active": False, "organization_id": ORG},
        ],
        "hierarchy_nodes": [
            {"id": "A", "name": "North Site", "hierarchy_level_id": "lvl-site", "parent_id": None,
             "status": "active", "properties": {}, "organization_id": ORG, "hierarchy_levels": level_site},
            {"id": "B", "name": "Building 2", "hierarchy_level_id": "lvl-building", "parent_id": "A",
             "status": "active", "properties": '{"floors": 3}', "organization_id": ORG, "hierarchy_levels": level_building},
            {"id": "C", "name": "Plant Room", "hierarchy_level_id": "lvl-room", "parent_id": "B",
             "status": "active", "properties": None, "organization_id": ORG, "hierarchy_levels": level_room},
            {"id": "G", "name": "Globex HQ", "hierarchy_level_id": None, "parent_id": None,
             "status": "active", "properties": {}, "organization_id": OTHER_ORG},
        ],
        "assets": [
            {"id": "a1", "name": "Chiller 1", "status": "operational", "criticality": "high",
             "hierarchy_node_id": "C", "parent_asset_id": None, "organization_id": ORG},
            {"id": "a2", "name": "Chiller 1 Compressor", "status": "operational", "criticality": "medium",
             "hierarchy_node_id": "", "parent_asset_id": "a1", "organization_id": ORG},
            {"id": "g1", "name": "Globex Boiler", "status": "maintenance", "criticality": "low",
             "hierarchy_node_id": "G", "parent_asset_id": None, "organization_id": OTHER_ORG},
        ],
        "user_organizations": [
            {"user_id": "user-1", "organization_id": ORG},
            {"user_id": "user-2", "organization_id": OTHER_ORG},
        ],
    }


# ─── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Clear lru_cache on settings between tests."""
    from hierarchy_service.app.config import get_settings
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def test_settings():
    """Return a test Settings instance."""
    from hierarchy_service.app.config import Settings
    return Settings(
        environment="test",
        disable_auth=True,
        supabase_url="http://localhost:54321",
        supabase_service_role_key="test-service-role-key",
    )


@pytest.fixture()
def fake_client():
    return FakeSupabaseClient(seed_tables())


@pytest.fixture()
def fetcher(fake_client, test_settings):
    from hierarchy_service.core.services.hierarchy_tree import HierarchyFetcher
    return HierarchyFetcher(client=fake_client, settings=test_settings)


@pytest.fixture()
def mutations(fake_client, test_settings):
    from hierarchy_service.core.services.hierarchy_tree import HierarchyMutationService
    return HierarchyMutationService(client=fake_client, settings=test_settings)


@pytest.fixture()
def acme_scope():
    from hierarchy_service.core.security.tenant_scope import TenantScope
    return TenantScope(organization_id=ORG)


@pytest.fixture()
def global_scope():
    from hierarchy_service.core.security.tenant_scope import TenantScope
    return TenantScope(organization_id=ORG, cross_tenant=True)


@pytest.fixture()
def unresolved_scope():
    from hierarchy_service.core.security.tenant_scope import UNRESOLVED_SCOPE
    return UNRESOLVED_SCOPE
