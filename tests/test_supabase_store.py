import asyncio
from types import SimpleNamespace

import httpx
import pytest

from ganeungil.config import settings
from ganeungil.db.supabase import SCHEMA_PATH
from ganeungil.errors import BatchCommitError, StoreError, StoreUnavailableError
from ganeungil.persistence.store import BatchOperation, where
from ganeungil.persistence.supabase_store import SupabaseDocumentStore, _as_text, _json_path


class FakeQuery:
    """Records the PostgREST builder chain instead of sending it."""

    def __init__(self, client: "FakeClient", table: str) -> None:
        self.client = client
        self.calls = [("table", table)]

    def __getattr__(self, name):
        def step(*args):
            self.calls.append((name, *args))
            return self

        return step

    def execute(self):
        self.client.queries.append(self.calls)
        return SimpleNamespace(data=self.client.rows)


class FakeRpc:
    def __init__(self, client: "FakeClient", name: str, params: dict) -> None:
        self.client = client
        self.name = name
        self.params = params

    def execute(self):
        if self.client.rpc_error is not None:
            raise self.client.rpc_error
        self.client.rpcs.append((self.name, self.params))
        return SimpleNamespace(data=None)


class FakeClient:
    def __init__(self, rows=None, rpc_error: Exception | None = None) -> None:
        self.rows = rows or []
        self.rpc_error = rpc_error
        self.queries = []
        self.rpcs = []

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: dict) -> FakeRpc:
        return FakeRpc(self, name, params)


def test_json_path_uses_postgrest_operators():
    assert _json_path("status") == "data->>status"
    assert _json_path("period.year") == "data->period->>year"
    assert _json_path("a.b.c") == "data->a->b->>c"


def test_filter_values_compare_as_json_text():
    assert _as_text(True) == "true"
    assert _as_text(False) == "false"
    assert _as_text(None) == "null"
    assert _as_text(2024) == "2024"
    assert _as_text("2024-03-01T00:00:00+09:00") == "2024-03-01T00:00:00+09:00"


def test_query_translates_filters():
    client = FakeClient(rows=[{"id": "route-1", "data": {"carrier_id": "carrier-a"}}, {"id": "route-2", "data": None}])
    store = SupabaseDocumentStore(client, table="documents")

    docs = asyncio.run(
        store.query(
            "routes",
            [
                where("is_active", "==", True),
                where("period.year", ">=", 2024),
                where("status", "in", ["active", "paused"]),
                where("carrier_id", "!=", None),
            ],
        )
    )

    assert [(doc.id, doc.data) for doc in docs] == [("route-1", {"carrier_id": "carrier-a"}), ("route-2", {})]
    assert client.queries == [
        [
            ("table", "documents"),
            ("select", "id,data"),
            ("eq", "collection", "routes"),
            ("eq", "data->>is_active", "true"),
            ("gte", "data->period->>year", "2024"),
            ("in_", "data->>status", ["active", "paused"]),
            ("neq", "data->>carrier_id", "null"),
        ]
    ]


def test_get_returns_none_for_missing_rows():
    store = SupabaseDocumentStore(FakeClient(rows=[]), table="documents")

    assert asyncio.run(store.get("requests", "missing")) is None


def test_batch_is_sent_as_one_rpc_payload():
    client = FakeClient()
    store = SupabaseDocumentStore(client, table="documents", batch_function="apply_document_batch")

    ids = asyncio.run(
        store.atomic_batch(
            [
                BatchOperation(kind="create", collection="matches", data={"status": "pending"}),
                BatchOperation(kind="update", collection="requests", doc_id="req-1", data={"status": "matching"}),
                BatchOperation(kind="delete", collection="routes", doc_id="route-1"),
            ]
        )
    )

    [(name, params)] = client.rpcs
    assert name == "apply_document_batch"
    assert [(op["kind"], op["collection"], op["id"], op["data"]) for op in params["ops"]] == [
        ("create", "matches", ids[0], {"status": "pending"}),
        ("update", "requests", "req-1", {"status": "matching"}),
        ("delete", "routes", "route-1", {}),
    ]
    assert ids[0]
    assert ids[1:] == ["req-1", "route-1"]


def test_batch_errors_are_classified():
    update = [BatchOperation(kind="update", collection="requests", doc_id="req-1", data={"status": "failed"})]

    with pytest.raises(StoreError):
        asyncio.run(SupabaseDocumentStore(FakeClient()).atomic_batch([BatchOperation(kind="update", collection="requests")]))
    with pytest.raises(BatchCommitError):
        asyncio.run(SupabaseDocumentStore(FakeClient(rpc_error=RuntimeError("constraint violated"))).atomic_batch(update))
    with pytest.raises(StoreUnavailableError):
        asyncio.run(SupabaseDocumentStore(FakeClient(rpc_error=httpx.ConnectTimeout("timed out"))).atomic_batch(update))
    assert asyncio.run(SupabaseDocumentStore(FakeClient()).atomic_batch([])) == []


def test_shipped_schema_defines_the_default_table_and_batch_function():
    sql = SCHEMA_PATH.read_text(encoding="utf-8")

    assert f"create table if not exists {settings.supabase_documents_table} (" in sql
    assert f"create or replace function {settings.supabase_batch_function}(ops jsonb)" in sql
    for kind in ("create", "set", "update", "delete"):
        assert f"when '{kind}' then" in sql
