"""Document store backed by a single Supabase ``documents`` table."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Sequence, TypeVar

import httpx
from supabase import Client

from ..config import settings
from ..errors import BatchCommitError, StoreError, StoreUnavailableError
from .store import BatchOperation, Document, DocumentStore, FieldFilter, new_document_id

T = TypeVar("T")

logger = logging.getLogger(__name__)


def _json_path(field_name: str) -> str:
    """``period.year`` -> ``data->period->>year`` (PostgREST JSON operators)."""
    parts = field_name.split(".")
    prefix = "".join(f"->{part}" for part in parts[:-1])
    return f"data{prefix}->>{parts[-1]}"


def _as_text(value: Any) -> str:
    # ->> yields text, so filter values are compared in their JSON text form
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


class SupabaseDocumentStore(DocumentStore):
    """Maps the document API onto ``documents(collection, id, data jsonb)``.

    Range filters compare text, which is correct for ISO-8601 timestamps and
    identifiers but not for numbers. Writes other than single inserts go
    through the ``apply_document_batch`` Postgres function so that partial
    updates are merged server-side inside one transaction.
    """

    def __init__(
        self,
        client: Client,
        table: str | None = None,
        batch_function: str | None = None,
    ) -> None:
        self.client = client
        self.table = table or settings.supabase_documents_table
        self.batch_function = batch_function or settings.supabase_batch_function

    async def _run(self, description: str, call: Callable[[], T]) -> T:
        try:
            return await asyncio.to_thread(call)
        except (httpx.TimeoutException, httpx.NetworkError) as exc:
            raise StoreUnavailableError(f"{description}: {exc}") from exc
        except Exception as exc:
            raise StoreError(f"{description}: {exc}") from exc

    async def get(self, collection: str, doc_id: str) -> Document | None:
        def call():
            return (
                self.client.table(self.table)
                .select("id,data")
                .eq("collection", collection)
                .eq("id", doc_id)
                .limit(1)
                .execute()
            )

        response = await self._run(f"get {collection}/{doc_id}", call)
        rows = response.data or []
        if not rows:
            return None
        return Document(id=rows[0]["id"], data=rows[0].get("data") or {})

    async def query(self, collection: str, filters: Sequence[FieldFilter] = ()) -> list[Document]:
        def call():
            builder = self.client.table(self.table).select("id,data").eq("collection", collection)
            for flt in filters:
                column = _json_path(flt.field)
                match flt.op:
                    case "==":
                        builder = builder.eq(column, _as_text(flt.value))
                    case "!=":
                        builder = builder.neq(column, _as_text(flt.value))
                    case "<":
                        builder = builder.lt(column, _as_text(flt.value))
                    case "<=":
                        builder = builder.lte(column, _as_text(flt.value))
                    case ">":
                        builder = builder.gt(column, _as_text(flt.value))
                    case ">=":
                        builder = builder.gte(column, _as_text(flt.value))
                    case "in":
                        builder = builder.in_(column, [_as_text(item) for item in flt.value])
                    case _:
                        raise ValueError(f"Unsupported filter operator '{flt.op}'.")
            return builder.execute()

        response = await self._run(f"query {collection}", call)
        return [Document(id=row["id"], data=row.get("data") or {}) for row in (response.data or [])]

    async def create(self, collection: str, data: dict, doc_id: str | None = None) -> str:
        doc_id = doc_id or new_document_id()

        def call():
            return (
                self.client.table(self.table)
                .insert({"collection": collection, "id": doc_id, "data": data})
                .execute()
            )

        await self._run(f"create {collection}/{doc_id}", call)
        return doc_id

    async def update(self, collection: str, doc_id: str, changes: dict) -> None:
        await self.atomic_batch([BatchOperation(kind="update", collection=collection, doc_id=doc_id, data=changes)])

    async def delete(self, collection: str, doc_id: str) -> None:
        def call():
            return (
                self.client.table(self.table)
                .delete()
                .eq("collection", collection)
                .eq("id", doc_id)
                .execute()
            )

        await self._run(f"delete {collection}/{doc_id}", call)

    async def atomic_batch(self, operations: Sequence[BatchOperation]) -> list[str]:
        payload = []
        for op in operations:
            doc_id = op.doc_id or (new_document_id() if op.kind == "create" else None)
            if doc_id is None:
                raise StoreError(f"{op.kind} on {op.collection} requires a document id")
            payload.append({"kind": op.kind, "collection": op.collection, "id": doc_id, "data": op.data})
        if not payload:
            return []

        def call():
            return self.client.rpc(self.batch_function, {"ops": payload}).execute()

        try:
            await self._run(f"batch of {len(payload)} writes", call)
        except StoreUnavailableError:
            raise
        except StoreError as exc:
            logger.warning(f"Document batch rejected: {exc}")
            raise BatchCommitError(str(exc)) from exc
        return [item["id"] for item in payload]
