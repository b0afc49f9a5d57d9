"""Abstract document store and the in-memory implementation."""

from __future__ import annotations

import asyncio
import copy
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal, Sequence

from ..errors import BatchCommitError, StoreError

FilterOp = Literal["==", "!=", "<", "<=", ">", ">=", "in"]
BatchKind = Literal["create", "set", "update", "delete"]


@dataclass(slots=True, frozen=True)
class FieldFilter:
    field: str
    op: FilterOp
    value: Any

    def matches(self, document: dict) -> bool:
        actual = _resolve_field(document, self.field)
        match self.op:
            case "==":
                return actual == self.value
            case "!=":
                return actual != self.value
            case "in":
                return actual in self.value
        if actual is None:
            return False
        try:
            match self.op:
                case "<":
                    return actual < self.value
                case "<=":
                    return actual <= self.value
                case ">":
                    return actual > self.value
                case ">=":
                    return actual >= self.value
        except TypeError:
            return False
        raise ValueError(f"Unsupported filter operator '{self.op}'.")


def where(field_name: str, op: FilterOp, value: Any) -> FieldFilter:
    return FieldFilter(field=field_name, op=op, value=value)


@dataclass(slots=True)
class BatchOperation:
    """One write inside an atomic batch. ``doc_id`` is required except for creates."""

    kind: BatchKind
    collection: str
    doc_id: str | None = None
    data: dict = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class Document:
    id: str
    data: dict


def _resolve_field(document: dict, dotted: str) -> Any:
    current: Any = document
    for part in dotted.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def new_document_id() -> str:
    return uuid.uuid4().hex[:20]


class DocumentStore(ABC):
    """Contract for the persistent document store used by every service.

    Documents are plain JSON-compatible dictionaries; timestamps are ISO-8601
    strings. ``atomic_batch`` either applies every operation or raises
    ``BatchCommitError`` having applied none.
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Document | None:
        raise NotImplementedError

    @abstractmethod
    async def query(self, collection: str, filters: Sequence[FieldFilter] = ()) -> list[Document]:
        raise NotImplementedError

    @abstractmethod
    async def create(self, collection: str, data: dict, doc_id: str | None = None) -> str:
        raise NotImplementedError

    @abstractmethod
    async def update(self, collection: str, doc_id: str, changes: dict) -> None:
        raise NotImplementedError

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    async def atomic_batch(self, operations: Sequence[BatchOperation]) -> list[str]:
        """Apply all operations together and return the ids they touched."""
        raise NotImplementedError


class InMemoryDocumentStore(DocumentStore):
    """Process-local store; used in tests and when no database is configured."""

    def __init__(self, initial: dict[str, dict[str, dict]] | None = None) -> None:
        self._collections: dict[str, dict[str, dict]] = {}
        self._lock = asyncio.Lock()
        for collection, docs in (initial or {}).items():
            self._collections[collection] = {doc_id: copy.deepcopy(data) for doc_id, data in docs.items()}

    def _bucket(self, collection: str) -> dict[str, dict]:
        return self._collections.setdefault(collection, {})

    def dump(self, collection: str) -> dict[str, dict]:
        """Deep copy of a collection, for inspection in tests and scripts."""
        return copy.deepcopy(self._bucket(collection))

    async def get(self, collection: str, doc_id: str) -> Document | None:
        data = self._bucket(collection).get(doc_id)
        if data is None:
            return None
        return Document(id=doc_id, data=copy.deepcopy(data))

    async def query(self, collection: str, filters: Sequence[FieldFilter] = ()) -> list[Document]:
        return [
            Document(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self._bucket(collection).items()
            if all(flt.matches(data) for flt in filters)
        ]

    async def create(self, collection: str, data: dict, doc_id: str | None = None) -> str:
        async with self._lock:
            return self._apply_create(collection, data, doc_id)

    async def update(self, collection: str, doc_id: str, changes: dict) -> None:
        async with self._lock:
            self._apply_update(collection, doc_id, changes)

    async def delete(self, collection: str, doc_id: str) -> None:
        async with self._lock:
            self._bucket(collection).pop(doc_id, None)

    async def atomic_batch(self, operations: Sequence[BatchOperation]) -> list[str]:
        async with self._lock:
            snapshot = copy.deepcopy(self._collections)
            touched: list[str] = []
            try:
                for op in operations:
                    touched.append(self._apply(op))
            except StoreError as exc:
                self._collections = snapshot
                raise BatchCommitError(f"Batch rejected: {exc}") from exc
            return touched

    def _apply(self, op: BatchOperation) -> str:
        match op.kind:
            case "create":
                return self._apply_create(op.collection, op.data, op.doc_id)
            case "set":
                if not op.doc_id:
                    raise StoreError("set requires a document id")
                self._bucket(op.collection)[op.doc_id] = copy.deepcopy(op.data)
                return op.doc_id
            case "update":
                self._apply_update(op.collection, op.doc_id or "", op.data)
                return op.doc_id or ""
            case "delete":
                self._bucket(op.collection).pop(op.doc_id or "", None)
                return op.doc_id or ""
        raise StoreError(f"Unknown batch operation '{op.kind}'")

    def _apply_create(self, collection: str, data: dict, doc_id: str | None) -> str:
        bucket = self._bucket(collection)
        doc_id = doc_id or new_document_id()
        if doc_id in bucket:
            raise StoreError(f"Document {collection}/{doc_id} already exists")
        bucket[doc_id] = copy.deepcopy(data)
        return doc_id

    def _apply_update(self, collection: str, doc_id: str, changes: dict) -> None:
        bucket = self._bucket(collection)
        if doc_id not in bucket:
            raise StoreError(f"Document {collection}/{doc_id} not found")
        bucket[doc_id].update(copy.deepcopy(changes))