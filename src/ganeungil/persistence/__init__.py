"""Document store implementations and helpers."""

import logging

from ..db.supabase import get_supabase_client
from .retry import with_retry
from .store import BatchOperation, Document, DocumentStore, FieldFilter, InMemoryDocumentStore, where


def build_document_store() -> DocumentStore:
    """Supabase-backed store when configured, otherwise a process-local store."""
    client = get_supabase_client()
    if client is None:
        logging.info("Supabase not configured - documents are kept in memory only")
        return InMemoryDocumentStore()

    from .supabase_store import SupabaseDocumentStore

    return SupabaseDocumentStore(client)


__all__ = [
    "BatchOperation",
    "Document",
    "DocumentStore",
    "FieldFilter",
    "InMemoryDocumentStore",
    "build_document_store",
    "where",
    "with_retry",
]
