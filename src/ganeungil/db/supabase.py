"""Supabase client backing the document store."""

import logging
from functools import lru_cache
from pathlib import Path

from supabase import Client, create_client

from ..config import settings

logger = logging.getLogger(__name__)

# documents table and the apply_document_batch function used for every write
SCHEMA_PATH = Path(__file__).with_name("schema.sql")


@lru_cache()
def get_supabase_client() -> Client | None:
    """Process-wide Supabase client, or None when GNG_SUPABASE_URL/KEY are unset.

    Creating the client does not contact the server; connection problems
    surface on the first query as store errors.
    """
    if not settings.supabase_url or not settings.supabase_key:
        logger.warning("Supabase credentials not configured; documents will be kept in memory")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_key)
    except Exception as exc:
        logger.error(f"Failed to create Supabase client for {settings.supabase_url}: {exc}")
        return None

