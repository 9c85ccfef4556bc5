"""
Database client and document store factory.

Provides the service-role Supabase client used by the production
document store, and picks a DocumentStore implementation from settings.
"""

from typing import Optional
from supabase import create_client, Client

from .config import Settings, get_settings
from .store import DocumentStore, InMemoryDocumentStore
from .supabase_store import SupabaseDocumentStore

# Module-level client cache
_service_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """
    Get Supabase client with service role (bypasses RLS).

    Billing writes always run on behalf of an already-authorized tenant,
    so the backend uses full database access and filters by tenant itself.

    Returns:
        Supabase client configured with service role key
    """
    global _service_client

    if _service_client is None:
        settings = get_settings()
        if not settings.supabase_url or not settings.supabase_service_role_key:
            raise RuntimeError(
                "Supabase configuration missing. "
                "Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY environment variables."
            )
        _service_client = create_client(
            settings.supabase_url,
            settings.supabase_service_role_key,
        )

    return _service_client


def create_document_store(settings: Optional[Settings] = None) -> DocumentStore:
    """
    Build the document store selected by settings.store_backend.

    Args:
        settings: Settings to read; defaults to the cached settings

    Returns:
        A DocumentStore ready to hand to the billing services
    """
    settings = settings or get_settings()
    if settings.store_backend == "supabase":
        return SupabaseDocumentStore(get_supabase_client())
    return InMemoryDocumentStore()


def reset_client_cache() -> None:
    """
    Reset the cached database client.

    Useful for testing or when configuration changes.
    """
    global _service_client
    _service_client = None
