"""
Dependency providers. Built once per process from settings; tests override them
through app.dependency_overrides.
"""
from functools import lru_cache

from genproxy.core.config import settings
from genproxy.services.billing.service import BillingService
from genproxy.services.collaborators.base import CreditLedger, IdentityProvider
from genproxy.services.collaborators.supabase import (
    SupabaseBlobStore,
    SupabaseClient,
    SupabaseIdentity,
    SupabaseLedger,
)
from genproxy.services.generation import EngineFactory, ModelRegistry


@lru_cache
def get_supabase_client() -> SupabaseClient:
    return SupabaseClient(
        settings.supabase_url,
        settings.supabase_service_key,
        timeout=settings.collaborator_timeout,
    )


def get_identity() -> IdentityProvider:
    return SupabaseIdentity(get_supabase_client())


def get_ledger() -> CreditLedger:
    return SupabaseLedger(get_supabase_client())


@lru_cache
def get_registry() -> ModelRegistry:
    return ModelRegistry.from_settings(settings)


@lru_cache
def get_billing_service() -> BillingService:
    client = get_supabase_client()
    engines = EngineFactory.create_from_settings(
        settings,
        blob_store=SupabaseBlobStore(client, settings.storage_bucket),
    )
    return BillingService(
        identity=SupabaseIdentity(client),
        ledger=SupabaseLedger(client),
        registry=get_registry(),
        engines=engines,
    )
