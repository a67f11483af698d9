"""
Factory for creating generation engines based on configuration.
"""
import logging

from genproxy.services.collaborators.base import BlobStore
from genproxy.services.generation.base import BackendKind, GenerationEngine
from genproxy.services.generation.engines.async_tasks import STRATEGIES, AsyncTaskEngine
from genproxy.services.generation.engines.sync_images import SyncImageEngine
from genproxy.services.generation.transport import TransportExecutor

logger = logging.getLogger(__name__)


class EngineFactory:
    """Builds one engine per backend kind from application settings."""

    @classmethod
    def create_transport(cls, settings) -> TransportExecutor:
        """Upstream transport; TLS verification follows upstream_verify_tls."""
        if not settings.upstream_verify_tls:
            logger.info("upstream_tls_verification_disabled", extra={"path": settings.upstream_base_url})
        return TransportExecutor(
            timeout=settings.upstream_timeout,
            verify_tls=settings.upstream_verify_tls,
        )

    @classmethod
    def create_from_settings(
        cls,
        settings,
        blob_store: BlobStore | None = None,
        transport: TransportExecutor | None = None,
    ) -> dict[BackendKind, GenerationEngine]:
        """
        Args:
            settings: Application settings object
            blob_store: Store for inline results of the sync engine
            transport: Override the upstream transport (tests)

        Returns:
            Mapping backend kind -> engine
        """
        transport = transport or cls.create_transport(settings)

        sync_config = {
            "api_key": settings.api_key,
            "base_url": settings.upstream_base_url,
            "storage_prefix": settings.storage_prefix,
        }
        async_config = {
            "api_key": settings.api_key,
            "base_url": settings.upstream_base_url,
            "poll_interval": settings.async_poll_interval,
            "max_attempts": settings.async_poll_max_attempts,
            "default_size": settings.async_default_size,
            "image_field": settings.async_image_field,
        }
        strategies = [STRATEGIES[name]() for name in settings.submit_strategy_names]

        engines: dict[BackendKind, GenerationEngine] = {
            BackendKind.SYNC: SyncImageEngine(sync_config, transport, blob_store=blob_store),
            BackendKind.ASYNC: AsyncTaskEngine(async_config, transport, strategies=strategies),
        }
        for kind, engine in engines.items():
            if not engine.is_available():
                logger.warning(f"Engine {kind.value} created but not fully configured")
        return engines
