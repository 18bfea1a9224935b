"""Factory for creating the datastore repository based on configuration."""

import logging

from services.records.repository import InMemoryRepository, InvoiceRepository
from services.shared.config import Settings

logger = logging.getLogger(__name__)


def create_repository(settings: Settings) -> InvoiceRepository:
    """Create the repository selected by ``settings.datastore_backend``.

    Args:
        settings: Application settings with datastore_backend field

    Returns:
        Configured repository instance

    Raises:
        ValueError: If configured backend is unknown
    """
    backend = settings.datastore_backend

    if backend == "supabase":
        from services.records.supabase_repository import SupabaseRepository

        logger.info("Created repository: supabase")
        return SupabaseRepository(settings)

    elif backend == "memory":
        if settings.environment == "production":
            logger.warning("In-memory repository selected in production; data is not persisted")
        logger.info("Created repository: memory")
        return InMemoryRepository()

    else:
        available = ["supabase", "memory"]
        raise ValueError(
            f"Unknown datastore backend: '{backend}'. Available: {', '.join(available)}"
        )
