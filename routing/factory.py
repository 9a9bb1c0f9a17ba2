"""Build a RouterService from Hermes configuration."""
import logging

from config.config import HermesConfig
from routing.service import RouterService
from storage.factory import create_kv_store, create_storage_backend, create_table_backend

logger = logging.getLogger(__name__)


def create_router_from_config(config: HermesConfig) -> RouterService:
    """
    Create a RouterService backed by the configured storage.

    Tables and the state document share one storage backend.

    Args:
        config: HermesConfig instance

    Returns:
        Configured RouterService
    """
    storage = create_storage_backend(config.storage)
    logger.debug(f"Using {storage.backend_type} storage at {storage.get_full_path('')}")

    return RouterService(
        table_backend=create_table_backend(config, storage),
        kv_store=create_kv_store(config, storage),
        settings=config.routing,
    )
