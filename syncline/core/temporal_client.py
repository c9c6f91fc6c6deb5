"""
Temporal Client Module

Provides a cached client for connecting to the Temporal cluster.
"""
import logging
from typing import Optional

from temporalio.client import Client
from temporalio.service import RPCError

from syncline.core.config import get_settings
from syncline.core.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

_client: Optional[Client] = None


async def get_temporal_client() -> Client:
    """
    Get or create a Temporal client instance.

    Raises:
        StoreUnavailableError: If the orchestration backend cannot be reached.
    """
    global _client

    if _client is not None:
        return _client

    settings = get_settings()
    target_host = settings.temporal_host
    namespace = settings.temporal_namespace

    logger.info(f"Connecting to Temporal at {target_host} (namespace: {namespace})...")

    try:
        _client = await Client.connect(
            target_host,
            namespace=namespace,
        )
    except (RPCError, RuntimeError) as e:
        logger.error(f"Failed to connect to Temporal: {e}")
        raise StoreUnavailableError(f"Temporal unreachable at {target_host}: {e}") from e

    logger.info("Successfully connected to Temporal.")
    return _client
