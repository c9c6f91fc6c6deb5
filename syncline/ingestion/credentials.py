"""
Credentials Resolution

A connector's stored credentials are either the credentials themselves, or
a pointer to a registered provider (``{"provider": "vault", ...}``) that
produces them. Provider implementations live outside this package; only the
accessor contract is defined here.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from syncline.core.errors import ConfigurationError
from syncline.ingestion.registry import ConnectorRegistry
from syncline.ingestion.types import CredentialsProvider

logger = logging.getLogger(__name__)

PROVIDER_KEY = "provider"


class StaticCredentials(CredentialsProvider):
    """Pass-through of the configured values."""

    def __init__(self, values: Any):
        self.values = values

    async def get(self) -> Any:
        return self.values


def resolve_credentials(
    options: Optional[Dict[str, Any]],
    registry: ConnectorRegistry,
) -> CredentialsProvider:
    """
    Build the credentials provider described by ``options``.

    Raises:
        ConfigurationError: If a named provider is not registered
    """
    if options and options.get(PROVIDER_KEY):
        name = options[PROVIDER_KEY]
        factory = registry.credentials.get(name)
        if factory is None:
            raise ConfigurationError("SYNC-1003", provider=name)
        logger.debug(f"Using credentials provider {name}")
        return factory(options)

    return StaticCredentials(options or {})


class CredentialsCache:
    """Resolves each connector's credentials at most once per job."""

    def __init__(self, providers: Dict[str, CredentialsProvider]):
        self._providers = providers
        self._values: Dict[str, Any] = {}

    async def get(self, name: str) -> Any:
        if name not in self._values:
            provider = self._providers.get(name)
            self._values[name] = await provider.get() if provider else None
        return self._values[name]
