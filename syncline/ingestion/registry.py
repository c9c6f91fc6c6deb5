"""
Connector Registry

Maps provider keys to the factories that build sources, destinations and
credential providers. A registry is populated once at process start-up
(``register(name, factory)``) and must not change while a job is running.
Pass an explicitly constructed registry to the code that needs it rather
than relying on module state.

Usage:
    from syncline.ingestion.registry import ConnectorRegistry

    registry = ConnectorRegistry()
    registry.sources.register("github", GitHubSource)
    registry.destinations.register("stdout", StdoutDestination)
"""
from __future__ import annotations

import importlib
import logging
from typing import Any, Callable, Dict, Generic, Iterable, List, Optional, TypeVar

from syncline.ingestion.types import CredentialsProvider, Destination, Source

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Registry(Generic[T]):
    """String key to factory map for one kind of connector."""

    def __init__(self, kind: str):
        self.kind = kind
        self._entries: Dict[str, Callable[..., T]] = {}

    def register(self, name: str, factory: Callable[..., T]) -> None:
        if name in self._entries:
            logger.warning(f"Overwriting existing {self.kind} registration: {name}")
        self._entries[name] = factory
        logger.debug(f"Registered {self.kind}: {name}")

    def get(self, name: str) -> Optional[Callable[..., T]]:
        return self._entries.get(name)

    def names(self) -> List[str]:
        return sorted(self._entries)

    def __contains__(self, name: str) -> bool:
        return name in self._entries


class ConnectorRegistry:
    """The three registries a job is built from."""

    def __init__(self):
        self.sources: Registry[Source] = Registry("source")
        self.destinations: Registry[Destination] = Registry("destination")
        self.credentials: Registry[CredentialsProvider] = Registry("credentials provider")

    def describe(self) -> Dict[str, Any]:
        return {
            "sources": self.sources.names(),
            "destinations": self.destinations.names(),
            "credentials": self.credentials.names(),
        }


def load_connector_modules(registry: ConnectorRegistry, modules: Iterable[str]) -> ConnectorRegistry:
    """
    Import each module and call its ``register(registry)`` hook.

    Raises:
        ImportError: If a module cannot be imported
        AttributeError: If a module has no register hook
    """
    for module_name in modules:
        module = importlib.import_module(module_name)
        hook = getattr(module, "register")
        hook(registry)
        logger.info(f"Loaded connector module {module_name}")
    return registry
