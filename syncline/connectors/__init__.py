"""
Built-in connectors.

Listed in ``SYNCLINE_CONNECTOR_MODULES`` by default; other connector modules
follow the same shape and expose ``register(registry)``.
"""
from syncline.ingestion.registry import ConnectorRegistry

from .github import GitHubSource
from .sql import SqlDestination
from .stdout import StdoutDestination


def register(registry: ConnectorRegistry) -> None:
    registry.sources.register("github", GitHubSource)
    registry.destinations.register("stdout", StdoutDestination)
    registry.destinations.register("sql", SqlDestination)
