"""
Tests for the Connector Registry and Credentials Resolution
"""
import sys
import types

import pytest

from syncline.core.errors import ConfigurationError
from syncline.ingestion.credentials import CredentialsCache, StaticCredentials, resolve_credentials
from syncline.ingestion.registry import ConnectorRegistry, Registry, load_connector_modules

from fake_connectors import CountingCredentials, RecordingDestination


class TestRegistry:

    def test_register_and_get(self):
        registry = Registry("destination")
        registry.register("recording", RecordingDestination)

        assert registry.get("recording") is RecordingDestination
        assert "recording" in registry
        assert registry.get("missing") is None

    def test_overwrite_replaces_factory(self):
        registry = Registry("destination")
        registry.register("x", RecordingDestination)
        registry.register("x", dict)

        assert registry.get("x") is dict
        assert registry.names() == ["x"]

    def test_describe(self, registry):
        assert registry.describe() == {
            "sources": ["fake"],
            "destinations": ["recording"],
            "credentials": [],
        }

    def test_load_connector_modules(self):
        module = types.ModuleType("syncline_test_connectors")
        module.register = lambda r: r.destinations.register("recording", RecordingDestination)
        sys.modules[module.__name__] = module
        try:
            registry = load_connector_modules(ConnectorRegistry(), [module.__name__])
        finally:
            del sys.modules[module.__name__]

        assert registry.destinations.names() == ["recording"]

    def test_load_missing_module_raises(self):
        with pytest.raises(ImportError):
            load_connector_modules(ConnectorRegistry(), ["syncline_no_such_module"])


class TestResolveCredentials:

    @pytest.mark.asyncio
    async def test_plain_values_pass_through(self, registry):
        provider = resolve_credentials({"token": "abc"}, registry)

        assert isinstance(provider, StaticCredentials)
        assert await provider.get() == {"token": "abc"}

    @pytest.mark.asyncio
    async def test_named_provider_is_built_from_options(self, registry):
        registry.credentials.register("vault", lambda options: CountingCredentials({"path": options["path"]}))

        provider = resolve_credentials({"provider": "vault", "path": "secret/gh"}, registry)

        assert await provider.get() == {"path": "secret/gh"}

    def test_unknown_provider(self, registry):
        with pytest.raises(ConfigurationError) as exc_info:
            resolve_credentials({"provider": "nope"}, registry)
        assert exc_info.value.code == "SYNC-1003"


class TestCredentialsCache:

    @pytest.mark.asyncio
    async def test_each_provider_called_once(self):
        provider = CountingCredentials({"token": "abc"})
        cache = CredentialsCache({"github": provider})

        assert await cache.get("github") == {"token": "abc"}
        assert await cache.get("github") == {"token": "abc"}
        assert provider.calls == 1

    @pytest.mark.asyncio
    async def test_unknown_name_has_no_credentials(self):
        assert await CredentialsCache({}).get("github") is None
