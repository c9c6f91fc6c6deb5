import inspect
import types

import pytest

from syncline.ingestion.registry import ConnectorRegistry
from syncline.stores import make_memory_stores

from fake_connectors import FakeSource, PagedStream, RecordingDestination

# Core modules / symbols we forbid patching; use transports and injected fakes instead
_FORBIDDEN_PREFIXES = [
    "httpx.",
    "sqlalchemy.",
    "temporalio.",
]


@pytest.hookimpl(tryfirst=True, hookwrapper=True)
def pytest_runtest_call(item):
    # Capture monkeypatch fixture (if used) and inspect its setattr usage
    mp = item.funcargs.get("monkeypatch") if hasattr(item, "funcargs") else None
    if mp:
        original_setattr = mp.setattr

        def guarded_setattr(target, name, value, *a, **kw):
            fq = None
            if isinstance(target, types.ModuleType):
                fq = f"{target.__name__}.{name}"
            elif inspect.isclass(target):
                fq = f"{target.__module__}.{target.__name__}.{name}"
            if fq and any(fq.startswith(p) for p in _FORBIDDEN_PREFIXES):
                raise RuntimeError(f"Forbidden monkeypatch of core real dependency: {fq}")
            return original_setattr(target, name, value, *a, **kw)

        mp.setattr = guarded_setattr  # type: ignore
    yield


@pytest.fixture
def stores():
    """Fresh in-memory stores for each test."""
    return make_memory_stores()


@pytest.fixture
def registry():
    """Registry with the fake source (one ``items`` stream) and recording destination."""
    registry = ConnectorRegistry()
    registry.sources.register("fake", lambda options: FakeSource([PagedStream(options.get("stream", "items"))]))
    registry.destinations.register("recording", RecordingDestination)
    return registry
