"""Tests for provider registration and entry-point discovery."""

import importlib.metadata
from typing import Any

import pytest

from covplane.config.resolver import resolve
from covplane.core.errors import ErrorCode, ProviderInitError
from covplane.providers import (
    CoverageProvider,
    CoverageProviderModule,
    IstanbulProviderModule,
    ProviderRegistry,
    V8ProviderModule,
    provider_registry,
)
from covplane.providers.registry import ENTRY_POINT_GROUP


class AcmeModule(CoverageProviderModule):
    name = "acme"

    def get_provider(self) -> CoverageProvider:
        raise NotImplementedError


class FakeEntryPoint:
    def __init__(self, name: str, target: Any = None, error: Exception | None = None) -> None:
        self.name = name
        self._target = target
        self._error = error

    def load(self) -> Any:
        if self._error is not None:
            raise self._error
        return self._target


@pytest.fixture
def entry_points(monkeypatch: pytest.MonkeyPatch) -> list[FakeEntryPoint]:
    published: list[FakeEntryPoint] = []

    def fake_entry_points(*, group: str) -> list[FakeEntryPoint]:
        assert group == ENTRY_POINT_GROUP
        return published

    monkeypatch.setattr(importlib.metadata, "entry_points", fake_entry_points)
    return published


class TestBuiltins:
    def test_builtin_modules_registered(self) -> None:
        assert provider_registry.get("v8") is V8ProviderModule
        assert provider_registry.get("istanbul") is IstanbulProviderModule

    def test_create_from_options(self) -> None:
        module = provider_registry.create(resolve({"provider": "istanbul"}))
        assert isinstance(module, IstanbulProviderModule)
        assert module.get_provider().name == "istanbul"


class TestRegistry:
    def test_register_as_decorator(self, entry_points: list[FakeEntryPoint]) -> None:
        registry = ProviderRegistry()
        decorated = registry.register(AcmeModule)
        assert decorated is AcmeModule
        assert registry.get("acme") is AcmeModule
        assert registry.names() == ["acme"]

    def test_register_under_other_name(self, entry_points: list[FakeEntryPoint]) -> None:
        registry = ProviderRegistry()
        registry.register(AcmeModule, name="acme-2")
        assert registry.get("acme-2") is AcmeModule
        assert registry.get("acme") is None

    def test_unregister(self, entry_points: list[FakeEntryPoint]) -> None:
        registry = ProviderRegistry()
        registry.register(AcmeModule)
        registry.unregister("acme")
        registry.unregister("acme")
        assert registry.get("acme") is None

    def test_create_custom_uses_module_name(self, entry_points: list[FakeEntryPoint]) -> None:
        registry = ProviderRegistry()
        registry.register(AcmeModule)
        options = resolve({"provider": "custom", "customProviderModule": "acme"})
        assert isinstance(registry.create(options), AcmeModule)

    def test_create_unknown_custom(self, entry_points: list[FakeEntryPoint]) -> None:
        registry = ProviderRegistry()
        registry.register(V8ProviderModule)
        options = resolve({"provider": "custom", "customProviderModule": "missing"})
        with pytest.raises(ProviderInitError) as exc_info:
            registry.create(options)
        assert exc_info.value.code == ErrorCode.PROVIDER_NOT_FOUND


class TestDiscovery:
    def test_missing_name_loads_entry_points(self, entry_points: list[FakeEntryPoint]) -> None:
        entry_points.append(FakeEntryPoint("acme", AcmeModule))
        registry = ProviderRegistry()
        assert registry.get("acme") is AcmeModule

    def test_entry_point_name_wins(self, entry_points: list[FakeEntryPoint]) -> None:
        entry_points.append(FakeEntryPoint("acme-coverage", AcmeModule))
        registry = ProviderRegistry()
        registry.discover()
        assert registry.names() == ["acme-coverage"]

    def test_bad_entry_points_skipped(self, entry_points: list[FakeEntryPoint]) -> None:
        entry_points.extend(
            [
                FakeEntryPoint("broken", error=ImportError("no module named acme")),
                FakeEntryPoint("not-a-module", target=object),
                FakeEntryPoint("function", target=lambda: None),
                FakeEntryPoint("acme", AcmeModule),
            ]
        )
        registry = ProviderRegistry()
        registry.discover()
        assert registry.names() == ["acme"]

    def test_discovery_runs_once(self, entry_points: list[FakeEntryPoint]) -> None:
        registry = ProviderRegistry()
        assert registry.get("acme") is None
        entry_points.append(FakeEntryPoint("acme", AcmeModule))
        assert registry.get("acme") is None
