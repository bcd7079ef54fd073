"""Provider registry.

Built-in providers register with the ``provider_registry.register`` class
decorator. Third-party providers are discovered through the
``covplane.providers`` entry-point group; the entry-point name is what
``customProviderModule`` refers to:

    [project.entry-points."covplane.providers"]
    my-provider = "my_package.coverage:MyProviderModule"
"""

from __future__ import annotations

import importlib.metadata
from typing import TYPE_CHECKING

import structlog

from covplane.config.constants import CUSTOM_PROVIDER
from covplane.core.errors import ProviderInitError

if TYPE_CHECKING:
    from covplane.config.models import ResolvedCoverageOptions
    from covplane.providers.base import CoverageProviderModule

log = structlog.get_logger(__name__)

ENTRY_POINT_GROUP = "covplane.providers"


class ProviderRegistry:
    """Registry of provider module classes, keyed by name."""

    def __init__(self) -> None:
        self._modules: dict[str, type[CoverageProviderModule]] = {}
        self._discovered = False

    def register(
        self, module_class: type[CoverageProviderModule], *, name: str | None = None
    ) -> type[CoverageProviderModule]:
        """Register a provider module class. Usable as a class decorator."""
        self._modules[name or module_class.name] = module_class
        return module_class

    def unregister(self, name: str) -> None:
        self._modules.pop(name, None)

    def get(self, name: str) -> type[CoverageProviderModule] | None:
        """Look up by name, loading entry points on first miss."""
        if name not in self._modules and not self._discovered:
            self.discover()
        return self._modules.get(name)

    def names(self) -> list[str]:
        return sorted(self._modules)

    def discover(self) -> None:
        """Register provider modules published under the entry-point group."""
        from covplane.providers.base import CoverageProviderModule

        self._discovered = True
        for entry_point in importlib.metadata.entry_points(group=ENTRY_POINT_GROUP):
            try:
                module_class = entry_point.load()
            except Exception as e:
                log.warning("provider_entry_point_failed", name=entry_point.name, error=str(e))
                continue
            if not (
                isinstance(module_class, type) and issubclass(module_class, CoverageProviderModule)
            ):
                log.warning(
                    "provider_entry_point_invalid",
                    name=entry_point.name,
                    target=repr(module_class),
                )
                continue
            self.register(module_class, name=entry_point.name)
            log.debug("provider_discovered", name=entry_point.name)

    def create(self, options: ResolvedCoverageOptions) -> CoverageProviderModule:
        """Instantiate the module selected by resolved options.

        Raises:
            ProviderInitError: No module is registered under the name.
        """
        if options.provider == CUSTOM_PROVIDER:
            name = options.custom_provider_module or ""
        else:
            name = options.provider
        module_class = self.get(name)
        if module_class is None:
            raise ProviderInitError.not_found(name, self.names())
        return module_class()


provider_registry = ProviderRegistry()
