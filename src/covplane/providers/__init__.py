"""Coverage providers.

Importing this package registers the built-in providers.
"""

from covplane.providers import istanbul, v8  # noqa: F401
from covplane.providers.base import (
    AfterSuiteRunMeta,
    CoverageProvider,
    CoverageProviderModule,
    ProviderContext,
    ProviderState,
    ReportContext,
)
from covplane.providers.builtin import (
    BaseCoverageProvider,
    RuntimeCoverageStore,
    StoreBackedModule,
)
from covplane.providers.istanbul import IstanbulCoverageProvider, IstanbulProviderModule
from covplane.providers.registry import ENTRY_POINT_GROUP, ProviderRegistry, provider_registry
from covplane.providers.v8 import V8CoverageProvider, V8ProviderModule
from covplane.providers.worker import WorkerCoverageSession, WorkerState

__all__ = [
    "AfterSuiteRunMeta",
    "BaseCoverageProvider",
    "CoverageProvider",
    "CoverageProviderModule",
    "ENTRY_POINT_GROUP",
    "IstanbulCoverageProvider",
    "IstanbulProviderModule",
    "ProviderContext",
    "ProviderRegistry",
    "ProviderState",
    "ReportContext",
    "RuntimeCoverageStore",
    "StoreBackedModule",
    "V8CoverageProvider",
    "V8ProviderModule",
    "WorkerCoverageSession",
    "WorkerState",
    "provider_registry",
]
