"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages.
"""

import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest

# Insert local src directory at the beginning of sys.path
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of covplane modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("covplane"):
        del sys.modules[module_name]


@pytest.fixture
def make_options() -> Callable[..., Any]:
    """Resolve raw camelCase coverage options with a fixed CPU count."""
    from covplane.config.resolver import resolve

    def make(**raw: Any) -> Any:
        return resolve(raw, cpu_count=2)

    return make


@pytest.fixture
def write_source(tmp_path: Path) -> Callable[[str, str], Path]:
    def write(rel: str, text: str) -> Path:
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)
        return path

    return write


@pytest.fixture
def init_provider(
    tmp_path: Path, make_options: Callable[..., Any]
) -> Callable[..., Awaitable[Any]]:
    """Initialize a provider rooted at tmp_path with the given raw options."""
    from covplane.providers import ProviderContext

    async def init(provider: Any, /, **raw: Any) -> Any:
        await provider.initialize(ProviderContext(options=make_options(**raw), root=tmp_path))
        return provider

    return init
