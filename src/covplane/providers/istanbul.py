"""Istanbul coverage provider.

Payloads are istanbul coverage maps, the shape of ``coverage-final.json``:

{
  "/abs/src/a.js": {
    "path": "/abs/src/a.js",
    "statementMap": {"0": {"start": {"line": 1, "column": 0}, "end": {...}}, ...},
    "s": {"0": 1, ...},
    "branchMap": {"0": {"line": 5, "locations": [...]}, ...},
    "b": {"0": [1, 0], ...},
    "fnMap": {"0": {"name": "foo", "decl": {"start": {"line": 1}}}, ...},
    "f": {"0": 1, ...}
  }
}

The map key is the instrumented file; ``path`` is where the data belongs
after source-map remapping, and is what ``excludeAfterRemap`` filters on.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from covplane.coverage.models import BranchCoverage, FileCoverage, FunctionCoverage
from covplane.providers.builtin import BaseCoverageProvider, StoreBackedModule
from covplane.providers.registry import provider_registry


class IstanbulCoverageProvider(BaseCoverageProvider):
    name = "istanbul"

    @property
    def ignored_methods(self) -> frozenset[str]:
        names = getattr(self.context.options.source, "ignore_class_methods", None) or ()
        return frozenset(names)

    def validate_payload(self, payload: Any) -> None:
        if not isinstance(payload, dict):
            raise ValueError("expected a mapping of file path to coverage")
        for file_path, data in payload.items():
            if not isinstance(data, dict):
                raise ValueError(f"coverage for {file_path} is not an object")
            for key in ("statementMap", "s"):
                if not isinstance(data.get(key), dict):
                    raise ValueError(f"coverage for {file_path} has no {key}")

    def iter_entries(self, payload: Any) -> Iterable[tuple[str, Any]]:
        return payload.items()

    def to_file_coverage(self, path: str, data: Any) -> FileCoverage | None:
        remapped = path
        if isinstance(data.get("path"), str):
            remapped = self.exclusion_filter.relativize(data["path"])
            if remapped is None:
                return None

        fc = FileCoverage(path=remapped)

        statement_hits = data["s"]
        for stmt_id, stmt_info in data["statementMap"].items():
            start = stmt_info.get("start", {})
            start_line = start.get("line", 0)
            end_line = stmt_info.get("end", {}).get("line", start_line)
            hits = statement_hits.get(stmt_id, 0)
            loc = (start_line, start.get("column", 0))
            fc.statements[loc] = max(fc.statements.get(loc, 0), hits)
            for line_num in range(start_line, end_line + 1):
                fc.lines[line_num] = max(fc.lines.get(line_num, 0), hits)

        branch_hits = data.get("b", {})
        for branch_id, branch_info in data.get("branchMap", {}).items():
            line = branch_info.get("line", 0)
            if not line:
                locations = branch_info.get("locations", [])
                if locations:
                    line = locations[0].get("start", {}).get("line", 0)
            for idx, hits in enumerate(branch_hits.get(branch_id, [])):
                fc.branches.append(
                    BranchCoverage(line=line, block_id=int(branch_id), branch_id=idx, hits=hits)
                )

        ignored = self.ignored_methods
        fn_hits = data.get("f", {})
        for fn_id, fn_info in data.get("fnMap", {}).items():
            name = fn_info.get("name") or f"(anonymous_{fn_id})"
            if name in ignored:
                continue
            start_line = fn_info.get("decl", {}).get("start", {}).get("line", 0)
            key = name if name not in fc.functions else f"{name}:{start_line}"
            fc.functions[key] = FunctionCoverage(
                name=key, start_line=start_line, hits=fn_hits.get(fn_id, 0)
            )

        fc.lines = dict(sorted(fc.lines.items()))
        return fc


@provider_registry.register
class IstanbulProviderModule(StoreBackedModule):
    """Worker hooks buffer the per-file counter objects written by instrumented code."""

    name = "istanbul"

    def get_provider(self) -> IstanbulCoverageProvider:
        return IstanbulCoverageProvider()
