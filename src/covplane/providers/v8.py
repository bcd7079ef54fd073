"""V8 block coverage provider.

Payloads use the ``Profiler.takePreciseCoverage`` shape:

    {"result": [
        {"url": "file:///abs/src/a.ts",
         "source": "...",            # optional, read from disk when absent
         "functions": [
            {"functionName": "add", "isBlockCoverage": true,
             "ranges": [{"startOffset": 0, "endOffset": 42, "count": 3}, ...]}
         ]}
    ]}

Offsets are converted to lines by taking, for each line, the count of the
innermost range that covers its first non-whitespace character. The first
range of each function is the function itself; the remaining block ranges
become branches.
"""

from __future__ import annotations

import bisect
from collections.abc import Iterable
from typing import Any

from covplane.coverage.models import BranchCoverage, FileCoverage, FunctionCoverage
from covplane.providers.builtin import (
    BaseCoverageProvider,
    StoreBackedModule,
    is_blank_or_comment,
    split_source_lines,
)
from covplane.providers.registry import provider_registry


_Range = tuple[int, int, int]  # (start, end, count)


def _scripts(payload: Any) -> Any:
    return payload.get("result") if isinstance(payload, dict) else payload


def _innermost_count(ranges: list[_Range], offset: int) -> int:
    best: _Range | None = None
    for rng in ranges:
        start, end, _ = rng
        if start <= offset < end and (best is None or end - start <= best[1] - best[0]):
            best = rng
    return best[2] if best is not None else 0


class V8CoverageProvider(BaseCoverageProvider):
    name = "v8"

    @property
    def ignore_empty_lines(self) -> bool:
        return bool(getattr(self.context.options.source, "ignore_empty_lines", False))

    def is_countable_line(self, text: str) -> bool:
        if self.ignore_empty_lines:
            return not is_blank_or_comment(text)
        return True

    def validate_payload(self, payload: Any) -> None:
        scripts = _scripts(payload)
        if not isinstance(scripts, list):
            raise ValueError("expected a list of script coverage entries")
        for script in scripts:
            if not isinstance(script, dict) or not isinstance(script.get("url"), str):
                raise ValueError("script coverage entry without url")
            functions = script.get("functions")
            if not isinstance(functions, list):
                raise ValueError(f"script {script['url']} has no functions list")
            for fn in functions:
                if not isinstance(fn, dict) or not isinstance(fn.get("ranges"), list):
                    raise ValueError(f"function in {script['url']} has no ranges")

    def iter_entries(self, payload: Any) -> Iterable[tuple[str, Any]]:
        for script in _scripts(payload):
            yield script["url"], script

    def to_file_coverage(self, path: str, data: Any) -> FileCoverage:
        source = data.get("source")
        if source is None:
            url = data["url"]
            source = self.read_source(url[len("file://") :] if url.startswith("file://") else path)

        line_starts = [0]
        line_starts.extend(i + 1 for i, ch in enumerate(source) if ch == "\n")

        def line_of(offset: int) -> int:
            return bisect.bisect_right(line_starts, offset)

        functions = data["functions"]
        ranges: list[_Range] = [
            (r["startOffset"], r["endOffset"], r["count"])
            for fn in functions
            for r in fn["ranges"]
        ]

        fc = FileCoverage(path=path)
        for index, text in enumerate(split_source_lines(source)):
            if not self.is_countable_line(text):
                continue
            column = len(text) - len(text.lstrip())
            count = _innermost_count(ranges, line_starts[index] + column)
            fc.lines[index + 1] = count
            fc.statements[(index + 1, column)] = count

        for fn in functions:
            fn_ranges = fn["ranges"]
            if not fn_ranges:
                continue
            head = fn_ranges[0]
            name = fn.get("functionName") or ""
            is_module = not name and head["startOffset"] == 0 and head["endOffset"] >= len(source)
            if not is_module:
                start_line = line_of(head["startOffset"])
                key = f"{name or '(anonymous)'}:{start_line}"
                fc.functions[key] = FunctionCoverage(
                    name=key, start_line=start_line, hits=head["count"]
                )
            if fn.get("isBlockCoverage"):
                fc.branches.extend(
                    BranchCoverage(
                        line=line_of(block["startOffset"]),
                        block_id=head["startOffset"],
                        branch_id=block["startOffset"],
                        hits=block["count"],
                    )
                    for block in fn_ranges[1:]
                )

        fc.branches.sort(key=lambda b: (b.line, b.block_id, b.branch_id))
        return fc


@provider_registry.register
class V8ProviderModule(StoreBackedModule):
    """Worker hooks buffer script coverage keyed by url."""

    name = "v8"

    def get_provider(self) -> V8CoverageProvider:
        return V8CoverageProvider()

    def format_payload(self, entries: dict[str, Any]) -> Any:
        return {"result": [entries[url] for url in sorted(entries)]}
