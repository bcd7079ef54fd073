"""Summary formatting for one-line terminal output.

- Every summary fits on one line (~80 chars max)
- Paths compressed for deep nesting
"""

from __future__ import annotations


def compress_path(path: str, max_len: int = 30) -> str:
    """Compress path to fit within max_len.

    Examples:
        src/app/services/billing/invoice.ts -> src/.../invoice.ts
        short/path.ts -> short/path.ts (unchanged)
    """
    if len(path) <= max_len:
        return path

    parts = path.split("/")
    if len(parts) <= 2:
        return path

    compressed = f"{parts[0]}/.../{parts[-1]}"
    if len(compressed) <= max_len:
        return compressed

    return parts[-1]


def format_path_list(
    paths: list[str],
    *,
    max_total: int = 60,
    max_shown: int = 3,
    compress: bool = True,
) -> str:
    """Format a list of paths, compressing as needed.

    Examples:
        ["a.ts"] -> "a.ts"
        ["a.ts", "b.ts"] -> "a.ts, b.ts"
        ["a.ts", "b.ts", "c.ts", "d.ts"] -> "a.ts, b.ts, +2 more"
    """
    if not paths:
        return ""

    display_paths = [compress_path(p, 25) if compress else p for p in paths]

    if len(display_paths) == 1:
        return display_paths[0]

    result = ", ".join(display_paths[:max_shown])

    if len(display_paths) > max_shown:
        result = ", ".join(display_paths[:2]) + f", +{len(display_paths) - 2} more"

    if len(result) > max_total:
        result = f"{display_paths[0]}, +{len(display_paths) - 1} more"

    if len(result) > max_total:
        return f"{len(paths)} files"

    return result

