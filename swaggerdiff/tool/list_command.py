from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

from ..domain.snapshot_store import SnapshotStore


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024.0:.1f} KB"
    return f"{size / (1024.0 * 1024.0):.1f} MB"


def render_table(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    widths = [len(h) for h in headers]
    for row in rows:
        widths = [max(w, len(cell)) for w, cell in zip(widths, row)]

    def line(cells: Sequence[str]) -> str:
        return "│ " + " │ ".join(c.ljust(w) for c, w in zip(cells, widths)) + " │"

    rule = "─┼─".join("─" * w for w in widths)
    out: List[str] = [line(headers), "├─" + rule + "─┤"]
    out.extend(line(r) for r in rows)
    return "\n".join(out)


def run_list(directory: str, pattern: str = "doc_*.json") -> int:
    path = Path(directory).resolve()
    if not path.is_dir():
        print(f"Directory not found: {path}")
        return 0

    snapshots = SnapshotStore(path, pattern).list_snapshots()
    if not snapshots:
        print("No snapshots found.")
        return 0

    rows = [
        (s.name, format_size(s.size), s.created_at.strftime("%Y-%m-%d %H:%M:%S"))
        for s in snapshots
    ]
    print(render_table(("Snapshot", "Size", "Created (UTC)"), rows))
    print(f"\n{len(snapshots)} snapshot(s) found.")
    return 0
