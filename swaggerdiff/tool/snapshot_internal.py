"""Stage 2 of ``swaggerdiff snapshot``.

Runs inside the target project's interpreter and working directory: loads
the application, extracts its OpenAPI document and writes a timestamped
snapshot when the API surface changed since the latest one.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from ..domain.snapshot_store import SnapshotStore, normalize_document
from .host_resolver import generate_document, load_app

log = logging.getLogger(__name__)


def serialize_document(doc: Dict[str, Any]) -> str:
    return json.dumps(doc, indent=2, ensure_ascii=False) + "\n"


def persist_if_changed(store: SnapshotStore, doc: Dict[str, Any]) -> Optional[Path]:
    """Write ``doc`` unless it matches the latest snapshot; returns the new file."""
    normalized = normalize_document(doc)
    latest = store.latest()
    if latest is not None:
        try:
            existing = normalize_document(latest.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            log.warning("could not read latest snapshot %s: %s", latest.name, exc)
            existing = None
        if existing == normalized:
            return None
    return store.write_snapshot(serialize_document(doc))


def run_snapshot_internal(
    app: str,
    output: str,
    *,
    doc_name: Optional[str] = None,
    timeout: float = 30.0,
    run_lifespan: bool = True,
) -> int:
    try:
        application = load_app(app, timeout=timeout)
        doc = asyncio.run(
            generate_document(application, doc_name=doc_name, timeout=timeout, run_lifespan=run_lifespan)
        )
        written = persist_if_changed(SnapshotStore(Path(output)), doc)
    except Exception as exc:
        print(f"Error: {exc}", file=sys.stderr)
        if exc.__cause__ is not None:
            print(f"Inner: {exc.__cause__}", file=sys.stderr)
        log.debug("snapshot generation failed", exc_info=True)
        return 1

    if written is None:
        print("No API changes detected.")
    else:
        print(f"Snapshot saved: {written.name}")
    return 0
