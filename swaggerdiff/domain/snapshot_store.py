from __future__ import annotations

import copy
import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, List, Optional

SNAPSHOT_PREFIX = "doc_"
TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
# info.version changes on every build in many projects; it never counts as an API change
_NORMALIZED_VERSION = "1.0"


def canonical(obj: Any) -> str:
    """Stable dump for reproducible comparisons"""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def normalize_document(doc: Any) -> str:
    if isinstance(doc, (str, bytes)):
        doc = json.loads(doc)
    if isinstance(doc, dict) and isinstance(doc.get("info"), dict):
        doc = copy.deepcopy(doc)
        doc["info"]["version"] = _NORMALIZED_VERSION
    return canonical(doc)


@dataclass(frozen=True)
class SnapshotInfo:
    name: str
    path: Path
    size: int
    created_at: datetime


class SnapshotStore:
    """Timestamp-named OpenAPI snapshots in a single directory."""

    def __init__(self, directory: Path | str, pattern: str = "doc_*.json") -> None:
        self.directory = Path(directory)
        self.pattern = pattern

    def _files(self) -> List[Path]:
        if not self.directory.is_dir():
            return []
        files = [p for p in self.directory.glob(self.pattern) if p.is_file()]
        return sorted(files, key=lambda p: p.name, reverse=True)

    def list_versions(self) -> List[str]:
        return [p.stem for p in self._files()]

    def list_snapshots(self) -> List[SnapshotInfo]:
        out: List[SnapshotInfo] = []
        for p in self._files():
            st = p.stat()
            out.append(
                SnapshotInfo(
                    name=p.stem,
                    path=p,
                    size=st.st_size,
                    created_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
                )
            )
        return out

    def get_file_path(self, name: str) -> Optional[Path]:
        if not name or "/" in name or "\\" in name or ".." in name:
            return None
        path = self.directory / f"{name}.json"
        return path if path.is_file() else None

    def latest(self) -> Optional[Path]:
        files = self._files()
        return files[0] if files else None

    def next_snapshot_name(self, now: datetime | None = None) -> str:
        now = now or datetime.now(timezone.utc)
        stamp = now.astimezone(timezone.utc)
        latest = self.latest()
        if latest is not None:
            prev = _parse_stamp(latest.stem)
            if prev is not None and stamp.replace(microsecond=0) <= prev:
                stamp = prev + timedelta(seconds=1)
        return f"{SNAPSHOT_PREFIX}{stamp.strftime(TIMESTAMP_FORMAT)}"

    def write_snapshot(self, content: str, now: datetime | None = None) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / f"{self.next_snapshot_name(now)}.json"
        path.write_text(content, encoding="utf-8")
        return path


def _parse_stamp(stem: str) -> Optional[datetime]:
    if not stem.startswith(SNAPSHOT_PREFIX):
        return None
    try:
        return datetime.strptime(stem[len(SNAPSHOT_PREFIX):], TIMESTAMP_FORMAT).replace(
            tzinfo=timezone.utc
        )
    except ValueError:
        return None
