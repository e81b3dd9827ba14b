"""Persisted snapshot of the active records from the last successful check.

The snapshot is a cache, not a log: a missing file simply means "no prior
snapshot", while an unreadable one is reported as :class:`SnapshotError`
so that a corrupt cache never causes every record to be re-sent as new.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from purchase_watcher.errors import SnapshotError
from purchase_watcher.model import PurchaseRecord


def _serialise_record(record: PurchaseRecord) -> Dict[str, Any]:
    return record.to_dict()


def records_to_json(records: Iterable[PurchaseRecord]) -> str:
    """Encode records as a JSON array."""
    try:
        return json.dumps(
            [_serialise_record(r) for r in records], ensure_ascii=False, allow_nan=False
        )
    except (TypeError, ValueError) as exc:
        raise SnapshotError(f"cannot serialize records: {exc}") from exc


def records_from_json(raw: str) -> List[PurchaseRecord]:
    """Decode a JSON array produced by :func:`records_to_json`."""
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SnapshotError(f"snapshot is not valid JSON: {exc}") from exc

    if not isinstance(payload, list):
        raise SnapshotError("snapshot must be a JSON array of records")

    records: List[PurchaseRecord] = []
    for idx, item in enumerate(payload):
        if not isinstance(item, dict):
            raise SnapshotError(f"snapshot entry {idx} is not an object")
        try:
            records.append(PurchaseRecord.from_dict(item))
        except (KeyError, TypeError) as exc:
            raise SnapshotError(f"snapshot entry {idx} is malformed: {exc}") from exc
    return records


def load_snapshot(path: Path) -> Optional[List[PurchaseRecord]]:
    """Return the persisted records, or ``None`` when no snapshot exists."""
    path = Path(path)
    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as f:
        return records_from_json(f.read())


def save_snapshot(path: Path, records: Iterable[PurchaseRecord]) -> Path:
    path = Path(path)
    payload = records_to_json(records)

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        f.write(payload)

    return path


def remove_snapshot(path: Path) -> bool:
    """Delete the snapshot file; returns whether a file was removed."""
    path = Path(path)
    if not path.exists():
        return False
    path.unlink()
    return True


__all__ = [
    "load_snapshot",
    "records_from_json",
    "records_to_json",
    "remove_snapshot",
    "save_snapshot",
]
