from __future__ import annotations
from typing import Dict, Iterable

from purchase_watcher.model import Changeset, PurchaseRecord


def compare_snapshots(
    old_records: Iterable[PurchaseRecord],
    new_records: Iterable[PurchaseRecord],
) -> Changeset:
    """Return the records to forward after comparing two snapshots.

    New and changed records are emitted with their new values; records that
    left the active set are re-emitted with the inactive status.
    """

    old_by_id: Dict[str, PurchaseRecord] = {r.registry_number: r for r in old_records}

    changeset = Changeset()
    for record in new_records:
        previous = old_by_id.pop(record.registry_number, None)
        if previous is None:
            changeset.new.append(record)
            changeset.records.append(record)
        elif not previous.is_equivalent(record):
            changeset.changed.append(record)
            changeset.records.append(record)

    # Whatever is left is no longer active
    for previous in old_by_id.values():
        dropped = previous.deactivated()
        changeset.inactive.append(dropped)
        changeset.records.append(dropped)

    return changeset


__all__ = ["compare_snapshots"]
