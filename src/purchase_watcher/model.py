"""Domain models for purchase register monitoring.

These dataclasses represent the core entities shared throughout the tool:
purchase records extracted from the register and the changeset produced by
comparing two snapshots of active records.
"""

from __future__ import annotations  # Postponed evaluation of annotations (PEP 563)

import math
from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, Mapping

INACTIVE_STATUS = "неактуально"  # status given to records that left the active set


@dataclass(slots=True)
class PurchaseRecord:
    """One register row; ``registry_number`` is unique within a snapshot."""

    registry_number: str
    purchase_subject: str = ""
    region: str = ""
    customer_type: str = ""
    purchase_form: str = ""
    trading_platform: str = ""
    participants: str = ""
    winner: str = ""
    status: str = ""
    estimation: float = 0.0
    max_price: float = 0.0  # initial maximum contract price
    bid_guarantee: float = 0.0
    contract_guarantee: float = 0.0
    winner_price: float = 0.0
    collection_deadline: str = ""  # end of bid collection, formatted timestamp
    approval_deadline: str = ""  # end of bid review, formatted timestamp
    bidding_datetime: str = ""  # auction/tender start, formatted timestamp

    def is_equivalent(self, other: "PurchaseRecord") -> bool:
        """Compare the fields that matter downstream.

        Prices are truncated to whole units before comparison; descriptive
        fields such as the subject are ignored.
        """

        return (
            self.registry_number == other.registry_number
            and self.collection_deadline == other.collection_deadline
            and self.approval_deadline == other.approval_deadline
            and self.bidding_datetime == other.bidding_datetime
            and self.region == other.region
            and self.status == other.status
            and self.participants == other.participants
            and self.winner == other.winner
            and int(self.max_price) == int(other.max_price)
            and int(self.winner_price) == int(other.winner_price)
        )

    def deactivated(self) -> "PurchaseRecord":
        return replace(self, status=INACTIVE_STATUS)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "PurchaseRecord":
        """Build a record from a JSON object, ignoring unknown keys."""
        values: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in payload:
                continue
            value = payload[f.name]
            # Annotations are strings under postponed evaluation
            if f.type == "str" and not isinstance(value, str):
                raise TypeError(f"field {f.name!r} must be a string, got {value!r}")
            if f.type == "float":
                if (
                    isinstance(value, bool)
                    or not isinstance(value, (int, float))
                    or not math.isfinite(value)
                ):
                    raise TypeError(f"field {f.name!r} must be a number, got {value!r}")
                value = float(value)
            values[f.name] = value
        if "registry_number" not in values:
            raise KeyError("registry_number")
        return cls(**values)

    def __str__(self) -> str:
        return f"purchase(number={self.registry_number}, status={self.status})"


@dataclass(slots=True)
class Changeset:
    """Groups comparison outcomes between two snapshots."""

    records: list[PurchaseRecord] = field(default_factory=list)  # Everything to send
    new: list[PurchaseRecord] = field(default_factory=list)  # Absent from old snapshot
    changed: list[PurchaseRecord] = field(default_factory=list)  # New values of changed
    inactive: list[PurchaseRecord] = field(default_factory=list)  # Dropped out, re-flagged

    @property
    def is_empty(self) -> bool:
        return not self.records

    def __len__(self) -> int:
        return len(self.records)


__all__ = [
    "Changeset",
    "INACTIVE_STATUS",
    "PurchaseRecord",
]
