"""Extract active purchases from the register workbook.

This module opens the register with ``openpyxl``, locates its business
columns through the workbook's defined names and converts the rows whose
status is one of the active labels into :class:`PurchaseRecord` objects.
"""

from __future__ import annotations

import datetime
import logging
import math
from dataclasses import dataclass
from pathlib import Path  # Filesystem path management
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
from zipfile import BadZipFile

from openpyxl import load_workbook  # Excel file loader
from openpyxl.utils.datetime import to_excel
from openpyxl.utils.exceptions import InvalidFileException

from purchase_watcher.errors import MissingNamedRangeError, WorkbookFormatError
from purchase_watcher.model import PurchaseRecord
from purchase_watcher.named_ranges import ColumnMap, Field, named_ranges, resolve_columns
from purchase_watcher.serial_time import (
    UTC_OFFSET,
    DateTimePolicy,
    combine_date_time,
    serial_to_timestamp,
    today_serial,
)

_default_logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 16
DEFAULT_MAX_ROWS = 7000  # safety bound against unbounded sheets

# Status labels of rows still being worked on: in progress, admitted,
# applied, won, lost, estimating.
DEFAULT_ACTIVE_STATUSES = frozenset(
    {"идем", "допущены", "заявлены", "выиграли", "проиграли", "расчет"}
)

REQUIRED_FIELDS = (Field.REGISTRY_NUMBER, Field.STATUS)
ORDINAL_MARK = "№"

Row = Sequence[Any]


@dataclass(frozen=True)
class ExtractionSettings:
    """Row filters and formatting options applied during extraction."""

    active_statuses: frozenset[str] = DEFAULT_ACTIVE_STATUSES
    lookback_days: Optional[int] = DEFAULT_LOOKBACK_DAYS  # None disables the filter
    max_rows: int = DEFAULT_MAX_ROWS
    timestamp_offset: str = UTC_OFFSET
    datetime_policy: DateTimePolicy = DateTimePolicy.SUM
    strict_columns: bool = False  # fail instead of defaulting unresolved fields


def _cell(row: Row, columns: ColumnMap, target: Field) -> Any:
    idx = columns.get(target)
    if idx is None or idx >= len(row):
        return None
    return row[idx]


def _as_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _as_number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def _as_date_serial(value: Any) -> float:
    """Serial value of a date cell; anything else counts as the epoch (missing)."""
    if isinstance(value, (datetime.datetime, datetime.date)):
        return float(to_excel(value))
    return 0.0


def _as_time_serial(value: Any) -> float:
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time, datetime.timedelta)):
        return float(to_excel(value))
    return _as_number(value)


def _registry_number(value: Any) -> str:
    number = _as_text(value)
    if number.startswith(ORDINAL_MARK):
        number = number[len(ORDINAL_MARK):].strip()
    return number


def _timestamp(
    row: Row,
    columns: ColumnMap,
    date_field: Field,
    time_field: Optional[Field],
    settings: ExtractionSettings,
) -> str:
    serial = _as_date_serial(_cell(row, columns, date_field))
    if time_field is not None:
        time_value = _as_time_serial(_cell(row, columns, time_field))
        serial = combine_date_time(serial, time_value, settings.datetime_policy)
    return serial_to_timestamp(serial, settings.timestamp_offset)


def build_record(row: Row, columns: ColumnMap, settings: ExtractionSettings) -> PurchaseRecord:
    """Populate a record from one worksheet row using permissive coercion."""
    return PurchaseRecord(
        registry_number=_registry_number(_cell(row, columns, Field.REGISTRY_NUMBER)),
        purchase_subject=_as_text(_cell(row, columns, Field.PURCHASE_SUBJECT)),
        region=_as_text(_cell(row, columns, Field.REGION)),
        customer_type=_as_text(_cell(row, columns, Field.CUSTOMER_TYPE)),
        purchase_form=_as_text(_cell(row, columns, Field.PURCHASE_FORM)),
        trading_platform=_as_text(_cell(row, columns, Field.TRADING_PLATFORM)),
        participants=_as_text(_cell(row, columns, Field.PARTICIPANTS)),
        winner=_as_text(_cell(row, columns, Field.WINNER)),
        status=_as_text(_cell(row, columns, Field.STATUS)),
        estimation=_as_number(_cell(row, columns, Field.ESTIMATION)),
        max_price=_as_number(_cell(row, columns, Field.MAX_PRICE)),
        bid_guarantee=_as_number(_cell(row, columns, Field.BID_GUARANTEE)),
        contract_guarantee=_as_number(_cell(row, columns, Field.CONTRACT_GUARANTEE)),
        winner_price=_as_number(_cell(row, columns, Field.WINNER_PRICE)),
        collection_deadline=_timestamp(
            row, columns, Field.DATE_ENDING_BIDS, Field.TIME_ENDING_BIDS, settings
        ),
        approval_deadline=_timestamp(row, columns, Field.DATE_APPROVAL, None, settings),
        bidding_datetime=_timestamp(
            row, columns, Field.DATE_BIDDING, Field.TIME_BIDDING, settings
        ),
    )


def active_records(
    rows: Iterable[Row],
    columns: ColumnMap,
    settings: ExtractionSettings | None = None,
    *,
    now: float | None = None,
    logger: logging.Logger | None = None,
) -> Optional[List[PurchaseRecord]]:
    """Return records for the active rows, or ``None`` when no row qualifies.

    ``now`` is a Unix timestamp used as "today" by the recency filter.
    """

    settings = settings or ExtractionSettings()
    log = logger or _default_logger

    cutoff: Optional[float] = None
    if settings.lookback_days is not None:
        cutoff = math.floor(today_serial(now)) - settings.lookback_days

    records: Dict[str, PurchaseRecord] = {}
    for row_number, row in enumerate(rows, start=1):
        if row_number > settings.max_rows:
            break  # Never scan beyond the safety bound

        status = _as_text(_cell(row, columns, Field.STATUS))
        if status not in settings.active_statuses:
            continue

        if cutoff is not None:
            bidding_date = _as_date_serial(_cell(row, columns, Field.DATE_BIDDING))
            if bidding_date < cutoff:
                continue  # Bidding is too far in the past

        record = build_record(row, columns, settings)
        if not record.registry_number:
            log.warning("row %s is active but has no registry number", row_number)
            continue
        if record.registry_number in records:
            log.warning(
                "duplicate registry number %s at row %s; keeping the later row",
                record.registry_number,
                row_number,
            )
        records[record.registry_number] = record

    return list(records.values()) or None


def _defined_names(workbook: Any) -> Iterator[Tuple[str, str]]:
    """Yield ``(name, target)`` pairs of the workbook-scoped defined names."""
    for name, definition in workbook.defined_names.items():
        yield name, definition.attr_text or ""


def resolve_workbook_columns(
    workbook: Any,
    settings: ExtractionSettings,
    log: logging.Logger,
) -> ColumnMap:
    """Resolve the register columns, enforcing the required named ranges."""
    columns = resolve_columns(named_ranges(_defined_names(workbook)))

    missing_required = [f for f in REQUIRED_FIELDS if f in columns.unresolved]
    if missing_required:
        raise MissingNamedRangeError(missing_required)

    if columns.unresolved:
        ordered = [f for f in Field if f in columns.unresolved]
        if settings.strict_columns:
            raise MissingNamedRangeError(ordered)
        log.warning(
            "named ranges not found, using empty values: %s",
            ", ".join(f.value for f in ordered),
        )
    return columns


def extract_active_records(
    workbook_path: Path,
    settings: ExtractionSettings | None = None,
    *,
    now: float | None = None,
    logger: logging.Logger | None = None,
) -> Optional[List[PurchaseRecord]]:
    """Return the active purchases of the register workbook.

    Raises :class:`FileNotFoundError` when the workbook is missing and
    :class:`WorkbookFormatError` when it cannot be parsed. ``None`` means the
    workbook has no active rows.
    """

    settings = settings or ExtractionSettings()
    log = logger or _default_logger

    workbook_path = Path(workbook_path)  # Ensure we have a Path instance
    if not workbook_path.exists():  # Validate the file exists
        raise FileNotFoundError(f"Workbook not found: {workbook_path}")

    try:
        # Read-only mode streams rows; cached values stand in for formulas
        workbook = load_workbook(filename=workbook_path, read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, ValueError) as exc:
        raise WorkbookFormatError(f"cannot open workbook {workbook_path}: {exc}") from exc

    try:
        columns = resolve_workbook_columns(workbook, settings, log)
        sheet_name = columns.sheet_for(Field.STATUS)
        if sheet_name not in workbook.sheetnames:
            raise WorkbookFormatError(f"Worksheet {sheet_name!r} not found in workbook")
        sheet = workbook[sheet_name]

        rows = sheet.iter_rows(max_row=settings.max_rows, values_only=True)
        return active_records(rows, columns, settings, now=now, logger=log)
    finally:
        workbook.close()  # Always close the workbook handle


__all__ = [
    "DEFAULT_ACTIVE_STATUSES",
    "ExtractionSettings",
    "active_records",
    "build_record",
    "extract_active_records",
]
