"""Shared builders for register workbooks used across the tests."""

import datetime
from pathlib import Path

import pytest
from openpyxl import Workbook
from openpyxl.utils import get_column_letter, quote_sheetname
from openpyxl.workbook.defined_name import DefinedName

from purchase_watcher.named_ranges import Field

# Column order of the test register: A..S
REGISTER_LAYOUT = list(Field)

# 2021-11-16 12:00:00 UTC
NOW = 1637064000.0


def write_register(
    path: Path,
    rows,
    *,
    sheet_title="Registry",
    layout=REGISTER_LAYOUT,
    skip_names=(),
    extra_names=(),
):
    """Save a register workbook with one defined name per laid-out column."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_title

    sheet.append([f.value for f in layout])  # Header row, never an active status
    for row in rows:
        sheet.append([row.get(f) for f in layout])

    for idx, target in enumerate(layout, start=1):
        if target in skip_names:
            continue
        column = get_column_letter(idx)
        workbook.defined_names[target.value] = DefinedName(
            target.value, attr_text=f"{quote_sheetname(sheet_title)}!${column}:${column}"
        )
    for name, attr_text in extra_names:
        workbook.defined_names[name] = DefinedName(name, attr_text=attr_text)

    workbook.save(path)
    return path


def make_row(**overrides):
    """Return a register row keyed by :class:`Field`; overrides use field names."""
    row = {
        Field.REGISTRY_NUMBER: "№0173100000121000001",
        Field.PURCHASE_SUBJECT: "Поставка бумаги",
        Field.REGION: "Москва",
        Field.CUSTOMER_TYPE: "44-ФЗ",
        Field.PURCHASE_FORM: "Электронный аукцион",
        Field.TRADING_PLATFORM: "РТС-тендер",
        Field.PARTICIPANTS: "ООО Ромашка",
        Field.WINNER: None,
        Field.STATUS: "идем",
        Field.ESTIMATION: 950.0,
        Field.MAX_PRICE: 1000.5,
        Field.BID_GUARANTEE: 10.0,
        Field.CONTRACT_GUARANTEE: 50.0,
        Field.WINNER_PRICE: 0.0,
        Field.DATE_ENDING_BIDS: datetime.datetime(2021, 11, 15),
        Field.TIME_ENDING_BIDS: datetime.time(9, 0),
        Field.DATE_APPROVAL: datetime.datetime(2021, 11, 16),
        Field.DATE_BIDDING: datetime.datetime(2021, 11, 16),
        Field.TIME_BIDDING: datetime.time(10, 10),
    }
    row.update({Field[name.upper()]: value for name, value in overrides.items()})
    return row


@pytest.fixture
def register_factory(tmp_path):
    """Return a callable writing ``rows`` to ``tmp_path / name``."""

    def _factory(rows, name="register.xlsx", **kwargs):
        return write_register(tmp_path / name, rows, **kwargs)

    return _factory


@pytest.fixture
def row_factory():
    return make_row
