"""Resolve workbook defined names into worksheet column positions.

The purchase register locates its business columns through defined names
(``Номер``, ``Статус``, ...) rather than fixed coordinates, so rows can be
re-arranged in Excel without breaking extraction. Each name is expected to
target a whole column, e.g. ``Реестр!$B:$B``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from purchase_watcher.errors import InvalidColumnName

MAX_COLUMNS = 16384  # XFD
_ALPHABET_SIZE = 26


class Field(str, Enum):
    """Whitelisted defined names, keyed by the record field they feed."""

    REGISTRY_NUMBER = "Номер"
    PURCHASE_SUBJECT = "Предмет"
    REGION = "Регион"
    CUSTOMER_TYPE = "Заказчик"
    PURCHASE_FORM = "Форма_проведения"
    TRADING_PLATFORM = "Площадка"
    PARTICIPANTS = "Участники"
    WINNER = "Победитель"
    STATUS = "Статус"
    ESTIMATION = "Расчет"
    MAX_PRICE = "НМЦК"
    BID_GUARANTEE = "Обеспечение_заявки"
    CONTRACT_GUARANTEE = "Обеспечение_контракта"
    WINNER_PRICE = "Сумма_выигранного_лота"
    DATE_ENDING_BIDS = "Дата_окончания_подачи_заявок"
    TIME_ENDING_BIDS = "Время_окончания_подачи_заявок"
    DATE_APPROVAL = "Дата_окончания_срока_рассмотрения_заявок"
    DATE_BIDDING = "Дата_проведения_аукциона_конкурса"
    TIME_BIDDING = "Время_проведения_аукциона_конкурса"

    @classmethod
    def from_label(cls, label: str) -> Optional["Field"]:
        return _FIELDS_BY_LABEL.get(label)


_FIELDS_BY_LABEL: Dict[str, Field] = {f.value: f for f in Field}


def column_index(column: str) -> int:
    """Return the zero-based index of a column reference such as ``"AA"``.

    Letters are case-insensitive base-26 digits valued 1..26. Empty tokens,
    any non-letter character and columns beyond ``XFD`` raise
    :class:`InvalidColumnName`.
    """

    if not column:
        raise InvalidColumnName(column)

    number = 0
    for position, char in enumerate(reversed(column)):
        if not (char.isascii() and char.isalpha()):
            raise InvalidColumnName(column)
        digit = ord(char.upper()) - ord("A") + 1
        number += digit * _ALPHABET_SIZE**position
        if number > MAX_COLUMNS:
            raise InvalidColumnName(column)

    return number - 1


def _split_reference(expression: str) -> Tuple[str, str]:
    """Split ``'Sheet 1'!$A:$A`` into ``("Sheet 1", "$A:$A")``."""
    area = expression.split(",")[0].strip()
    sheet, sep, cells = area.rpartition("!")
    if not sep:
        return "", area
    if len(sheet) >= 2 and sheet[0] == sheet[-1] == "'":
        sheet = sheet[1:-1].replace("''", "'")
    return sheet, cells


@dataclass(frozen=True, slots=True)
class NamedRange:
    """A whitelisted defined name and the sheet range it targets."""

    name: Field
    sheet: str
    range: str

    @classmethod
    def parse(cls, name: str, expression: str) -> Optional["NamedRange"]:
        """Build a range from a defined name, ``None`` for non-whitelisted names."""
        target = Field.from_label(name.strip())
        if target is None:
            return None
        sheet, cells = _split_reference(expression)
        return cls(name=target, sheet=sheet, range=cells)

    def column_name(self, position: int = 0) -> str:
        """Letters of the left (0) or right (1) edge of the range."""
        parts = self.range.split(":")
        if position >= len(parts):
            return ""
        return parts[position].replace("$", "").rstrip("0123456789")

    def column_number(self, position: int = 0) -> int:
        return column_index(self.column_name(position))


def named_ranges(defined_names: Iterable[Tuple[str, str]]) -> List[NamedRange]:
    """Keep only whitelisted ``(name, target)`` pairs, parsed."""
    ranges: List[NamedRange] = []
    for name, expression in defined_names:
        named = NamedRange.parse(name, expression or "")
        if named is not None:
            ranges.append(named)
    return ranges


@dataclass(frozen=True, slots=True)
class ColumnMap:
    """Zero-based column index per field; absent names are listed explicitly."""

    columns: Dict[Field, int] = field(default_factory=dict)
    unresolved: FrozenSet[Field] = frozenset()
    sheets: Dict[Field, str] = field(default_factory=dict)

    def get(self, target: Field) -> Optional[int]:
        return self.columns.get(target)

    def sheet_for(self, target: Field) -> Optional[str]:
        return self.sheets.get(target)

    def __contains__(self, target: object) -> bool:
        return target in self.columns


def resolve_columns(ranges: Iterable[NamedRange]) -> ColumnMap:
    """Resolve the left column of every range.

    Malformed column references raise :class:`InvalidColumnName`; fields with
    no defined name end up in :attr:`ColumnMap.unresolved`.
    """

    columns: Dict[Field, int] = {}
    sheets: Dict[Field, str] = {}
    for named in ranges:
        columns[named.name] = named.column_number()
        sheets[named.name] = named.sheet

    unresolved = frozenset(f for f in Field if f not in columns)
    return ColumnMap(columns=columns, unresolved=unresolved, sheets=sheets)


__all__ = [
    "ColumnMap",
    "Field",
    "MAX_COLUMNS",
    "NamedRange",
    "column_index",
    "named_ranges",
    "resolve_columns",
]
