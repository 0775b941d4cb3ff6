"""
Cycle count item filters

A session's filter is parsed once into one of Zone / Aisle / Row / Bin /
Category / All and turned into a single SQL predicate over InventoryItem.
"""
from dataclasses import dataclass
from typing import ClassVar, Optional

from sqlalchemy import true

from stockroom.core.exceptions import ValidationError
from stockroom.models.cycle_count import FilterType
from stockroom.models.inventory import InventoryItem


@dataclass(frozen=True)
class FilterSpec:
    kind: ClassVar[FilterType]

    @property
    def value(self) -> Optional[str]:
        return None

    def clause(self):
        raise NotImplementedError


@dataclass(frozen=True)
class All(FilterSpec):
    kind: ClassVar[FilterType] = FilterType.ALL

    def clause(self):
        return true()


@dataclass(frozen=True)
class _FieldFilter(FilterSpec):
    match: str

    @property
    def value(self) -> Optional[str]:
        return self.match

    def clause(self):
        return getattr(InventoryItem, self.kind.value) == self.match


@dataclass(frozen=True)
class Zone(_FieldFilter):
    kind: ClassVar[FilterType] = FilterType.ZONE


@dataclass(frozen=True)
class Aisle(_FieldFilter):
    kind: ClassVar[FilterType] = FilterType.AISLE


@dataclass(frozen=True)
class Row(_FieldFilter):
    kind: ClassVar[FilterType] = FilterType.ROW


@dataclass(frozen=True)
class Bin(_FieldFilter):
    kind: ClassVar[FilterType] = FilterType.BIN


@dataclass(frozen=True)
class Category(_FieldFilter):
    kind: ClassVar[FilterType] = FilterType.CATEGORY


_FIELD_FILTERS = {cls.kind: cls for cls in (Zone, Aisle, Row, Bin, Category)}


def parse_filter(filter_type: Optional[str], filter_value: Optional[str]) -> FilterSpec:
    """
    Resolve a (type, value) pair from a request.

    Missing type means all items. A field filter with a blank value also
    selects all items.
    """
    if filter_type is None or not filter_type.strip():
        return All()

    try:
        kind = FilterType(filter_type.strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in FilterType)
        raise ValidationError(
            f"Unknown filter type '{filter_type}'. Use one of: {allowed}",
            field="filter_type",
        )

    value = (filter_value or "").strip()
    if kind is FilterType.ALL or not value:
        return All()
    return _FIELD_FILTERS[kind](value)
