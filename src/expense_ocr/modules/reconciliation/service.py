"""
Merge extracted fields into the record a task points at.

Each mergeable attribute is listed explicitly with the extraction keys it reads
from and the rule deciding whether its current value is only a placeholder.
Attributes not listed are never touched, and a listed attribute holding a real
value is left alone even when extraction disagrees.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from expense_ocr.modules.expenses.models import (
    GENERAL_EXPENSE,
    TRAVEL_EXPENSE,
    TRAVEL_LOCATION,
    TRAVEL_VENDOR,
    UNKNOWN_LOCATION,
    UNKNOWN_VENDOR,
    Expense,
)
from expense_ocr.modules.extraction.parser import clean_numeric
from expense_ocr.modules.mileage.models import EntryMethod, MileageLog, OdometerSide
from expense_ocr.modules.reconciliation.models import ExtractionTracked, RecordStatus


def is_blank(value: Any) -> bool:
    return value is None or not str(value).strip()


def blank_or(*sentinels: str) -> Callable[[Any], bool]:
    lowered = {s.lower() for s in sentinels}

    def _check(value: Any) -> bool:
        return is_blank(value) or str(value).strip().lower() in lowered

    return _check


def blank_or_zero(value: Any) -> bool:
    if is_blank(value):
        return True
    return clean_numeric(str(value)) == 0


@dataclass(frozen=True)
class FieldRule:
    attr: str
    source_keys: tuple[str, ...]
    is_placeholder: Callable[[Any], bool]


EXPENSE_FIELD_RULES: tuple[FieldRule, ...] = (
    FieldRule("vendor", ("vendor",), blank_or(UNKNOWN_VENDOR, TRAVEL_VENDOR)),
    FieldRule("date", ("date",), is_blank),
    FieldRule("cost", ("cost", "total"), blank_or_zero),
    FieldRule("location", ("location",), blank_or(UNKNOWN_LOCATION, TRAVEL_LOCATION)),
    FieldRule("type", ("type",), blank_or(GENERAL_EXPENSE, TRAVEL_EXPENSE)),
    FieldRule("comments", ("description",), is_blank),
)

MILEAGE_FIELD_RULES: dict[OdometerSide, FieldRule] = {
    OdometerSide.START: FieldRule("start_odometer", ("reading",), is_blank),
    OdometerSide.END: FieldRule("end_odometer", ("reading",), is_blank),
}


def format_number(value: float) -> str:
    if value.is_integer():
        return str(int(value))
    return repr(value)


def extracted_value(fields: dict[str, Any], keys: Iterable[str]) -> str | None:
    """First usable scalar among ``keys``, as text."""
    for key in keys:
        value = fields.get(key)
        if isinstance(value, bool) or value is None:
            continue
        if isinstance(value, int | float):
            return format_number(float(value))
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def reconcile(
    target: ExtractionTracked, fields: dict[str, Any], rules: Iterable[FieldRule]
) -> dict[str, str]:
    """Apply ``rules`` to ``target`` and mark it complete; returns what changed."""
    updated: dict[str, str] = {}
    for rule in rules:
        new_value = extracted_value(fields, rule.source_keys)
        if new_value is None:
            continue
        if not rule.is_placeholder(getattr(target, rule.attr)):
            continue
        setattr(target, rule.attr, new_value)
        updated[rule.attr] = new_value
    target.status = RecordStatus.COMPLETE
    target.ocr_error = None
    return updated


def reconcile_expense(expense: Expense, fields: dict[str, Any]) -> dict[str, str]:
    return reconcile(expense, fields, EXPENSE_FIELD_RULES)


def reconcile_mileage(
    log: MileageLog, fields: dict[str, Any], *, side: OdometerSide
) -> dict[str, str]:
    updated = reconcile(log, fields, [MILEAGE_FIELD_RULES[side]])
    if updated:
        log.entry_method = EntryMethod.OCR
    log.calculated_distance = compute_distance(log.start_odometer, log.end_odometer)
    return updated


def compute_distance(start: str | None, end: str | None) -> float | None:
    start_value = clean_numeric(start) if start else None
    end_value = clean_numeric(end) if end else None
    if start_value is None or end_value is None or end_value < start_value:
        return None
    return round(end_value - start_value, 2)


def mark_processing(target: ExtractionTracked) -> None:
    target.status = RecordStatus.PROCESSING


def mark_failed(target: ExtractionTracked, error: str) -> None:
    target.status = RecordStatus.OCR_FAILED
    target.ocr_error = error
