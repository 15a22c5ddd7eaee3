"""Parse and validate a single delimited report row."""

from __future__ import annotations

import csv
import re
from dataclasses import dataclass
from decimal import Decimal


class ValidationError(ValueError):
    """Row could not be turned into a report record."""

    pass


# organization id, period, people helped, events conducted, funds utilized
REQUIRED_COLUMNS = 5

INVALID_COLUMN_COUNT = "invalid column count"
INVALID_NUMBER_FORMAT = "invalid number format"
MISSING_ORGANIZATION = "missing organization id"
INVALID_PERIOD = "invalid period format"
ORGANIZATION_TOO_LONG = "organization id too long"

# Column limits of the reports table
MAX_ORGANIZATION_ID_LENGTH = 128
MAX_COUNT = 2**31 - 1
# Largest amount that still fits Numeric(14, 2) once rounded half-up to cents
FUNDS_LIMIT = Decimal("999999999999.995")

PERIOD_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
_COUNT_PATTERN = re.compile(r"^\d+$")
_AMOUNT_PATTERN = re.compile(r"^(\d+(\.\d*)?|\.\d+)$")


@dataclass(frozen=True)
class ReportRow:
    """A validated report record, not yet committed."""

    organization_id: str
    period: str
    people_helped: int
    events_conducted: int
    funds_utilized: Decimal


def split_fields(line: str) -> list[str]:
    """Split one delimited line into trimmed fields (quoted commas honoured)."""
    try:
        fields = next(csv.reader([line]), [])
    except csv.Error as exc:
        raise ValidationError(INVALID_COLUMN_COUNT) from exc
    return [field.strip() for field in fields]


def _parse_count(value: str) -> int:
    if not _COUNT_PATTERN.match(value):
        raise ValidationError(INVALID_NUMBER_FORMAT)
    digits = value.lstrip("0") or "0"
    if len(digits) > len(str(MAX_COUNT)) or int(digits) > MAX_COUNT:
        raise ValidationError(INVALID_NUMBER_FORMAT)
    return int(digits)


def _parse_amount(value: str) -> Decimal:
    if not _AMOUNT_PATTERN.match(value):
        raise ValidationError(INVALID_NUMBER_FORMAT)
    amount = Decimal(value)
    if amount >= FUNDS_LIMIT:
        raise ValidationError(INVALID_NUMBER_FORMAT)
    return amount


def is_valid_period(period: str) -> bool:
    return bool(PERIOD_PATTERN.match(period))


def parse_row(line: str) -> ReportRow:
    """Turn a raw line into a ReportRow or raise ValidationError.

    Checks run in a fixed order so the reported reason is deterministic:
    column count, numeric fields (format and column range), organization
    id, period.
    """
    fields = split_fields(line)
    if len(fields) < REQUIRED_COLUMNS:
        raise ValidationError(INVALID_COLUMN_COUNT)

    organization_id, period, people_raw, events_raw, funds_raw = fields[:REQUIRED_COLUMNS]
    people = _parse_count(people_raw)
    events = _parse_count(events_raw)
    funds = _parse_amount(funds_raw)

    if not organization_id:
        raise ValidationError(MISSING_ORGANIZATION)
    if len(organization_id) > MAX_ORGANIZATION_ID_LENGTH:
        raise ValidationError(ORGANIZATION_TOO_LONG)
    if not is_valid_period(period):
        raise ValidationError(INVALID_PERIOD)

    return ReportRow(
        organization_id=organization_id,
        period=period,
        people_helped=people,
        events_conducted=events,
        funds_utilized=funds,
    )
