"""Shared helpers for the billing services: id parsing, list queries,
money rounding and UTC normalisation."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, TypeVar

from fastapi import HTTPException

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

T = TypeVar("T")

CENT = Decimal("0.01")


def coerce_uuid(value):
    """Parse ``value`` as a UUID; malformed ids are reported as 404."""
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as exc:
        raise HTTPException(status_code=404, detail="Not found") from exc


def apply_ordering(query, order_by: str, order_dir: str, allowed_columns: dict):
    column = allowed_columns.get(order_by)
    if column is None:
        allowed = ", ".join(sorted(allowed_columns))
        raise HTTPException(status_code=400, detail=f"Invalid order_by. Allowed: {allowed}")
    return query.order_by(column.desc() if order_dir == "desc" else column.asc())


def apply_pagination(query, limit: int, offset: int):
    return query.limit(limit).offset(offset)


def get_by_id(db: Session, model: type[T], value) -> T | None:
    if value is None:
        return None
    return db.get(model, coerce_uuid(value))


def get_or_404(db: Session, model: type[T], value, detail: str | None = None) -> T:
    entity = get_by_id(db, model, value)
    if entity is None:
        raise HTTPException(status_code=404, detail=detail or f"{model.__name__} not found")
    return entity


def round_money(value: Decimal | int | float | str) -> Decimal:
    """Quantize to cents, rounding half up."""
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def as_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` as an aware UTC datetime.

    Naive values are taken to be UTC already; SQLite hands every stored
    timestamp back naive.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def validate_enum(value, enum_cls, label: str):
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {label}") from exc
