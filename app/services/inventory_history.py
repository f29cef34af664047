"""
Movement history.

Every inventory mutation appends one row here inside the same transaction.
Rows are never updated or deleted.
"""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ValidationError
from app.models.inventory_history import InventoryHistory, MOVEMENT_TYPES
from app.utils.business_calendar import local_day_bounds

logger = logging.getLogger(__name__)


def day_bounds(start: date, end: date) -> tuple[datetime, datetime]:
    """Expand a date range to whole business-timezone days, as UTC datetimes."""
    if end < start:
        raise ValidationError("La fecha final no puede ser anterior a la fecha inicial")
    return local_day_bounds(start, end)


def record_movement(
    db: AsyncSession,
    *,
    item_id: str,
    type: str,
    quantity_change: int,
    reason: str,
    crew_id: Optional[str] = None,
    order_id: Optional[str] = None,
    batch_id: Optional[str] = None,
    instance_ids: Optional[list[str]] = None,
    performed_by: Optional[int] = None,
) -> InventoryHistory:
    """Append a history row to the session; it is flushed with the operation."""
    if type not in MOVEMENT_TYPES:
        raise ValueError(f"Unknown movement type: {type}")

    entry = InventoryHistory(
        item_id=item_id,
        type=type,
        quantity_change=quantity_change,
        reason=reason,
        crew_id=crew_id,
        order_id=order_id,
        batch_id=batch_id,
        instance_ids=instance_ids,
        performed_by=performed_by,
    )
    db.add(entry)
    return entry


def _filtered(query, *, crew_id=None, item_id=None, type=None, start=None, end=None):
    if crew_id:
        query = query.where(InventoryHistory.crew_id == crew_id)
    if item_id:
        query = query.where(InventoryHistory.item_id == item_id)
    if type:
        query = query.where(InventoryHistory.type == type)
    if start is not None:
        query = query.where(InventoryHistory.created_at >= start)
    if end is not None:
        query = query.where(InventoryHistory.created_at <= end)
    return query


async def get_history(
    db: AsyncSession,
    *,
    crew_id: Optional[str] = None,
    item_id: Optional[str] = None,
    type: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[InventoryHistory], int]:
    """Filtered, newest-first page of history rows plus the total count."""
    start = end = None
    if start_date and end_date:
        start, end = day_bounds(start_date, end_date)
    elif start_date:
        start, _ = day_bounds(start_date, start_date)
    elif end_date:
        _, end = day_bounds(end_date, end_date)

    filters = dict(crew_id=crew_id, item_id=item_id, type=type, start=start, end=end)

    count_query = _filtered(select(func.count(InventoryHistory.id)), **filters)
    total = (await db.execute(count_query)).scalar() or 0

    query = (
        _filtered(select(InventoryHistory), **filters)
        .order_by(InventoryHistory.created_at.desc(), InventoryHistory.id)
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    rows = (await db.execute(query)).scalars().all()
    return list(rows), total


async def summarize(
    db: AsyncSession,
    start: datetime,
    end: datetime,
    *,
    crew_id: Optional[str] = None,
    item_id: Optional[str] = None,
) -> dict:
    """Sum signed quantity changes in [start, end], grouped by type and by item."""
    filters = dict(crew_id=crew_id, item_id=item_id, start=start, end=end)

    by_type_query = _filtered(
        select(
            InventoryHistory.type,
            func.count(InventoryHistory.id),
            func.coalesce(func.sum(InventoryHistory.quantity_change), 0),
        ),
        **filters,
    ).group_by(InventoryHistory.type).order_by(InventoryHistory.type)
    by_type = [
        {"type": row[0], "count": row[1], "quantityChange": int(row[2])}
        for row in (await db.execute(by_type_query)).all()
    ]

    by_item_query = _filtered(
        select(
            InventoryHistory.item_id,
            InventoryHistory.type,
            func.count(InventoryHistory.id),
            func.coalesce(func.sum(InventoryHistory.quantity_change), 0),
        ),
        **filters,
    ).group_by(InventoryHistory.item_id, InventoryHistory.type)
    per_item: dict[str, dict] = {}
    for item_id_, type_, count, qty in (await db.execute(by_item_query)).all():
        entry = per_item.setdefault(item_id_, {"quantityChange": 0, "movements": 0, "used": 0, "usageCount": 0})
        entry["quantityChange"] += int(qty)
        entry["movements"] += count
        if type_ == "usage_order":
            entry["used"] += abs(int(qty))
            entry["usageCount"] += count

    return {
        "totalMovements": sum(t["count"] for t in by_type),
        "netQuantityChange": sum(t["quantityChange"] for t in by_type),
        "movementsByType": by_type,
        "perItem": per_item,
    }
