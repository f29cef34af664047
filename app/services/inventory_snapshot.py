"""
Daily inventory snapshots and usage statistics.

A snapshot freezes warehouse stock and every active crew's holdings with the
code/description denormalized in, so later catalog edits do not rewrite
history. Statistics sum signed history movements over a date window.
"""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select, func, case
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.crew import Crew
from app.models.inventory import InventoryItem, utcnow
from app.models.inventory_snapshot import InventorySnapshot
from app.services.inventory_history import day_bounds, summarize

logger = logging.getLogger(__name__)


async def create_daily_snapshot(db: AsyncSession, taken_at: Optional[datetime] = None) -> InventorySnapshot:
    """Persist one snapshot of current inventory. Not deduplicated per day."""
    items = (
        await db.execute(
            select(InventoryItem).where(InventoryItem.current_stock > 0).order_by(InventoryItem.code)
        )
    ).scalars().all()
    warehouse_inventory = [
        {
            "item": item.id,
            "code": item.code,
            "description": item.description,
            "quantity": item.current_stock,
        }
        for item in items
    ]

    crews = (
        await db.execute(select(Crew).where(Crew.is_active == True).order_by(Crew.name))
    ).scalars().all()
    crew_inventories = [
        {
            "crew": crew.id,
            "crewName": crew.name,
            "items": [
                {
                    "item": entry.item_id,
                    "code": entry.item.code,
                    "description": entry.item.description,
                    "quantity": entry.quantity,
                }
                for entry in crew.assigned_inventory
            ],
        }
        for crew in crews
        if crew.assigned_inventory
    ]

    distinct_items = {row["item"] for row in warehouse_inventory}
    for crew_row in crew_inventories:
        distinct_items.update(i["item"] for i in crew_row["items"])

    snapshot = InventorySnapshot(
        snapshot_date=taken_at or utcnow(),
        warehouse_inventory=warehouse_inventory,
        crew_inventories=crew_inventories,
        total_items=len(distinct_items),
        total_warehouse_stock=sum(row["quantity"] for row in warehouse_inventory),
    )
    db.add(snapshot)
    await db.flush()

    logger.info(
        f"Inventory snapshot created: {len(warehouse_inventory)} warehouse item(s), "
        f"{len(crew_inventories)} crew(s), total stock {snapshot.total_warehouse_stock}"
    )
    return snapshot


async def list_snapshots(
    db: AsyncSession,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> list[InventorySnapshot]:
    """Snapshots in the (inclusive, whole-day) range, newest first."""
    query = select(InventorySnapshot)
    if start_date and end_date:
        start, end = day_bounds(start_date, end_date)
        query = query.where(InventorySnapshot.snapshot_date >= start, InventorySnapshot.snapshot_date <= end)
    elif start_date:
        start, _ = day_bounds(start_date, start_date)
        query = query.where(InventorySnapshot.snapshot_date >= start)
    elif end_date:
        _, end = day_bounds(end_date, end_date)
        query = query.where(InventorySnapshot.snapshot_date <= end)
    result = await db.execute(query.order_by(InventorySnapshot.snapshot_date.desc()))
    return list(result.scalars().all())


async def get_inventory_statistics(
    db: AsyncSession,
    start_date: date,
    end_date: date,
    *,
    crew_id: Optional[str] = None,
    item_id: Optional[str] = None,
) -> dict:
    """Current stock figures plus movements summed over [start_date, end_date]."""
    start, end = day_bounds(start_date, end_date)
    ratio = settings.LOW_STOCK_CRITICAL_RATIO

    totals = (
        await db.execute(
            select(
                func.count(InventoryItem.id),
                func.coalesce(func.sum(InventoryItem.current_stock), 0),
                func.sum(case((InventoryItem.current_stock <= InventoryItem.minimum_stock * ratio, 1), else_=0)),
            )
        )
    ).one()
    total_items, total_stock, critical = totals
    critical = int(critical or 0)

    movements = await summarize(db, start, end, crew_id=crew_id, item_id=item_id)

    per_item = movements["perItem"]
    catalog = {}
    if per_item:
        rows = await db.execute(
            select(InventoryItem.id, InventoryItem.code, InventoryItem.description)
            .where(InventoryItem.id.in_(per_item.keys()))
        )
        catalog = {row.id: {"id": row.id, "code": row.code, "description": row.description} for row in rows}

    def item_ref(key: str) -> dict:
        return catalog.get(key, {"id": key, "code": None, "description": None})

    by_item = sorted(
        (
            {"item": item_ref(key), "quantityChange": data["quantityChange"], "movements": data["movements"]}
            for key, data in per_item.items()
        ),
        key=lambda row: row["item"]["code"] or "",
    )
    material_usage = sorted(
        (
            {"item": item_ref(key), "totalUsed": data["used"], "usageCount": data["usageCount"]}
            for key, data in per_item.items()
            if data["usageCount"]
        ),
        key=lambda row: -row["totalUsed"],
    )

    snapshots = (
        await db.execute(
            select(InventorySnapshot)
            .where(InventorySnapshot.snapshot_date >= start, InventorySnapshot.snapshot_date <= end)
            .order_by(InventorySnapshot.snapshot_date)
        )
    ).scalars().all()

    return {
        "period": {"start": start.isoformat(), "end": end.isoformat()},
        "filters": {"crewId": crew_id, "itemId": item_id},
        "totalItems": total_items,
        "criticalStock": critical,
        "totalWarehouseStock": int(total_stock),
        "totalMovements": movements["totalMovements"],
        "netQuantityChange": movements["netQuantityChange"],
        "movementsByType": movements["movementsByType"],
        "byItem": by_item,
        "materialUsage": material_usage,
        "snapshotsCount": len(snapshots),
        "snapshots": [
            {
                "id": s.id,
                "date": s.snapshot_date.isoformat() if s.snapshot_date else None,
                "warehouseStock": s.total_warehouse_stock,
                "totalItems": s.total_items,
                "crewsWithInventory": len(s.crew_inventories or []),
            }
            for s in snapshots
        ],
    }
