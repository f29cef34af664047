"""Tests for the cable bobbin lifecycle."""
import pytest

from app.database import transaction
from app.exceptions import DuplicateError, InsufficientStockError, InvalidItemTypeError, ValidationError
from app.schemas.inventory import (
    AssignLine,
    BatchCreate,
    BatchUpdate,
    InventoryItemCreate,
    OrderMaterial,
    RestockLine,
    ReturnLine,
)
from app.services import batch_service, crew_inventory, inventory_service
from app.services.inventory_history import get_history

from tests.conftest import stock_of
from tests.factories import BatchFactory, CableItemFactory


async def new_batch(db, item, **overrides):
    async with transaction(db):
        return await batch_service.create_batch(db, BatchCreate(**BatchFactory(itemId=item.id, **overrides)))


class TestCreateBatch:
    @pytest.mark.asyncio
    async def test_create_adds_metres_to_stock(self, test_db, cable_item):
        batch = await new_batch(test_db, cable_item, batchCode="bob-a1", initialQuantity=305)

        assert batch.batch_code == "BOB-A1"
        assert batch.current_quantity == 305
        assert batch.location == "warehouse"
        assert batch.status == "active"
        assert await stock_of(test_db, cable_item.id) == 305

    @pytest.mark.asyncio
    async def test_only_metres_items(self, test_db, material_item):
        with pytest.raises(InvalidItemTypeError):
            await new_batch(test_db, material_item)

    @pytest.mark.asyncio
    async def test_duplicate_code_case_insensitive(self, test_db, cable_item):
        await new_batch(test_db, cable_item, batchCode="BOB-9")
        item_id = cable_item.id
        with pytest.raises(DuplicateError):
            async with transaction(test_db):
                await batch_service.create_batch(
                    test_db, BatchCreate(**BatchFactory(itemId=item_id, batchCode="bob-9"))
                )
        assert await stock_of(test_db, item_id) == 305


class TestBatchQuantities:
    @pytest.mark.asyncio
    async def test_add_meters(self, test_db, cable_item):
        batch = await new_batch(test_db, cable_item, initialQuantity=100)

        async with transaction(test_db):
            await batch_service.add_meters(test_db, batch.batch_code, 50)

        assert batch.current_quantity == 150
        assert await stock_of(test_db, cable_item.id) == 150

    @pytest.mark.asyncio
    async def test_update_to_zero_depletes_and_back(self, test_db, cable_item):
        batch = await new_batch(test_db, cable_item, initialQuantity=200)
        code, item_id = batch.batch_code, cable_item.id

        async with transaction(test_db):
            await batch_service.update_batch(
                test_db, BatchUpdate(batchCode=code, itemId=item_id, currentQuantity=0)
            )
        assert batch.status == "depleted"
        assert await stock_of(test_db, item_id) == 0

        async with transaction(test_db):
            await batch_service.update_batch(
                test_db, BatchUpdate(batchCode=code, itemId=item_id, currentQuantity=80)
            )
        assert batch.status == "active"
        assert await stock_of(test_db, item_id) == 80

    @pytest.mark.asyncio
    async def test_add_meters_to_depleted_refused(self, test_db, cable_item):
        batch = await new_batch(test_db, cable_item, initialQuantity=10)
        code = batch.batch_code
        async with transaction(test_db):
            await batch_service.update_batch(
                test_db, BatchUpdate(batchCode=code, itemId=cable_item.id, currentQuantity=0)
            )
        with pytest.raises(ValidationError):
            async with transaction(test_db):
                await batch_service.add_meters(test_db, code, 5)

    @pytest.mark.asyncio
    async def test_update_moves_bobbin_between_items(self, test_db, cable_item):
        async with transaction(test_db):
            other = await inventory_service.create_item(test_db, InventoryItemCreate(**CableItemFactory()))
        batch = await new_batch(test_db, cable_item, initialQuantity=120)

        async with transaction(test_db):
            await batch_service.update_batch(
                test_db, BatchUpdate(batchCode=batch.batch_code, itemId=other.id, currentQuantity=100)
            )

        assert batch.item_id == other.id
        assert await stock_of(test_db, cable_item.id) == 0
        assert await stock_of(test_db, other.id) == 100

    @pytest.mark.asyncio
    async def test_delete_requires_empty_bobbin(self, test_db, cable_item):
        batch = await new_batch(test_db, cable_item, initialQuantity=10)
        code, item_id = batch.batch_code, cable_item.id

        with pytest.raises(ValidationError):
            async with transaction(test_db):
                await batch_service.delete_batch(test_db, code)

        async with transaction(test_db):
            await batch_service.update_batch(
                test_db, BatchUpdate(batchCode=code, itemId=item_id, currentQuantity=0)
            )
            deleted = await batch_service.delete_batch(test_db, code)
        assert deleted.status == "depleted"

        remaining = await batch_service.get_batches(test_db, item_id=item_id)
        assert [b.batch_code for b in remaining] == [code]


class TestCrewBobbins:
    @pytest.mark.asyncio
    async def test_assign_use_and_restore(self, test_db, cable_item, crew):
        batch = await new_batch(test_db, cable_item, batchCode="BOB-C1", initialQuantity=300)

        async with transaction(test_db):
            await inventory_service.assign_material_to_crew(
                test_db, crew.id, [AssignLine(itemId=cable_item.id, batchCode="bob-c1")]
            )
        assert batch.location == "crew"
        assert batch.crew_id == crew.id
        assert await stock_of(test_db, cable_item.id) == 0
        assert crew.holding(cable_item.id).quantity == 300

        used = [OrderMaterial(itemId=cable_item.id, quantity=120, batchCode="BOB-C1")]
        async with transaction(test_db):
            await inventory_service.process_order_usage(test_db, "ORD-9", crew.id, used)
        assert batch.current_quantity == 180
        assert crew.holding(cable_item.id).quantity == 180

        async with transaction(test_db):
            await inventory_service.restore_inventory_from_order(test_db, "ORD-9", crew.id, used)
        assert batch.current_quantity == 300
        assert crew.holding(cable_item.id).quantity == 300
        # Restoring a crew bobbin never touches warehouse stock
        assert await stock_of(test_db, cable_item.id) == 0

    @pytest.mark.asyncio
    async def test_full_usage_depletes(self, test_db, cable_item, crew):
        batch = await new_batch(test_db, cable_item, batchCode="BOB-C2", initialQuantity=50)
        async with transaction(test_db):
            await inventory_service.assign_material_to_crew(
                test_db, crew.id, [AssignLine(itemId=cable_item.id, batchCode="BOB-C2")]
            )
        async with transaction(test_db):
            await inventory_service.process_order_usage(
                test_db, "ORD-10", crew.id, [OrderMaterial(itemId=cable_item.id, quantity=50, batchCode="BOB-C2")]
            )

        assert batch.status == "depleted"
        assert crew.holding(cable_item.id) is None

    @pytest.mark.asyncio
    async def test_add_meters_on_crew_bobbin_goes_to_crew(self, test_db, cable_item, crew):
        batch = await new_batch(test_db, cable_item, batchCode="BOB-C3", initialQuantity=100)
        async with transaction(test_db):
            await inventory_service.assign_material_to_crew(
                test_db, crew.id, [AssignLine(itemId=cable_item.id, batchCode="BOB-C3")]
            )
        async with transaction(test_db):
            await batch_service.add_meters(test_db, "BOB-C3", 20)

        assert batch.current_quantity == 120
        assert crew.holding(cable_item.id).quantity == 120
        assert await stock_of(test_db, cable_item.id) == 0

    @pytest.mark.asyncio
    async def test_bobbin_metres_cannot_be_returned_as_loose_material(self, test_db, cable_item, crew):
        await new_batch(test_db, cable_item, batchCode="BOB-C4", initialQuantity=100)
        item_id, crew_id = cable_item.id, crew.id
        async with transaction(test_db):
            await inventory_service.assign_material_to_crew(
                test_db, crew_id, [AssignLine(itemId=item_id, batchCode="BOB-C4")]
            )

        with pytest.raises(InsufficientStockError):
            async with transaction(test_db):
                await inventory_service.return_material_from_crew(
                    test_db, crew_id, [ReturnLine(itemId=item_id, quantity=100)], "sobrante"
                )

        assert await stock_of(test_db, item_id) == 0
        batch = await batch_service.get_batch(test_db, "BOB-C4")
        assert (batch.location, batch.current_quantity) == ("crew", 100)
        refreshed = await crew_inventory.get_crew(test_db, crew_id)
        assert refreshed.holding(item_id).quantity == 100

    @pytest.mark.asyncio
    async def test_loose_metres_return_next_to_a_crew_bobbin(self, test_db, cable_item, crew):
        await new_batch(test_db, cable_item, batchCode="BOB-C5", initialQuantity=100)
        item_id, crew_id = cable_item.id, crew.id
        async with transaction(test_db):
            await inventory_service.restock_inventory(test_db, [RestockLine(itemId=item_id, quantity=30)], "compra")
            await inventory_service.assign_material_to_crew(
                test_db,
                crew_id,
                [AssignLine(itemId=item_id, batchCode="BOB-C5"), AssignLine(itemId=item_id, quantity=30)],
            )

        with pytest.raises(InsufficientStockError):
            async with transaction(test_db):
                await inventory_service.return_material_from_crew(
                    test_db, crew_id, [ReturnLine(itemId=item_id, quantity=31)], "sobrante"
                )

        async with transaction(test_db):
            updated = await inventory_service.return_material_from_crew(
                test_db, crew_id, [ReturnLine(itemId=item_id, quantity=30)], "sobrante"
            )
        assert await stock_of(test_db, item_id) == 30
        assert updated.holding(item_id).quantity == 100

    @pytest.mark.asyncio
    async def test_editing_crew_bobbin_moves_crew_holding_only(self, test_db, cable_item, crew):
        batch = await new_batch(test_db, cable_item, batchCode="BOB-C6", initialQuantity=100)
        async with transaction(test_db):
            await inventory_service.assign_material_to_crew(
                test_db, crew.id, [AssignLine(itemId=cable_item.id, batchCode="BOB-C6")]
            )

        async with transaction(test_db):
            await batch_service.update_batch(
                test_db, BatchUpdate(batchCode="BOB-C6", itemId=cable_item.id, currentQuantity=40)
            )

        assert batch.current_quantity == 40
        assert crew.holding(cable_item.id).quantity == 40
        assert await stock_of(test_db, cable_item.id) == 0
        rows, _ = await get_history(test_db, item_id=cable_item.id, type="adjustment")
        assert [(r.quantity_change, r.crew_id) for r in rows] == [(-60, crew.id)]
