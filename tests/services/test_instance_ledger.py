"""Tests for the equipment instance ledger and its status machine."""
import pytest
from sqlalchemy import select

from app.database import transaction
from app.exceptions import (
    DuplicateError,
    InvalidItemTypeError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from app.models.inventory_history import InventoryHistory
from app.schemas.inventory import InstanceInput, InstanceUpdates
from app.services import instance_ledger
from app.services.instance_ledger import TRANSITIONS, can_transition

from tests.conftest import stock_of
from tests.factories import InstanceFactory


def instances(*unique_ids):
    return [InstanceInput(**InstanceFactory(uniqueId=uid)) for uid in unique_ids]


async def add(db, item, *unique_ids):
    async with transaction(db):
        return await instance_ledger.add_instances(db, item.id, instances(*unique_ids))


async def assign_via_update(db, item, unique_id, crew):
    updates = InstanceUpdates(status="assigned", assignedTo={"crewId": crew.id})
    async with transaction(db):
        return await instance_ledger.update_instance(db, item.id, unique_id, updates)


class TestTransitionTable:
    def test_retired_is_terminal(self):
        assert TRANSITIONS["retired"] == set()
        for target in ("in-stock", "assigned", "installed", "damaged"):
            assert can_transition("retired", target) is False

    def test_damaged_can_be_repaired(self):
        assert can_transition("damaged", "in-stock") is True

    def test_in_stock_cannot_jump_to_installed(self):
        assert can_transition("in-stock", "installed") is False

    def test_installed_can_go_back_to_crew(self):
        assert can_transition("installed", "assigned") is True


class TestAddInstances:
    @pytest.mark.asyncio
    async def test_add_instances_sets_stock(self, test_db, equipment_item):
        created = await add(test_db, equipment_item, "SN001", "SN002")

        assert [i.unique_id for i in created] == ["SN001", "SN002"]
        assert all(i.status == "in-stock" for i in created)
        assert equipment_item.current_stock == 2
        assert await stock_of(test_db, equipment_item.id) == 2

    @pytest.mark.asyncio
    async def test_add_writes_one_entry_row(self, test_db, equipment_item):
        await add(test_db, equipment_item, "SN001", "SN002", "SN003")

        rows = (await test_db.execute(
            select(InventoryHistory).where(InventoryHistory.item_id == equipment_item.id)
        )).scalars().all()
        assert len(rows) == 1
        assert rows[0].type == "entry"
        assert rows[0].quantity_change == 3
        assert rows[0].instance_ids == ["SN001", "SN002", "SN003"]

    @pytest.mark.asyncio
    async def test_existing_unique_id_rejects_whole_batch(self, test_db, equipment_item):
        item_id = equipment_item.id
        await add(test_db, equipment_item, "SN001")

        with pytest.raises(DuplicateError):
            await add(test_db, equipment_item, "SN002", "SN001")

        _, listed = await instance_ledger.get_instances(test_db, item_id)
        assert [i.unique_id for i in listed] == ["SN001"]
        assert await stock_of(test_db, item_id) == 1

    @pytest.mark.asyncio
    async def test_repeated_id_inside_request_rejected(self, test_db, equipment_item):
        item_id = equipment_item.id
        with pytest.raises(DuplicateError):
            await add(test_db, equipment_item, "SN009", "SN009")
        assert await stock_of(test_db, item_id) == 0

    @pytest.mark.asyncio
    async def test_material_item_has_no_instances(self, test_db, material_item):
        with pytest.raises(InvalidItemTypeError):
            await add(test_db, material_item, "SN001")

    @pytest.mark.asyncio
    async def test_unknown_item(self, test_db):
        with pytest.raises(NotFoundError):
            async with transaction(test_db):
                await instance_ledger.add_instances(test_db, "missing", instances("SN001"))


class TestGetInstances:
    @pytest.mark.asyncio
    async def test_filter_by_status(self, test_db, equipment_item, crew):
        await add(test_db, equipment_item, "SN001", "SN002", "SN003")
        await assign_via_update(test_db, equipment_item, "SN002", crew)

        _, in_stock = await instance_ledger.get_instances(test_db, equipment_item.id, "in-stock")
        _, assigned = await instance_ledger.get_instances(test_db, equipment_item.id, "assigned")

        assert [i.unique_id for i in in_stock] == ["SN001", "SN003"]
        assert [i.unique_id for i in assigned] == ["SN002"]


class TestUpdateInstance:
    @pytest.mark.asyncio
    async def test_assign_decrements_stock_and_fills_crew(self, test_db, equipment_item, crew):
        await add(test_db, equipment_item, "SN001", "SN002")

        instance = await assign_via_update(test_db, equipment_item, "SN001", crew)

        assert instance.status == "assigned"
        assert instance.assigned_crew_id == crew.id
        assert instance.was_deployed is True
        assert equipment_item.current_stock == 1
        assert crew.holding(equipment_item.id).quantity == 1

    @pytest.mark.asyncio
    async def test_assigned_to_implies_assigned_status(self, test_db, equipment_item, crew):
        await add(test_db, equipment_item, "SN001")
        updates = InstanceUpdates(assignedTo={"crewId": crew.id, "orderId": "ORD-7"})

        async with transaction(test_db):
            instance = await instance_ledger.update_instance(test_db, equipment_item.id, "SN001", updates)

        assert instance.status == "assigned"
        assert instance.assigned_to["orderId"] == "ORD-7"

    @pytest.mark.asyncio
    async def test_assign_requires_crew(self, test_db, equipment_item):
        await add(test_db, equipment_item, "SN001")
        with pytest.raises(ValidationError):
            async with transaction(test_db):
                await instance_ledger.update_instance(
                    test_db, equipment_item.id, "SN001", InstanceUpdates(status="assigned")
                )

    @pytest.mark.asyncio
    async def test_field_patch_keeps_stock(self, test_db, equipment_item):
        await add(test_db, equipment_item, "SN001")
        updates = InstanceUpdates(notes="caja abierta", macAddress="AA:BB:CC:DD:EE:FF")

        async with transaction(test_db):
            instance = await instance_ledger.update_instance(test_db, equipment_item.id, "SN001", updates)

        assert instance.notes == "caja abierta"
        assert instance.mac_address == "AA:BB:CC:DD:EE:FF"
        assert equipment_item.current_stock == 1

    @pytest.mark.asyncio
    async def test_retired_cannot_return_to_stock(self, test_db, equipment_item):
        item_id = equipment_item.id
        await add(test_db, equipment_item, "SN001")
        async with transaction(test_db):
            await instance_ledger.update_instance(
                test_db, equipment_item.id, "SN001", InstanceUpdates(status="retired")
            )
        assert equipment_item.current_stock == 0

        with pytest.raises(InvalidTransitionError):
            async with transaction(test_db):
                await instance_ledger.update_instance(
                    test_db, equipment_item.id, "SN001", InstanceUpdates(status="in-stock")
                )
        assert await stock_of(test_db, item_id) == 0

    @pytest.mark.asyncio
    async def test_damaged_repair_restores_stock(self, test_db, equipment_item):
        await add(test_db, equipment_item, "SN001")
        async with transaction(test_db):
            await instance_ledger.update_instance(
                test_db, equipment_item.id, "SN001", InstanceUpdates(status="damaged")
            )
        assert equipment_item.current_stock == 0

        async with transaction(test_db):
            await instance_ledger.update_instance(
                test_db, equipment_item.id, "SN001", InstanceUpdates(status="in-stock")
            )
        assert equipment_item.current_stock == 1

    @pytest.mark.asyncio
    async def test_damage_while_assigned_releases_crew_count(self, test_db, equipment_item, crew):
        await add(test_db, equipment_item, "SN001")
        await assign_via_update(test_db, equipment_item, "SN001", crew)

        async with transaction(test_db):
            await instance_ledger.update_instance(
                test_db, equipment_item.id, "SN001", InstanceUpdates(status="damaged")
            )

        assert crew.holding(equipment_item.id) is None
        assert equipment_item.current_stock == 0

    @pytest.mark.asyncio
    async def test_unknown_instance(self, test_db, equipment_item):
        with pytest.raises(NotFoundError):
            async with transaction(test_db):
                await instance_ledger.update_instance(
                    test_db, equipment_item.id, "NOPE", InstanceUpdates(notes="x")
                )


class TestDeleteInstance:
    @pytest.mark.asyncio
    async def test_delete_fresh_instance(self, test_db, equipment_item):
        await add(test_db, equipment_item, "SN001", "SN002")

        async with transaction(test_db):
            await instance_ledger.delete_instance(test_db, equipment_item.id, "SN001")

        _, listed = await instance_ledger.get_instances(test_db, equipment_item.id)
        assert [i.unique_id for i in listed] == ["SN002"]
        assert await stock_of(test_db, equipment_item.id) == 1

    @pytest.mark.asyncio
    async def test_deployed_instance_cannot_be_deleted(self, test_db, equipment_item, crew):
        item_id = equipment_item.id
        await add(test_db, equipment_item, "SN001")
        await assign_via_update(test_db, equipment_item, "SN001", crew)
        async with transaction(test_db):
            await instance_ledger.return_instances(test_db, crew.id, ["SN001"], "devolución")

        with pytest.raises(InvalidTransitionError):
            async with transaction(test_db):
                await instance_ledger.delete_instance(test_db, equipment_item.id, "SN001")
        assert await stock_of(test_db, item_id) == 1


class TestAssignAndInstall:
    @pytest.mark.asyncio
    async def test_assign_instances_all_or_nothing(self, test_db, equipment_item, crew):
        item_id = equipment_item.id
        await add(test_db, equipment_item, "SN001", "SN002")
        async with transaction(test_db):
            await instance_ledger.update_instance(
                test_db, equipment_item.id, "SN002", InstanceUpdates(status="damaged")
            )

        with pytest.raises(InvalidTransitionError):
            async with transaction(test_db):
                await instance_ledger.assign_instances(test_db, equipment_item.id, ["SN001", "SN002"], crew)

        _, listed = await instance_ledger.get_instances(test_db, item_id, "in-stock")
        assert [i.unique_id for i in listed] == ["SN001"]
        assert await stock_of(test_db, item_id) == 1

    @pytest.mark.asyncio
    async def test_mark_installed(self, test_db, equipment_item, crew):
        await add(test_db, equipment_item, "SN001")
        async with transaction(test_db):
            await instance_ledger.assign_instances(test_db, equipment_item.id, ["SN001"], crew)

        async with transaction(test_db):
            instance = await instance_ledger.mark_installed(
                test_db, equipment_item.id, "SN001", "ORD-100", location="Av. Principal"
            )

        assert instance.status == "installed"
        assert instance.installed_at["orderId"] == "ORD-100"
        assert instance.installed_at["location"] == "Av. Principal"
        assert crew.holding(equipment_item.id) is None
        assert equipment_item.current_stock == 0

    @pytest.mark.asyncio
    async def test_install_requires_assigned(self, test_db, equipment_item):
        await add(test_db, equipment_item, "SN001")
        with pytest.raises(InvalidTransitionError):
            async with transaction(test_db):
                await instance_ledger.mark_installed(test_db, equipment_item.id, "SN001", "ORD-1")

    @pytest.mark.asyncio
    async def test_crew_instances_listing(self, test_db, equipment_item, crew):
        await add(test_db, equipment_item, "SN001", "SN002", "SN003")
        async with transaction(test_db):
            await instance_ledger.assign_instances(test_db, equipment_item.id, ["SN001", "SN003"], crew)

        listed = await instance_ledger.get_crew_instances(test_db, crew.id)

        assert [i.unique_id for i in listed] == ["SN001", "SN003"]
        assert all(i.item.code == equipment_item.code for i in listed)


class TestReturnInstances:
    @pytest.mark.asyncio
    async def test_skips_ids_not_assigned_to_crew(self, test_db, equipment_item, crew):
        await add(test_db, equipment_item, "SN001", "SN002", "SN003")
        async with transaction(test_db):
            await instance_ledger.assign_instances(test_db, equipment_item.id, ["SN001"], crew)

        async with transaction(test_db):
            returned = await instance_ledger.return_instances(
                test_db, crew.id, ["SN001", "SN002", "UNKNOWN"], "devolución de prueba"
            )

        assert returned == 1
        _, listed = await instance_ledger.get_instances(test_db, equipment_item.id)
        assert {i.unique_id: i.status for i in listed} == {
            "SN001": "in-stock",
            "SN002": "in-stock",
            "SN003": "in-stock",
        }
        assert equipment_item.current_stock == 3
        assert crew.holding(equipment_item.id) is None


class TestEndToEndScenario:
    @pytest.mark.asyncio
    async def test_add_assign_return(self, test_db, equipment_item, crew):
        await add(test_db, equipment_item, "SN001", "SN002")
        assert await stock_of(test_db, equipment_item.id) == 2

        await assign_via_update(test_db, equipment_item, "SN001", crew)
        assert await stock_of(test_db, equipment_item.id) == 1

        async with transaction(test_db):
            returned = await instance_ledger.return_instances(
                test_db, crew.id, ["SN001"], "devolución de prueba"
            )
        assert returned == 1
        assert await stock_of(test_db, equipment_item.id) == 2
