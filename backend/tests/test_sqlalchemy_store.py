import pytest
from sqlalchemy import select
from sqlalchemy.dialects import postgresql

from db.inventory.movement import InventoryMovement
from db.media import Media
from services.exceptions import InsufficientStock, StockItemNotFound, TrackingDisabled
from services.records import MovementKind
from services.stock_store import select_media


async def _media(sql_session_maker, media_id):
    async with sql_session_maker() as db:
        return await db.get(Media, media_id)


async def _movement_rows(sql_session_maker, media_id):
    async with sql_session_maker() as db:
        res = await db.execute(
            select(InventoryMovement).where(InventoryMovement.media_id == media_id).order_by(InventoryMovement.id)
        )
        return res.scalars().all()


def test_locked_select_renders_for_update():
    sql = str(select_media(7, lock=True).compile(dialect=postgresql.dialect()))

    assert "FOR UPDATE" in sql
    assert "FOR UPDATE" not in str(select_media(7).compile(dialect=postgresql.dialect()))


async def test_deduct_persists_bundle_map_with_string_keys(sql_service, sql_session_maker, add_media):
    # given
    media_id = await add_media(track_inventory=True, inventory_stock={"50": 3, "20": 5, "1": 100})

    # when
    item = await sql_service.deduct_stock(media_id, 120, order_id=4)

    # then
    assert item.inventory == {50: 1, 20: 4, 1: 100}
    media = await _media(sql_session_maker, media_id)
    assert media.inventory_stock == {"1": 100, "20": 4, "50": 1}
    rows = await _movement_rows(sql_session_maker, media_id)
    assert len(rows) == 1
    assert rows[0].quantity_change == -120
    assert rows[0].quantity_after == 230
    assert rows[0].type == MovementKind.DEDUCTION.value
    assert rows[0].order_id == 4
    assert rows[0].denomination_deltas == {"20": -1, "50": -2}


async def test_failed_deduct_rolls_back_row_and_movement(sql_service, sql_session_maker, add_media):
    media_id = await add_media(track_inventory=True, inventory_stock={"50": 1})

    with pytest.raises(InsufficientStock):
        await sql_service.deduct_stock(media_id, 30)

    media = await _media(sql_session_maker, media_id)
    assert media.inventory_stock == {"50": 1}
    assert await _movement_rows(sql_session_maker, media_id) == []


async def test_restore_and_set_stock_round_trip(sql_service, sql_session_maker, add_media, staff_id):
    # given
    media_id = await add_media(track_inventory=True, inventory_stock={"50": 0, "20": 0, "1": 0})

    # when
    await sql_service.restore_stock(media_id, 75, order_id=2)
    item = await sql_service.set_stock(media_id, 20, 6, staff_id)

    # then
    assert item.inventory == {50: 1, 20: 6, 1: 5}
    movements = await sql_service.get_movements(media_id)
    assert [m.quantity_change for m in movements] == [75, 100]
    assert [m.quantity_after for m in movements] == [75, 175]
    assert movements[1].changed_by == staff_id
    assert movements[1].reason == "Manual adjustment"
    assert movements[1].kind is MovementKind.ADDITION
    assert movements[0].denomination_deltas == {50: 1, 20: 1, 1: 5}


async def test_set_stock_on_untracked_media_is_rejected(sql_service, add_media, staff_id):
    media_id = await add_media(track_inventory=False)

    with pytest.raises(TrackingDisabled):
        await sql_service.set_stock(media_id, 20, 3, staff_id)


async def test_untracked_media_passes_through_deduct(sql_service, sql_session_maker, add_media):
    media_id = await add_media(track_inventory=False)

    item = await sql_service.deduct_stock(media_id, 10)

    assert item.inventory is None
    assert await _movement_rows(sql_session_maker, media_id) == []


async def test_enable_tracking_uses_configured_bundle_sizes(sql_service, sql_session_maker, add_media):
    media_id = await add_media(bundle_sizes=[1, 25, 100])

    item = await sql_service.enable_tracking(media_id, True, low_stock_threshold=40)

    assert item.inventory == {100: 0, 25: 0, 1: 0}
    media = await _media(sql_session_maker, media_id)
    assert media.track_inventory is True
    assert media.inventory_stock == {"1": 0, "25": 0, "100": 0}
    assert media.low_stock_threshold == 40


async def test_low_stock_query(sql_service, add_media):
    low = await add_media(name="low", track_inventory=True, inventory_stock={"20": 1}, low_stock_threshold=20)
    await add_media(name="plenty", track_inventory=True, inventory_stock={"50": 2}, low_stock_threshold=20)
    await add_media(name="no threshold", track_inventory=True, inventory_stock={"1": 0})
    await add_media(name="untracked", track_inventory=False, inventory_stock={"1": 0}, low_stock_threshold=5)

    items = await sql_service.get_low_stock_items()

    assert [i.id for i in items] == [low]
    assert await sql_service.count_low_stock_items() == 1
    assert await sql_service.is_low_stock(low) is True


async def test_check_stock_compares_total_units(sql_service, add_media):
    media_id = await add_media(track_inventory=True, inventory_stock={"50": 1, "1": 3})

    assert await sql_service.check_stock(media_id, 53) is True
    assert await sql_service.check_stock(media_id, 54) is False


async def test_missing_media_raises_not_found(sql_service):
    with pytest.raises(StockItemNotFound):
        await sql_service.deduct_stock(999, 1)
    with pytest.raises(StockItemNotFound):
        await sql_service.get_movements(999)


async def test_audit_ledger_against_database(sql_service, add_media, staff_id):
    media_id = await add_media(bundle_sizes=[1, 20])
    await sql_service.enable_tracking(media_id, True)
    await sql_service.set_stock(media_id, 20, 5, staff_id)
    await sql_service.deduct_stock(media_id, 40)
    drifted = await add_media(name="seeded by hand", track_inventory=True, inventory_stock={"1": 9})

    drifts = await sql_service.audit_ledger()

    assert [d.stock_item_id for d in drifts] == [drifted]
