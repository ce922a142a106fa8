import pytest

from stockpool.core.exceptions import InsufficientStock, ReservedBorrowRequired
from stockpool.models import StockTransfer
from stockpool.schemas.stock import TransferItem
from stockpool.services import StockService


@pytest.fixture
def product(make_product, set_levels):
    make_product("D1", {"Black": {"S": 10, "M": 10}})
    set_levels(size="M", current=10, reserved=5, locked=6)


def item(size="M", quantity=1):
    return TransferItem(design="D1", color="Black", size=size, quantity=quantity)


def test_lock_disabled_sells_from_all_main_stock(db, admin_ctx, no_lock, product, get_variant):
    lines = StockService.consume_for_channel_sale(db, admin_ctx, no_lock, [item(quantity=8)])

    assert (lines[0].from_main, lines[0].borrowed_from_reserved) == (8, 0)
    variant = get_variant()
    assert (variant.current_stock, variant.locked_stock, variant.reserved_stock) == (2, 2, 5)


def test_shortfall_asks_before_borrowing(db, admin_ctx, lock_on, product, get_variant):
    with pytest.raises(ReservedBorrowRequired) as exc:
        StockService.consume_for_channel_sale(db, admin_ctx, lock_on, [item(quantity=6)])

    assert exc.value.context["deficit"] == 2
    assert exc.value.context["available_main"] == 4
    variant = get_variant()
    assert (variant.current_stock, variant.reserved_stock) == (10, 5)


def test_borrow_from_reserved_records_emergency_borrow(db, admin_ctx, lock_on, product, get_variant):
    lines = StockService.consume_for_channel_sale(
        db, admin_ctx, lock_on, [item(quantity=6)], channel="direct", reference="INV-7", borrow_from_reserved=True
    )

    assert (lines[0].from_main, lines[0].borrowed_from_reserved) == (4, 2)
    variant = get_variant()
    assert (variant.current_stock, variant.locked_stock, variant.reserved_stock) == (6, 6, 3)

    borrow = db.query(StockTransfer).one()
    assert borrow.transfer_type == "emergency_borrow"
    assert (borrow.from_pool, borrow.to_pool) == ("reserved", "main")
    assert (borrow.main_stock_before, borrow.main_stock_after) == (10, 12)
    assert (borrow.reserved_stock_before, borrow.reserved_stock_after) == (5, 3)
    assert (borrow.related_order_id, borrow.related_order_type) == ("INV-7", "direct")


def test_main_and_reserved_cannot_cover(db, admin_ctx, lock_on, product):
    with pytest.raises(InsufficientStock):
        StockService.consume_for_channel_sale(db, admin_ctx, lock_on, [item(quantity=10)], borrow_from_reserved=True)


def test_channel_sale_is_all_or_nothing(db, admin_ctx, no_lock, product, get_variant):
    with pytest.raises(InsufficientStock) as exc:
        StockService.consume_for_channel_sale(db, admin_ctx, no_lock, [item("S", 5), item("S", 6)])

    assert exc.value.context["item_index"] == 1
    assert get_variant(size="S").current_stock == 10
