import pytest

from stockpool.core.exceptions import (
    InsufficientStock, InsufficientLockedStock, InvalidLockAmount, InvalidQuantity,
)
from stockpool.models import VariantStock, StockPool
from stockpool.models.product import check_quantity


def make_variant(current=10, reserved=0, locked=0):
    return VariantStock(
        design="D1", color="Black", size="M",
        current_stock=current, reserved_stock=reserved, locked_stock=locked,
    )


def test_deduct_main_reports_shortfall_context():
    variant = make_variant(current=3)

    with pytest.raises(InsufficientStock) as exc:
        variant.deduct(StockPool.MAIN, 5)

    assert exc.value.context["available"] == 3
    assert exc.value.context["requested"] == 5
    assert exc.value.context["size"] == "M"
    assert variant.current_stock == 3


def test_deduct_locked_takes_from_locked_and_main():
    variant = make_variant(current=10, locked=10)

    variant.deduct(StockPool.LOCKED, 4)

    assert (variant.current_stock, variant.locked_stock) == (6, 6)


def test_deduct_locked_beyond_buffer():
    variant = make_variant(current=50, locked=2)

    with pytest.raises(InsufficientLockedStock):
        variant.deduct(StockPool.LOCKED, 3)


def test_deduct_main_consumes_lock_first():
    variant = make_variant(current=20, locked=5)

    variant.deduct(StockPool.MAIN, 3, consume_lock=True)

    assert (variant.current_stock, variant.locked_stock) == (17, 2)


def test_deduct_main_keeps_locked_within_current():
    variant = make_variant(current=10, locked=8)

    variant.deduct(StockPool.MAIN, 5)

    assert (variant.current_stock, variant.locked_stock) == (5, 5)


def test_credit_locked_grows_main_too():
    variant = make_variant(current=50, locked=0)

    variant.credit(StockPool.LOCKED, 10)

    assert (variant.current_stock, variant.locked_stock) == (60, 10)


def test_credit_reserved():
    variant = make_variant(current=5, reserved=1)

    variant.credit(StockPool.RESERVED, 4)

    assert (variant.current_stock, variant.reserved_stock) == (5, 5)


def test_set_lock_bounds():
    variant = make_variant(current=10)

    variant.set_lock(10)
    assert variant.locked_stock == 10

    with pytest.raises(InvalidLockAmount):
        variant.set_lock(11)
    with pytest.raises(InvalidLockAmount):
        variant.set_lock(-1)


def test_available_for_general_sale():
    variant = make_variant(current=10, locked=4)

    assert variant.available_for_general_sale(True) == 6
    assert variant.available_for_general_sale(False) == 10


@pytest.mark.parametrize("quantity", [0, -3, True, 1.5, "2"])
def test_check_quantity_rejects(quantity):
    with pytest.raises(InvalidQuantity):
        check_quantity(quantity)
