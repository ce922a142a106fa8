import pytest

from stockpool.core.exceptions import (
    SettingsNotFound, StockLockDisabled, InvalidLockAmount, ThresholdExceeded, ProductNotFound,
)
from stockpool.models import StockLockSettings
from stockpool.schemas.lock import LockPolicy, LockReleaseItem
from stockpool.services import LockService


@pytest.fixture
def product(make_product):
    return make_product("D1", {"Black": {"S": 50, "M": 50, "L": 2, "XL": 0}})


def locked_levels(get_variant):
    return [get_variant(size=size).locked_stock for size in ["S", "M", "L", "XL"]]


def test_missing_settings_means_lock_disabled(db, org_id):
    policy = LockService.get_lock_policy(db, org_id)

    assert policy == LockPolicy(enabled=False, max_threshold=0)
    assert db.query(StockLockSettings).count() == 0


def test_get_or_create_settings_is_idempotent(db, org_id):
    first = LockService.get_or_create_settings(db, org_id)
    second = LockService.get_or_create_settings(db, org_id)

    assert first.id == second.id
    assert (first.enabled, first.max_threshold) == (False, 0)
    assert db.query(StockLockSettings).count() == 1


def test_toggle_requires_settings(db, admin_ctx):
    with pytest.raises(SettingsNotFound):
        LockService.toggle_stock_lock(db, admin_ctx, True, 10)


def test_enable_spreads_threshold_over_stocked_variants(db, admin_ctx, org_id, product, get_variant):
    LockService.get_or_create_settings(db, org_id)

    policy, distribution = LockService.toggle_stock_lock(db, admin_ctx, True, 10)

    assert policy == LockPolicy(enabled=True, max_threshold=10)
    # 10 // 3 = 3 each, first variant takes the remainder, L is capped at its stock
    assert locked_levels(get_variant) == [4, 3, 2, 0]
    assert (distribution.total_locked, distribution.variants_locked) == (9, 3)
    assert LockService.get_lock_policy(db, org_id).enabled is True


def test_enable_twice_does_not_redistribute(db, admin_ctx, org_id, product, get_variant, set_levels):
    LockService.get_or_create_settings(db, org_id)
    LockService.toggle_stock_lock(db, admin_ctx, True, 10)
    set_levels(size="S", locked=0)

    _, distribution = LockService.toggle_stock_lock(db, admin_ctx, True, None)

    assert distribution.total_locked == 0
    assert locked_levels(get_variant) == [0, 3, 2, 0]


def test_enable_distributes_in_catalogue_order(db, admin_ctx, org_id, make_product, get_variant):
    make_product("D2", {"White": {"M": 5}, "Black": {"M": 5}})
    LockService.get_or_create_settings(db, org_id)

    LockService.toggle_stock_lock(db, admin_ctx, True, 3)

    # White is listed first, so it takes the remainder
    assert get_variant("D2", "White", "M").locked_stock == 2
    assert get_variant("D2", "Black", "M").locked_stock == 1


def test_disable_clears_every_lock(db, admin_ctx, org_id, product, get_variant):
    LockService.get_or_create_settings(db, org_id)
    LockService.toggle_stock_lock(db, admin_ctx, True, 10)

    policy, distribution = LockService.toggle_stock_lock(db, admin_ctx, False)

    assert policy.enabled is False
    assert policy.max_threshold == 10
    assert distribution.total_cleared == 9
    assert locked_levels(get_variant) == [0, 0, 0, 0]


def test_distribute_requires_enabled_lock(db, admin_ctx, product):
    with pytest.raises(StockLockDisabled):
        LockService.distribute_stock_lock(db, admin_ctx, LockPolicy(), 5)


def test_distribute_locks_threshold_per_variant(db, admin_ctx, lock_on, product, get_variant):
    distribution = LockService.distribute_stock_lock(db, admin_ctx, lock_on, 5)

    assert locked_levels(get_variant) == [5, 5, 2, 0]
    assert (distribution.total_locked, distribution.variants_locked) == (12, 3)


def test_set_variant_lock_amount(db, admin_ctx, lock_on, product, get_variant):
    LockService.set_variant_lock_amount(db, admin_ctx, lock_on, "D1", "Black", "M", 30)
    assert get_variant(size="M").locked_stock == 30

    with pytest.raises(InvalidLockAmount):
        LockService.set_variant_lock_amount(db, admin_ctx, lock_on, "D1", "Black", "M", 51)
    assert get_variant(size="M").locked_stock == 30

    with pytest.raises(ProductNotFound):
        LockService.set_variant_lock_amount(db, admin_ctx, lock_on, "D9", "Black", "M", 1)


def test_refill_is_capped_by_threshold(db, admin_ctx, lock_on, product, set_levels, get_variant):
    set_levels(size="M", locked=4)

    variant, refilled = LockService.refill_locked_stock(db, admin_ctx, lock_on, "D1", "Black", "M", 20)

    assert refilled == 6
    assert get_variant(size="M").locked_stock == 10

    with pytest.raises(ThresholdExceeded) as exc:
        LockService.refill_locked_stock(db, admin_ctx, lock_on, "D1", "Black", "M", 1)
    assert exc.value.context["max_threshold"] == 10


def test_refill_is_capped_by_unlocked_stock(db, admin_ctx, lock_on, product, set_levels, get_variant):
    set_levels(size="L", locked=1)

    _, refilled = LockService.refill_locked_stock(db, admin_ctx, lock_on, "D1", "Black", "L", 5)
    assert refilled == 1

    with pytest.raises(InvalidLockAmount):
        LockService.refill_locked_stock(db, admin_ctx, lock_on, "D1", "Black", "L", 5)
    assert get_variant(size="L").locked_stock == 2


def test_refill_rejects_non_positive_amount(db, admin_ctx, lock_on, product):
    with pytest.raises(InvalidLockAmount):
        LockService.refill_locked_stock(db, admin_ctx, lock_on, "D1", "Black", "M", 0)


def test_release_variant_locks(db, admin_ctx, lock_on, product, set_levels, get_variant):
    set_levels(size="S", locked=4)
    set_levels(size="M", locked=10)

    results = LockService.release_variant_locks(db, admin_ctx, [
        LockReleaseItem(design="D1", color="Black", size="S", reduce_by=10),
        LockReleaseItem(design="D1", color="Black", size="M", reduce_by=3),
    ])

    assert [r["reduced"] for r in results] == [4, 3]
    assert locked_levels(get_variant)[:2] == [0, 7]


def test_release_is_all_or_nothing(db, admin_ctx, product, set_levels, get_variant):
    set_levels(size="M", locked=10)

    with pytest.raises(InvalidLockAmount) as exc:
        LockService.release_variant_locks(db, admin_ctx, [
            LockReleaseItem(design="D1", color="Black", size="M", reduce_by=3),
            LockReleaseItem(design="D1", color="Black", size="S", reduce_by=0),
        ])

    assert exc.value.context["item_index"] == 1

    assert get_variant(size="M").locked_stock == 10


def test_summary(db, admin_ctx, org_id, product):
    LockService.get_or_create_settings(db, org_id)
    LockService.toggle_stock_lock(db, admin_ctx, True, 10)

    summary = LockService.get_stock_lock_summary(db, org_id)

    assert (summary.enabled, summary.max_threshold, summary.total_locked) == (True, 10, 9)
