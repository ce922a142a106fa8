import uuid

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from stockpool.core import Base, settings
from stockpool.core.database import retry_on_conflict
from stockpool.core.exceptions import ConcurrentUpdate, InsufficientStock
from stockpool.models import StockTransfer
from stockpool.schemas.common import RequestContext
from stockpool.schemas.stock import ProductCreate, ColorCreate, SizeCreate
from stockpool.services import StockService, TransferService


@pytest.fixture
def file_sessions(tmp_path):
    """Session factory on a file database, so two sessions use separate connections"""
    engine = create_engine(f"sqlite:///{tmp_path / 'stock.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def ctx():
    return RequestContext(organization_id=uuid.uuid4(), user_id=uuid.uuid4(), role="admin")


@pytest.fixture
def stocked(file_sessions, ctx):
    with file_sessions() as session:
        StockService.create_product(session, ctx, ProductCreate(
            design="D1",
            colors=[ColorCreate(color="Black", sizes=[SizeCreate(size="M", current_stock=10)])],
        ))


def pools(session_factory, ctx):
    with session_factory() as session:
        variant = StockService.find_variant(session, ctx.organization_id, "D1", "Black", "M")
        return variant.current_stock, variant.reserved_stock


def transfer_count(session_factory):
    with session_factory() as session:
        return session.query(StockTransfer).count()


def commit_competing_transfer(session_factory, ctx, quantity):
    """before_flush hook that lets another session move stock first"""
    def _competing(session, flush_context, instances):
        with session_factory() as other:
            TransferService.transfer_to_reserved(other, ctx, "D1", "Black", "M", quantity)
    return _competing


def test_stale_write_is_retried_against_fresh_stock(file_sessions, ctx, stocked):
    session = file_sessions()
    event.listen(session, "before_flush", commit_competing_transfer(file_sessions, ctx, 8), once=True)
    try:
        # First attempt read main=10 but the competing transfer left 2; the retry sees that
        with pytest.raises(InsufficientStock) as exc:
            TransferService.transfer_to_reserved(session, ctx, "D1", "Black", "M", 10)
    finally:
        session.close()

    assert exc.value.context["available"] == 2
    assert pools(file_sessions, ctx) == (2, 8)
    assert transfer_count(file_sessions) == 1


def test_stale_write_succeeds_when_stock_still_covers_it(file_sessions, ctx, stocked):
    session = file_sessions()
    event.listen(session, "before_flush", commit_competing_transfer(file_sessions, ctx, 3), once=True)
    try:
        transfer, _ = TransferService.transfer_to_reserved(session, ctx, "D1", "Black", "M", 4)
    finally:
        session.close()

    assert (transfer.main_stock_before, transfer.main_stock_after) == (7, 3)
    assert pools(file_sessions, ctx) == (3, 7)
    assert transfer_count(file_sessions) == 2


def test_gives_up_after_configured_attempts(file_sessions, ctx, stocked, monkeypatch):
    monkeypatch.setattr(settings, "STOCK_CONFLICT_RETRIES", 2)
    session = file_sessions()
    event.listen(session, "before_flush", commit_competing_transfer(file_sessions, ctx, 1))
    try:
        with pytest.raises(ConcurrentUpdate) as exc:
            TransferService.transfer_to_reserved(session, ctx, "D1", "Black", "M", 5)
    finally:
        session.close()

    assert exc.value.status_code == 409
    assert exc.value.context == {"operation": "transfer_to_reserved", "attempts": 2}
    # Only the two competing transfers landed
    assert pools(file_sessions, ctx) == (8, 2)
    assert transfer_count(file_sessions) == 2


class FakeSession:
    def __init__(self):
        self.rollbacks = 0

    def rollback(self):
        self.rollbacks += 1


class DriverError(Exception):
    def __init__(self, pgcode):
        super().__init__(f"pgcode {pgcode}")
        self.pgcode = pgcode


def failing_call(pgcodes):
    """Service call that fails once per pgcode, then succeeds"""
    pending = list(pgcodes)

    @retry_on_conflict
    def move_stock(db):
        if pending:
            raise OperationalError("UPDATE variant_stock", {}, DriverError(pending.pop(0)))
        return "moved"
    return move_stock


def test_deadlock_victim_is_retried():
    db = FakeSession()

    assert failing_call(["40P01", "40001"])(db) == "moved"
    assert db.rollbacks == 2


def test_repeated_deadlocks_become_concurrent_update(monkeypatch):
    monkeypatch.setattr(settings, "STOCK_CONFLICT_RETRIES", 2)

    with pytest.raises(ConcurrentUpdate) as exc:
        failing_call(["40P01", "40P01", "40P01"])(FakeSession())

    assert exc.value.context["attempts"] == 2


def test_other_operational_errors_propagate():
    db = FakeSession()

    with pytest.raises(OperationalError):
        failing_call(["08006"])(db)
    assert db.rollbacks == 0
