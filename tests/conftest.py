import os

os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite://")

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stockpool.core import Base, get_db
from stockpool.models import VariantStock
from stockpool.schemas.common import RequestContext
from stockpool.schemas.lock import LockPolicy
from stockpool.schemas.stock import ProductCreate, ColorCreate, SizeCreate
from stockpool.services import StockService

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def org_id():
    return uuid.uuid4()


@pytest.fixture
def admin_ctx(org_id):
    return RequestContext(organization_id=org_id, user_id=uuid.uuid4(), role="admin")


@pytest.fixture
def sales_ctx(org_id):
    return RequestContext(organization_id=org_id, user_id=uuid.uuid4(), role="sales")


@pytest.fixture
def no_lock():
    return LockPolicy(enabled=False, max_threshold=0)


@pytest.fixture
def lock_on():
    return LockPolicy(enabled=True, max_threshold=10)


@pytest.fixture
def make_product(db, admin_ctx):
    """Create a design; ``colors`` maps color -> {size: opening stock}"""
    def _make(design="D1", colors=None):
        colors = colors or {"Black": {"S": 100, "M": 100, "L": 100}}
        data = ProductCreate(
            design=design,
            colors=[
                ColorCreate(color=color, sizes=[SizeCreate(size=s, current_stock=q) for s, q in sizes.items()])
                for color, sizes in colors.items()
            ],
        )
        return StockService.create_product(db, admin_ctx, data)
    return _make


@pytest.fixture
def get_variant(db, org_id):
    def _get(design="D1", color="Black", size="M") -> VariantStock:
        db.expire_all()
        return StockService.find_variant(db, org_id, design, color, size)
    return _get


@pytest.fixture
def set_levels(db, get_variant):
    """Force pool levels on a variant, bypassing the services"""
    def _set(design="D1", color="Black", size="M", current=None, reserved=None, locked=None):
        variant = get_variant(design, color, size)
        if current is not None:
            variant.current_stock = current
        if reserved is not None:
            variant.reserved_stock = reserved
        if locked is not None:
            variant.locked_stock = locked
        db.commit()
        return variant
    return _set


@pytest.fixture
def client(db):
    from main import app

    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
