"""Shared fixtures: a throwaway SQLite database per test and seeding helpers."""
import os

# Must be set before anything under shared/ or services/ is imported
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["TRACING_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"

from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from shared.config.database import Base
from services.product_service.models import Product
from services.product_service.repository import ProductCatalog
from services.order_service.models import Order, OrderItem
from services.order_service.repository import OrderStore
from services.order_service.service import OrderPlacementService


@pytest_asyncio.fixture
async def engine(tmp_path):
    # File-backed so separate sessions (and concurrent ones) see the same data
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}",
        connect_args={"timeout": 2},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def service(session_factory):
    return OrderPlacementService(
        session_factory,
        ProductCatalog(),
        OrderStore(),
        total_tolerance=Decimal("0.01"),
        transaction_timeout=10,
        lock_timeout_ms=0,
    )


@pytest.fixture
def add_product(session_factory):
    async def _add(price="100000", discount_price=None, stock=5, status="active",
                   name="Baby blanket", images=None):
        async with session_factory() as db:
            product = Product(
                name=name,
                price=Decimal(price),
                discount_price=Decimal(discount_price) if discount_price is not None else None,
                stock_quantity=stock,
                status=status,
                images=images,
            )
            db.add(product)
            await db.commit()
            return product.id
    return _add


@pytest.fixture
def stock_of(session_factory):
    async def _stock(product_id):
        async with session_factory() as db:
            result = await db.execute(select(Product.stock_quantity).where(Product.id == product_id))
            return result.scalar_one()
    return _stock


@pytest.fixture
def row_counts(session_factory):
    async def _counts():
        async with session_factory() as db:
            orders = (await db.execute(select(func.count(Order.id)))).scalar_one()
            items = (await db.execute(select(func.count(OrderItem.id)))).scalar_one()
            return orders, items
    return _counts
