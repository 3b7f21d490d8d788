from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from sqlalchemy.sql import func

from services.order_service.errors import InsufficientStock, ProductNotFound
from .models import Product


class ProductCatalog:
    """Product reads and stock writes used by checkout.

    Every method runs on the caller's session and never commits, so all of
    them join whatever transaction the caller has open.
    """

    async def get_active_by_id(self, db: AsyncSession, product_id: int, lock: bool = True) -> Product:
        stmt = select(Product).where(Product.id == product_id, Product.status == "active")
        if lock:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt.execution_options(populate_existing=True))
        product = result.scalars().first()
        if product is None:
            raise ProductNotFound(product_id)
        return product

    async def lock_active_by_ids(self, db: AsyncSession, product_ids) -> dict[int, Product]:
        """Lock the active rows among ``product_ids`` in ascending id order.

        A consistent lock order keeps two checkouts over the same products
        from deadlocking each other. Missing or inactive ids are simply
        absent from the result.
        """
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        stmt = (
            select(Product)
            .where(Product.id.in_(ids), Product.status == "active")
            .order_by(Product.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return {p.id: p for p in result.scalars().all()}

    async def decrement_stock(self, db: AsyncSession, product_id: int, amount: int) -> None:
        # Guarded so stock can never go below zero, even without row locks
        result = await db.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock_quantity >= amount)
            .values(stock_quantity=Product.stock_quantity - amount, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            available = await self.get_stock(db, product_id)
            raise InsufficientStock(product_id, available or 0)

    async def increment_stock(self, db: AsyncSession, product_id: int, amount: int) -> None:
        # Restocking does not require the product to still be active
        result = await db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock_quantity=Product.stock_quantity + amount, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ProductNotFound(product_id)

    async def get_stock(self, db: AsyncSession, product_id: int) -> int | None:
        result = await db.execute(select(Product.stock_quantity).where(Product.id == product_id))
        return result.scalar_one_or_none()
