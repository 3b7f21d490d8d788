from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select, update
from sqlalchemy.orm import selectinload

from .models import Order, OrderItem


class OrderStore:
    """Order persistence. Writes never commit; the caller owns the transaction."""

    async def insert_order(self, db: AsyncSession, *, user_id: int, total_amount, shipping_address: str,
                           payment_method: str, status: str, payment_status: str) -> int:
        order = Order(
            user_id=user_id,
            total_amount=total_amount,
            shipping_address=shipping_address,
            payment_method=payment_method,
            status=status,
            payment_status=payment_status,
        )
        db.add(order)
        await db.flush()
        return order.id

    async def insert_line_items(self, db: AsyncSession, order_id: int, items) -> None:
        """``items`` is an ordered iterable of (product_id, quantity, unit_price)."""
        db.add_all(
            OrderItem(order_id=order_id, product_id=product_id, quantity=quantity, price=price)
            for product_id, quantity, price in items
        )
        await db.flush()

    async def update_status(self, db: AsyncSession, order_id: int, fields: dict) -> bool:
        result = await db.execute(
            update(Order)
            .where(Order.id == order_id)
            .values(**fields, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def get_by_id(self, db: AsyncSession, order_id: int, user_id: Optional[int] = None,
                        lock: bool = False) -> Optional[Order]:
        """Load an order with its items; ``user_id`` scopes the lookup to its owner."""
        stmt = select(Order).where(Order.id == order_id)
        if user_id is not None:
            stmt = stmt.where(Order.user_id == user_id)
        if lock:
            stmt = stmt.with_for_update(of=Order)
        stmt = stmt.options(selectinload(Order.items)).execution_options(populate_existing=True)
        result = await db.execute(stmt)
        return result.scalars().first()

    async def list_for_user(self, db: AsyncSession, user_id: int, limit: int, offset: int) -> list[Order]:
        result = await db.execute(
            select(Order)
            .where(Order.user_id == user_id)
            .options(selectinload(Order.items))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def count_for_user(self, db: AsyncSession, user_id: int) -> int:
        result = await db.execute(select(func.count(Order.id)).where(Order.user_id == user_id))
        return result.scalar_one()

    async def list_all(self, db: AsyncSession, limit: int, offset: int, status: Optional[str] = None) -> list[Order]:
        stmt = select(Order)
        if status:
            stmt = stmt.where(Order.status == status)
        result = await db.execute(
            stmt.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    async def count_all(self, db: AsyncSession, status: Optional[str] = None) -> int:
        stmt = select(func.count(Order.id))
        if status:
            stmt = stmt.where(Order.status == status)
        result = await db.execute(stmt)
        return result.scalar_one()
