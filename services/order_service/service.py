"""Order placement, cancellation and status updates.

Each mutating operation runs in a single database transaction opened with
``session.begin()``: leaving the block without an exception commits, anything
else rolls back every write made so far. Failures are raised as the
``OrderError`` subclasses in ``errors.py``.
"""
import asyncio
import math
from collections import defaultdict
from decimal import Decimal, InvalidOperation
from typing import Iterable, NamedTuple, Optional

import structlog
from sqlalchemy.exc import DBAPIError, TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from services.product_service.repository import ProductCatalog
from shared.config import settings
from shared.config.database import apply_lock_timeout
from shared.observability import (
    ecomm_order_cancellations_total,
    ecomm_order_placement_duration_seconds,
    ecomm_orders_placed_total,
    ecomm_stock_units_reserved_total,
    ecomm_stock_units_restored_total,
)

from .errors import (
    InsufficientStock,
    InvalidStatus,
    InvalidStatusTransition,
    OrderError,
    OrderNotCancellable,
    OrderNotFound,
    ProductNotFound,
    TotalMismatch,
    TransientError,
)
from .models import Order, OrderStatus, PaymentMethod, PaymentStatus
from .repository import OrderStore
from .schemas import OrderListResponse, OrderResponse, OrderSummaryListResponse, OrderSummaryResponse, Pagination

logger = structlog.get_logger(__name__)

# PostgreSQL: serialization failure, deadlock, lock_timeout, statement timeout
_TRANSIENT_SQLSTATES = {"40001", "40P01", "55P03", "57014"}
# MySQL: lock wait timeout, deadlock
_TRANSIENT_MYSQL_ERRNOS = {1205, 1213}

# Fulfilment order; cancellation sits outside it and is terminal
_STATUS_PROGRESSION = [
    OrderStatus.PENDING.value,
    OrderStatus.CONFIRMED.value,
    OrderStatus.SHIPPING.value,
    OrderStatus.DELIVERED.value,
]


class PricedLine(NamedTuple):
    product_id: int
    quantity: int
    price: Decimal


class OrderPlacementService:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        catalog: ProductCatalog,
        store: OrderStore,
        total_tolerance: Decimal = settings.ORDER_TOTAL_TOLERANCE,
        non_cancellable_statuses: Iterable[str] = settings.ORDER_NON_CANCELLABLE_STATUSES,
        transaction_timeout: Optional[float] = settings.ORDER_TRANSACTION_TIMEOUT,
        lock_timeout_ms: int = settings.ORDER_LOCK_TIMEOUT_MS,
    ):
        self.session_factory = session_factory
        self.catalog = catalog
        self.store = store
        self.total_tolerance = Decimal(str(total_tolerance))
        self.non_cancellable_statuses = frozenset(non_cancellable_statuses)
        self.transaction_timeout = transaction_timeout
        self.lock_timeout_ms = lock_timeout_ms

    # --- placement ---

    async def place_order(self, user_id: int, items, shipping_address: str, payment_method,
                          total_amount) -> Order:
        """Reserve stock and persist a pending order, all or nothing.

        ``items`` is an ordered sequence of objects exposing ``product_id``
        and ``quantity``. ``total_amount`` is what the client believes the
        order costs; the stored total is always recomputed from the catalog.
        """
        items = list(items)
        if not items:
            raise ValueError("Order must contain at least one item.")
        if any(item.quantity < 1 for item in items):
            raise ValueError("Invalid Quantity.")
        method = PaymentMethod(payment_method).value
        try:
            declared = Decimal(str(total_amount))
        except InvalidOperation:
            raise ValueError("Invalid total amount.")
        if not declared.is_finite():
            raise ValueError("Invalid total amount.")

        async def work(db: AsyncSession) -> int:
            lines = await self._price_lines(db, items)
            expected = sum((line.price * line.quantity for line in lines), Decimal("0"))
            if abs(expected - declared) > self.total_tolerance:
                raise TotalMismatch(expected, declared)

            order_id = await self.store.insert_order(
                db,
                user_id=user_id,
                total_amount=expected,
                shipping_address=shipping_address,
                payment_method=method,
                status=OrderStatus.PENDING.value,
                payment_status=PaymentStatus.PENDING.value,
            )
            await self.store.insert_line_items(db, order_id, lines)
            for line in lines:
                await self.catalog.decrement_stock(db, line.product_id, line.quantity)
            return order_id

        try:
            with ecomm_order_placement_duration_seconds.time():
                order = await self._run("place_order", work)
        except OrderError as exc:
            ecomm_orders_placed_total.labels(status=exc.code).inc()
            logger.warning("order_rejected", user_id=user_id, code=exc.code, **exc.details)
            raise

        ecomm_orders_placed_total.labels(status="success").inc()
        ecomm_stock_units_reserved_total.inc(sum(item.quantity for item in items))
        logger.info("order_placed", order_id=order.id, user_id=user_id,
                    total_amount=str(order.total_amount), lines=len(items))
        return order

    async def _price_lines(self, db: AsyncSession, items) -> list[PricedLine]:
        """Validate each requested line against locked stock and capture its unit price."""
        products = await self.catalog.lock_active_by_ids(db, [item.product_id for item in items])
        reserved = defaultdict(int)
        lines = []
        for item in items:
            product = products.get(item.product_id)
            if product is None:
                raise ProductNotFound(item.product_id)
            available = product.stock_quantity - reserved[item.product_id]
            if available < item.quantity:
                raise InsufficientStock(item.product_id, available)
            reserved[item.product_id] += item.quantity
            lines.append(PricedLine(item.product_id, item.quantity, product.effective_price))
        return lines

    # --- cancellation ---

    async def cancel_order(self, order_id: int, requester_id: int, requester_is_admin: bool = False) -> Order:
        """Cancel an order and give every reserved unit back to the catalog."""
        restored = 0

        async def work(db: AsyncSession) -> int:
            nonlocal restored
            scope = None if requester_is_admin else requester_id
            order = await self.store.get_by_id(db, order_id, user_id=scope, lock=True)
            if order is None:
                raise OrderNotFound(order_id)
            if order.status in self.non_cancellable_statuses:
                raise OrderNotCancellable(order_id, order.status)

            restored = await self._restore_stock(db, order)
            await self.store.update_status(db, order_id, {"status": OrderStatus.CANCELLED.value})
            return order_id

        try:
            order = await self._run("cancel_order", work)
        except OrderError as exc:
            ecomm_order_cancellations_total.labels(status=exc.code).inc()
            logger.warning("order_cancel_rejected", order_id=order_id, requester_id=requester_id,
                           code=exc.code)
            raise

        ecomm_order_cancellations_total.labels(status="success").inc()
        ecomm_stock_units_restored_total.inc(restored)
        logger.info("order_cancelled", order_id=order_id, requester_id=requester_id,
                    units_restored=restored)
        return order

    async def _restore_stock(self, db: AsyncSession, order: Order) -> int:
        """Give each line's stored quantity back to the catalog."""
        restored = 0
        for item in order.items:
            await self.catalog.increment_stock(db, item.product_id, item.quantity)
            restored += item.quantity
        return restored

    # --- admin status updates ---

    async def update_order_status(self, order_id: int, status: Optional[str] = None,
                                  payment_status: Optional[str] = None) -> Order:
        """Move an order forward through its lifecycle.

        Setting ``cancelled`` goes through the same stock compensation as
        ``cancel_order``; any other change must move the status forward.
        """
        fields = {}
        if status:
            if status not in {s.value for s in OrderStatus}:
                raise InvalidStatus("status", status)
            fields["status"] = status
        if payment_status:
            if payment_status not in {s.value for s in PaymentStatus}:
                raise InvalidStatus("payment_status", payment_status)
            fields["payment_status"] = payment_status
        restored = 0

        async def work(db: AsyncSession) -> int:
            nonlocal restored
            order = await self.store.get_by_id(db, order_id, lock=True)
            if order is None:
                raise OrderNotFound(order_id)
            if status and status != order.status:
                if status == OrderStatus.CANCELLED.value:
                    if order.status in self.non_cancellable_statuses:
                        raise OrderNotCancellable(order_id, order.status)
                    restored = await self._restore_stock(db, order)
                elif not is_forward_transition(order.status, status):
                    raise InvalidStatusTransition(order_id, order.status, status)
            await self.store.update_status(db, order_id, fields)
            return order_id

        order = await self._run("update_order_status", work)
        if restored:
            ecomm_stock_units_restored_total.inc(restored)
        logger.info("order_status_updated", order_id=order_id, units_restored=restored, **fields)
        return order

    # --- reads ---

    async def get_order(self, order_id: int, requester_id: int, requester_is_admin: bool = False) -> Order:
        scope = None if requester_is_admin else requester_id
        async with self.session_factory() as db:
            order = await self._guard(self.store.get_by_id(db, order_id, user_id=scope))
        if order is None:
            raise OrderNotFound(order_id)
        return order

    async def list_orders_for_user(self, user_id: int, page: int = 1, limit: int = 10) -> OrderListResponse:
        page, limit, offset = paginate(page, limit)
        async with self.session_factory() as db:
            orders = await self._guard(self.store.list_for_user(db, user_id, limit, offset))
            total = await self._guard(self.store.count_for_user(db, user_id))
        return OrderListResponse(
            orders=[OrderResponse.model_validate(o) for o in orders],
            pagination=build_pagination(page, limit, total),
        )

    async def list_all_orders(self, page: int = 1, limit: int = 20,
                              status: Optional[str] = None) -> OrderSummaryListResponse:
        page, limit, offset = paginate(page, limit)
        async with self.session_factory() as db:
            orders = await self._guard(self.store.list_all(db, limit, offset, status))
            total = await self._guard(self.store.count_all(db, status))
        return OrderSummaryListResponse(
            orders=[OrderSummaryResponse.model_validate(o) for o in orders],
            pagination=build_pagination(page, limit, total),
        )

    # --- transaction plumbing ---

    async def _run(self, operation: str, work) -> Order:
        """Run ``work`` in one transaction, then reload the order it touched."""
        async def attempt() -> Order:
            async with self.session_factory() as db:
                async with db.begin():
                    await apply_lock_timeout(db, self.lock_timeout_ms)
                    order_id = await work(db)
                order = await self.store.get_by_id(db, order_id)
                await db.commit()
                return order

        try:
            if self.transaction_timeout:
                return await self._guard(asyncio.wait_for(attempt(), timeout=self.transaction_timeout))
            return await self._guard(attempt())
        except asyncio.TimeoutError as exc:
            raise TransientError("Order transaction timed out", operation=operation) from exc

    async def _guard(self, awaitable):
        """Translate lock and pool contention into TransientError."""
        try:
            return await awaitable
        except PoolTimeoutError as exc:
            raise TransientError("Database connection pool exhausted") from exc
        except DBAPIError as exc:
            if is_transient_db_error(exc):
                raise TransientError("Database lock contention, please retry") from exc
            raise


def is_transient_db_error(exc: DBAPIError) -> bool:
    if exc.connection_invalidated:
        return True
    orig = exc.orig
    sqlstate = (
        getattr(orig, "sqlstate", None)
        or getattr(orig, "pgcode", None)
        or getattr(getattr(orig, "__cause__", None), "sqlstate", None)
    )
    if sqlstate in _TRANSIENT_SQLSTATES:
        return True
    args = getattr(orig, "args", ())
    if args and isinstance(args[0], int) and args[0] in _TRANSIENT_MYSQL_ERRNOS:
        return True
    return "database is locked" in str(orig).lower()


def is_forward_transition(current: str, new: str) -> bool:
    if current not in _STATUS_PROGRESSION or new not in _STATUS_PROGRESSION:
        return False
    return _STATUS_PROGRESSION.index(new) > _STATUS_PROGRESSION.index(current)


def paginate(page: int, limit: int) -> tuple[int, int, int]:
    page = max(1, int(page or 1))
    limit = max(1, int(limit or 1))
    return page, limit, (page - 1) * limit


def build_pagination(page: int, limit: int, total: int) -> Pagination:
    total_pages = math.ceil(total / limit) if total else 0
    return Pagination(
        current_page=page,
        total_pages=total_pages,
        total_orders=total,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )
