import enum

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from shared.config.database import Base
from services.product_service.models import Product, decode_images  # noqa: F401 - registers the products table


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPING = "shipping"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class PaymentMethod(str, enum.Enum):
    COD = "cod"
    BANK_TRANSFER = "bank_transfer"
    MOMO = "momo"
    ZALOPAY = "zalopay"
    VNPAY = "vnpay"


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    total_amount = Column(Numeric(12, 2), nullable=False) # recomputed from catalog prices
    shipping_address = Column(Text, nullable=False)
    payment_method = Column(String(32), nullable=False)
    status = Column(String(16), nullable=False, default=OrderStatus.PENDING.value)
    payment_status = Column(String(16), nullable=False, default=PaymentStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Items are written once with the order and only removed with it
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all",
        passive_deletes=True,
        order_by="OrderItem.id",
    )


class OrderItem(Base):
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False) # unit price snapshot at order time

    order = relationship("Order", back_populates="items")
    product = relationship("Product", lazy="joined")

    @property
    def product_name(self):
        return self.product.name if self.product is not None else None

    @property
    def images(self) -> list[str]:
        return decode_images(self.product.images) if self.product is not None else []
