import json

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Numeric, String, Text
from sqlalchemy.sql import func
from shared.config.database import Base


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    discount_price = Column(Numeric(12, 2), nullable=True)
    stock_quantity = Column(Integer, nullable=False, default=0)
    status = Column(String(16), nullable=False, default="active") # active, inactive
    images = Column(Text, nullable=True) # JSON-encoded list of image paths
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def effective_price(self):
        """Unit price charged at checkout: the discount price wins when set."""
        return self.discount_price if self.discount_price is not None else self.price


def decode_images(raw: str | None) -> list[str]:
    if not raw:
        return []
    return json.loads(raw)
