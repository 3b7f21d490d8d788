from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .models import PaymentMethod


class OrderItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(ge=1)


class OrderCreate(BaseModel):
    items: List[OrderItemCreate] = Field(min_length=1)
    shipping_address: str
    payment_method: PaymentMethod
    total_amount: Decimal = Field(ge=0) # client-side total, only used as a cross-check

    @field_validator("shipping_address")
    @classmethod
    def shipping_address_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("shipping_address must not be empty")
        return value


class OrderStatusUpdate(BaseModel):
    # Plain strings so unknown values reach the service and come back as invalid_status
    status: Optional[str] = None
    payment_status: Optional[str] = None


class OrderItemResponse(BaseModel):
    id: int
    product_id: int
    quantity: int
    price: Decimal
    product_name: Optional[str] = None
    images: List[str] = []

    class Config:
        from_attributes = True


class OrderSummaryResponse(BaseModel):
    id: int
    user_id: int
    total_amount: Decimal
    shipping_address: str
    payment_method: str
    status: str
    payment_status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrderResponse(OrderSummaryResponse):
    items: List[OrderItemResponse] = []


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total_orders: int
    has_next_page: bool
    has_prev_page: bool


class OrderListResponse(BaseModel):
    orders: List[OrderResponse]
    pagination: Pagination


class OrderSummaryListResponse(BaseModel):
    orders: List[OrderSummaryResponse]
    pagination: Pagination


class OrderEnvelope(BaseModel):
    message: str
    order: OrderResponse


class OrderStatusEnvelope(BaseModel):
    message: str
    order: OrderSummaryResponse
