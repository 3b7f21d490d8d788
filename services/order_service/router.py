from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from services.product_service.repository import ProductCatalog
from shared.config.database import AsyncSessionLocal
from shared.config.settings import ORDER_RATE_LIMIT
from shared.security import AuthenticatedUser, get_current_user, limiter, require_admin

from .repository import OrderStore
from .schemas import (
    OrderCreate,
    OrderEnvelope,
    OrderListResponse,
    OrderResponse,
    OrderStatusEnvelope,
    OrderStatusUpdate,
    OrderSummaryListResponse,
    OrderSummaryResponse,
)
from .service import OrderPlacementService

router = APIRouter()
public_router = APIRouter()  # For any public endpoints (e.g. health check)


def get_order_service() -> OrderPlacementService:
    return OrderPlacementService(AsyncSessionLocal, ProductCatalog(), OrderStore())


@public_router.get("/health")
async def health_check():
    return {"service": "order", "status": "running"}


@router.post("/", response_model=OrderEnvelope, status_code=status.HTTP_201_CREATED)
@limiter.limit(ORDER_RATE_LIMIT)
async def create_order(
    request: Request,                          # slowapi needs this to resolve the caller
    payload: OrderCreate,
    user: AuthenticatedUser = Depends(get_current_user),
    service: OrderPlacementService = Depends(get_order_service),
):
    try:
        order = await service.place_order(
            user_id=user.id,
            items=payload.items,
            shipping_address=payload.shipping_address,
            payment_method=payload.payment_method,
            total_amount=payload.total_amount,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"message": "Order created successfully", "order": OrderResponse.model_validate(order)}


@router.get("/", response_model=OrderListResponse)
async def list_my_orders(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    user: AuthenticatedUser = Depends(get_current_user),
    service: OrderPlacementService = Depends(get_order_service),
):
    return await service.list_orders_for_user(user.id, page=page, limit=limit)


# Declared before /{order_id} so "admin" is not parsed as an id
@router.get("/admin/all", response_model=OrderSummaryListResponse)
async def list_all_orders(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    order_status: Optional[str] = Query(default=None, alias="status"),
    _: AuthenticatedUser = Depends(require_admin),
    service: OrderPlacementService = Depends(get_order_service),
):
    return await service.list_all_orders(page=page, limit=limit, status=order_status)


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    service: OrderPlacementService = Depends(get_order_service),
):
    return await service.get_order(order_id, requester_id=user.id, requester_is_admin=user.is_admin)


@router.put("/{order_id}/status", response_model=OrderStatusEnvelope)
async def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    _: AuthenticatedUser = Depends(require_admin),
    service: OrderPlacementService = Depends(get_order_service),
):
    order = await service.update_order_status(
        order_id, status=payload.status, payment_status=payload.payment_status
    )
    return {"message": "Order updated successfully", "order": OrderSummaryResponse.model_validate(order)}


@router.put("/{order_id}/cancel")
async def cancel_order(
    order_id: int,
    user: AuthenticatedUser = Depends(get_current_user),
    service: OrderPlacementService = Depends(get_order_service),
):
    await service.cancel_order(order_id, requester_id=user.id, requester_is_admin=user.is_admin)
    return {"message": "Order cancelled successfully"}
