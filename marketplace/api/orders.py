import math
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query, status
from sqlalchemy.orm import Session

from marketplace.config import settings
from marketplace.dependencies import get_principal, get_principal_optional, require_roles
from marketplace.models import Order, Role, get_db
from marketplace.schemas.orders import (
    CustomerInfo,
    OrderCreateRequest,
    OrderCreateResponse,
    OrderItemResponse,
    OrderListResponse,
    OrderMessageResponse,
    OrderResponse,
    OrderStatusUpdateRequest,
    TrackingInfo,
)
from marketplace.services import order_service
from marketplace.services.principal import Principal

router = APIRouter()


def order_to_response(order: Order) -> OrderResponse:
    customer_info = None
    if order.user_id is None:
        customer_info = CustomerInfo(
            name=order.customer_name,
            email=order.customer_email,
            phone=order.customer_phone,
        )
    tracking_info = None
    if order.tracking_provider or order.tracking_number or order.tracking_status:
        tracking_info = TrackingInfo(
            provider=order.tracking_provider,
            tracking_number=order.tracking_number,
            status=order.tracking_status,
        )
    return OrderResponse(
        id=order.id,
        user_id=order.user_id,
        customer_info=customer_info,
        products=[
            OrderItemResponse(
                product_id=item.product_id,
                title=item.product.title if item.product else None,
                unit_price=item.unit_price,
                quantity=item.quantity,
            )
            for item in order.items
        ],
        total_amount=order.total_amount,
        status=order.status,
        shipping_address=order.shipping_address,
        tracking_info=tracking_info,
        payment_reference=order.payment_reference,
        created_at=order.created_at.isoformat() if order.created_at else "",
    )


def _page_response(orders: list[Order], total: int, page: int, limit: int) -> OrderListResponse:
    return OrderListResponse(
        orders=[order_to_response(o) for o in orders],
        total_pages=math.ceil(total / limit) if total else 0,
        current_page=page,
        total=total,
    )


def _page_limit(limit: int) -> int:
    return min(limit, settings.ORDERS_PAGE_SIZE_MAX)


@router.post(
    "",
    response_model=OrderCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create order (authenticated user or guest)",
)
def create_order(
    body: OrderCreateRequest,
    principal: Annotated[Principal | None, Depends(get_principal_optional)],
    db: Annotated[Session, Depends(get_db)],
    idempotency_key: Annotated[str | None, Header(max_length=128)] = None,
):
    """
    Reserve stock and create a pending order with its pending payment record.
    Guests must send customer_name, customer_email and customer_phone.
    Send an Idempotency-Key header to make retries safe.
    """
    order, payment = order_service.create_order(
        db,
        items=body.products,
        shipping_address=body.shipping_address,
        principal=principal,
        customer_name=body.customer_name,
        customer_email=body.customer_email,
        customer_phone=body.customer_phone,
        payment_method=body.payment_method.value,
        idempotency_key=idempotency_key,
    )
    return OrderCreateResponse(
        message="Order created successfully",
        order=order_to_response(order),
        payment_id=payment.id,
    )


@router.get(
    "/my-orders",
    response_model=OrderListResponse,
    summary="List my orders",
)
def my_orders(
    principal: Annotated[Principal, Depends(get_principal)],
    db: Annotated[Session, Depends(get_db)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1)] = 10,
    order_status: Annotated[str | None, Query(alias="status")] = None,
):
    limit = _page_limit(limit)
    orders, total = order_service.list_orders(
        db, user_id=principal.user_id, status=order_status, page=page, limit=limit
    )
    return _page_response(orders, total, page, limit)


@router.get(
    "/admin/all",
    response_model=OrderListResponse,
    summary="List all orders (admin)",
)
def all_orders(
    _: Annotated[Principal, Depends(require_roles(Role.ADMIN))],
    db: Annotated[Session, Depends(get_db)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1)] = 20,
    order_status: Annotated[str | None, Query(alias="status")] = None,
):
    limit = _page_limit(limit)
    orders, total = order_service.list_orders(db, status=order_status, page=page, limit=limit)
    return _page_response(orders, total, page, limit)


@router.get(
    "/creator/my-orders",
    response_model=OrderListResponse,
    summary="List orders containing the creator's products",
)
def creator_orders(
    principal: Annotated[Principal, Depends(require_roles(Role.CREATOR))],
    db: Annotated[Session, Depends(get_db)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1)] = 20,
    order_status: Annotated[str | None, Query(alias="status")] = None,
):
    limit = _page_limit(limit)
    orders, total = order_service.list_orders(
        db, creator_id=principal.user_id, status=order_status, page=page, limit=limit
    )
    return _page_response(orders, total, page, limit)


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
)
def get_order(
    order_id: int,
    principal: Annotated[Principal, Depends(get_principal)],
    db: Annotated[Session, Depends(get_db)],
):
    """Owner or admin only; guest orders are visible to admins."""
    return order_to_response(order_service.get_order_for_principal(db, order_id, principal))


@router.patch(
    "/{order_id}/status",
    response_model=OrderMessageResponse,
    summary="Update order status (admin)",
)
def update_order_status(
    order_id: int,
    body: OrderStatusUpdateRequest,
    _: Annotated[Principal, Depends(require_roles(Role.ADMIN))],
    db: Annotated[Session, Depends(get_db)],
):
    """Admin override of the order status. Setting `cancelled` returns the reserved stock."""
    order = order_service.update_order_status(
        db,
        order_id,
        body.status,
        tracking_info=body.tracking_info.model_dump() if body.tracking_info else None,
    )
    return OrderMessageResponse(message="Order status updated successfully", order=order_to_response(order))


@router.patch(
    "/{order_id}/cancel",
    response_model=OrderMessageResponse,
    summary="Cancel order (owner or admin)",
)
def cancel_order(
    order_id: int,
    principal: Annotated[Principal, Depends(get_principal)],
    db: Annotated[Session, Depends(get_db)],
):
    order = order_service.cancel_order(db, order_id, principal)
    return OrderMessageResponse(message="Order cancelled successfully", order=order_to_response(order))
