from marketplace.schemas.categories import CategoryRequest, CategoryResponse
from marketplace.schemas.orders import (
    OrderCreateRequest,
    OrderCreateResponse,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdateRequest,
)
from marketplace.schemas.payments import PayHereHashRequest, PayHereNotification, PaymentResponse
from marketplace.schemas.products import ProductCreateRequest, ProductResponse, ProductUpdateRequest

__all__ = [
    "CategoryRequest",
    "CategoryResponse",
    "OrderCreateRequest",
    "OrderCreateResponse",
    "OrderListResponse",
    "OrderResponse",
    "OrderStatusUpdateRequest",
    "PayHereHashRequest",
    "PayHereNotification",
    "PaymentResponse",
    "ProductCreateRequest",
    "ProductResponse",
    "ProductUpdateRequest",
]
