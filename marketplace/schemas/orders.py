from decimal import Decimal

from pydantic import BaseModel, EmailStr, Field

from marketplace.models import OrderStatus, PaymentMethod
from marketplace.schemas.common import MoneyModel


class OrderItemRequest(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)


class OrderCreateRequest(BaseModel):
    products: list[OrderItemRequest] = Field(min_length=1)
    shipping_address: str = Field(min_length=1)
    payment_method: PaymentMethod = PaymentMethod.CARD
    customer_name: str | None = None
    customer_email: EmailStr | None = None
    customer_phone: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "products": [{"product_id": 1, "quantity": 2}],
                    "shipping_address": "12 Temple Road, Kandy",
                    "payment_method": "card",
                    "customer_name": "Guest Buyer",
                    "customer_email": "guest@example.com",
                    "customer_phone": "+94770000000",
                }
            ]
        }
    }


class TrackingInfo(BaseModel):
    provider: str | None = None
    tracking_number: str | None = None
    status: str | None = None


class OrderStatusUpdateRequest(BaseModel):
    # plain str: unknown values are rejected by the order service with 400
    status: str
    tracking_info: TrackingInfo | None = None


class OrderItemResponse(MoneyModel):
    product_id: int
    title: str | None = None
    unit_price: Decimal
    quantity: int


class CustomerInfo(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None


class OrderResponse(MoneyModel):
    id: int
    user_id: int | None = None
    customer_info: CustomerInfo | None = None
    products: list[OrderItemResponse]
    total_amount: Decimal
    status: OrderStatus
    shipping_address: str
    tracking_info: TrackingInfo | None = None
    payment_reference: str | None = None
    created_at: str


class OrderCreateResponse(BaseModel):
    message: str
    order: OrderResponse
    payment_id: int


class OrderMessageResponse(BaseModel):
    message: str
    order: OrderResponse


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    total_pages: int
    current_page: int
    total: int
