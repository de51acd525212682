from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from marketplace.schemas.common import MoneyModel

# three upper-case letters, ISO 4217
CURRENCY_PATTERN = r"^[A-Z]{3}$"


class PayHereNotification(BaseModel):
    """Fields PayHere posts to the notify URL."""

    merchant_id: str
    order_id: str
    payment_id: str
    payhere_amount: str
    payhere_currency: str = Field(pattern=CURRENCY_PATTERN)
    status_code: str = Field(pattern=r"^-?\d+$")
    md5sig: str
    custom_1: str | None = None  # internal order id
    custom_2: str | None = None  # internal user id

    @field_validator("*", mode="before")
    @classmethod
    def coerce_to_str(cls, value):
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            return str(value)
        return value


class PayHereHashRequest(BaseModel):
    order_id: str = Field(min_length=1)
    amount: Decimal = Field(gt=0)
    currency: str = Field(pattern=CURRENCY_PATTERN)

    @field_validator("order_id", mode="before")
    @classmethod
    def coerce_order_id(cls, value):
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class PayHereHashResponse(BaseModel):
    hash: str
    merchant_id: str


class PaymentConfirmRequest(BaseModel):
    order_id: int
    payment_id: str = Field(min_length=1)
    status: str


class PaymentResponse(MoneyModel):
    id: int
    order_id: int
    amount: Decimal
    method: str
    status: str
    transaction_id: str | None = None
    created_at: str

    model_config = {"from_attributes": True}


class PaymentConfirmResponse(BaseModel):
    success: bool
    message: str
    payment: PaymentResponse | None = None


class WebhookAckResponse(BaseModel):
    success: bool = True
