from decimal import Decimal

from pydantic import BaseModel, field_serializer


class MoneyModel(BaseModel):
    """Serializes Decimal money fields as plain strings with two decimals."""

    @field_serializer("price", "unit_price", "total_amount", "amount", check_fields=False)
    def serialize_money(self, value: Decimal | None) -> str | None:
        if value is None:
            return None
        return format(Decimal(value).quantize(Decimal("0.01")), "f")
