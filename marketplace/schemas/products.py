from decimal import Decimal

from pydantic import BaseModel, Field

from marketplace.schemas.common import MoneyModel


class ProductCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    price: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
    stock: int = Field(ge=0)
    category_id: int

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "title": "Hand-thrown mug",
                    "description": "Stoneware, 350 ml",
                    "price": "2500.00",
                    "stock": 12,
                    "category_id": 1,
                }
            ]
        }
    }


class ProductUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    price: Decimal | None = Field(default=None, gt=0, max_digits=10, decimal_places=2)
    stock: int | None = Field(default=None, ge=0)
    category_id: int | None = None


class ProductResponse(MoneyModel):
    id: int
    title: str
    description: str | None = None
    price: Decimal
    stock: int
    category_id: int | None = None
    category_name: str | None = None
    creator_id: int | None = None
    is_active: bool


class ProductListResponse(BaseModel):
    products: list[ProductResponse]
    total_pages: int
    current_page: int
    total: int


class ProductStatusResponse(BaseModel):
    message: str
    is_active: bool
