from pydantic import BaseModel, Field


class CategoryRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: str | None = None


class CategoryResponse(BaseModel):
    id: int
    name: str
    description: str | None = None

    model_config = {"from_attributes": True}
