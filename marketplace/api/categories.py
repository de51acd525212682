from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from marketplace.dependencies import require_roles
from marketplace.models import Category, Product, Role, get_db
from marketplace.schemas.categories import CategoryRequest, CategoryResponse
from marketplace.services.principal import Principal

router = APIRouter()

AdminPrincipal = Annotated[Principal, Depends(require_roles(Role.ADMIN))]


def _get_category_or_404(db: Session, category_id: int) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return category


@router.get(
    "",
    response_model=list[CategoryResponse],
    summary="List categories",
)
def list_categories(
    db: Annotated[Session, Depends(get_db)],
):
    return db.query(Category).order_by(Category.name).all()


@router.post(
    "",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create category (admin)",
)
def create_category(
    body: CategoryRequest,
    _: AdminPrincipal,
    db: Annotated[Session, Depends(get_db)],
):
    if db.query(Category).filter(Category.name == body.name).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Category already exists")
    category = Category(name=body.name, description=body.description)
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


@router.put(
    "/{category_id}",
    response_model=CategoryResponse,
    summary="Update category (admin)",
)
def update_category(
    category_id: int,
    body: CategoryRequest,
    _: AdminPrincipal,
    db: Annotated[Session, Depends(get_db)],
):
    category = _get_category_or_404(db, category_id)
    duplicate = db.query(Category).filter(Category.name == body.name, Category.id != category_id).first()
    if duplicate:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Category already exists")
    category.name = body.name
    category.description = body.description
    db.commit()
    db.refresh(category)
    return category


@router.delete(
    "/{category_id}",
    summary="Delete category (admin)",
)
def delete_category(
    category_id: int,
    _: AdminPrincipal,
    db: Annotated[Session, Depends(get_db)],
):
    category = _get_category_or_404(db, category_id)
    if db.query(Product).filter(Product.category_id == category_id).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Category still has products",
        )
    db.delete(category)
    db.commit()
    return {"message": "Category deleted"}
