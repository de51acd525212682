import math
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from marketplace.dependencies import require_roles
from marketplace.models import Category, OrderItem, Product, Role, get_db
from marketplace.schemas.products import (
    ProductCreateRequest,
    ProductListResponse,
    ProductResponse,
    ProductStatusResponse,
    ProductUpdateRequest,
)
from marketplace.services.principal import Principal

router = APIRouter()

SellerPrincipal = Annotated[Principal, Depends(require_roles(Role.CREATOR, Role.ADMIN))]


def product_to_response(product: Product) -> ProductResponse:
    return ProductResponse(
        id=product.id,
        title=product.title,
        description=product.description,
        price=product.price,
        stock=product.stock,
        category_id=product.category_id,
        category_name=product.category.name if product.category else None,
        creator_id=product.creator_id,
        is_active=product.is_active,
    )


def _paginate(query, page: int, limit: int) -> ProductListResponse:
    total = query.count()
    products = (
        query.order_by(Product.created_at.desc(), Product.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return ProductListResponse(
        products=[product_to_response(p) for p in products],
        total_pages=math.ceil(total / limit) if total else 0,
        current_page=page,
        total=total,
    )


def _get_managed_product(db: Session, product_id: int, principal: Principal) -> Product:
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    if not principal.can_manage_product(product):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not authorized to update this product",
        )
    return product


def _ensure_category(db: Session, category_id: int) -> None:
    if not db.query(Category).filter(Category.id == category_id).first():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Category not found")


@router.get(
    "",
    response_model=ProductListResponse,
    summary="List active products",
)
def list_products(
    db: Annotated[Session, Depends(get_db)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 12,
):
    return _paginate(db.query(Product).filter(Product.is_active.is_(True)), page, limit)


@router.get(
    "/creator/my-products",
    response_model=ProductListResponse,
    summary="List products of the current creator",
)
def my_products(
    principal: Annotated[Principal, Depends(require_roles(Role.CREATOR))],
    db: Annotated[Session, Depends(get_db)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
):
    return _paginate(db.query(Product).filter(Product.creator_id == principal.user_id), page, limit)


@router.get(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Get product by ID",
)
def get_product(
    product_id: int,
    db: Annotated[Session, Depends(get_db)],
):
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    if not product.is_active:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not available")
    return product_to_response(product)


@router.post(
    "",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create product (creator or admin)",
)
def create_product(
    body: ProductCreateRequest,
    principal: SellerPrincipal,
    db: Annotated[Session, Depends(get_db)],
):
    _ensure_category(db, body.category_id)
    product = Product(
        title=body.title,
        description=body.description,
        price=body.price,
        stock=body.stock,
        category_id=body.category_id,
        creator_id=principal.user_id,
        is_active=True,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product_to_response(product)


@router.put(
    "/{product_id}",
    response_model=ProductResponse,
    summary="Update product (owning creator or admin)",
)
def update_product(
    product_id: int,
    body: ProductUpdateRequest,
    principal: SellerPrincipal,
    db: Annotated[Session, Depends(get_db)],
):
    product = _get_managed_product(db, product_id, principal)
    updates = body.model_dump(exclude_unset=True, exclude_none=True)
    if "category_id" in updates:
        _ensure_category(db, updates["category_id"])
    for field, value in updates.items():
        setattr(product, field, value)
    db.commit()
    db.refresh(product)
    return product_to_response(product)


@router.delete(
    "/{product_id}",
    summary="Delete product (owning creator or admin)",
)
def delete_product(
    product_id: int,
    principal: SellerPrincipal,
    db: Annotated[Session, Depends(get_db)],
):
    product = _get_managed_product(db, product_id, principal)
    if db.query(OrderItem).filter(OrderItem.product_id == product_id).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Product has orders; deactivate it instead",
        )
    db.delete(product)
    db.commit()
    return {"message": "Product deleted successfully"}


@router.patch(
    "/{product_id}/toggle-status",
    response_model=ProductStatusResponse,
    summary="Activate or deactivate product",
)
def toggle_product_status(
    product_id: int,
    principal: SellerPrincipal,
    db: Annotated[Session, Depends(get_db)],
):
    product = _get_managed_product(db, product_id, principal)
    product.is_active = not product.is_active
    db.commit()
    state = "activated" if product.is_active else "deactivated"
    return ProductStatusResponse(message=f"Product {state} successfully", is_active=product.is_active)
