from typing import Any, Dict, List, Optional
import logging

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, condecimal
from sqlalchemy import func
from sqlalchemy.orm import Session

from breakfast_api.core.database import get_db
from breakfast_api.core.deps import ensure_outlet_access, get_current_outlet, require_outlet_or_admin
from breakfast_api.core.errors import NotFoundError, ValidationError
from breakfast_api.core.serialization_helpers import serialize_datetime, serialize_decimal
from breakfast_api.models.category import Category
from breakfast_api.models.outlet import Outlet
from breakfast_api.models.product import Product
from breakfast_api.models.user import User


router = APIRouter()
logger = logging.getLogger(__name__)


class ProductBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    price: condecimal(max_digits=12, decimal_places=2, ge=0) = 0
    category_id: Optional[int] = Field(None, alias="categoryId")
    low_stock_threshold: Optional[int] = Field(None, alias="lowStockThreshold", ge=0)
    images: List[str] = Field(default_factory=list)
    active: bool = True

    class Config:
        populate_by_name = True


class ProductCreate(ProductBase):
    # Initial stock only; later changes go through orders and restock requests
    stock: int = Field(0, ge=0)


def serialize_product(product: Product) -> Dict[str, Any]:
    return {
        "id": product.id,
        "outletId": product.outlet_id,
        "categoryId": product.category_id,
        "name": product.name,
        "description": product.description,
        "price": serialize_decimal(product.price),
        "stock": product.stock,
        "lowStockThreshold": product.low_stock_threshold,
        "images": product.images or [],
        "active": product.active,
        "createdAt": serialize_datetime(product.created_at),
        "updatedAt": serialize_datetime(product.updated_at),
    }


def _check_category(db: Session, category_id: Optional[int], outlet_id: int) -> None:
    if category_id is None:
        return
    category = db.query(Category).filter(Category.id == category_id).first()
    if not category or (category.outlet_id is not None and category.outlet_id != outlet_id):
        raise ValidationError("Invalid category")


@router.get("/")
def list_products(
    db: Session = Depends(get_db),
    outlet_id: Optional[int] = Query(None, alias="outletId"),
    category_id: Optional[int] = Query(None, alias="categoryId"),
    search: Optional[str] = Query(None, description="Search by name"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    """Public storefront listing of active products"""
    logger.debug("list_products search=%s skip=%s limit=%s", search, skip, limit)
    query = db.query(Product).filter(Product.active == True)
    if outlet_id is not None:
        query = query.filter(Product.outlet_id == outlet_id)
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if search:
        qn = search.strip().lower()
        if qn:
            query = query.filter(func.lower(Product.name).like(f"%{qn}%"))
    total = query.count()
    items = query.order_by(Product.name.asc(), Product.id.asc()).offset(skip).limit(limit).all()
    return {"products": [serialize_product(p) for p in items], "total": total}


@router.get("/{product_id}")
def get_product(product_id: int, db: Session = Depends(get_db)):
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError("Product not found")
    return {"product": serialize_product(product)}


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_product(
    data: ProductCreate,
    db: Session = Depends(get_db),
    outlet: Outlet = Depends(get_current_outlet),
):
    _check_category(db, data.category_id, outlet.id)
    product = Product(
        outlet_id=outlet.id,
        category_id=data.category_id,
        name=data.name.strip(),
        description=data.description,
        price=data.price,
        stock=data.stock,
        low_stock_threshold=data.low_stock_threshold,
        images=data.images,
        active=data.active,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info("product created id=%s outlet_id=%s", product.id, outlet.id)
    return {"product": serialize_product(product)}


@router.put("/{product_id}")
def update_product(
    product_id: int,
    data: ProductBase,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_outlet_or_admin),
):
    product = db.query(Product).filter(Product.id == product_id).first()
    if not product:
        raise NotFoundError("Product not found")
    ensure_outlet_access(db, current_user, product.outlet_id)
    _check_category(db, data.category_id, product.outlet_id)

    product.name = data.name.strip()
    product.description = data.description
    product.price = data.price
    product.category_id = data.category_id
    product.low_stock_threshold = data.low_stock_threshold
    product.images = data.images
    product.active = data.active

    db.commit()
    db.refresh(product)
    return {"product": serialize_product(product)}
