from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from breakfast_api.core.database import get_db
from breakfast_api.core.deps import is_admin, require_outlet_or_admin
from breakfast_api.core.errors import NotFoundError, ValidationError
from breakfast_api.core.serialization_helpers import serialize_datetime
from breakfast_api.models.category import Category
from breakfast_api.models.outlet import Outlet
from breakfast_api.models.user import User

router = APIRouter()


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)


def serialize_category(category: Category) -> dict:
    return {
        "id": category.id,
        "outletId": category.outlet_id,
        "name": category.name,
        "description": category.description,
        "createdAt": serialize_datetime(category.created_at),
    }


@router.get("/")
def list_categories(
    outlet_id: Optional[int] = Query(None, alias="outletId"),
    db: Session = Depends(get_db),
):
    """Global categories, plus the outlet's own when outletId is given"""
    query = db.query(Category)
    if outlet_id is not None:
        query = query.filter(or_(Category.outlet_id.is_(None), Category.outlet_id == outlet_id))
    else:
        query = query.filter(Category.outlet_id.is_(None))
    return {"categories": [serialize_category(c) for c in query.order_by(Category.name.asc()).all()]}


@router.post("/", status_code=status.HTTP_201_CREATED)
def create_category(
    data: CategoryCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_outlet_or_admin),
):
    # Admin categories are global; outlet categories belong to the caller's outlet
    outlet_id = None
    if not is_admin(current_user):
        outlet = db.query(Outlet).filter(Outlet.owner_id == current_user.id).first()
        if not outlet:
            raise NotFoundError("No outlet found for this account")
        outlet_id = outlet.id

    name = data.name.strip()
    duplicate = db.query(Category.id).filter(func.lower(Category.name) == name.lower())
    if outlet_id is None:
        duplicate = duplicate.filter(Category.outlet_id.is_(None))
    else:
        duplicate = duplicate.filter(Category.outlet_id == outlet_id)
    if duplicate.first():
        raise ValidationError("Category already exists")

    category = Category(outlet_id=outlet_id, name=name, description=data.description)
    db.add(category)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("Category already exists")
    db.refresh(category)
    return {"category": serialize_category(category)}
