"""
Order routes: checkout, outlet-side status updates and listings.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from pydantic import BaseModel, Field, condecimal
from sqlalchemy.orm import Session

from breakfast_api.core.database import get_db
from breakfast_api.core.deps import (
    ensure_outlet_access,
    ensure_user_access,
    get_current_user,
    is_admin,
    require_outlet_or_admin,
    require_roles,
)
from breakfast_api.core.errors import ForbiddenError
from breakfast_api.core.pagination import clamp_limit, page_window, total_pages
from breakfast_api.core.roles import Role
from breakfast_api.core.serialization_helpers import serialize_datetime, serialize_decimal
from breakfast_api.models.order import Order
from breakfast_api.models.user import User
from breakfast_api.routes.credit import serialize_credit
from breakfast_api.services import order_service
from breakfast_api.services.notifications import LOW_STOCK_ALERT, ORDER_STATUS_UPDATED, manager

router = APIRouter()


class OrderItemCreate(BaseModel):
    product_id: int = Field(..., alias="productId")
    quantity: int = Field(..., ge=1)

    class Config:
        populate_by_name = True


class ShippingInfo(BaseModel):
    full_name: str = Field(..., alias="fullName", min_length=1)
    address: str = Field(..., min_length=1, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, alias="postalCode", max_length=20)
    phone: str = Field(..., pattern=r"^\+?[1-9]\d{1,14}$")

    class Config:
        populate_by_name = True


class OrderCreate(BaseModel):
    items: List[OrderItemCreate] = Field(..., min_length=1)
    shipping: ShippingInfo
    payment_method: str = Field(..., alias="paymentMethod", min_length=1)
    payment_result: Optional[Dict[str, Any]] = Field(None, alias="paymentResult")
    shipping_price: condecimal(max_digits=12, decimal_places=2, ge=0) = Field(0, alias="shippingPrice")
    credit_due_date: Optional[datetime] = Field(None, alias="creditDueDate")

    class Config:
        populate_by_name = True


class StatusUpdate(BaseModel):
    status: str


def serialize_order(order: Order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "user": {
            "id": order.user.id,
            "name": order.user.name,
            "email": order.user.email,
        } if order.user else None,
        "outletId": order.outlet_id,
        "status": order.status,
        "orderItems": [
            {
                "productId": item.product_id,
                "name": item.name,
                "quantity": item.quantity,
                "unitPrice": serialize_decimal(item.unit_price),
                "totalPrice": serialize_decimal(item.total_price),
                "image": item.image,
            }
            for item in order.items
        ],
        "shippingAddress": {
            "fullName": order.shipping_full_name,
            "address": order.shipping_address,
            "city": order.shipping_city,
            "state": order.shipping_state,
            "postalCode": order.shipping_postal_code,
            "phone": order.shipping_phone,
        },
        "paymentMethod": order.payment_method,
        "paymentResult": order.payment_result,
        "itemsPrice": serialize_decimal(order.items_price),
        "shippingPrice": serialize_decimal(order.shipping_price),
        "totalPrice": serialize_decimal(order.total_price),
        "deliveredAt": serialize_datetime(order.delivered_at),
        "statusUpdatedAt": serialize_datetime(order.status_updated_at),
        "createdAt": serialize_datetime(order.created_at),
        "updatedAt": serialize_datetime(order.updated_at),
    }


def _ensure_order_access(db: Session, user: User, order: Order) -> None:
    if is_admin(user) or order.user_id == user.id:
        return
    if user.role == Role.outlet.value:
        ensure_outlet_access(db, user, order.outlet_id)
        return
    raise ForbiddenError("You can only access your own orders")


@router.post("/createOrder", status_code=status.HTTP_201_CREATED)
def create_order(
    data: OrderCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(Role.user, Role.admin)),
):
    """Place an order; deferred payment methods open a credit for the total"""
    order, credit, alerts = order_service.place_order(
        db,
        current_user,
        items=[item.model_dump() for item in data.items],
        shipping=data.shipping.model_dump(),
        payment_method=data.payment_method,
        shipping_price=data.shipping_price,
        payment_result=data.payment_result,
        credit_due_date=data.credit_due_date,
    )
    for alert in alerts:
        background_tasks.add_task(manager.publish, alert["room"], LOW_STOCK_ALERT, alert["data"])
    return {
        "success": True,
        "order": serialize_order(order),
        "credit": serialize_credit(credit) if credit is not None else None,
    }


@router.get("/getOrder/{order_id}")
def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    order = order_service.get_order(db, order_id)
    _ensure_order_access(db, current_user, order)
    return {"order": serialize_order(order)}


@router.get("/getOrdersByUser/{user_id}")
def get_orders_by_user(
    user_id: int,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_user_access(current_user, user_id)
    offset, size = page_window(page, limit)
    orders, total = order_service.list_user_orders(db, user_id, offset=offset, limit=size, status=status)
    return {
        "orders": [serialize_order(o) for o in orders],
        "totalOrders": total,
        "totalPages": total_pages(total, size),
    }


@router.put("/updateOrder/{order_id}")
def update_order(
    order_id: int,
    data: StatusUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_outlet_or_admin),
):
    """Change an order's status and push the change to the customer's room"""
    order = order_service.get_order(db, order_id)
    ensure_outlet_access(db, current_user, order.outlet_id)
    event = order_service.update_order_status(db, order, data.status, actor_id=current_user.id)
    if order.user_id is not None:
        background_tasks.add_task(manager.publish, str(order.user_id), ORDER_STATUS_UPDATED, event)
    return {"success": True, "order": serialize_order(order)}


@router.get("/getOutletOrders/{outlet_id}")
def get_outlet_orders(
    outlet_id: int,
    start_index: int = Query(0, alias="startIndex", ge=0),
    limit: Optional[int] = Query(None, ge=1),
    search_term: Optional[str] = Query(None, alias="searchTerm"),
    status: Optional[str] = Query(None),
    date_range: Optional[str] = Query(None, alias="dateRange"),
    sort: str = Query("desc"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_outlet_or_admin),
):
    ensure_outlet_access(db, current_user, outlet_id)
    orders, total = order_service.list_outlet_orders(
        db,
        outlet_id,
        start_index=start_index,
        limit=clamp_limit(limit),
        search_term=search_term,
        status=status,
        date_range=date_range,
        sort=sort,
    )
    return {"orders": [serialize_order(o) for o in orders], "totalOrders": total}
