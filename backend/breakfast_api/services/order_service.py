"""
Order placement, status updates and listing.

Status transitions are permissive: an outlet operator may move an order from
any status to any other. Every change is kept in status history.
"""
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Query, Session, selectinload

from breakfast_api.core.config import settings
from breakfast_api.core.errors import NotFoundError, ValidationError
from breakfast_api.core.order_number_service import generate_order_number
from breakfast_api.core.time_utils import to_naive_utc, utcnow
from breakfast_api.models.credit import CreditTransaction
from breakfast_api.models.order import ORDER_STATUSES, Order, OrderItem
from breakfast_api.models.outlet import Outlet
from breakfast_api.models.product import Product
from breakfast_api.models.user import User
from breakfast_api.services.credit_service import (
    ZERO,
    create_credit,
    ensure_within_credit_limit,
    to_money,
)
from breakfast_api.services.status_history import record_status_change


logger = logging.getLogger(__name__)

DATE_RANGES = ("today", "yesterday", "last7days", "last30days")

STATUS_MESSAGES = {
    "pending": "Your order {number} is pending",
    "processing": "Your order {number} is being processed",
    "shipped": "Your order {number} has been shipped",
    "delivered": "Your order {number} has been delivered",
    "cancelled": "Your order {number} has been cancelled",
}


def is_deferred_payment(payment_method: str) -> bool:
    return payment_method.strip().lower() in settings.deferred_methods


def _merge_items(items: List[Dict[str, Any]]) -> Dict[int, int]:
    """Collapse repeated product lines into {product_id: quantity}, keeping order."""
    merged: Dict[int, int] = {}
    for item in items:
        product_id = int(item["product_id"])
        quantity = int(item["quantity"])
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        merged[product_id] = merged.get(product_id, 0) + quantity
    return merged


def _reserve_stock(db: Session, product: Product, quantity: int) -> None:
    result = db.execute(
        update(Product)
        .where(Product.id == product.id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ValidationError(f"Insufficient stock for {product.name}")


def place_order(
    db: Session,
    user: User,
    items: List[Dict[str, Any]],
    shipping: Dict[str, Any],
    payment_method: str,
    shipping_price: Any = 0,
    payment_result: Optional[Dict[str, Any]] = None,
    credit_due_date: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Tuple[Order, Optional[CreditTransaction], List[Dict[str, Any]]]:
    """
    Create an order from live products, snapshotting name/price/image.

    Returns the order, the credit opened for it (deferred payment methods
    only) and the low-stock alerts to push once the transaction is committed.
    """
    now = now or utcnow()
    if not items:
        raise ValidationError("Order must contain at least one item")
    if not payment_method or not payment_method.strip():
        raise ValidationError("Payment method is required")

    quantities = _merge_items(items)
    products = (
        db.query(Product)
        .filter(Product.id.in_(list(quantities)), Product.active == True)
        .all()
    )
    product_map = {p.id: p for p in products}
    missing = [pid for pid in quantities if pid not in product_map]
    if missing:
        raise NotFoundError(f"Product not available: {missing[0]}")

    outlet_ids = {p.outlet_id for p in products}
    if len(outlet_ids) != 1:
        raise ValidationError("All items in an order must come from the same outlet")
    outlet_id = outlet_ids.pop()

    deferred = is_deferred_payment(payment_method)
    if deferred:
        due_date = to_naive_utc(credit_due_date) or (now + timedelta(days=settings.credit_term_days))
        if due_date < now:
            raise ValidationError("Credit due date cannot be in the past")

    try:
        order_items = []
        items_price = Decimal("0")
        for product_id, quantity in quantities.items():
            product = product_map[product_id]
            _reserve_stock(db, product, quantity)
            unit_price = to_money(product.price)
            line_total = (unit_price * quantity).quantize(Decimal("0.01"))
            items_price += line_total
            images = product.images or []
            order_items.append(OrderItem(
                product_id=product.id,
                name=product.name,
                quantity=quantity,
                unit_price=unit_price,
                total_price=line_total,
                image=images[0] if images else None,
            ))

        shipping_total = to_money(shipping_price or 0)
        if shipping_total < ZERO:
            raise ValidationError("Shipping price cannot be negative")
        if deferred:
            ensure_within_credit_limit(db, user.id, items_price + shipping_total)

        order = Order(
            order_number=generate_order_number(db, outlet_id),
            user_id=user.id,
            outlet_id=outlet_id,
            status="pending",
            shipping_full_name=shipping["full_name"],
            shipping_address=shipping["address"],
            shipping_city=shipping["city"],
            shipping_state=shipping.get("state"),
            shipping_postal_code=shipping.get("postal_code"),
            shipping_phone=shipping["phone"],
            payment_method=payment_method.strip().lower(),
            payment_result=payment_result,
            items_price=items_price,
            shipping_price=shipping_total,
            total_price=items_price + shipping_total,
            status_updated_at=now,
            items=order_items,
        )
        db.add(order)
        db.flush()

        record_status_change(
            db, "order", order.id, None, "pending", user_id=user.id, notes="Order placed"
        )

        credit = None
        if deferred:
            credit = create_credit(db, order, order.total_price, due_date, actor_id=user.id, now=now)

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(
        "order placed order_id=%s number=%s outlet_id=%s user_id=%s total=%s method=%s",
        order.id, order.order_number, outlet_id, user.id, order.total_price, order.payment_method,
    )
    return order, credit, _low_stock_alerts(db, outlet_id, list(quantities))


def _low_stock_alerts(db: Session, outlet_id: int, product_ids: List[int]) -> List[Dict[str, Any]]:
    outlet = db.query(Outlet).filter(Outlet.id == outlet_id).first()
    if not outlet:
        return []
    alerts = []
    for product in db.query(Product).filter(Product.id.in_(product_ids)).all():
        threshold = product.low_stock_threshold
        if threshold is None:
            threshold = settings.low_stock_threshold
        if product.stock <= threshold:
            alerts.append({
                "room": str(outlet.owner_id),
                "data": {
                    "productId": product.id,
                    "productName": product.name,
                    "stock": product.stock,
                    "message": f"Low stock: {product.name} has {product.stock} left",
                },
            })
    return alerts


def get_order(db: Session, order_id: int) -> Order:
    order = (
        db.query(Order)
        .options(selectinload(Order.items), selectinload(Order.user))
        .filter(Order.id == order_id)
        .first()
    )
    if not order:
        raise NotFoundError("Order not found")
    return order


def update_order_status(
    db: Session,
    order: Order,
    new_status: str,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Persist a new status and return the event to push to the order's owner.

    Any status may follow any other; the caller has already checked access.
    """
    if new_status not in ORDER_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(ORDER_STATUSES)}")

    now = now or utcnow()
    old_status = order.status
    order.status = new_status
    order.status_updated_at = now
    if new_status == "delivered":
        order.delivered_at = now

    record_status_change(
        db,
        "order",
        order.id,
        old_status,
        new_status,
        user_id=actor_id,
        notes=f"Status changed from {old_status} to {new_status}",
    )
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(order)

    logger.info(
        "order status updated order_id=%s number=%s %s -> %s",
        order.id, order.order_number, old_status, new_status,
    )
    return {
        "orderId": order.id,
        "newStatus": new_status,
        "message": STATUS_MESSAGES[new_status].format(number=order.order_number),
    }


def date_range_bounds(date_range: str, now: datetime) -> Tuple[datetime, Optional[datetime]]:
    start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if date_range == "today":
        return start_of_today, None
    if date_range == "yesterday":
        return start_of_today - timedelta(days=1), start_of_today
    if date_range == "last7days":
        return now - timedelta(days=7), None
    if date_range == "last30days":
        return now - timedelta(days=30), None
    raise ValidationError(f"Invalid dateRange. Must be one of: {', '.join(DATE_RANGES)}")


def _filter_status(query: Query, status: Optional[str]) -> Query:
    if status and status != "all":
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(ORDER_STATUSES)}")
        query = query.filter(Order.status == status)
    return query


def list_outlet_orders(
    db: Session,
    outlet_id: int,
    start_index: int = 0,
    limit: int = 10,
    search_term: Optional[str] = None,
    status: Optional[str] = None,
    date_range: Optional[str] = None,
    sort: str = "desc",
    now: Optional[datetime] = None,
) -> Tuple[List[Order], int]:
    now = now or utcnow()
    query = db.query(Order).outerjoin(User, Order.user_id == User.id).filter(Order.outlet_id == outlet_id)
    query = _filter_status(query, status)

    if date_range:
        start, end = date_range_bounds(date_range, now)
        query = query.filter(Order.created_at >= start)
        if end is not None:
            query = query.filter(Order.created_at < end)

    if search_term:
        term = search_term.strip().lower()
        if term:
            pattern = f"%{term}%"
            query = query.filter(
                or_(
                    func.lower(Order.order_number).like(pattern),
                    func.lower(Order.shipping_full_name).like(pattern),
                    func.lower(User.email).like(pattern),
                    func.lower(User.name).like(pattern),
                )
            )

    if sort not in ("asc", "desc"):
        raise ValidationError("sort must be 'asc' or 'desc'")

    total = query.count()
    ordering = (
        (Order.created_at.asc(), Order.id.asc())
        if sort == "asc"
        else (Order.created_at.desc(), Order.id.desc())
    )
    orders = (
        query.options(selectinload(Order.items), selectinload(Order.user))
        .order_by(*ordering)
        .offset(start_index)
        .limit(limit)
        .all()
    )
    return orders, total


def list_user_orders(
    db: Session,
    user_id: int,
    offset: int = 0,
    limit: int = 10,
    status: Optional[str] = None,
) -> Tuple[List[Order], int]:
    query = _filter_status(db.query(Order).filter(Order.user_id == user_id), status)
    total = query.count()
    orders = (
        query.options(selectinload(Order.items))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return orders, total
