import logging
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session, selectinload

from breakfast_api.core.errors import ConflictError, NotFoundError, ValidationError
from breakfast_api.core.time_utils import utcnow
from breakfast_api.models.outlet import Outlet
from breakfast_api.models.product import Product
from breakfast_api.models.restock import RESTOCK_STATUSES, RestockRequest
from breakfast_api.models.user import User
from breakfast_api.services.status_history import record_status_change


logger = logging.getLogger(__name__)


def create_request(
    db: Session,
    outlet: Outlet,
    product_id: int,
    requested_quantity: int,
    reason: Optional[str] = None,
    actor_id: Optional[int] = None,
) -> RestockRequest:
    if requested_quantity is None or requested_quantity < 1:
        raise ValidationError("Requested quantity must be at least 1")

    product = db.query(Product).filter(Product.id == product_id, Product.outlet_id == outlet.id).first()
    if not product:
        raise NotFoundError("Product not found")

    request = RestockRequest(
        outlet_id=outlet.id,
        product_id=product.id,
        current_quantity=product.stock,
        requested_quantity=requested_quantity,
        reason=(reason or "").strip() or "Stock replenishment",
        status="pending",
    )
    db.add(request)
    db.flush()
    record_status_change(db, "restock", request.id, None, "pending", user_id=actor_id)
    db.commit()
    db.refresh(request)
    logger.info(
        "restock requested id=%s outlet_id=%s product_id=%s qty=%s",
        request.id, outlet.id, product.id, requested_quantity,
    )
    return request


def list_requests(db: Session, outlet_id: Optional[int] = None, status: Optional[str] = None) -> List[RestockRequest]:
    query = db.query(RestockRequest).options(
        selectinload(RestockRequest.product),
        selectinload(RestockRequest.outlet),
    )
    if outlet_id is not None:
        query = query.filter(RestockRequest.outlet_id == outlet_id)
    if status and status != "all":
        if status not in RESTOCK_STATUSES:
            raise ValidationError(f"Invalid status. Must be one of: {', '.join(RESTOCK_STATUSES)}")
        query = query.filter(RestockRequest.status == status)
    return query.order_by(RestockRequest.created_at.desc(), RestockRequest.id.desc()).all()


def process_request(
    db: Session,
    request_id: int,
    status: str,
    admin: User,
    admin_note: Optional[str] = None,
) -> RestockRequest:
    """
    Approve or reject a pending request exactly once.

    Approval adds the requested quantity to the product's stock in the same
    transaction.
    """
    if status not in ("approved", "rejected"):
        raise ValidationError("Invalid status")

    request = db.query(RestockRequest).filter(RestockRequest.id == request_id).first()
    if not request:
        raise NotFoundError("Restock request not found")
    if request.status != "pending":
        raise ConflictError("This request has already been processed")

    now = utcnow()
    try:
        claimed = db.execute(
            update(RestockRequest)
            .where(RestockRequest.id == request_id, RestockRequest.status == "pending")
            .values(status=status, admin_note=admin_note or "", processed_at=now, processed_by=admin.id)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            raise ConflictError("This request has already been processed")

        if status == "approved":
            restocked = db.execute(
                update(Product)
                .where(Product.id == request.product_id)
                .values(stock=Product.stock + request.requested_quantity)
                .execution_options(synchronize_session=False)
            )
            if restocked.rowcount != 1:
                raise NotFoundError("Product not found")

        record_status_change(db, "restock", request_id, "pending", status, user_id=admin.id, notes=admin_note)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(request)
    logger.info("restock %s id=%s product_id=%s by=%s", status, request_id, request.product_id, admin.id)
    return request
