from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel, Field, condecimal
from sqlalchemy.orm import Session

from breakfast_api.core.database import get_db
from breakfast_api.core.deps import (
    ensure_outlet_access,
    ensure_user_access,
    get_current_user,
    is_admin,
    require_admin,
    require_outlet_or_admin,
)
from breakfast_api.core.errors import ForbiddenError, ValidationError
from breakfast_api.core.pagination import page_window, total_pages
from breakfast_api.core.roles import Role
from breakfast_api.core.serialization_helpers import serialize_datetime, serialize_decimal
from breakfast_api.core.time_utils import utcnow
from breakfast_api.models.credit import CreditTransaction
from breakfast_api.models.outlet import Outlet
from breakfast_api.models.user import User
from breakfast_api.services import credit_service

router = APIRouter()


class PaymentCreate(BaseModel):
    amount: condecimal(max_digits=12, decimal_places=2)
    notes: Optional[str] = Field(None, max_length=500)


class CreditLimitUpdate(BaseModel):
    credit_limit: Optional[condecimal(max_digits=12, decimal_places=2, ge=0)] = Field(None, alias="creditLimit")

    class Config:
        populate_by_name = True


def serialize_summary(summary: Dict[str, Any]) -> Dict[str, Any]:
    money = ("totalAmount", "remainingAmount", "creditLimit", "creditUsed", "availableCredit")
    return {
        key: serialize_decimal(value) if key in money else value
        for key, value in summary.items()
    }


def serialize_standing(standing: Dict[str, Any]) -> Dict[str, Any]:
    return {key: serialize_decimal(value) for key, value in standing.items()}


def serialize_credit(credit: CreditTransaction, now=None, include_payments: bool = False) -> Dict[str, Any]:
    data = {
        "id": credit.id,
        "amount": serialize_decimal(credit.amount),
        "remainingAmount": serialize_decimal(credit.remaining_amount),
        "paidAmount": serialize_decimal(credit.amount - credit.remaining_amount),
        "status": credit_service.effective_status(credit, now),
        "dueDate": serialize_datetime(credit.due_date),
        "createdAt": serialize_datetime(credit.created_at),
        "updatedAt": serialize_datetime(credit.updated_at),
        "user": {
            "id": credit.user.id,
            "name": credit.user.name,
            "email": credit.user.email,
        } if credit.user else None,
        "order": {
            "id": credit.order.id,
            "orderNumber": credit.order.order_number,
            "totalPrice": serialize_decimal(credit.order.total_price),
            "status": credit.order.status,
        } if credit.order else None,
        "outlet": {
            "id": credit.outlet.id,
            "name": credit.outlet.name,
        } if credit.outlet else None,
    }
    if include_payments:
        data["payments"] = [
            {
                "id": p.id,
                "amount": serialize_decimal(p.amount),
                "date": serialize_datetime(p.created_at),
                "notes": p.notes,
            }
            for p in credit.payments
        ]
    return data


def _ensure_credit_access(db: Session, user: User, credit: CreditTransaction) -> None:
    """Debtor, creditor outlet owner or admin."""
    if is_admin(user) or credit.user_id == user.id:
        return
    if user.role == Role.outlet.value:
        ensure_outlet_access(db, user, credit.outlet_id)
        return
    raise ForbiddenError("You can only access your own credits")


@router.get("/")
def list_all_credits(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    outlet: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Credits across all outlets, optionally narrowed to one"""
    offset, size = page_window(page, limit)
    now = utcnow()
    credits, total = credit_service.list_credits(
        db, outlet_id=outlet, status=status, search=search, offset=offset, limit=size, now=now,
    )
    return {
        "credits": [serialize_credit(c, now) for c in credits],
        "total": total,
        "totalPages": total_pages(total, size),
        "page": page,
    }


@router.get("/outlet/{outlet_id}")
def list_outlet_credits(
    outlet_id: int,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    status: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_outlet_or_admin),
):
    """Credits extended by an outlet, newest first"""
    ensure_outlet_access(db, current_user, outlet_id)
    offset, size = page_window(page, limit)
    now = utcnow()
    credits, total = credit_service.list_credits(
        db, outlet_id=outlet_id, status=status, search=search, offset=offset, limit=size, now=now,
    )
    return {
        "credits": [serialize_credit(c, now) for c in credits],
        "total": total,
        "totalPages": total_pages(total, size),
        "page": page,
    }


@router.get("/user/{user_id}")
def list_user_credits(
    user_id: int,
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1),
    status: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """A customer's credits plus their aggregate balance"""
    ensure_user_access(current_user, user_id)
    offset, size = page_window(page, limit)
    now = utcnow()
    credits, total = credit_service.list_credits(
        db, user_id=user_id, status=status, offset=offset, limit=size, now=now,
    )
    summary = credit_service.summarize(db, user_id=user_id, now=now)
    debtor = db.query(User).filter(User.id == user_id).first()
    if debtor is not None:
        summary.update(credit_service.credit_standing(db, debtor))
    return {
        "credits": [serialize_credit(c, now) for c in credits],
        "total": total,
        "totalPages": total_pages(total, size),
        "page": page,
        "summary": serialize_summary(summary),
    }


@router.get("/summary")
def credit_summary(
    outlet_id: Optional[int] = Query(None, alias="outletId"),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_outlet_or_admin),
):
    """Totals over an outlet's credits (admins may omit outletId for all outlets)"""
    if outlet_id is None:
        if not is_admin(current_user):
            owned = db.query(Outlet.id).filter(Outlet.owner_id == current_user.id).first()
            if not owned:
                raise ValidationError("outletId is required")
            outlet_id = owned[0]
    else:
        ensure_outlet_access(db, current_user, outlet_id)
    return serialize_summary(credit_service.summarize(db, outlet_id=outlet_id))


@router.get("/{credit_id}")
def get_credit(
    credit_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    credit = credit_service.get_credit(db, credit_id)
    _ensure_credit_access(db, current_user, credit)
    return {"credit": serialize_credit(credit, include_payments=True)}


@router.post("/{credit_id}/payment")
def record_payment(
    credit_id: int,
    data: PaymentCreate,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key", max_length=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Register a partial or final payment against a credit.

    Clients retrying a payment send the same Idempotency-Key header; a key
    already recorded on the credit is not applied twice.
    """
    credit = credit_service.get_credit(db, credit_id)
    _ensure_credit_access(db, current_user, credit)
    updated = credit_service.record_payment(
        db, credit_id, data.amount, notes=data.notes, actor_id=current_user.id,
        idempotency_key=idempotency_key,
    )
    return {"credit": serialize_credit(updated, include_payments=True)}


@router.put("/user/{user_id}/credit-limit")
def update_credit_limit(
    user_id: int,
    data: CreditLimitUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    """Set or clear (null) a customer's credit limit"""
    user = credit_service.set_credit_limit(db, user_id, data.credit_limit, actor_id=admin.id)
    return {"userId": user.id, **serialize_standing(credit_service.credit_standing(db, user))}
