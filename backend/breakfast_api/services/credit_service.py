"""
Credit ledger: deferred-payment obligations tied to one order.

Ledger rules:
- ``amount`` is fixed at creation; ``remaining_amount`` only decreases, and only
  through ``record_payment``.
- ``amount - remaining_amount == sum(payments.amount)`` at all times.
- ``status == 'paid'`` iff ``remaining_amount == 0``.
- ``overdue`` is derived at read time from ``due_date``; the stored status is
  only refreshed on payments (or by ``sweep_overdue``).
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, distinct, func, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session, selectinload

from breakfast_api.core.errors import ConflictError, NotFoundError, ValidationError
from breakfast_api.core.time_utils import to_naive_utc, utcnow
from breakfast_api.models.credit import CREDIT_STATUSES, CreditTransaction
from breakfast_api.models.credit_payment import CreditPayment
from breakfast_api.models.order import Order
from breakfast_api.models.user import User
from breakfast_api.services.status_history import record_status_change


logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")
MAX_PAYMENT_ATTEMPTS = 3


def to_money(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError("Invalid amount")
    if not amount.is_finite():
        raise ValidationError("Invalid amount")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def is_overdue(credit: CreditTransaction, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    return to_money(credit.remaining_amount) > ZERO and credit.due_date < now


def effective_status(credit: CreditTransaction, now: Optional[datetime] = None) -> str:
    """Status as reported to clients, independent of a stale stored value."""
    remaining = to_money(credit.remaining_amount)
    if remaining == ZERO:
        return "paid"
    if is_overdue(credit, now):
        return "overdue"
    if remaining < to_money(credit.amount):
        return "partially_paid"
    return "pending"


def apply_status_filter(query: Query, status: str, now: datetime) -> Query:
    """SQL counterpart of ``effective_status``."""
    remaining = CreditTransaction.remaining_amount
    if status == "paid":
        return query.filter(remaining == 0)
    if status == "overdue":
        return query.filter(remaining > 0, CreditTransaction.due_date < now)
    if status == "partially_paid":
        return query.filter(
            remaining > 0,
            remaining < CreditTransaction.amount,
            CreditTransaction.due_date >= now,
        )
    if status == "pending":
        return query.filter(
            remaining > 0,
            remaining == CreditTransaction.amount,
            CreditTransaction.due_date >= now,
        )
    raise ValidationError(f"Invalid status. Must be one of: {', '.join(CREDIT_STATUSES)}")


def create_credit(
    db: Session,
    order: Order,
    amount: Any,
    due_date: datetime,
    actor_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> CreditTransaction:
    """
    Open a credit for an order placed with a deferred payment method.

    Runs inside the caller's transaction (flush, no commit) so the order and
    its credit are persisted together.
    """
    now = now or utcnow()
    amount = to_money(amount)
    due_date = to_naive_utc(due_date)

    if amount <= ZERO:
        raise ValidationError("Credit amount must be positive")
    if due_date is None or due_date < now:
        raise ValidationError("Credit due date cannot be in the past")

    credit = CreditTransaction(
        order_id=order.id,
        user_id=order.user_id,
        outlet_id=order.outlet_id,
        amount=amount,
        remaining_amount=amount,
        status="pending",
        due_date=due_date,
    )
    db.add(credit)
    db.flush()

    record_status_change(
        db,
        entity_type="credit",
        entity_id=credit.id,
        old_status=None,
        new_status="pending",
        user_id=actor_id,
        notes=f"Credit of {amount} opened for order {order.order_number}",
    )
    logger.info(
        "credit opened credit_id=%s order=%s user_id=%s outlet_id=%s amount=%s due=%s",
        credit.id, order.order_number, order.user_id, order.outlet_id, amount, due_date.isoformat(),
    )
    return credit


def _scoped(query: Query, outlet_id: Optional[int], user_id: Optional[int]) -> Query:
    if outlet_id is not None:
        query = query.filter(CreditTransaction.outlet_id == outlet_id)
    if user_id is not None:
        query = query.filter(CreditTransaction.user_id == user_id)
    return query


def list_credits(
    db: Session,
    outlet_id: Optional[int] = None,
    user_id: Optional[int] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    offset: int = 0,
    limit: int = 10,
    now: Optional[datetime] = None,
) -> Tuple[List[CreditTransaction], int]:
    """Return one page of credits (newest first) and the total match count."""
    now = now or utcnow()
    query = (
        db.query(CreditTransaction)
        .join(User, CreditTransaction.user_id == User.id)
        .join(Order, CreditTransaction.order_id == Order.id)
    )
    query = _scoped(query, outlet_id, user_id)

    if status and status != "all":
        query = apply_status_filter(query, status, now)

    if search:
        term = search.strip().lower()
        if term:
            pattern = f"%{term}%"
            query = query.filter(
                or_(
                    func.lower(User.name).like(pattern),
                    func.lower(User.email).like(pattern),
                    func.lower(Order.order_number).like(pattern),
                )
            )

    total = query.count()
    credits = (
        query.options(
            selectinload(CreditTransaction.user),
            selectinload(CreditTransaction.order),
            selectinload(CreditTransaction.outlet),
        )
        .order_by(CreditTransaction.created_at.desc(), CreditTransaction.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return credits, total


def get_credit(db: Session, credit_id: int) -> CreditTransaction:
    credit = (
        db.query(CreditTransaction)
        .options(selectinload(CreditTransaction.payments))
        .filter(CreditTransaction.id == credit_id)
        .first()
    )
    if not credit:
        raise NotFoundError("Credit transaction not found")
    return credit


def _load_for_payment(db: Session, credit_id: int) -> CreditTransaction:
    credit = db.query(CreditTransaction).filter(CreditTransaction.id == credit_id).first()
    if not credit:
        raise NotFoundError("Credit transaction not found")
    return credit


def _replayed_payment(
    db: Session, credit_id: int, idempotency_key: Optional[str], amount: Decimal,
) -> Optional[CreditPayment]:
    if not idempotency_key:
        return None
    payment = (
        db.query(CreditPayment)
        .filter(CreditPayment.credit_id == credit_id, CreditPayment.idempotency_key == idempotency_key)
        .first()
    )
    if payment is not None and to_money(payment.amount) != amount:
        raise ConflictError("Idempotency key was already used for a different payment")
    return payment


def record_payment(
    db: Session,
    credit_id: int,
    amount: Any,
    notes: Optional[str] = None,
    actor_id: Optional[int] = None,
    idempotency_key: Optional[str] = None,
) -> CreditTransaction:
    """
    Apply a partial (or final) payment to a credit.

    The balance is decremented with a compare-and-swap on the observed
    ``remaining_amount``; the payment row and history row share that
    transaction. When a concurrent payment wins the swap the credit is re-read
    and re-validated, so a payment that would now overdraw fails with
    ValidationError instead of being applied.

    A payment carrying an ``idempotency_key`` already recorded on this credit
    is not applied again; the current credit is returned instead.
    """
    amount = to_money(amount)
    if amount <= ZERO:
        raise ValidationError("Payment amount must be positive")
    if idempotency_key is not None:
        idempotency_key = idempotency_key.strip() or None

    for attempt in range(1, MAX_PAYMENT_ATTEMPTS + 1):
        credit = _load_for_payment(db, credit_id)
        if _replayed_payment(db, credit_id, idempotency_key, amount) is not None:
            logger.info("payment replayed credit_id=%s key=%s", credit_id, idempotency_key)
            db.rollback()
            return get_credit(db, credit_id)

        observed = to_money(credit.remaining_amount)
        if amount > observed:
            db.rollback()
            raise ValidationError("Payment amount exceeds remaining balance")

        new_remaining = observed - amount
        new_status = "paid" if new_remaining == ZERO else "partially_paid"
        old_status = credit.status

        result = db.execute(
            update(CreditTransaction)
            .where(
                and_(
                    CreditTransaction.id == credit_id,
                    CreditTransaction.remaining_amount == observed,
                )
            )
            .values(remaining_amount=new_remaining, status=new_status, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.rollback()
            logger.warning(
                "payment conflict credit_id=%s amount=%s attempt=%s/%s",
                credit_id, amount, attempt, MAX_PAYMENT_ATTEMPTS,
            )
            continue

        db.add(CreditPayment(
            credit_id=credit_id,
            amount=amount,
            notes=notes,
            recorded_by=actor_id,
            idempotency_key=idempotency_key,
        ))
        if old_status != new_status:
            record_status_change(
                db,
                entity_type="credit",
                entity_id=credit_id,
                old_status=old_status,
                new_status=new_status,
                user_id=actor_id,
                notes=f"Payment of {amount}",
            )
        try:
            db.commit()
        except IntegrityError:
            # Same key committed concurrently; the balance update is undone with it
            db.rollback()
            if _replayed_payment(db, credit_id, idempotency_key, amount) is None:
                raise
            logger.info("payment replayed credit_id=%s key=%s", credit_id, idempotency_key)
            return get_credit(db, credit_id)
        logger.info(
            "payment recorded credit_id=%s amount=%s remaining=%s status=%s",
            credit_id, amount, new_remaining, new_status,
        )
        return get_credit(db, credit_id)

    raise ConflictError("Credit was updated concurrently, please retry")


def outstanding_balance(db: Session, user_id: int) -> Decimal:
    """Unpaid remainder over all of a customer's credits."""
    total = (
        db.query(func.coalesce(func.sum(CreditTransaction.remaining_amount), 0))
        .filter(CreditTransaction.user_id == user_id)
        .scalar()
    )
    return to_money(total)


def credit_standing(db: Session, user: User) -> Dict[str, Any]:
    used = outstanding_balance(db, user.id)
    limit = None if user.credit_limit is None else to_money(user.credit_limit)
    return {
        "creditLimit": limit,
        "creditUsed": used,
        "availableCredit": None if limit is None else max(limit - used, ZERO),
    }


def ensure_within_credit_limit(db: Session, user_id: int, amount: Any) -> None:
    """
    Reject a new credit that would push the customer past their limit.

    Locks the customer row so concurrent checkouts for the same customer are
    checked one after the other. Runs inside the caller's transaction.
    """
    user = db.query(User).filter(User.id == user_id).with_for_update().one()
    if user.credit_limit is None:
        return
    limit = to_money(user.credit_limit)
    used = outstanding_balance(db, user_id)
    if used + to_money(amount) > limit:
        raise ValidationError(
            f"Credit limit exceeded: available credit is {max(limit - used, ZERO)}"
        )


def set_credit_limit(db: Session, user_id: int, limit: Any, actor_id: Optional[int] = None) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    if limit is not None:
        limit = to_money(limit)
        if limit < ZERO:
            raise ValidationError("Credit limit cannot be negative")
    old_limit = user.credit_limit
    user.credit_limit = limit
    db.commit()
    db.refresh(user)
    logger.info("credit limit updated user_id=%s %s -> %s by=%s", user_id, old_limit, limit, actor_id)
    return user


def summarize(
    db: Session,
    outlet_id: Optional[int] = None,
    user_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or utcnow()

    total_amount, remaining_amount, customers = _scoped(
        db.query(
            func.coalesce(func.sum(CreditTransaction.amount), 0),
            func.coalesce(func.sum(CreditTransaction.remaining_amount), 0),
            func.count(distinct(CreditTransaction.user_id)),
        ),
        outlet_id,
        user_id,
    ).one()

    overdue_count = _scoped(
        db.query(func.count(CreditTransaction.id)).filter(
            CreditTransaction.remaining_amount > 0,
            CreditTransaction.due_date < now,
        ),
        outlet_id,
        user_id,
    ).scalar()

    paid_count = _scoped(
        db.query(func.count(CreditTransaction.id)).filter(CreditTransaction.remaining_amount == 0),
        outlet_id,
        user_id,
    ).scalar()

    return {
        "totalAmount": to_money(total_amount),
        "remainingAmount": to_money(remaining_amount),
        "overdueCount": int(overdue_count or 0),
        "totalCustomers": int(customers or 0),
        "paidCount": int(paid_count or 0),
    }


def sweep_overdue(db: Session, now: Optional[datetime] = None) -> int:
    """Persist 'overdue' on unpaid credits past due. Reads never rely on this."""
    now = now or utcnow()
    result = db.execute(
        update(CreditTransaction)
        .where(
            CreditTransaction.remaining_amount > 0,
            CreditTransaction.due_date < now,
            CreditTransaction.status != "overdue",
        )
        .values(status="overdue", updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    logger.info("overdue sweep marked %s credits", result.rowcount)
    return result.rowcount
