"""
Centralized order-number generation.
Numbers are sequential per outlet and backed by an OrderCounter row.
"""
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from breakfast_api.models.order import OrderCounter


ORDER_PREFIX = "ORD"

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def ensure_counter(db: Session, outlet_id: int) -> None:
    """
    Make sure the outlet's counter row exists without racing another checkout.

    INSERT ... ON CONFLICT DO NOTHING lets two first orders for the same outlet
    both proceed to the row lock instead of one failing on the unique key.
    """
    insert = _UPSERT_DIALECTS.get(db.get_bind().dialect.name)
    if insert is None:
        if not db.query(OrderCounter.id).filter(OrderCounter.outlet_id == outlet_id).first():
            db.add(OrderCounter(outlet_id=outlet_id, next_seq=1))
            db.flush()
        return
    db.execute(
        insert(OrderCounter)
        .values(outlet_id=outlet_id, next_seq=1)
        .on_conflict_do_nothing(index_elements=["outlet_id"])
    )


def get_next_order_seq(db: Session, outlet_id: int) -> int:
    """
    Return the next sequence number for an outlet, creating the counter if needed.

    The counter row is locked with with_for_update() so concurrent checkouts
    never share a number. Does NOT commit: the caller commits with the order.
    """
    ensure_counter(db, outlet_id)
    counter = (
        db.query(OrderCounter)
        .filter(OrderCounter.outlet_id == outlet_id)
        .with_for_update()
        .one()
    )

    current_seq = counter.next_seq
    counter.next_seq += 1
    return current_seq


def generate_order_number(db: Session, outlet_id: int) -> str:
    """
    Format: ORD-{SEQ:06d}, e.g. 'ORD-000001'. Unique per outlet.
    """
    seq = get_next_order_seq(db, outlet_id)
    return f"{ORDER_PREFIX}-{str(seq).zfill(6)}"
