import threading
import time
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from breakfast_api.core.config import settings
from breakfast_api.core.database import SessionLocal
from breakfast_api.core.errors import ConflictError, ValidationError
from breakfast_api.core.time_utils import utcnow
from breakfast_api.models import CreditPayment, CreditTransaction, Outlet, Product
from breakfast_api.services import credit_service


def _ledger_balances(credit_id):
    with SessionLocal() as db:
        credit = db.query(CreditTransaction).filter(CreditTransaction.id == credit_id).one()
        paid = sum((p.amount for p in credit.payments), Decimal("0"))
        return Decimal(str(credit.amount)), Decimal(str(credit.remaining_amount)), paid, credit.status


def test_credit_order_opens_credit_for_order_total(place_order, customer, outlet):
    body = place_order(customer)

    credit = body["credit"]
    assert credit["amount"] == 100.0
    assert credit["remainingAmount"] == 100.0
    assert credit["status"] == "pending"
    assert credit["order"]["orderNumber"] == body["order"]["orderNumber"]
    assert credit["user"]["id"] == customer.id
    assert credit["outlet"]["id"] == outlet.id


def test_non_deferred_payment_opens_no_credit(place_order, customer):
    body = place_order(customer, payment_method="card", paymentResult={"id": "ch_1", "status": "paid"})
    assert body["credit"] is None
    assert body["order"]["paymentResult"] == {"id": "ch_1", "status": "paid"}


def test_partial_then_final_payment(client, place_order, customer, owner, auth_headers):
    credit_id = place_order(customer)["credit"]["id"]

    r = client.post(f"/credit/{credit_id}/payment", json={"amount": 40}, headers=auth_headers(owner))
    assert r.status_code == 200, r.text
    credit = r.json()["credit"]
    assert credit["remainingAmount"] == 60.0
    assert credit["paidAmount"] == 40.0
    assert credit["status"] == "partially_paid"
    assert [p["amount"] for p in credit["payments"]] == [40.0]

    r = client.post(
        f"/credit/{credit_id}/payment",
        json={"amount": "60.00", "notes": "cash at counter"},
        headers=auth_headers(customer),
    )
    assert r.status_code == 200, r.text
    credit = r.json()["credit"]
    assert credit["remainingAmount"] == 0.0
    assert credit["status"] == "paid"
    assert [p["amount"] for p in credit["payments"]] == [40.0, 60.0]
    assert credit["payments"][1]["notes"] == "cash at counter"

    amount, remaining, paid, stored = _ledger_balances(credit_id)
    assert amount - remaining == paid
    assert stored == "paid"


@pytest.mark.parametrize("amount", [0, -5, 100.01])
def test_rejected_payment_leaves_credit_unchanged(client, place_order, customer, auth_headers, amount):
    credit_id = place_order(customer)["credit"]["id"]

    r = client.post(f"/credit/{credit_id}/payment", json={"amount": amount}, headers=auth_headers(customer))
    assert r.status_code == 400
    assert "message" in r.json()

    _, remaining, paid, stored = _ledger_balances(credit_id)
    assert remaining == Decimal("100.00")
    assert paid == 0
    assert stored == "pending"


def test_payment_on_paid_credit_is_rejected(client, place_order, customer, auth_headers):
    credit_id = place_order(customer)["credit"]["id"]
    client.post(f"/credit/{credit_id}/payment", json={"amount": 100}, headers=auth_headers(customer))

    r = client.post(f"/credit/{credit_id}/payment", json={"amount": 1}, headers=auth_headers(customer))
    assert r.status_code == 400
    assert r.json()["message"] == "Payment amount exceeds remaining balance"


def test_payment_on_missing_credit(client, customer, auth_headers, db_session):
    r = client.post("/credit/999/payment", json={"amount": 10}, headers=auth_headers(customer))
    assert r.status_code == 404
    assert r.json() == {"message": "Credit transaction not found"}


def test_payment_history_is_recorded(client, place_order, customer, admin, auth_headers):
    credit_id = place_order(customer)["credit"]["id"]
    client.post(f"/credit/{credit_id}/payment", json={"amount": 30}, headers=auth_headers(customer))
    client.post(f"/credit/{credit_id}/payment", json={"amount": 20}, headers=auth_headers(customer))
    client.post(f"/credit/{credit_id}/payment", json={"amount": 50}, headers=auth_headers(customer))

    r = client.get(f"/status-history/credit/{credit_id}", headers=auth_headers(admin))
    assert r.status_code == 200
    transitions = [(h["oldStatus"], h["newStatus"]) for h in reversed(r.json())]
    # Repeated partial payments do not add a transition
    assert transitions == [(None, "pending"), ("pending", "partially_paid"), ("partially_paid", "paid")]


def test_losing_a_race_retries_against_fresh_balance(place_order, customer, monkeypatch):
    credit_id = place_order(customer)["credit"]["id"]
    original_load = credit_service._load_for_payment
    state = {"injected": False}

    def load_then_compete(db, cid):
        credit = original_load(db, cid)
        if not state["injected"]:
            state["injected"] = True
            with SessionLocal() as other:
                credit_service.record_payment(other, cid, Decimal("40"))
        return credit

    monkeypatch.setattr(credit_service, "_load_for_payment", load_then_compete)

    with SessionLocal() as db:
        credit = credit_service.record_payment(db, credit_id, Decimal("50"))
        assert credit.remaining_amount == Decimal("10.00")

    amount, remaining, paid, _ = _ledger_balances(credit_id)
    assert remaining == Decimal("10.00")
    assert paid == Decimal("90.00")
    assert amount - remaining == paid


def test_race_that_would_overdraw_is_rejected(place_order, customer, monkeypatch):
    credit_id = place_order(customer)["credit"]["id"]
    original_load = credit_service._load_for_payment
    state = {"injected": False}

    def load_then_compete(db, cid):
        credit = original_load(db, cid)
        if not state["injected"]:
            state["injected"] = True
            with SessionLocal() as other:
                credit_service.record_payment(other, cid, Decimal("70"))
        return credit

    monkeypatch.setattr(credit_service, "_load_for_payment", load_then_compete)

    with SessionLocal() as db:
        with pytest.raises(ValidationError):
            credit_service.record_payment(db, credit_id, Decimal("70"))

    _, remaining, paid, stored = _ledger_balances(credit_id)
    assert remaining == Decimal("30.00")
    assert paid == Decimal("70.00")
    assert stored == "partially_paid"


def test_persistent_contention_gives_up_with_conflict(place_order, customer, monkeypatch):
    credit_id = place_order(customer)["credit"]["id"]
    original_load = credit_service._load_for_payment
    state = {"competing": False}

    def load_then_compete(db, cid):
        credit = original_load(db, cid)
        if not state["competing"]:
            state["competing"] = True
            try:
                with SessionLocal() as other:
                    credit_service.record_payment(other, cid, Decimal("1"))
            finally:
                state["competing"] = False
        return credit

    monkeypatch.setattr(credit_service, "_load_for_payment", load_then_compete)

    with SessionLocal() as db:
        with pytest.raises(ConflictError):
            credit_service.record_payment(db, credit_id, Decimal("5"))

    amount, remaining, paid, _ = _ledger_balances(credit_id)
    assert paid == Decimal("1") * credit_service.MAX_PAYMENT_ATTEMPTS
    assert amount - remaining == paid


def test_concurrent_payments_never_overdraw(place_order, customer):
    credit_id = place_order(customer)["credit"]["id"]
    barrier = threading.Barrier(2)
    outcomes = []

    def pay():
        with SessionLocal() as db:
            barrier.wait()
            try:
                credit_service.record_payment(db, credit_id, Decimal("70"))
                outcomes.append("ok")
            except (ValidationError, ConflictError) as exc:
                outcomes.append(type(exc).__name__)

    threads = [threading.Thread(target=pay) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    assert outcomes.count("ok") == 1
    amount, remaining, paid, _ = _ledger_balances(credit_id)
    assert remaining == Decimal("30.00")
    assert amount - remaining == paid


def test_overdue_is_derived_at_read_time(client, place_order, customer, owner, outlet, auth_headers, db_session):
    overdue_id = place_order(customer)["credit"]["id"]
    current_id = place_order(customer)["credit"]["id"]
    db_session.query(CreditTransaction).filter(CreditTransaction.id == overdue_id).update(
        {"due_date": utcnow() - timedelta(days=1)}
    )
    db_session.commit()

    r = client.get(f"/credit/outlet/{outlet.id}", params={"status": "overdue"}, headers=auth_headers(owner))
    assert r.status_code == 200
    body = r.json()
    assert [c["id"] for c in body["credits"]] == [overdue_id]
    assert body["credits"][0]["status"] == "overdue"

    r = client.get(f"/credit/outlet/{outlet.id}", params={"status": "pending"}, headers=auth_headers(owner))
    assert [c["id"] for c in r.json()["credits"]] == [current_id]

    # Stored status untouched until a payment or sweep
    stored = db_session.query(CreditTransaction.status).filter(CreditTransaction.id == overdue_id).scalar()
    assert stored == "pending"


def test_paying_overdue_credit_in_full_clears_overdue(client, place_order, customer, auth_headers, db_session):
    credit_id = place_order(customer)["credit"]["id"]
    db_session.query(CreditTransaction).filter(CreditTransaction.id == credit_id).update(
        {"due_date": utcnow() - timedelta(days=3)}
    )
    db_session.commit()

    r = client.post(f"/credit/{credit_id}/payment", json={"amount": 10}, headers=auth_headers(customer))
    assert r.json()["credit"]["status"] == "overdue"

    r = client.post(f"/credit/{credit_id}/payment", json={"amount": 90}, headers=auth_headers(customer))
    assert r.json()["credit"]["status"] == "paid"


def test_sweep_persists_overdue(place_order, customer, db_session):
    credit_id = place_order(customer)["credit"]["id"]
    paid_id = place_order(customer)["credit"]["id"]
    past = utcnow() - timedelta(days=2)
    db_session.query(CreditTransaction).filter(CreditTransaction.id.in_([credit_id, paid_id])).update(
        {"due_date": past}, synchronize_session=False
    )
    db_session.commit()
    credit_service.record_payment(db_session, paid_id, Decimal("100"))

    assert credit_service.sweep_overdue(db_session) == 1
    assert credit_service.sweep_overdue(db_session) == 0
    statuses = dict(db_session.query(CreditTransaction.id, CreditTransaction.status).all())
    assert statuses == {credit_id: "overdue", paid_id: "paid"}


def test_past_due_date_is_rejected_at_checkout(checkout, customer, db_session):
    r = checkout(customer, creditDueDate=(utcnow() - timedelta(days=1)).isoformat())
    assert r.status_code == 400
    assert r.json()["message"] == "Credit due date cannot be in the past"
    assert db_session.query(CreditTransaction).count() == 0


def test_custom_due_date_is_kept(place_order, customer):
    due = (utcnow() + timedelta(days=7)).replace(microsecond=0)
    credit = place_order(customer, creditDueDate=due.isoformat())["credit"]
    assert credit["dueDate"] == due.isoformat()


def test_default_due_date_uses_credit_term(place_order, customer):
    before = utcnow()
    credit = place_order(customer)["credit"]
    due = datetime.fromisoformat(credit["dueDate"])
    assert before + timedelta(days=settings.credit_term_days) <= due
    assert due <= utcnow() + timedelta(days=settings.credit_term_days)


def test_outlet_listing_paginates_and_searches(client, place_order, customer, other_customer, owner, outlet, auth_headers):
    for _ in range(3):
        place_order(customer)
    place_order(other_customer)

    r = client.get(f"/credit/outlet/{outlet.id}", params={"limit": 2}, headers=auth_headers(owner))
    body = r.json()
    assert body["total"] == 4
    assert body["totalPages"] == 2
    assert body["page"] == 1
    assert len(body["credits"]) == 2
    # Newest first
    assert body["credits"][0]["user"]["id"] == other_customer.id

    r = client.get(f"/credit/outlet/{outlet.id}", params={"search": "efua"}, headers=auth_headers(owner))
    assert [c["user"]["id"] for c in r.json()["credits"]] == [other_customer.id]


def test_invalid_status_filter(client, owner, outlet, auth_headers, db_session):
    r = client.get(f"/credit/outlet/{outlet.id}", params={"status": "settled"}, headers=auth_headers(owner))
    assert r.status_code == 400


def test_summary_totals(client, place_order, customer, other_customer, owner, outlet, auth_headers, db_session):
    first = place_order(customer)["credit"]["id"]
    second = place_order(other_customer)["credit"]["id"]
    third = place_order(customer)["credit"]["id"]
    client.post(f"/credit/{first}/payment", json={"amount": 100}, headers=auth_headers(customer))
    client.post(f"/credit/{second}/payment", json={"amount": 25}, headers=auth_headers(other_customer))
    db_session.query(CreditTransaction).filter(CreditTransaction.id == third).update(
        {"due_date": utcnow() - timedelta(days=1)}
    )
    db_session.commit()

    r = client.get("/credit/summary", params={"outletId": outlet.id}, headers=auth_headers(owner))
    assert r.status_code == 200
    assert r.json() == {
        "totalAmount": 300.0,
        "remainingAmount": 175.0,
        "overdueCount": 1,
        "totalCustomers": 2,
        "paidCount": 1,
    }

    # Owners may omit outletId
    r = client.get("/credit/summary", headers=auth_headers(owner))
    assert r.json()["totalAmount"] == 300.0


def test_user_listing_includes_own_summary(client, place_order, customer, other_customer, auth_headers):
    credit_id = place_order(customer)["credit"]["id"]
    place_order(other_customer)
    client.post(f"/credit/{credit_id}/payment", json={"amount": 40}, headers=auth_headers(customer))

    r = client.get(f"/credit/user/{customer.id}", headers=auth_headers(customer))
    assert r.status_code == 200
    body = r.json()
    assert [c["id"] for c in body["credits"]] == [credit_id]
    assert body["summary"]["remainingAmount"] == 60.0
    assert body["summary"]["totalCustomers"] == 1


def test_credit_access_control(client, place_order, customer, other_customer, admin, make_user, db_session, auth_headers):
    credit_id = place_order(customer)["credit"]["id"]
    stranger_owner = make_user("outlet", "Other Owner")
    db_session.add(Outlet(name="Labone Cafe", owner_id=stranger_owner.id))
    db_session.commit()

    assert client.get(f"/credit/{credit_id}").status_code == 401
    assert client.get(f"/credit/{credit_id}", headers=auth_headers(other_customer)).status_code == 403
    assert client.get(f"/credit/{credit_id}", headers=auth_headers(stranger_owner)).status_code == 403
    assert client.get(f"/credit/user/{customer.id}", headers=auth_headers(other_customer)).status_code == 403
    r = client.post(f"/credit/{credit_id}/payment", json={"amount": 5}, headers=auth_headers(other_customer))
    assert r.status_code == 403

    r = client.get(f"/credit/{credit_id}", headers=auth_headers(admin))
    assert r.status_code == 200
    assert r.json()["credit"]["payments"] == []


def test_retried_payment_with_same_key_is_applied_once(client, place_order, customer, auth_headers):
    credit_id = place_order(customer)["credit"]["id"]
    headers = {**auth_headers(customer), "Idempotency-Key": "pay-7f3a"}

    first = client.post(f"/credit/{credit_id}/payment", json={"amount": 40}, headers=headers)
    again = client.post(f"/credit/{credit_id}/payment", json={"amount": 40}, headers=headers)
    assert first.status_code == 200
    assert again.status_code == 200
    assert again.json()["credit"]["remainingAmount"] == 60.0
    assert len(again.json()["credit"]["payments"]) == 1

    r = client.post(f"/credit/{credit_id}/payment", json={"amount": 25}, headers=headers)
    assert r.status_code == 409

    # A new key is a new payment
    headers["Idempotency-Key"] = "pay-91c2"
    r = client.post(f"/credit/{credit_id}/payment", json={"amount": 40}, headers=headers)
    assert r.json()["credit"]["remainingAmount"] == 20.0


def test_idempotency_keys_are_scoped_to_one_credit(place_order, customer, db_session):
    first = place_order(customer)["credit"]["id"]
    second = place_order(customer)["credit"]["id"]

    credit_service.record_payment(db_session, first, Decimal("30"), idempotency_key="k-1")
    credit_service.record_payment(db_session, second, Decimal("30"), idempotency_key="k-1")
    credit_service.record_payment(db_session, first, Decimal("30"), idempotency_key="k-1")

    assert _ledger_balances(first)[1] == Decimal("70.00")
    assert _ledger_balances(second)[1] == Decimal("70.00")
    assert db_session.query(CreditPayment).count() == 2


def test_timed_out_payment_is_not_applied_twice_on_retry(client, place_order, customer, auth_headers, monkeypatch):
    credit_id = place_order(customer)["credit"]["id"]
    headers = {**auth_headers(customer), "Idempotency-Key": "slow-payment"}
    original = credit_service.record_payment

    def slow_record_payment(*args, **kwargs):
        time.sleep(0.6)
        return original(*args, **kwargs)

    monkeypatch.setattr(settings, "request_timeout_seconds", 0.2)
    monkeypatch.setattr(credit_service, "record_payment", slow_record_payment)

    r = client.post(f"/credit/{credit_id}/payment", json={"amount": 40}, headers=headers)
    assert r.status_code == 504
    assert r.json() == {"message": "Request timed out"}

    monkeypatch.setattr(settings, "request_timeout_seconds", 30.0)
    monkeypatch.setattr(credit_service, "record_payment", original)

    r = client.post(f"/credit/{credit_id}/payment", json={"amount": 40}, headers=headers)
    assert r.status_code == 200
    assert r.json()["credit"]["remainingAmount"] == 60.0
    assert len(r.json()["credit"]["payments"]) == 1

    amount, remaining, paid, status = _ledger_balances(credit_id)
    assert remaining == Decimal("60.00")
    assert amount - remaining == paid
    assert status == "partially_paid"


def test_admin_lists_credits_across_outlets(client, place_order, customer, other_customer, admin, owner, outlet, make_user, db_session, auth_headers):
    place_order(customer)
    place_order(other_customer)

    stranger = make_user("outlet", "Labone Owner")
    labone = Outlet(name="Labone Cafe", owner_id=stranger.id)
    db_session.add(labone)
    db_session.commit()
    muffin = Product(outlet_id=labone.id, name="Muffin", price=Decimal("8.00"), stock=5)
    db_session.add(muffin)
    db_session.commit()
    place_order(customer, items=[{"productId": muffin.id, "quantity": 2}])

    def listing(**params):
        r = client.get("/credit/", params=params, headers=auth_headers(admin))
        assert r.status_code == 200, r.text
        return r.json()

    body = listing()
    assert body["total"] == 3
    assert body["page"] == 1
    assert body["credits"][0]["outlet"]["id"] == labone.id

    assert listing(outlet=outlet.id)["total"] == 2
    assert [c["amount"] for c in listing(outlet=labone.id)["credits"]] == [16.0]
    assert listing(outlet=9999)["total"] == 0
    assert [c["user"]["id"] for c in listing(search="efua")["credits"]] == [other_customer.id]
    assert listing(status="pending", limit=2)["totalPages"] == 2
    assert listing(status="paid")["total"] == 0

    assert client.get("/credit/", headers=auth_headers(owner)).status_code == 403
    assert client.get("/credit/", headers=auth_headers(customer)).status_code == 403
