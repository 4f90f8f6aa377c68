"""Integration tests for the installment engine against a real database"""

import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy.orm import Session
from installment_engine.domain import offers as offer_manager
from installment_engine.domain.exceptions import (
    ConcurrentModification,
    DuplicateOffer,
    OfferAlreadyResolved,
    RequestNotFound,
    ValidationError,
)
from installment_engine.domain.models import (
    BuyerAction,
    CreditScoreLevel,
    DecisionAction,
    InstallmentStatus,
    OfferStatus,
    OfferType,
    PaymentFrequency,
    RequestStatus,
)
from installment_engine.domain.policy import NegotiationPolicy
from installment_engine.infrastructure.database.models import InstallmentRequestRecord
from installment_engine.services.engine import InstallmentEngine, load_policy_store


@pytest.fixture
def engine(db: Session) -> InstallmentEngine:
    return InstallmentEngine(db)


@pytest.fixture
def stored_request(engine, line_items, policy):
    return engine.create_request("buyer-1", line_items, 3, PaymentFrequency.MONTHLY, policy).request


@pytest.fixture
def forwarded_request(engine, stored_request, policy):
    return engine.record_primary_seller_decision(stored_request.id, DecisionAction.REJECT, policy).request


def submit(engine, request, supplier_id, policy, approve_items):
    return engine.submit_supplier_offer(
        request.id,
        supplier_id,
        OfferType.FULL,
        approve_items(request, 2),
        Decimal("2000"),
        PaymentFrequency.MONTHLY,
        3,
        policy,
    ).offer


def test_request_round_trip(engine, stored_request):
    loaded = engine.get_request(stored_request.id)

    assert loaded.status == RequestStatus.PENDING_SINICAR_REVIEW
    assert loaded.total_requested_value == Decimal("3000")
    assert [item.product_id for item in loaded.line_items] == ["brake-pads", "oil-filter", "spark-plug"]
    assert [r.id for r in engine.list_requests_by_buyer("buyer-1")] == [stored_request.id]
    assert [r.id for r in engine.list_requests_by_status(RequestStatus.PENDING_SINICAR_REVIEW)] == [stored_request.id]


def test_unknown_request(engine):
    with pytest.raises(RequestNotFound):
        engine.get_request("missing")
    with pytest.raises(RequestNotFound):
        engine.list_offers_by_request("missing")


def test_primary_decision_persists_offer_and_schedule(engine, stored_request, policy, approve_items):
    outcome = engine.record_primary_seller_decision(
        stored_request.id,
        DecisionAction.APPROVE_PARTIAL,
        policy,
        offer_items=approve_items(stored_request, 2),
        total_approved_value=Decimal("2000"),
        start_date=date(2024, 1, 10),
    )

    offers = engine.list_offers_by_request(stored_request.id)
    assert len(offers) == 1
    offer = offers[0]
    assert offer.id == outcome.offer.id
    assert offer.total_approved_value == Decimal("2000")
    assert [i.amount for i in offer.schedule.installments] == [Decimal("667"), Decimal("667"), Decimal("666")]
    assert [i.due_date for i in offer.schedule.installments][0] == date(2024, 1, 17)
    assert all(i.id for i in offer.schedule.installments)
    assert engine.get_request(stored_request.id).status == (
        RequestStatus.WAITING_FOR_CUSTOMER_DECISION_ON_PARTIAL_SINICAR
    )


def test_failed_decision_leaves_request_untouched(engine, stored_request, policy, approve_items):
    with pytest.raises(ValidationError):
        engine.record_primary_seller_decision(
            stored_request.id,
            DecisionAction.APPROVE_FULL,
            policy,
            offer_items=approve_items(stored_request, 3),
            total_approved_value=Decimal("1"),
        )

    assert engine.get_request(stored_request.id).status == RequestStatus.PENDING_SINICAR_REVIEW
    assert engine.list_offers_by_request(stored_request.id) == []


def test_supplier_offers_and_acceptance(engine, forwarded_request, policy, approve_items):
    offer_a = submit(engine, forwarded_request, "sup-a", policy, approve_items)
    offer_b = submit(engine, forwarded_request, "sup-b", policy, approve_items)
    assert engine.get_request(forwarded_request.id).status == (
        RequestStatus.WAITING_FOR_CUSTOMER_DECISION_ON_SUPPLIER_OFFER
    )

    outcome = engine.resolve_buyer_decision(offer_a.id, BuyerAction.ACCEPT, policy)

    assert [o.id for o in outcome.superseded] == [offer_b.id]
    assert engine.get_offer(offer_a.id).status == OfferStatus.ACCEPTED
    assert engine.get_offer(offer_b.id).status == OfferStatus.SUPERSEDED
    request = engine.get_request(forwarded_request.id)
    assert request.status == RequestStatus.ACTIVE_CONTRACT
    assert request.accepted_offer_id == offer_a.id

    profile = engine.get_credit_profile("buyer-1")
    assert profile.total_active_contracts == 1
    assert profile.total_remaining_amount == Decimal("2000")

    with pytest.raises(OfferAlreadyResolved):
        engine.resolve_buyer_decision(offer_b.id, BuyerAction.ACCEPT, policy)


def test_duplicate_supplier_offer(engine, forwarded_request, policy, approve_items):
    submit(engine, forwarded_request, "sup-a", policy, approve_items)

    with pytest.raises(DuplicateOffer):
        submit(engine, forwarded_request, "sup-a", policy, approve_items)
    assert len(engine.list_offers_by_request(forwarded_request.id)) == 1


def test_cancel_withdraws_waiting_offers(engine, forwarded_request, policy, approve_items):
    offer = submit(engine, forwarded_request, "sup-a", policy, approve_items)

    outcome = engine.cancel_request(forwarded_request.id)

    assert outcome.request.status == RequestStatus.CANCELLED
    assert engine.get_offer(offer.id).status == OfferStatus.SUPERSEDED


def test_supplier_inbox(engine, line_items, policy):
    def new_request():
        return engine.create_request("buyer-1", line_items, 3, PaymentFrequency.MONTHLY, policy).request

    open_to_all = new_request()
    engine.record_primary_seller_decision(open_to_all.id, DecisionAction.REJECT, policy)
    targeted = new_request()
    engine.record_primary_seller_decision(targeted.id, DecisionAction.REJECT, policy, supplier_ids=["sup-b"])
    closed = new_request()
    engine.record_primary_seller_decision(closed.id, DecisionAction.REJECT, policy)
    engine.close_request(closed.id, "withdrawn")
    new_request()  # still with the primary seller

    assert [r.id for r in engine.list_requests_for_supplier("sup-a")] == [open_to_all.id]
    assert {r.id for r in engine.list_requests_for_supplier("sup-b")} == {open_to_all.id, targeted.id}
    assert len(engine.list_requests_for_supplier("sup-b", limit=1)) == 1


def test_supplier_offer_on_request_cancelled_meanwhile(engine, forwarded_request, policy, approve_items, monkeypatch):
    snapshot = engine.get_request(forwarded_request.id)
    engine.cancel_request(forwarded_request.id)
    # Supplier still holds the pre-cancel read
    monkeypatch.setattr(engine.requests, "get", lambda request_id, for_update=False: snapshot)

    with pytest.raises(ConcurrentModification):
        submit(engine, forwarded_request, "sup-a", policy, approve_items)

    monkeypatch.undo()
    assert engine.get_request(forwarded_request.id).status == RequestStatus.CANCELLED
    assert engine.list_offers_by_request(forwarded_request.id) == []


def test_supplier_offer_on_accepted_request(engine, forwarded_request, policy, approve_items, monkeypatch):
    offer_a = submit(engine, forwarded_request, "sup-a", policy, approve_items)
    snapshot = engine.get_request(forwarded_request.id)
    engine.resolve_buyer_decision(offer_a.id, BuyerAction.ACCEPT, policy)
    monkeypatch.setattr(engine.requests, "get", lambda request_id, for_update=False: snapshot)

    with pytest.raises(ConcurrentModification):
        submit(engine, forwarded_request, "sup-b", policy, approve_items)

    monkeypatch.undo()
    offers = engine.list_offers_by_request(forwarded_request.id)
    assert [(o.supplier_id, o.status) for o in offers] == [("sup-a", OfferStatus.ACCEPTED)]
    assert engine.get_request(forwarded_request.id).status == RequestStatus.ACTIVE_CONTRACT


def test_stale_request_version_rolls_back(engine, db, stored_request):
    with pytest.raises(ConcurrentModification):
        with engine._unit_of_work("close_request"):
            request = engine.requests.get(stored_request.id)
            # Another writer commits first and bumps the version
            db.query(InstallmentRequestRecord).filter(InstallmentRequestRecord.id == stored_request.id).update(
                {InstallmentRequestRecord.version: InstallmentRequestRecord.version + 1},
                synchronize_session=False,
            )
            request.status = RequestStatus.CLOSED
            engine.requests.save(request)

    loaded = engine.get_request(stored_request.id)
    assert loaded.status == RequestStatus.PENDING_SINICAR_REVIEW
    assert loaded.closed_at is None


def test_duplicate_offer_race_hits_unique_constraint(engine, forwarded_request, policy, approve_items, monkeypatch):
    submit(engine, forwarded_request, "sup-a", policy, approve_items)
    # Second submission read the offer list before the first one committed
    monkeypatch.setattr(engine.offers, "list_by_request", lambda request_id, for_update=False: [])

    with pytest.raises(ConcurrentModification):
        submit(engine, forwarded_request, "sup-a", policy, approve_items)

    monkeypatch.undo()
    offers = engine.list_offers_by_request(forwarded_request.id)
    assert [o.supplier_id for o in offers] == ["sup-a"]


def test_duplicate_offer_insert_in_unit_of_work(engine, forwarded_request, policy, approve_items):
    first = submit(engine, forwarded_request, "sup-a", policy, approve_items)
    request = engine.get_request(forwarded_request.id)
    duplicate = offer_manager.build_offer(
        request,
        first.source_type,
        OfferType.FULL,
        approve_items(request, 2),
        Decimal("2000"),
        PaymentFrequency.MONTHLY,
        3,
        supplier_id="sup-a",
    )

    with pytest.raises(ConcurrentModification):
        with engine._unit_of_work("submit_supplier_offer"):
            engine.offers.add(duplicate)

    assert [o.id for o in engine.list_offers_by_request(forwarded_request.id)] == [first.id]


def test_payment_and_sweep(engine, stored_request, policy, approve_items):
    offer = engine.record_primary_seller_decision(
        stored_request.id,
        DecisionAction.APPROVE_FULL,
        policy,
        offer_items=approve_items(stored_request, 3),
        total_approved_value=Decimal("3000"),
        start_date=date(2024, 1, 10),
    ).offer
    engine.resolve_buyer_decision(offer.id, BuyerAction.ACCEPT, policy)
    first, second, _ = engine.get_offer(offer.id).schedule.installments

    engine.mark_installment_paid(offer.id, first.id, method="card", reference="PAY-1")
    report = engine.sweep_overdue(policy, today=date(2024, 2, 21))
    again = engine.sweep_overdue(policy, today=date(2024, 2, 21))

    assert report.offers_scanned == 1
    assert report.newly_overdue == 1
    assert again.newly_overdue == 0
    stored = engine.get_offer(offer.id)
    assert stored.find_installment(first.id).status == InstallmentStatus.PAID
    assert stored.find_installment(first.id).payment_reference == "PAY-1"
    assert stored.find_installment(second.id).status == InstallmentStatus.OVERDUE

    profile = engine.get_credit_profile("buyer-1")
    assert profile.total_paid_amount == Decimal("1000")
    assert profile.total_remaining_amount == Decimal("2000")
    assert profile.total_overdue_installments == 1
    assert profile.score_level == CreditScoreLevel.MEDIUM


def test_policy_update(engine, db):
    assert load_policy_store(db).policy == NegotiationPolicy()

    engine.update_policy(NegotiationPolicy(overdue_grace_period_days=7, max_suppliers_per_request=3))

    store = load_policy_store(db)
    assert store.grace_period_days == 7
    assert store.policy.max_suppliers_per_request == 3


def test_stats(engine, stored_request, forwarded_request):
    stats = engine.get_stats()

    assert stats.total_requests == 1
    assert stats.pending_requests == 1
    assert stats.by_status == {RequestStatus.FORWARDED_TO_SUPPLIERS.value: 1}
