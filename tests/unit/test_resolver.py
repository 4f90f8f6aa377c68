"""Unit tests for buyer accept/reject resolution and cascades"""

import pytest
from decimal import Decimal
from installment_engine.domain import lifecycle, resolver
from installment_engine.domain.exceptions import InvalidStateForDecision, OfferAlreadyResolved
from installment_engine.domain.models import (
    BuyerAction,
    CustomerCreditProfile,
    DecisionAction,
    OfferStatus,
    OfferType,
    PaymentFrequency,
    RequestStatus,
)
from installment_engine.domain.offers import submit_supplier_offer
from installment_engine.domain.policy import NegotiationPolicy, PolicyStore


@pytest.fixture
def primary_offer(pending_request, policy, approve_items):
    return lifecycle.record_primary_seller_decision(
        pending_request,
        DecisionAction.APPROVE_PARTIAL,
        policy,
        offer_items=approve_items(pending_request, 2),
        total_approved_value=Decimal("2000"),
    ).offer


@pytest.fixture
def supplier_offers(pending_request, policy, approve_items):
    """Two supplier offers waiting on a forwarded request"""
    lifecycle.record_primary_seller_decision(pending_request, DecisionAction.REJECT, policy)
    offers = []
    for supplier_id in ("sup-a", "sup-b"):
        outcome = submit_supplier_offer(
            pending_request,
            offers,
            supplier_id,
            OfferType.FULL,
            approve_items(pending_request, 2),
            Decimal("2000"),
            PaymentFrequency.MONTHLY,
            3,
            policy,
        )
        offers.append(outcome.offer)
    return offers


def resolve(offer, request, siblings, action, policy, profile=None):
    return resolver.resolve_buyer_decision(
        offer, request, siblings, action, policy, profile or CustomerCreditProfile(buyer_id=request.buyer_id)
    )


def test_accept_primary_offer(pending_request, primary_offer, policy):
    profile = CustomerCreditProfile(buyer_id="buyer-1")

    outcome = resolve(primary_offer, pending_request, [primary_offer], BuyerAction.ACCEPT, policy, profile)

    assert outcome.offer.status == OfferStatus.ACCEPTED
    assert outcome.offer.resolved_at is not None
    assert outcome.request.status == RequestStatus.ACTIVE_CONTRACT
    assert outcome.request.accepted_offer_id == primary_offer.id
    assert profile.total_requests == 1
    assert profile.total_active_contracts == 1
    assert profile.total_remaining_amount == Decimal("2000")


def test_accept_supersedes_other_offers(pending_request, supplier_offers, policy):
    offer_a, offer_b = supplier_offers

    outcome = resolve(offer_a, pending_request, supplier_offers, BuyerAction.ACCEPT, policy)

    assert offer_a.status == OfferStatus.ACCEPTED
    assert offer_b.status == OfferStatus.SUPERSEDED
    assert [o.id for o in outcome.superseded] == [offer_b.id]


def test_only_one_offer_can_be_accepted(pending_request, supplier_offers, policy):
    offer_a, offer_b = supplier_offers
    resolve(offer_a, pending_request, supplier_offers, BuyerAction.ACCEPT, policy)

    with pytest.raises(OfferAlreadyResolved):
        resolve(offer_b, pending_request, supplier_offers, BuyerAction.ACCEPT, policy)
    with pytest.raises(OfferAlreadyResolved):
        resolve(offer_a, pending_request, supplier_offers, BuyerAction.REJECT, policy)


def test_accept_on_terminal_request(pending_request, primary_offer, policy):
    lifecycle.close_request(pending_request, "withdrawn")

    with pytest.raises(InvalidStateForDecision):
        resolve(primary_offer, pending_request, [primary_offer], BuyerAction.ACCEPT, policy)


def test_reject_primary_offer_forwards(pending_request, primary_offer, policy):
    outcome = resolve(primary_offer, pending_request, [primary_offer], BuyerAction.REJECT, policy)

    assert outcome.offer.status == OfferStatus.REJECTED
    assert outcome.request.status == RequestStatus.FORWARDED_TO_SUPPLIERS
    assert outcome.request.allowed_for_suppliers is True


def test_reject_primary_offer_closes(pending_request, primary_offer):
    policy = PolicyStore(NegotiationPolicy(on_buyer_rejects_primary_offer="close_request"))

    outcome = resolve(primary_offer, pending_request, [primary_offer], BuyerAction.REJECT, policy)

    assert outcome.request.status == RequestStatus.CLOSED
    assert outcome.request.closed_reason == resolver.PRIMARY_OFFER_REJECTED_REASON


def test_reject_primary_offer_closes_when_supplier_offers_disabled(pending_request, primary_offer):
    policy = PolicyStore(NegotiationPolicy(allow_supplier_offers=False))

    outcome = resolve(primary_offer, pending_request, [primary_offer], BuyerAction.REJECT, policy)

    assert outcome.request.status == RequestStatus.CLOSED
    assert outcome.request.allowed_for_suppliers is False
    assert outcome.request.closed_reason == resolver.PRIMARY_OFFER_REJECTED_REASON


def test_reject_partial_primary_offer_with_supplier_bids_waiting(pending_request, approve_items):
    policy = PolicyStore(NegotiationPolicy(auto_forward_on_primary_partial_remainder=True))
    primary = lifecycle.record_primary_seller_decision(
        pending_request,
        DecisionAction.APPROVE_PARTIAL,
        policy,
        offer_items=approve_items(pending_request, 2),
        total_approved_value=Decimal("2000"),
    ).offer
    supplier = submit_supplier_offer(
        pending_request,
        [primary],
        "sup-a",
        OfferType.FULL,
        approve_items(pending_request, 3),
        Decimal("3000"),
        PaymentFrequency.MONTHLY,
        3,
        policy,
    ).offer
    siblings = [primary, supplier]

    outcome = resolve(primary, pending_request, siblings, BuyerAction.REJECT, policy)

    assert primary.status == OfferStatus.REJECTED
    assert supplier.status == OfferStatus.WAITING_FOR_BUYER
    assert outcome.request.status == RequestStatus.WAITING_FOR_CUSTOMER_DECISION_ON_SUPPLIER_OFFER
    assert outcome.superseded == []


def test_reject_supplier_offer_keeps_waiting_on_others(pending_request, supplier_offers, policy):
    offer_a, offer_b = supplier_offers

    outcome = resolve(offer_a, pending_request, supplier_offers, BuyerAction.REJECT, policy)

    assert outcome.request.status == RequestStatus.WAITING_FOR_CUSTOMER_DECISION_ON_SUPPLIER_OFFER
    assert offer_b.status == OfferStatus.WAITING_FOR_BUYER
    assert outcome.superseded == []


def test_reject_last_supplier_offer_reopens_request(pending_request, supplier_offers, policy):
    offer_a, offer_b = supplier_offers
    resolve(offer_a, pending_request, supplier_offers, BuyerAction.REJECT, policy)

    outcome = resolve(offer_b, pending_request, supplier_offers, BuyerAction.REJECT, policy)

    assert outcome.request.status == RequestStatus.WAITING_FOR_SUPPLIER_OFFERS


def test_reject_supplier_offer_closes(pending_request, supplier_offers):
    policy = PolicyStore(NegotiationPolicy(on_buyer_rejects_supplier_offer="close_request"))
    offer_a, offer_b = supplier_offers

    outcome = resolve(offer_a, pending_request, supplier_offers, BuyerAction.REJECT, policy)

    assert outcome.request.status == RequestStatus.CLOSED
    assert offer_b.status == OfferStatus.SUPERSEDED


def test_rejection_cascade_is_deterministic(line_items, approve_items):
    """The same policy and decisions always land in the same state"""
    policy = PolicyStore(NegotiationPolicy(on_buyer_rejects_primary_offer="close_request"))
    statuses = []
    for _ in range(2):
        request = lifecycle.create_request("buyer-1", line_items, 3, PaymentFrequency.MONTHLY, policy).request
        offer = lifecycle.record_primary_seller_decision(
            request,
            DecisionAction.APPROVE_FULL,
            policy,
            offer_items=approve_items(request, 3),
            total_approved_value=Decimal("3000"),
        ).offer
        statuses.append(resolve(offer, request, [offer], BuyerAction.REJECT, policy).request.status)

    assert statuses == [RequestStatus.CLOSED, RequestStatus.CLOSED]


def test_resolution_event(pending_request, primary_offer, policy):
    outcome = resolve(primary_offer, pending_request, [primary_offer], BuyerAction.ACCEPT, policy)

    event = outcome.events[-1]
    assert event.entity_id == primary_offer.id
    assert event.status == OfferStatus.ACCEPTED.value
    assert event.payload["request_status"] == RequestStatus.ACTIVE_CONTRACT.value
