"""Unit tests for supplier offer submission"""

import pytest
from decimal import Decimal
from installment_engine.domain import lifecycle
from installment_engine.domain.exceptions import (
    DuplicateOffer,
    PolicyViolation,
    RequestNotOpenForSuppliers,
    ValidationError,
)
from installment_engine.domain.models import (
    DecisionAction,
    OfferItem,
    OfferSource,
    OfferStatus,
    OfferType,
    PaymentFrequency,
    RequestStatus,
)
from installment_engine.domain.offers import submit_supplier_offer
from installment_engine.domain.policy import NegotiationPolicy, PolicyStore


@pytest.fixture
def forwarded_request(pending_request, policy):
    return lifecycle.record_primary_seller_decision(pending_request, DecisionAction.REJECT, policy).request


def submit(request, supplier_id, policy, items, existing=None, **kwargs):
    options = {
        "offer_type": OfferType.FULL,
        "total": Decimal("2000"),
        "frequency": PaymentFrequency.MONTHLY,
        "installment_count": 3,
    }
    options.update(kwargs)
    return submit_supplier_offer(
        request,
        existing or [],
        supplier_id,
        options["offer_type"],
        items,
        options["total"],
        options["frequency"],
        options["installment_count"],
        policy,
    )


def test_first_offer_moves_request_to_buyer_decision(forwarded_request, policy, approve_items):
    outcome = submit(forwarded_request, "sup-a", policy, approve_items(forwarded_request, 2))

    assert outcome.request.status == RequestStatus.WAITING_FOR_CUSTOMER_DECISION_ON_SUPPLIER_OFFER
    assert outcome.offer.source_type == OfferSource.SUPPLIER
    assert outcome.offer.supplier_id == "sup-a"
    assert outcome.offer.status == OfferStatus.WAITING_FOR_BUYER
    assert [i.amount for i in outcome.offer.schedule.installments] == [
        Decimal("667"),
        Decimal("667"),
        Decimal("666"),
    ]


def test_offers_from_several_suppliers_coexist(forwarded_request, policy, approve_items):
    first = submit(forwarded_request, "sup-a", policy, approve_items(forwarded_request, 2)).offer
    second = submit(forwarded_request, "sup-b", policy, approve_items(forwarded_request, 2), existing=[first])

    assert second.request.status == RequestStatus.WAITING_FOR_CUSTOMER_DECISION_ON_SUPPLIER_OFFER
    assert first.status == OfferStatus.WAITING_FOR_BUYER
    assert second.offer.status == OfferStatus.WAITING_FOR_BUYER


def test_duplicate_offer(forwarded_request, policy, approve_items):
    first = submit(forwarded_request, "sup-a", policy, approve_items(forwarded_request, 2)).offer

    with pytest.raises(DuplicateOffer):
        submit(forwarded_request, "sup-a", policy, approve_items(forwarded_request, 2), existing=[first])


def test_request_not_forwarded(pending_request, policy, approve_items):
    with pytest.raises(RequestNotOpenForSuppliers):
        submit(pending_request, "sup-a", policy, approve_items(pending_request, 2))


def test_supplier_outside_forward_list(pending_request, policy, approve_items):
    lifecycle.record_primary_seller_decision(pending_request, DecisionAction.REJECT, policy, supplier_ids=["sup-a"])

    with pytest.raises(RequestNotOpenForSuppliers):
        submit(pending_request, "sup-z", policy, approve_items(pending_request, 2))


def test_terminal_request_closed_to_suppliers(forwarded_request, policy, approve_items):
    lifecycle.close_request(forwarded_request, "buyer found another seller")

    with pytest.raises(RequestNotOpenForSuppliers):
        submit(forwarded_request, "sup-a", policy, approve_items(forwarded_request, 2))


def test_partial_offer_disallowed(forwarded_request, approve_items):
    policy = PolicyStore(NegotiationPolicy(allow_partial_approval_by_suppliers=False))

    with pytest.raises(PolicyViolation):
        submit(
            forwarded_request, "sup-a", policy, approve_items(forwarded_request, 2), offer_type=OfferType.PARTIAL
        )


def test_installment_count_clamped_to_policy(forwarded_request, policy, approve_items):
    offer = submit(
        forwarded_request,
        "sup-a",
        policy,
        approve_items(forwarded_request, 2),
        frequency=PaymentFrequency.WEEKLY,
        installment_count=500,
    ).offer

    assert offer.schedule.installment_count == 96
    assert offer.schedule.total == Decimal("2000")


def test_zero_installments_rejected(forwarded_request, policy, approve_items):
    with pytest.raises(ValidationError):
        submit(forwarded_request, "sup-a", policy, approve_items(forwarded_request, 2), installment_count=0)


def test_quantity_above_requested(forwarded_request, policy):
    line = forwarded_request.line_items[0]
    items = [OfferItem(line.id, line.quantity_requested + 1, line.unit_price_requested)]

    with pytest.raises(ValidationError):
        submit(forwarded_request, "sup-a", policy, items, total=line.unit_price_requested * 3)


def test_unknown_request_item(forwarded_request, policy):
    items = [OfferItem("no-such-line", 1, Decimal("2000"))]

    with pytest.raises(ValidationError):
        submit(forwarded_request, "sup-a", policy, items)
