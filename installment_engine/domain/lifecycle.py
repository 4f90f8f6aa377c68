"""Request lifecycle manager - intake, primary-seller decision, forwarding, closure"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from installment_engine.domain import events
from installment_engine.domain.events import DomainEvent, Outcome
from installment_engine.domain.exceptions import (
    CannotCancelActiveContract,
    InvalidStateForDecision,
    PolicyViolation,
    ValidationError,
)
from installment_engine.domain.models import (
    DecisionAction,
    InstallmentRequest,
    LineItem,
    OfferItem,
    OfferSource,
    OfferType,
    PaymentFrequency,
    PrimarySellerDecision,
    RequestStatus,
)
from installment_engine.domain.offers import build_offer
from installment_engine.domain.policy import PolicyStore
from installment_engine.utils.date_utils import utc_now

BUYER_CANCELLED_REASON = "cancelled by buyer"


def _status_event(name: str, request: InstallmentRequest, **payload) -> DomainEvent:
    return DomainEvent(name, request.id, request.status.value, {"buyer_id": request.buyer_id, **payload})


def create_request(
    buyer_id: str,
    line_items: Sequence[LineItem],
    duration_months: int,
    frequency: Optional[PaymentFrequency],
    policy: PolicyStore,
    now: datetime | None = None,
) -> Outcome:
    """
    Open a new installment request awaiting the primary seller's review.

    Raises:
        PolicyViolation: installments are disabled
        ValidationError: empty items, bad quantities/prices, total or duration out of policy bounds
    """
    policy.ensure_enabled()
    if not buyer_id:
        raise ValidationError("buyer_id is required")
    if not line_items:
        raise ValidationError("At least one line item is required")

    items: List[LineItem] = []
    for item in line_items:
        if item.quantity_requested < 1:
            raise ValidationError(f"Quantity for {item.product_id} must be at least 1")
        if item.unit_price_requested < 0:
            raise ValidationError(f"Unit price for {item.product_id} cannot be negative")
        items.append(
            LineItem(
                product_id=item.product_id,
                quantity_requested=item.quantity_requested,
                unit_price_requested=Decimal(item.unit_price_requested),
                id=item.id or str(uuid.uuid4()),
            )
        )

    total = sum((item.line_total for item in items), Decimal("0"))
    policy.validate_request(total, duration_months)

    request = InstallmentRequest(
        id=str(uuid.uuid4()),
        buyer_id=buyer_id,
        line_items=items,
        total_requested_value=total,
        requested_duration_months=duration_months,
        payment_frequency=PaymentFrequency(frequency or policy.default_frequency),
        created_at=now or utc_now(),
    )
    return Outcome(
        request=request,
        events=[_status_event(events.REQUEST_CREATED, request, total_requested_value=str(total))],
    )


def record_primary_seller_decision(
    request: InstallmentRequest,
    action: DecisionAction,
    policy: PolicyStore,
    offer_items: Optional[Sequence[OfferItem]] = None,
    total_approved_value: Optional[Decimal] = None,
    forward_immediately: bool = False,
    supplier_ids: Optional[List[str]] = None,
    admin_notes: str | None = None,
    offer_notes: str | None = None,
    start_date: date | None = None,
    now: datetime | None = None,
) -> Outcome:
    """
    Record the primary seller's review of a pending request.

    approve_full / approve_partial produce one offer waiting for the buyer;
    reject either cascades straight to suppliers or parks the request in
    REJECTED_BY_SINICAR until an explicit forward. With supplier offers
    disabled, automatic forwarding is skipped and the request is parked.

    Raises:
        InvalidStateForDecision: request is not PENDING_SINICAR_REVIEW
        PolicyViolation: partial approval disallowed for the primary seller, or
            forward_immediately while supplier offers are disabled
        ValidationError: approval without a consistent offer payload
    """
    if request.status != RequestStatus.PENDING_SINICAR_REVIEW:
        raise InvalidStateForDecision(
            f"Request {request.id} cannot be reviewed in status {request.status.value}"
        )

    action = DecisionAction(action)
    now = now or utc_now()
    offer = None

    if action in (DecisionAction.APPROVE_FULL, DecisionAction.APPROVE_PARTIAL):
        if not offer_items or total_approved_value is None:
            raise ValidationError("Approval requires offer items and a total approved value")
        partial = action == DecisionAction.APPROVE_PARTIAL
        if partial and not policy.is_partial_approval_allowed(OfferSource.PRIMARY_SELLER):
            raise PolicyViolation("Partial approval by the primary seller is disabled")

        offer = build_offer(
            request,
            OfferSource.PRIMARY_SELLER,
            OfferType.PARTIAL if partial else OfferType.FULL,
            offer_items,
            total_approved_value,
            request.payment_frequency,
            policy.installment_count(request.payment_frequency, request.requested_duration_months),
            notes=offer_notes,
            start_date=start_date,
            now=now,
        )
        request.primary_seller_decision = (
            PrimarySellerDecision.APPROVED_PARTIAL if partial else PrimarySellerDecision.APPROVED_FULL
        )
        request.status = RequestStatus.WAITING_FOR_CUSTOMER_DECISION_ON_PARTIAL_SINICAR
        if partial and policy.auto_forward_on_partial():
            request.allowed_for_suppliers = True
            request.forwarded_supplier_ids = list(supplier_ids or [])
    else:
        if forward_immediately:
            policy.ensure_supplier_offers_allowed()
        if policy.auto_forward_on_reject() or forward_immediately:
            policy.validate_supplier_count(supplier_ids or [])
            request.primary_seller_decision = PrimarySellerDecision.REJECTED
            request.status = RequestStatus.FORWARDED_TO_SUPPLIERS
            request.allowed_for_suppliers = True
            request.forwarded_supplier_ids = list(supplier_ids or [])
        else:
            request.primary_seller_decision = PrimarySellerDecision.REJECTED
            request.status = RequestStatus.REJECTED_BY_SINICAR

    request.admin_notes = admin_notes
    request.reviewed_at = now

    outcome = Outcome(
        request=request,
        offer=offer,
        events=[
            _status_event(
                events.DECISION_RECORDED,
                request,
                decision=request.primary_seller_decision.value,
                offer_id=offer.id if offer else None,
            )
        ],
    )
    if offer is not None:
        outcome.events.append(
            DomainEvent(
                events.OFFER_SUBMITTED,
                offer.id,
                offer.status.value,
                {"request_id": request.id, "source_type": offer.source_type.value},
            )
        )
    if request.status == RequestStatus.FORWARDED_TO_SUPPLIERS:
        outcome.events.append(
            _status_event(events.REQUEST_FORWARDED, request, supplier_ids=request.forwarded_supplier_ids)
        )
    return outcome


def forward_to_suppliers(
    request: InstallmentRequest,
    supplier_ids: Optional[List[str]],
    policy: PolicyStore,
) -> Outcome:
    """
    Make a reviewed request visible to suppliers (empty list = all eligible).

    Raises:
        InvalidStateForDecision: no primary decision yet, or request is terminal
        PolicyViolation: supplier offers disabled
        ValidationError: more suppliers than the policy allows
    """
    if request.primary_seller_decision == PrimarySellerDecision.PENDING:
        raise InvalidStateForDecision(
            f"Request {request.id} must be reviewed by the primary seller before forwarding"
        )
    if request.status.is_terminal:
        raise InvalidStateForDecision(f"Request {request.id} is {request.status.value}")
    policy.ensure_supplier_offers_allowed()
    supplier_ids = list(dict.fromkeys(supplier_ids or []))
    policy.validate_supplier_count(supplier_ids)

    request.allowed_for_suppliers = True
    request.forwarded_supplier_ids = supplier_ids
    request.status = RequestStatus.FORWARDED_TO_SUPPLIERS
    return Outcome(
        request=request,
        events=[_status_event(events.REQUEST_FORWARDED, request, supplier_ids=supplier_ids)],
    )


def close_request(request: InstallmentRequest, reason: str, now: datetime | None = None) -> Outcome:
    if request.status.is_terminal:
        raise InvalidStateForDecision(f"Request {request.id} is already {request.status.value}")

    request.status = RequestStatus.CLOSED
    request.closed_reason = reason
    request.closed_at = now or utc_now()
    return Outcome(request=request, events=[_status_event(events.REQUEST_CLOSED, request, reason=reason)])


def cancel_request(request: InstallmentRequest, reason: str | None = None, now: datetime | None = None) -> Outcome:
    """
    Buyer-initiated cancellation.

    Raises:
        CannotCancelActiveContract: request already became a contract
        InvalidStateForDecision: request already closed or cancelled
    """
    if request.status == RequestStatus.ACTIVE_CONTRACT:
        raise CannotCancelActiveContract(f"Request {request.id} is an active contract")
    if request.status.is_terminal:
        raise InvalidStateForDecision(f"Request {request.id} is already {request.status.value}")

    request.status = RequestStatus.CANCELLED
    request.closed_reason = reason or BUYER_CANCELLED_REASON
    request.closed_at = now or utc_now()
    return Outcome(
        request=request,
        events=[_status_event(events.REQUEST_CANCELLED, request, reason=request.closed_reason)],
    )
