"""Offer manager - builds primary-seller and supplier offers against a request"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import List, Sequence

from installment_engine.domain import events
from installment_engine.domain.events import DomainEvent, Outcome
from installment_engine.domain.exceptions import (
    DuplicateOffer,
    PolicyViolation,
    RequestNotOpenForSuppliers,
    ValidationError,
)
from installment_engine.domain.models import (
    InstallmentOffer,
    InstallmentRequest,
    OfferItem,
    OfferSource,
    OfferType,
    PaymentFrequency,
    RequestStatus,
)
from installment_engine.domain.policy import PolicyStore
from installment_engine.domain.schedule import generate_payment_schedule
from installment_engine.utils.date_utils import utc_now

# Request states in which a new supplier offer moves the request to buyer decision
AWAITING_SUPPLIER_STATUSES = frozenset(
    {
        RequestStatus.FORWARDED_TO_SUPPLIERS,
        RequestStatus.WAITING_FOR_SUPPLIER_OFFERS,
        RequestStatus.WAITING_FOR_CUSTOMER_DECISION_ON_PARTIAL_SINICAR,
    }
)

# Every non-terminal state a supplier can submit into
SUPPLIER_OPEN_STATUSES = AWAITING_SUPPLIER_STATUSES | {RequestStatus.WAITING_FOR_CUSTOMER_DECISION_ON_SUPPLIER_OFFER}


def validate_offer_items(
    request: InstallmentRequest, items: Sequence[OfferItem], total_approved_value: Decimal
) -> None:
    """Offer items must reference request lines and add up to the declared total"""
    if not items:
        raise ValidationError("An offer must approve at least one item")

    for item in items:
        line = request.find_item(item.request_item_id)
        if line is None:
            raise ValidationError(f"Unknown request item {item.request_item_id}")
        if item.quantity_approved < 1 or item.quantity_approved > line.quantity_requested:
            raise ValidationError(
                f"Approved quantity for {item.request_item_id} must be between 1 and {line.quantity_requested}"
            )
        if item.unit_price_approved < 0:
            raise ValidationError("Approved unit price cannot be negative")

    items_total = sum((item.line_total for item in items), Decimal("0"))
    if items_total != Decimal(total_approved_value):
        raise ValidationError(
            f"Approved total {total_approved_value} does not match item total {items_total}"
        )


def build_offer(
    request: InstallmentRequest,
    source_type: OfferSource,
    offer_type: OfferType,
    items: Sequence[OfferItem],
    total_approved_value: Decimal,
    frequency: PaymentFrequency,
    installment_count: int,
    supplier_id: str | None = None,
    notes: str | None = None,
    start_date: date | None = None,
    now: datetime | None = None,
) -> InstallmentOffer:
    """Validate items and attach a freshly generated schedule"""
    validate_offer_items(request, items, total_approved_value)
    schedule = generate_payment_schedule(
        Decimal(total_approved_value), frequency, installment_count, start_date
    )
    return InstallmentOffer(
        id=str(uuid.uuid4()),
        request_id=request.id,
        source_type=OfferSource(source_type),
        supplier_id=supplier_id,
        type=OfferType(offer_type),
        items_approved=list(items),
        total_approved_value=Decimal(total_approved_value),
        schedule=schedule,
        notes=notes,
        created_at=now or utc_now(),
    )


def is_open_to_supplier(request: InstallmentRequest, supplier_id: str) -> bool:
    if not request.allowed_for_suppliers or request.status.is_terminal:
        return False
    if request.forwarded_supplier_ids and supplier_id not in request.forwarded_supplier_ids:
        return False
    return True


def submit_supplier_offer(
    request: InstallmentRequest,
    existing_offers: List[InstallmentOffer],
    supplier_id: str,
    offer_type: OfferType,
    items: Sequence[OfferItem],
    total_approved_value: Decimal,
    frequency: PaymentFrequency,
    installment_count: int,
    policy: PolicyStore,
    notes: str | None = None,
    start_date: date | None = None,
    now: datetime | None = None,
) -> Outcome:
    """
    Create a supplier's offer for a forwarded request.

    The first supplier offer moves the request to the buyer-decision state;
    later ones coexist in waiting_for_buyer without touching the request.

    Raises:
        RequestNotOpenForSuppliers: request not forwarded (to this supplier) or terminal
        PolicyViolation: partial offer while suppliers may not approve partially
        DuplicateOffer: supplier already has an offer on this request
        ValidationError: items or totals are inconsistent with the request
    """
    if not supplier_id:
        raise ValidationError("supplier_id is required for supplier offers")
    if not is_open_to_supplier(request, supplier_id):
        raise RequestNotOpenForSuppliers(f"Request {request.id} is not open to supplier {supplier_id}")
    if OfferType(offer_type) == OfferType.PARTIAL and not policy.is_partial_approval_allowed(OfferSource.SUPPLIER):
        raise PolicyViolation("Suppliers may not submit partial offers")
    if any(o.supplier_id == supplier_id for o in existing_offers if o.source_type == OfferSource.SUPPLIER):
        raise DuplicateOffer(f"Supplier {supplier_id} already submitted an offer for request {request.id}")

    if installment_count < 1:
        raise ValidationError(f"Installment count must be at least 1, got {installment_count}")
    count = policy.clamp_installment_count(frequency, installment_count)
    offer = build_offer(
        request,
        OfferSource.SUPPLIER,
        offer_type,
        items,
        total_approved_value,
        frequency,
        count,
        supplier_id=supplier_id,
        notes=notes,
        start_date=start_date,
        now=now,
    )

    if request.status in AWAITING_SUPPLIER_STATUSES:
        request.status = RequestStatus.WAITING_FOR_CUSTOMER_DECISION_ON_SUPPLIER_OFFER

    return Outcome(
        request=request,
        offer=offer,
        events=[
            DomainEvent(
                events.OFFER_SUBMITTED,
                offer.id,
                offer.status.value,
                {"request_id": request.id, "source_type": offer.source_type.value, "supplier_id": supplier_id},
            )
        ],
    )
