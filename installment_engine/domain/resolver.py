"""Decision resolver - the single path for buyer accept/reject on an offer"""

from datetime import datetime
from typing import List

from installment_engine.domain import events
from installment_engine.domain.credit import apply_contract_accepted
from installment_engine.domain.events import DomainEvent, Outcome
from installment_engine.domain.exceptions import InvalidStateForDecision, OfferAlreadyResolved
from installment_engine.domain.models import (
    BuyerAction,
    CustomerCreditProfile,
    InstallmentOffer,
    InstallmentRequest,
    OfferSource,
    OfferStatus,
    RequestStatus,
)
from installment_engine.domain.policy import CascadeOutcome, PolicyStore
from installment_engine.utils.date_utils import utc_now

PRIMARY_OFFER_REJECTED_REASON = "buyer rejected primary seller offer"
SUPPLIER_OFFER_REJECTED_REASON = "buyer rejected supplier offer"


def supersede_open_offers(offers: List[InstallmentOffer], now: datetime | None = None) -> List[InstallmentOffer]:
    """Close every offer still waiting for the buyer; returns the ones changed"""
    now = now or utc_now()
    superseded = []
    for offer in offers:
        if offer.status == OfferStatus.WAITING_FOR_BUYER:
            offer.status = OfferStatus.SUPERSEDED
            offer.resolved_at = now
            superseded.append(offer)
    return superseded


def _accept(
    offer: InstallmentOffer,
    request: InstallmentRequest,
    siblings: List[InstallmentOffer],
    profile: CustomerCreditProfile,
    now: datetime,
) -> Outcome:
    if request.status.is_terminal:
        raise InvalidStateForDecision(f"Request {request.id} is already {request.status.value}")

    offer.status = OfferStatus.ACCEPTED
    offer.resolved_at = now
    superseded = supersede_open_offers([s for s in siblings if s.id != offer.id], now)

    request.status = RequestStatus.ACTIVE_CONTRACT
    request.accepted_offer_id = offer.id
    apply_contract_accepted(profile, offer.schedule.total, now)
    return Outcome(request=request, offer=offer, superseded=superseded, profile=profile)


def _reject(
    offer: InstallmentOffer,
    request: InstallmentRequest,
    siblings: List[InstallmentOffer],
    policy: PolicyStore,
    now: datetime,
) -> Outcome:
    offer.status = OfferStatus.REJECTED
    offer.resolved_at = now

    if offer.source_type == OfferSource.PRIMARY_SELLER:
        cascade = policy.cascade_on_primary_offer_reject()
        if cascade == CascadeOutcome.FORWARD_TO_SUPPLIERS:
            # Suppliers may already have bid on a partial remainder
            supplier_waiting = any(
                s.id != offer.id
                and s.source_type == OfferSource.SUPPLIER
                and s.status == OfferStatus.WAITING_FOR_BUYER
                for s in siblings
            )
            request.status = (
                RequestStatus.WAITING_FOR_CUSTOMER_DECISION_ON_SUPPLIER_OFFER
                if supplier_waiting
                else RequestStatus.FORWARDED_TO_SUPPLIERS
            )
            request.allowed_for_suppliers = True
        else:
            request.status = RequestStatus.CLOSED
            request.closed_reason = PRIMARY_OFFER_REJECTED_REASON
            request.closed_at = now
    else:
        cascade = policy.cascade_on_supplier_offer_reject()
        if cascade == CascadeOutcome.KEEP_WAITING:
            still_waiting = any(
                s.id != offer.id and s.status == OfferStatus.WAITING_FOR_BUYER for s in siblings
            )
            request.status = (
                RequestStatus.WAITING_FOR_CUSTOMER_DECISION_ON_SUPPLIER_OFFER
                if still_waiting
                else RequestStatus.WAITING_FOR_SUPPLIER_OFFERS
            )
        else:
            request.status = RequestStatus.CLOSED
            request.closed_reason = SUPPLIER_OFFER_REJECTED_REASON
            request.closed_at = now

    superseded = []
    if request.status == RequestStatus.CLOSED:
        superseded = supersede_open_offers([s for s in siblings if s.id != offer.id], now)
    return Outcome(request=request, offer=offer, superseded=superseded)


def resolve_buyer_decision(
    offer: InstallmentOffer,
    request: InstallmentRequest,
    siblings: List[InstallmentOffer],
    action: BuyerAction,
    policy: PolicyStore,
    profile: CustomerCreditProfile,
    now: datetime | None = None,
) -> Outcome:
    """
    Apply the buyer's accept/reject to one offer and cascade the request.

    Accept: offer accepted, waiting siblings superseded, request becomes an
    active contract and the buyer's credit profile records the new exposure.

    Reject: the next request state comes from the policy cascade for the
    offer's source (forward/close for the primary seller, keep waiting/close
    for suppliers).

    Args:
        siblings: every offer under the same request (may include `offer`)

    Raises:
        OfferAlreadyResolved: offer is not waiting for the buyer
        InvalidStateForDecision: request is already terminal
    """
    if offer.status != OfferStatus.WAITING_FOR_BUYER:
        raise OfferAlreadyResolved(f"Offer {offer.id} is already {offer.status.value}")

    now = now or utc_now()
    if BuyerAction(action) == BuyerAction.ACCEPT:
        outcome = _accept(offer, request, siblings, profile, now)
    else:
        if request.status.is_terminal:
            raise InvalidStateForDecision(f"Request {request.id} is already {request.status.value}")
        outcome = _reject(offer, request, siblings, policy, now)

    outcome.events.append(
        DomainEvent(
            events.OFFER_RESOLVED,
            offer.id,
            offer.status.value,
            {
                "request_id": request.id,
                "action": BuyerAction(action).value,
                "request_status": request.status.value,
                "superseded_offer_ids": [s.id for s in outcome.superseded],
            },
        )
    )
    return outcome
