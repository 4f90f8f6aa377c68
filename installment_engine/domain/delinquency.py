"""Delinquency tracking - overdue sweep and installment payment"""

from datetime import date, datetime, timedelta
from typing import List

from installment_engine.domain import events
from installment_engine.domain.credit import apply_installment_overdue, apply_installment_paid
from installment_engine.domain.events import DomainEvent, Outcome
from installment_engine.domain.exceptions import (
    InstallmentAlreadyPaid,
    InstallmentNotFound,
    InvalidStateForDecision,
)
from installment_engine.domain.models import (
    CustomerCreditProfile,
    Installment,
    InstallmentOffer,
    InstallmentStatus,
    OfferStatus,
)
from installment_engine.utils.date_utils import utc_now


def is_overdue(installment: Installment, grace_days: int, today: date) -> bool:
    return (
        installment.status == InstallmentStatus.PENDING
        and installment.due_date + timedelta(days=grace_days) < today
    )


def sweep_offer(
    offer: InstallmentOffer,
    profile: CustomerCreditProfile,
    grace_days: int,
    today: date | None = None,
    now: datetime | None = None,
) -> Outcome:
    """
    Mark pending installments past due + grace period as overdue.

    Only pending installments are considered, so re-running over the same
    offer never counts an installment twice.
    """
    today = today or date.today()
    newly_overdue: List[Installment] = []
    if offer.status == OfferStatus.ACCEPTED:
        for installment in offer.schedule.installments:
            if is_overdue(installment, grace_days, today):
                installment.status = InstallmentStatus.OVERDUE
                newly_overdue.append(installment)

    outcome = Outcome(offer=offer, profile=profile)
    if newly_overdue:
        apply_installment_overdue(profile, len(newly_overdue), now)
        outcome.events = [
            DomainEvent(
                events.INSTALLMENT_OVERDUE,
                inst.id,
                inst.status.value,
                {"offer_id": offer.id, "due_date": inst.due_date.isoformat(), "amount": str(inst.amount)},
            )
            for inst in newly_overdue
        ]
    return outcome


def mark_installment_paid(
    offer: InstallmentOffer,
    installment_id: str,
    profile: CustomerCreditProfile,
    method: str | None = None,
    reference: str | None = None,
    now: datetime | None = None,
) -> Outcome:
    """
    Record payment of one pending or overdue installment.

    Raises:
        InvalidStateForDecision: offer is not an accepted contract
        InstallmentNotFound: id not in this offer's schedule
        InstallmentAlreadyPaid: installment was already settled
    """
    if offer.status != OfferStatus.ACCEPTED:
        raise InvalidStateForDecision(f"Offer {offer.id} is not an accepted contract")
    installment = offer.find_installment(installment_id)
    if installment is None:
        raise InstallmentNotFound(f"Installment {installment_id} not found in offer {offer.id}")
    if installment.status == InstallmentStatus.PAID:
        raise InstallmentAlreadyPaid(f"Installment {installment_id} is already paid")

    now = now or utc_now()
    installment.status = InstallmentStatus.PAID
    installment.paid_at = now
    installment.payment_method = method
    installment.payment_reference = reference
    apply_installment_paid(profile, installment.amount, now)

    return Outcome(
        offer=offer,
        profile=profile,
        events=[
            DomainEvent(
                events.INSTALLMENT_PAID,
                installment.id,
                installment.status.value,
                {"offer_id": offer.id, "amount": str(installment.amount), "reference": reference},
            )
        ],
    )
