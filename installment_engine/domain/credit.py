"""Credit profile aggregation - advisory buyer statistics, never a gate"""

from datetime import datetime
from decimal import Decimal

from installment_engine.domain.models import CreditScoreLevel, CustomerCreditProfile
from installment_engine.utils.date_utils import utc_now

LOW_SCORE_OVERDUE_THRESHOLD = 3


def derive_score_level(profile: CustomerCreditProfile) -> CreditScoreLevel:
    """
    Map payment history to an advisory score band.

    - 3+ overdue installments:           low
    - any overdue, or nothing paid yet:  medium
    - payments made and none overdue:    high
    """
    if profile.total_overdue_installments >= LOW_SCORE_OVERDUE_THRESHOLD:
        return CreditScoreLevel.LOW
    if profile.total_overdue_installments > 0 or profile.total_paid_amount <= 0:
        return CreditScoreLevel.MEDIUM
    return CreditScoreLevel.HIGH


def _touch(profile: CustomerCreditProfile, now: datetime | None) -> CustomerCreditProfile:
    profile.score_level = derive_score_level(profile)
    profile.last_updated = now or utc_now()
    return profile


def apply_contract_accepted(
    profile: CustomerCreditProfile, contract_value: Decimal, now: datetime | None = None
) -> CustomerCreditProfile:
    profile.total_requests += 1
    profile.total_active_contracts += 1
    profile.total_remaining_amount += contract_value
    return _touch(profile, now)


def apply_installment_paid(
    profile: CustomerCreditProfile, amount: Decimal, now: datetime | None = None
) -> CustomerCreditProfile:
    profile.total_paid_amount += amount
    profile.total_remaining_amount = max(profile.total_remaining_amount - amount, Decimal("0"))
    return _touch(profile, now)


def apply_installment_overdue(
    profile: CustomerCreditProfile, count: int = 1, now: datetime | None = None
) -> CustomerCreditProfile:
    profile.total_overdue_installments += count
    return _touch(profile, now)
