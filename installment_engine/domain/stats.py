"""Aggregate request/offer statistics for the admin dashboard"""

from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List

from installment_engine.domain.models import (
    InstallmentOffer,
    InstallmentRequest,
    InstallmentStatus,
    OfferStatus,
    RequestStatus,
)
from installment_engine.utils.date_utils import month_key

_CLOSED_STATUSES = frozenset(
    {RequestStatus.CLOSED, RequestStatus.CANCELLED, RequestStatus.REJECTED_BY_SINICAR}
)


@dataclass
class MonthBucket:
    count: int = 0
    value: Decimal = Decimal("0")


@dataclass
class InstallmentStats:
    total_requests: int = 0
    pending_requests: int = 0
    active_contracts: int = 0
    closed_requests: int = 0
    total_requested_value: Decimal = Decimal("0")
    total_approved_value: Decimal = Decimal("0")
    total_paid_amount: Decimal = Decimal("0")
    total_overdue_amount: Decimal = Decimal("0")
    approval_rate: float = 0.0
    by_status: Dict[str, int] = field(default_factory=dict)
    by_month: Dict[str, MonthBucket] = field(default_factory=dict)


def compute_stats(requests: List[InstallmentRequest], offers: List[InstallmentOffer]) -> InstallmentStats:
    """
    Summarize requests by status and creation month.

    approval_rate is the share of decided requests (active, closed, cancelled,
    rejected) that became contracts.
    """
    stats = InstallmentStats(total_requests=len(requests))
    status_counts: Counter = Counter()

    for req in requests:
        status_counts[req.status.value] += 1
        stats.total_requested_value += req.total_requested_value
        if req.status == RequestStatus.ACTIVE_CONTRACT:
            stats.active_contracts += 1
        elif req.status in _CLOSED_STATUSES:
            stats.closed_requests += 1
        else:
            stats.pending_requests += 1

        if req.created_at is not None:
            bucket = stats.by_month.setdefault(month_key(req.created_at), MonthBucket())
            bucket.count += 1
            bucket.value += req.total_requested_value

    for offer in offers:
        if offer.status != OfferStatus.ACCEPTED:
            continue
        stats.total_approved_value += offer.total_approved_value
        for inst in offer.schedule.installments:
            if inst.status == InstallmentStatus.PAID:
                stats.total_paid_amount += inst.amount
            elif inst.status == InstallmentStatus.OVERDUE:
                stats.total_overdue_amount += inst.amount

    decided = stats.active_contracts + stats.closed_requests
    stats.approval_rate = round(stats.active_contracts / decided, 3) if decided else 0.0
    stats.by_status = dict(status_counts)
    stats.by_month = dict(sorted(stats.by_month.items()))
    return stats
