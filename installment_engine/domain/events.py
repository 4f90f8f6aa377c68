"""Domain events emitted by state transitions, dispatched after commit"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from installment_engine.domain.models import CustomerCreditProfile, InstallmentOffer, InstallmentRequest
from installment_engine.utils.date_utils import utc_now

REQUEST_CREATED = "request.created"
DECISION_RECORDED = "decision.recorded"
REQUEST_FORWARDED = "request.forwarded"
REQUEST_CLOSED = "request.closed"
REQUEST_CANCELLED = "request.cancelled"
OFFER_SUBMITTED = "offer.submitted"
OFFER_RESOLVED = "offer.resolved"
INSTALLMENT_OVERDUE = "installment.overdue"
INSTALLMENT_PAID = "installment.paid"


@dataclass
class DomainEvent:
    """Affected entity id and its new status, plus event-specific details"""

    name: str
    entity_id: str
    status: str
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.name,
            "entity_id": self.entity_id,
            "status": self.status,
            "payload": self.payload,
            "occurred_at": self.occurred_at.isoformat(),
        }


@dataclass
class Outcome:
    """Aggregates touched by one transition and the events it emits"""

    request: Optional[InstallmentRequest] = None
    offer: Optional[InstallmentOffer] = None
    superseded: List[InstallmentOffer] = field(default_factory=list)
    profile: Optional[CustomerCreditProfile] = None
    events: List[DomainEvent] = field(default_factory=list)
