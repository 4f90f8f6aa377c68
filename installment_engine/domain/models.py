"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional


class RequestStatus(str, Enum):
    PENDING_SINICAR_REVIEW = "PENDING_SINICAR_REVIEW"
    WAITING_FOR_CUSTOMER_DECISION_ON_PARTIAL_SINICAR = "WAITING_FOR_CUSTOMER_DECISION_ON_PARTIAL_SINICAR"
    REJECTED_BY_SINICAR = "REJECTED_BY_SINICAR"
    FORWARDED_TO_SUPPLIERS = "FORWARDED_TO_SUPPLIERS"
    WAITING_FOR_SUPPLIER_OFFERS = "WAITING_FOR_SUPPLIER_OFFERS"
    WAITING_FOR_CUSTOMER_DECISION_ON_SUPPLIER_OFFER = "WAITING_FOR_CUSTOMER_DECISION_ON_SUPPLIER_OFFER"
    ACTIVE_CONTRACT = "ACTIVE_CONTRACT"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {RequestStatus.ACTIVE_CONTRACT, RequestStatus.CLOSED, RequestStatus.CANCELLED}
)


class PrimarySellerDecision(str, Enum):
    PENDING = "pending"
    APPROVED_FULL = "approved_full"
    APPROVED_PARTIAL = "approved_partial"
    REJECTED = "rejected"


class DecisionAction(str, Enum):
    """Primary seller's review action"""

    APPROVE_FULL = "approve_full"
    APPROVE_PARTIAL = "approve_partial"
    REJECT = "reject"


class BuyerAction(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"


class OfferSource(str, Enum):
    PRIMARY_SELLER = "primary_seller"
    SUPPLIER = "supplier"


class OfferType(str, Enum):
    FULL = "full"
    PARTIAL = "partial"


class OfferStatus(str, Enum):
    WAITING_FOR_BUYER = "waiting_for_buyer"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    SUPERSEDED = "superseded"


class InstallmentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


class PaymentFrequency(str, Enum):
    MONTHLY = "monthly"
    WEEKLY = "weekly"


class CreditScoreLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class LineItem:
    """One product line of an installment request"""

    product_id: str
    quantity_requested: int
    unit_price_requested: Decimal
    id: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price_requested * self.quantity_requested


@dataclass
class InstallmentRequest:
    """A buyer's ask to pay for a list of line items over time"""

    id: str
    buyer_id: str
    line_items: List[LineItem]
    total_requested_value: Decimal
    requested_duration_months: int
    payment_frequency: PaymentFrequency
    status: RequestStatus = RequestStatus.PENDING_SINICAR_REVIEW
    primary_seller_decision: PrimarySellerDecision = PrimarySellerDecision.PENDING
    allowed_for_suppliers: bool = False
    forwarded_supplier_ids: List[str] = field(default_factory=list)  # empty = all eligible
    accepted_offer_id: Optional[str] = None
    admin_notes: Optional[str] = None
    closed_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    def find_item(self, item_id: str) -> Optional[LineItem]:
        return next((item for item in self.line_items if item.id == item_id), None)


@dataclass
class OfferItem:
    """Approved quantity and price for one requested line item"""

    request_item_id: str
    quantity_approved: int
    unit_price_approved: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.unit_price_approved * self.quantity_approved


@dataclass
class Installment:
    """Single payment in a repayment schedule"""

    sequence: int
    due_date: date
    amount: Decimal
    status: InstallmentStatus = InstallmentStatus.PENDING
    id: Optional[str] = None
    paid_at: Optional[datetime] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None


@dataclass
class PaymentSchedule:
    """Ordered installments derived once from a total and a frequency/count pair"""

    frequency: PaymentFrequency
    installment_count: int
    per_installment_amount: Decimal
    start_date: date
    end_date: date
    installments: List[Installment]

    @property
    def total(self) -> Decimal:
        return sum((inst.amount for inst in self.installments), Decimal("0"))

    @property
    def outstanding(self) -> Decimal:
        return sum(
            (inst.amount for inst in self.installments if inst.status != InstallmentStatus.PAID),
            Decimal("0"),
        )


@dataclass
class InstallmentOffer:
    """Concrete proposal to fulfill all or part of a request"""

    id: str
    request_id: str
    source_type: OfferSource
    type: OfferType
    items_approved: List[OfferItem]
    total_approved_value: Decimal
    schedule: PaymentSchedule
    supplier_id: Optional[str] = None
    status: OfferStatus = OfferStatus.WAITING_FOR_BUYER
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    def find_installment(self, installment_id: str) -> Optional[Installment]:
        return next((inst for inst in self.schedule.installments if inst.id == installment_id), None)


@dataclass
class CustomerCreditProfile:
    """Advisory per-buyer aggregate of installment history"""

    buyer_id: str
    score_level: CreditScoreLevel = CreditScoreLevel.MEDIUM
    total_requests: int = 0
    total_active_contracts: int = 0
    total_overdue_installments: int = 0
    total_paid_amount: Decimal = Decimal("0")
    total_remaining_amount: Decimal = Decimal("0")
    last_updated: Optional[datetime] = None
