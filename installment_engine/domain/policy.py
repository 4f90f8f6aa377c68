"""Negotiation policy and the read-only store every operation consults"""

from decimal import Decimal
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from installment_engine.domain import events
from installment_engine.domain.exceptions import PolicyViolation, ValidationError
from installment_engine.domain.models import OfferSource, PaymentFrequency

WEEKS_PER_MONTH = 4


class CascadeOutcome(str, Enum):
    """Next step after a rejection, resolved once from the policy"""

    FORWARD_TO_SUPPLIERS = "forward_to_suppliers"
    CLOSE = "close"
    KEEP_WAITING = "keep_waiting"


class NegotiationPolicy(BaseModel):
    """Administrator-controlled negotiation configuration"""

    enabled: bool = True
    allow_supplier_offers: bool = True

    # Primary seller priority behavior
    allow_partial_approval_by_primary_seller: bool = True
    allow_partial_approval_by_suppliers: bool = True
    auto_forward_on_primary_reject: bool = True
    auto_forward_on_primary_partial_remainder: bool = False

    # Buyer decision behavior
    on_buyer_rejects_primary_offer: Literal["forward_to_suppliers", "close_request"] = "forward_to_suppliers"
    on_buyer_rejects_supplier_offer: Literal["keep_waiting_for_other_suppliers", "close_request"] = (
        "keep_waiting_for_other_suppliers"
    )

    # Limits
    min_duration_months: int = Field(default=1, ge=1)
    max_duration_months: int = Field(default=24, ge=1)
    min_request_amount: Decimal = Field(default=Decimal("1000"), ge=0)
    max_request_amount: Decimal = Field(default=Decimal("500000"), gt=0)
    max_suppliers_per_request: Optional[int] = Field(default=10, ge=1)

    default_payment_frequency: PaymentFrequency = PaymentFrequency.MONTHLY
    overdue_grace_period_days: int = Field(default=3, ge=0)

    # Notifications
    notify_admin_on_new_request: bool = True
    notify_buyer_on_new_offer: bool = True
    notify_buyer_on_status_change: bool = True
    notify_suppliers_on_forward: bool = True
    notify_on_overdue: bool = True

    @model_validator(mode="after")
    def check_bounds(self) -> "NegotiationPolicy":
        if self.min_duration_months > self.max_duration_months:
            raise ValueError("min_duration_months exceeds max_duration_months")
        if self.min_request_amount > self.max_request_amount:
            raise ValueError("min_request_amount exceeds max_request_amount")
        return self


class PolicyStore:
    """Derived, read-only queries over a NegotiationPolicy"""

    def __init__(self, policy: NegotiationPolicy | None = None):
        self.policy = policy or NegotiationPolicy()

    @property
    def grace_period_days(self) -> int:
        return self.policy.overdue_grace_period_days

    @property
    def default_frequency(self) -> PaymentFrequency:
        return self.policy.default_payment_frequency

    def ensure_enabled(self) -> None:
        if not self.policy.enabled:
            raise PolicyViolation("Installment requests are currently disabled")

    def ensure_supplier_offers_allowed(self) -> None:
        if not self.supplier_offers_allowed():
            raise PolicyViolation("Forwarding requests to suppliers is disabled")

    def is_partial_approval_allowed(self, actor: OfferSource) -> bool:
        if OfferSource(actor) == OfferSource.PRIMARY_SELLER:
            return self.policy.allow_partial_approval_by_primary_seller
        return self.policy.allow_partial_approval_by_suppliers

    def clamp_duration(self, months: int) -> int:
        return max(self.policy.min_duration_months, min(months, self.policy.max_duration_months))

    def installment_count(self, frequency: PaymentFrequency, months: int) -> int:
        """Number of payments covering a duration in months"""
        months = self.clamp_duration(months)
        if PaymentFrequency(frequency) == PaymentFrequency.WEEKLY:
            return months * WEEKS_PER_MONTH
        return months

    def clamp_installment_count(self, frequency: PaymentFrequency, count: int) -> int:
        low = self.installment_count(frequency, self.policy.min_duration_months)
        high = self.installment_count(frequency, self.policy.max_duration_months)
        return max(low, min(count, high))

    def validate_request(self, total: Decimal, months: int) -> None:
        if total < self.policy.min_request_amount:
            raise ValidationError(f"Minimum installment amount is {self.policy.min_request_amount}")
        if total > self.policy.max_request_amount:
            raise ValidationError(f"Maximum installment amount is {self.policy.max_request_amount}")
        if months < self.policy.min_duration_months:
            raise ValidationError(f"Minimum duration is {self.policy.min_duration_months} months")
        if months > self.policy.max_duration_months:
            raise ValidationError(f"Maximum duration is {self.policy.max_duration_months} months")

    def validate_supplier_count(self, supplier_ids: list[str]) -> None:
        limit = self.policy.max_suppliers_per_request
        if limit is not None and len(supplier_ids) > limit:
            raise ValidationError(f"A request can be forwarded to at most {limit} suppliers")

    def supplier_offers_allowed(self) -> bool:
        return self.policy.allow_supplier_offers

    # Automatic forwarding never bypasses allow_supplier_offers

    def auto_forward_on_reject(self) -> bool:
        return self.policy.auto_forward_on_primary_reject and self.supplier_offers_allowed()

    def auto_forward_on_partial(self) -> bool:
        return self.policy.auto_forward_on_primary_partial_remainder and self.supplier_offers_allowed()

    def cascade_on_primary_offer_reject(self) -> CascadeOutcome:
        if not self.supplier_offers_allowed():
            return CascadeOutcome.CLOSE
        if self.policy.on_buyer_rejects_primary_offer == "forward_to_suppliers":
            return CascadeOutcome.FORWARD_TO_SUPPLIERS
        return CascadeOutcome.CLOSE

    def cascade_on_supplier_offer_reject(self) -> CascadeOutcome:
        if self.policy.on_buyer_rejects_supplier_offer == "keep_waiting_for_other_suppliers":
            return CascadeOutcome.KEEP_WAITING
        return CascadeOutcome.CLOSE

    def should_notify(self, event_name: str) -> bool:
        """Whether an emitted event is handed to the notification dispatcher"""
        toggles = {
            events.REQUEST_CREATED: self.policy.notify_admin_on_new_request,
            events.OFFER_SUBMITTED: self.policy.notify_buyer_on_new_offer,
            events.REQUEST_FORWARDED: self.policy.notify_suppliers_on_forward,
            events.INSTALLMENT_OVERDUE: self.policy.notify_on_overdue,
        }
        return toggles.get(event_name, self.policy.notify_buyer_on_status_change)
