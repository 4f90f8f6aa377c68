"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from installment_engine.domain.models import (
    BuyerAction,
    CreditScoreLevel,
    DecisionAction,
    InstallmentStatus,
    OfferSource,
    OfferStatus,
    OfferType,
    PaymentFrequency,
    PrimarySellerDecision,
    RequestStatus,
)


class LineItemIn(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity_requested: int = Field(..., ge=1)
    unit_price_requested: Decimal = Field(..., ge=0)


class CreateRequestBody(BaseModel):
    """Request body for POST /v1/requests"""

    buyer_id: str = Field(..., min_length=1, description="Buyer identifier")
    line_items: List[LineItemIn]
    duration_months: int = Field(..., ge=1, description="Requested duration in months")
    payment_frequency: Optional[PaymentFrequency] = None


class OfferItemIn(BaseModel):
    request_item_id: str
    quantity_approved: int = Field(..., ge=1)
    unit_price_approved: Decimal = Field(..., ge=0)


class OfferPayload(BaseModel):
    items_approved: List[OfferItemIn]
    total_approved_value: Decimal = Field(..., gt=0)
    notes: Optional[str] = None


class PrimaryDecisionBody(BaseModel):
    """Request body for POST /v1/requests/{id}/primary-decision"""

    decision: DecisionAction
    offer: Optional[OfferPayload] = None
    forward_immediately: bool = False
    supplier_ids: List[str] = Field(default_factory=list)
    admin_notes: Optional[str] = None


class ForwardBody(BaseModel):
    supplier_ids: List[str] = Field(default_factory=list, description="Empty means all eligible suppliers")


class SupplierOfferBody(BaseModel):
    """Request body for POST /v1/requests/{id}/supplier-offers"""

    supplier_id: str = Field(..., min_length=1)
    type: OfferType = OfferType.FULL
    items_approved: List[OfferItemIn]
    total_approved_value: Decimal = Field(..., gt=0)
    frequency: Optional[PaymentFrequency] = None
    installment_count: int = Field(..., ge=1)
    notes: Optional[str] = None


class BuyerDecisionBody(BaseModel):
    decision: BuyerAction


class PayInstallmentBody(BaseModel):
    method: Optional[str] = None
    reference: Optional[str] = None


class CloseBody(BaseModel):
    reason: str = Field(..., min_length=1)


class CancelBody(BaseModel):
    reason: Optional[str] = None


class SchedulePreviewBody(BaseModel):
    total_amount: Decimal
    frequency: PaymentFrequency = PaymentFrequency.MONTHLY
    installment_count: int
    start_date: Optional[date] = None


class LineItemSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    product_id: str
    quantity_requested: int
    unit_price_requested: Decimal


class RequestResponse(BaseModel):
    """Installment request as seen by all parties"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    buyer_id: str
    line_items: List[LineItemSchema]
    total_requested_value: Decimal
    requested_duration_months: int
    payment_frequency: PaymentFrequency
    status: RequestStatus
    primary_seller_decision: PrimarySellerDecision
    allowed_for_suppliers: bool
    forwarded_supplier_ids: List[str]
    accepted_offer_id: Optional[str] = None
    admin_notes: Optional[str] = None
    closed_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None


class InstallmentSchema(BaseModel):
    """Single installment in a payment schedule"""

    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    sequence: int
    due_date: date
    amount: Decimal
    status: InstallmentStatus
    paid_at: Optional[datetime] = None
    payment_method: Optional[str] = None
    payment_reference: Optional[str] = None


class ScheduleSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    frequency: PaymentFrequency
    installment_count: int
    per_installment_amount: Decimal
    start_date: date
    end_date: date
    installments: List[InstallmentSchema]


class OfferItemSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    request_item_id: str
    quantity_approved: int
    unit_price_approved: Decimal


class OfferResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    request_id: str
    source_type: OfferSource
    supplier_id: Optional[str] = None
    type: OfferType
    items_approved: List[OfferItemSchema]
    total_approved_value: Decimal
    schedule: ScheduleSchema
    status: OfferStatus
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class DecisionResponse(BaseModel):
    """Response for POST /v1/requests/{id}/primary-decision"""

    request: RequestResponse
    offer: Optional[OfferResponse] = None


class BuyerDecisionResponse(BaseModel):
    """Response for POST /v1/offers/{id}/respond"""

    offer: OfferResponse
    request: RequestResponse
    superseded_offer_ids: List[str]


class CreditProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    buyer_id: str
    score_level: CreditScoreLevel
    total_requests: int
    total_active_contracts: int
    total_overdue_installments: int
    total_paid_amount: Decimal
    total_remaining_amount: Decimal
    last_updated: Optional[datetime] = None


class MonthBucketSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    count: int
    value: Decimal


class StatsResponse(BaseModel):
    """Response for GET /v1/stats"""

    model_config = ConfigDict(from_attributes=True)

    total_requests: int
    pending_requests: int
    active_contracts: int
    closed_requests: int
    total_requested_value: Decimal
    total_approved_value: Decimal
    total_paid_amount: Decimal
    total_overdue_amount: Decimal
    approval_rate: float
    by_status: Dict[str, int]
    by_month: Dict[str, MonthBucketSchema]


class SweepResponse(BaseModel):
    offers_scanned: int
    newly_overdue: int
