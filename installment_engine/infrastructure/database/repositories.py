"""Data access layer mapping negotiation aggregates to and from the database"""

import uuid
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.orm import Session
from installment_engine.infrastructure.database.models import (
    CreditProfileRecord,
    InstallmentOfferRecord,
    InstallmentRequestRecord,
    NegotiationPolicyRecord,
    OfferItemRecord,
    RequestLineItemRecord,
    ScheduledInstallmentRecord,
)
from installment_engine.domain.exceptions import OfferNotFound, RequestNotFound
from installment_engine.domain.models import (
    CreditScoreLevel,
    CustomerCreditProfile,
    Installment,
    InstallmentOffer,
    InstallmentRequest,
    InstallmentStatus,
    LineItem,
    OfferItem,
    OfferSource,
    OfferStatus,
    OfferType,
    PaymentFrequency,
    PaymentSchedule,
    PrimarySellerDecision,
    RequestStatus,
)
from installment_engine.domain.policy import NegotiationPolicy

GLOBAL_POLICY_KEY = "global"


def _request_to_domain(record: InstallmentRequestRecord) -> InstallmentRequest:
    return InstallmentRequest(
        id=record.id,
        buyer_id=record.buyer_id,
        line_items=[
            LineItem(
                id=item.id,
                product_id=item.product_id,
                quantity_requested=item.quantity_requested,
                unit_price_requested=Decimal(item.unit_price_requested),
            )
            for item in record.line_items
        ],
        total_requested_value=Decimal(record.total_requested_value),
        requested_duration_months=record.requested_duration_months,
        payment_frequency=PaymentFrequency(record.payment_frequency),
        status=RequestStatus(record.status),
        primary_seller_decision=PrimarySellerDecision(record.primary_seller_decision),
        allowed_for_suppliers=record.allowed_for_suppliers,
        forwarded_supplier_ids=list(record.forwarded_supplier_ids or []),
        accepted_offer_id=record.accepted_offer_id,
        admin_notes=record.admin_notes,
        closed_reason=record.closed_reason,
        created_at=record.created_at,
        reviewed_at=record.reviewed_at,
        closed_at=record.closed_at,
    )


def _offer_to_domain(record: InstallmentOfferRecord) -> InstallmentOffer:
    return InstallmentOffer(
        id=record.id,
        request_id=record.request_id,
        source_type=OfferSource(record.source_type),
        supplier_id=record.supplier_id,
        type=OfferType(record.type),
        items_approved=[
            OfferItem(
                request_item_id=item.request_item_id,
                quantity_approved=item.quantity_approved,
                unit_price_approved=Decimal(item.unit_price_approved),
            )
            for item in record.items
        ],
        total_approved_value=Decimal(record.total_approved_value),
        schedule=PaymentSchedule(
            frequency=PaymentFrequency(record.frequency),
            installment_count=record.installment_count,
            per_installment_amount=Decimal(record.per_installment_amount),
            start_date=record.start_date,
            end_date=record.end_date,
            installments=[
                Installment(
                    id=inst.id,
                    sequence=inst.sequence,
                    due_date=inst.due_date,
                    amount=Decimal(inst.amount),
                    status=InstallmentStatus(inst.status),
                    paid_at=inst.paid_at,
                    payment_method=inst.payment_method,
                    payment_reference=inst.payment_reference,
                )
                for inst in record.installments
            ],
        ),
        status=OfferStatus(record.status),
        notes=record.notes,
        created_at=record.created_at,
        resolved_at=record.resolved_at,
    )


def _profile_to_domain(record: CreditProfileRecord) -> CustomerCreditProfile:
    return CustomerCreditProfile(
        buyer_id=record.buyer_id,
        score_level=CreditScoreLevel(record.score_level),
        total_requests=record.total_requests,
        total_active_contracts=record.total_active_contracts,
        total_overdue_installments=record.total_overdue_installments,
        total_paid_amount=Decimal(record.total_paid_amount),
        total_remaining_amount=Decimal(record.total_remaining_amount),
        last_updated=record.last_updated,
    )


class RequestRepository:
    """Repository for installment requests"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, request: InstallmentRequest) -> None:
        """Persist a new request with its line items"""
        record = InstallmentRequestRecord(
            id=request.id,
            buyer_id=request.buyer_id,
            total_requested_value=request.total_requested_value,
            requested_duration_months=request.requested_duration_months,
            payment_frequency=request.payment_frequency.value,
            status=request.status.value,
            primary_seller_decision=request.primary_seller_decision.value,
            allowed_for_suppliers=request.allowed_for_suppliers,
            forwarded_supplier_ids=list(request.forwarded_supplier_ids),
            created_at=request.created_at,
            line_items=[
                RequestLineItemRecord(
                    id=item.id,
                    position=position,
                    product_id=item.product_id,
                    quantity_requested=item.quantity_requested,
                    unit_price_requested=item.unit_price_requested,
                )
                for position, item in enumerate(request.line_items)
            ],
        )
        self.db.add(record)
        self.db.flush()  # Get ID without committing

    def get(self, request_id: str, for_update: bool = False) -> InstallmentRequest:
        """Load a request; for_update takes a row lock until the transaction ends"""
        query = self.db.query(InstallmentRequestRecord).filter(InstallmentRequestRecord.id == request_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        record = query.first()
        if record is None:
            raise RequestNotFound(f"Installment request {request_id} not found")
        return _request_to_domain(record)

    def save(self, request: InstallmentRequest) -> None:
        """Write back mutable request fields; the version column rejects lost updates at flush"""
        record = self.db.get(InstallmentRequestRecord, request.id)
        if record is None:
            raise RequestNotFound(f"Installment request {request.id} not found")
        record.status = request.status.value
        record.primary_seller_decision = request.primary_seller_decision.value
        record.allowed_for_suppliers = request.allowed_for_suppliers
        record.forwarded_supplier_ids = list(request.forwarded_supplier_ids)
        record.accepted_offer_id = request.accepted_offer_id
        record.admin_notes = request.admin_notes
        record.closed_reason = request.closed_reason
        record.reviewed_at = request.reviewed_at
        record.closed_at = request.closed_at
        self.db.flush()

    def advance_status(self, request_id: str, from_statuses: List[RequestStatus], to_status: RequestStatus) -> int:
        """
        Conditional status update that leaves the version untouched.

        Used by parallel supplier submissions. The update row-locks the request
        until commit, so it orders against accept/cancel/close; it returns
        the number of rows matched, zero when the request left from_statuses.
        """
        return (
            self.db.query(InstallmentRequestRecord)
            .filter(
                InstallmentRequestRecord.id == request_id,
                InstallmentRequestRecord.status.in_([s.value for s in from_statuses]),
            )
            .update({InstallmentRequestRecord.status: to_status.value}, synchronize_session=False)
        )

    def list_by_buyer(self, buyer_id: str, limit: int = 50, offset: int = 0) -> List[InstallmentRequest]:
        """Fetch a buyer's requests, newest first"""
        records = (
            self.db.query(InstallmentRequestRecord)
            .filter(InstallmentRequestRecord.buyer_id == buyer_id)
            .order_by(InstallmentRequestRecord.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return [_request_to_domain(r) for r in records]

    def list_by_status(self, status: RequestStatus, limit: int = 50, offset: int = 0) -> List[InstallmentRequest]:
        records = (
            self.db.query(InstallmentRequestRecord)
            .filter(InstallmentRequestRecord.status == RequestStatus(status).value)
            .order_by(InstallmentRequestRecord.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return [_request_to_domain(r) for r in records]

    def list_open_to_suppliers(self) -> List[InstallmentRequest]:
        """Non-terminal requests forwarded to suppliers, newest first"""
        open_statuses = [s.value for s in RequestStatus if not s.is_terminal]
        records = (
            self.db.query(InstallmentRequestRecord)
            .filter(
                InstallmentRequestRecord.allowed_for_suppliers.is_(True),
                InstallmentRequestRecord.status.in_(open_statuses),
            )
            .order_by(InstallmentRequestRecord.created_at.desc())
            .all()
        )
        return [_request_to_domain(r) for r in records]

    def list_all(self) -> List[InstallmentRequest]:
        return [_request_to_domain(r) for r in self.db.query(InstallmentRequestRecord).all()]


class OfferRepository:
    """Repository for offers and their payment schedules"""

    def __init__(self, db: Session):
        self.db = db

    def add(self, offer: InstallmentOffer) -> None:
        """Persist offer, items and installments; assigns installment ids in place"""
        schedule = offer.schedule
        for inst in schedule.installments:
            inst.id = inst.id or str(uuid.uuid4())

        record = InstallmentOfferRecord(
            id=offer.id,
            request_id=offer.request_id,
            source_type=offer.source_type.value,
            supplier_id=offer.supplier_id,
            type=offer.type.value,
            total_approved_value=offer.total_approved_value,
            status=offer.status.value,
            notes=offer.notes,
            frequency=schedule.frequency.value,
            installment_count=schedule.installment_count,
            per_installment_amount=schedule.per_installment_amount,
            start_date=schedule.start_date,
            end_date=schedule.end_date,
            created_at=offer.created_at,
            items=[
                OfferItemRecord(
                    position=position,
                    request_item_id=item.request_item_id,
                    quantity_approved=item.quantity_approved,
                    unit_price_approved=item.unit_price_approved,
                )
                for position, item in enumerate(offer.items_approved)
            ],
            installments=[
                ScheduledInstallmentRecord(
                    id=inst.id,
                    sequence=inst.sequence,
                    due_date=inst.due_date,
                    amount=inst.amount,
                    status=inst.status.value,
                )
                for inst in schedule.installments
            ],
        )
        self.db.add(record)
        self.db.flush()

    def get(self, offer_id: str, for_update: bool = False) -> InstallmentOffer:
        query = self.db.query(InstallmentOfferRecord).filter(InstallmentOfferRecord.id == offer_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        record = query.first()
        if record is None:
            raise OfferNotFound(f"Offer {offer_id} not found")
        return _offer_to_domain(record)

    def list_by_request(self, request_id: str, for_update: bool = False) -> List[InstallmentOffer]:
        """Fetch all offers under a request, oldest first"""
        query = (
            self.db.query(InstallmentOfferRecord)
            .filter(InstallmentOfferRecord.request_id == request_id)
            .order_by(InstallmentOfferRecord.created_at.asc())
        )
        if for_update:
            query = query.with_for_update().populate_existing()
        return [_offer_to_domain(r) for r in query.all()]

    def save(self, offer: InstallmentOffer) -> None:
        """Write back offer status and per-installment payment state"""
        record = self.db.get(InstallmentOfferRecord, offer.id)
        if record is None:
            raise OfferNotFound(f"Offer {offer.id} not found")
        record.status = offer.status.value
        record.resolved_at = offer.resolved_at

        by_id = {inst.id: inst for inst in offer.schedule.installments}
        for inst_record in record.installments:
            inst = by_id.get(inst_record.id)
            if inst is None:
                continue
            inst_record.status = inst.status.value
            inst_record.paid_at = inst.paid_at
            inst_record.payment_method = inst.payment_method
            inst_record.payment_reference = inst.payment_reference
        self.db.flush()

    def list_contract_offer_ids(self) -> List[str]:
        """Accepted offers whose request is an active contract"""
        rows = (
            self.db.query(InstallmentOfferRecord.id)
            .join(InstallmentRequestRecord, InstallmentOfferRecord.request_id == InstallmentRequestRecord.id)
            .filter(
                InstallmentOfferRecord.status == OfferStatus.ACCEPTED.value,
                InstallmentRequestRecord.status == RequestStatus.ACTIVE_CONTRACT.value,
            )
            .all()
        )
        return [row[0] for row in rows]

    def list_all(self) -> List[InstallmentOffer]:
        return [_offer_to_domain(r) for r in self.db.query(InstallmentOfferRecord).all()]


class CreditProfileRepository:
    """Repository for buyer credit profiles (upsert only, never deleted)"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, buyer_id: str, for_update: bool = False) -> Optional[CustomerCreditProfile]:
        query = self.db.query(CreditProfileRecord).filter(CreditProfileRecord.buyer_id == buyer_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        record = query.first()
        return _profile_to_domain(record) if record else None

    def get_or_new(self, buyer_id: str) -> CustomerCreditProfile:
        """Locked profile for update, or a blank one persisted on save"""
        return self.get(buyer_id, for_update=True) or CustomerCreditProfile(buyer_id=buyer_id)

    def save(self, profile: CustomerCreditProfile) -> None:
        record = self.db.get(CreditProfileRecord, profile.buyer_id)
        if record is None:
            record = CreditProfileRecord(buyer_id=profile.buyer_id)
            self.db.add(record)
        record.score_level = profile.score_level.value
        record.total_requests = profile.total_requests
        record.total_active_contracts = profile.total_active_contracts
        record.total_overdue_installments = profile.total_overdue_installments
        record.total_paid_amount = profile.total_paid_amount
        record.total_remaining_amount = profile.total_remaining_amount
        record.last_updated = profile.last_updated
        self.db.flush()


class PolicyRepository:
    """Repository for the global negotiation policy"""

    def __init__(self, db: Session):
        self.db = db

    def load(self) -> NegotiationPolicy:
        """Stored policy, or defaults when none was ever saved"""
        record = self.db.get(NegotiationPolicyRecord, GLOBAL_POLICY_KEY)
        if record is None:
            return NegotiationPolicy()
        return NegotiationPolicy.model_validate(record.data)

    def save(self, policy: NegotiationPolicy) -> None:
        record = self.db.get(NegotiationPolicyRecord, GLOBAL_POLICY_KEY)
        data = policy.model_dump(mode="json")
        if record is None:
            self.db.add(NegotiationPolicyRecord(key=GLOBAL_POLICY_KEY, data=data))
        else:
            record.data = data
        self.db.flush()
