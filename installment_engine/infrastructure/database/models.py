"""SQLAlchemy ORM models for requests, offers, schedules and credit profiles"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Date, Integer, ForeignKey, Text, JSON, Numeric, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()

MONEY = Numeric(14, 2)


def _uuid() -> str:
    return str(uuid.uuid4())


class InstallmentRequestRecord(Base):
    """Buyer installment request; `version` guards concurrent writers"""

    __tablename__ = "installment_request"

    id = Column(String(36), primary_key=True, default=_uuid)
    buyer_id = Column(Text, nullable=False, index=True)
    total_requested_value = Column(MONEY, nullable=False)
    requested_duration_months = Column(Integer, nullable=False)
    payment_frequency = Column(Text, nullable=False)
    status = Column(Text, nullable=False, index=True)
    primary_seller_decision = Column(Text, nullable=False, default="pending")
    allowed_for_suppliers = Column(Boolean, nullable=False, default=False)
    forwarded_supplier_ids = Column(JSON, nullable=False, default=list)
    accepted_offer_id = Column(String(36), nullable=True)
    admin_notes = Column(Text, nullable=True)
    closed_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    line_items = relationship(
        "RequestLineItemRecord",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="RequestLineItemRecord.position",
    )
    offers = relationship("InstallmentOfferRecord", back_populates="request", cascade="all, delete-orphan")


class RequestLineItemRecord(Base):
    __tablename__ = "request_line_item"

    id = Column(String(36), primary_key=True, default=_uuid)
    request_id = Column(String(36), ForeignKey("installment_request.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)
    product_id = Column(Text, nullable=False)
    quantity_requested = Column(Integer, nullable=False)
    unit_price_requested = Column(MONEY, nullable=False)

    request = relationship("InstallmentRequestRecord", back_populates="line_items")


class InstallmentOfferRecord(Base):
    """Offer with its embedded payment schedule header"""

    __tablename__ = "installment_offer"
    __table_args__ = (UniqueConstraint("request_id", "supplier_id", name="uq_offer_request_supplier"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    request_id = Column(
        String(36), ForeignKey("installment_request.id", ondelete="CASCADE"), nullable=False, index=True
    )
    source_type = Column(Text, nullable=False)
    supplier_id = Column(Text, nullable=True)
    type = Column(Text, nullable=False)
    total_approved_value = Column(MONEY, nullable=False)
    status = Column(Text, nullable=False, index=True)
    notes = Column(Text, nullable=True)

    # Schedule header
    frequency = Column(Text, nullable=False)
    installment_count = Column(Integer, nullable=False)
    per_installment_amount = Column(MONEY, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    request = relationship("InstallmentRequestRecord", back_populates="offers")
    items = relationship(
        "OfferItemRecord",
        back_populates="offer",
        cascade="all, delete-orphan",
        order_by="OfferItemRecord.position",
    )
    installments = relationship(
        "ScheduledInstallmentRecord",
        back_populates="offer",
        cascade="all, delete-orphan",
        order_by="ScheduledInstallmentRecord.sequence",
    )


class OfferItemRecord(Base):
    __tablename__ = "offer_item"

    id = Column(String(36), primary_key=True, default=_uuid)
    offer_id = Column(String(36), ForeignKey("installment_offer.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)
    request_item_id = Column(String(36), nullable=False)
    quantity_approved = Column(Integer, nullable=False)
    unit_price_approved = Column(MONEY, nullable=False)

    offer = relationship("InstallmentOfferRecord", back_populates="items")


class ScheduledInstallmentRecord(Base):
    """Individual installment within an offer's payment schedule"""

    __tablename__ = "offer_installment"

    id = Column(String(36), primary_key=True, default=_uuid)
    offer_id = Column(
        String(36), ForeignKey("installment_offer.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sequence = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    amount = Column(MONEY, nullable=False)
    status = Column(Text, nullable=False, default="pending")
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_method = Column(Text, nullable=True)
    payment_reference = Column(Text, nullable=True)

    offer = relationship("InstallmentOfferRecord", back_populates="installments")


class CreditProfileRecord(Base):
    """Per-buyer advisory credit aggregate"""

    __tablename__ = "credit_profile"

    buyer_id = Column(Text, primary_key=True)
    score_level = Column(Text, nullable=False, default="medium")
    total_requests = Column(Integer, nullable=False, default=0)
    total_active_contracts = Column(Integer, nullable=False, default=0)
    total_overdue_installments = Column(Integer, nullable=False, default=0)
    total_paid_amount = Column(MONEY, nullable=False, default=0)
    total_remaining_amount = Column(MONEY, nullable=False, default=0)
    last_updated = Column(DateTime(timezone=True), nullable=True)


class NegotiationPolicyRecord(Base):
    """Global negotiation policy stored as a JSON document"""

    __tablename__ = "negotiation_policy"

    key = Column(String(32), primary_key=True, default="global")
    data = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
