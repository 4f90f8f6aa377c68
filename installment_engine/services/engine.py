"""Installment engine - runs each negotiation command as one atomic unit of work"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterator, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from installment_engine.domain import delinquency, lifecycle, offers as offer_manager, resolver
from installment_engine.domain.events import DomainEvent, Outcome
from installment_engine.domain.exceptions import ConcurrentModification, OfferNotFound
from installment_engine.domain.models import (
    BuyerAction,
    CustomerCreditProfile,
    DecisionAction,
    InstallmentOffer,
    InstallmentRequest,
    LineItem,
    OfferItem,
    OfferType,
    PaymentFrequency,
    RequestStatus,
)
from installment_engine.domain.policy import NegotiationPolicy, PolicyStore
from installment_engine.domain.stats import InstallmentStats, compute_stats
from installment_engine.infrastructure.database.repositories import (
    CreditProfileRepository,
    OfferRepository,
    PolicyRepository,
    RequestRepository,
)
from installment_engine.infrastructure.observability.logging import log_transition
from installment_engine.infrastructure.observability.metrics import (
    installment_overdue_counter,
    installment_paid_counter,
    offer_submitted_counter,
    primary_decision_counter,
    record_buyer_decision,
    request_created_counter,
    sweep_duration_histogram,
)


def load_policy_store(db: Session) -> PolicyStore:
    """Read the current policy once; callers pass the store into each command"""
    return PolicyStore(PolicyRepository(db).load())


@dataclass
class SweepReport:
    offers_scanned: int = 0
    newly_overdue: int = 0
    events: List[DomainEvent] = field(default_factory=list)


class InstallmentEngine:
    """
    Application service over the negotiation domain.

    Every command loads its aggregates inside one transaction, applies a pure
    domain transition and writes the result back before committing. Any error
    rolls the whole transaction back, so callers never see partial state.
    """

    def __init__(self, db: Session):
        self.db = db
        self.requests = RequestRepository(db)
        self.offers = OfferRepository(db)
        self.profiles = CreditProfileRepository(db)

    @contextmanager
    def _unit_of_work(self, operation: str) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except (StaleDataError, IntegrityError) as e:
            self.db.rollback()
            raise ConcurrentModification(f"{operation} lost a concurrent update, retry the command") from e
        except Exception:
            self.db.rollback()
            raise

    # Commands

    def create_request(
        self,
        buyer_id: str,
        line_items: Sequence[LineItem],
        duration_months: int,
        frequency: Optional[PaymentFrequency],
        policy: PolicyStore,
    ) -> Outcome:
        with self._unit_of_work("create_request"):
            outcome = lifecycle.create_request(buyer_id, line_items, duration_months, frequency, policy)
            self.requests.add(outcome.request)

        request_created_counter.inc()
        log_transition(
            "create_request",
            outcome.request.id,
            outcome.request.status.value,
            buyer_id=buyer_id,
            total_requested_value=str(outcome.request.total_requested_value),
        )
        return outcome

    def record_primary_seller_decision(
        self,
        request_id: str,
        action: DecisionAction,
        policy: PolicyStore,
        offer_items: Optional[Sequence[OfferItem]] = None,
        total_approved_value: Optional[Decimal] = None,
        forward_immediately: bool = False,
        supplier_ids: Optional[List[str]] = None,
        admin_notes: Optional[str] = None,
        offer_notes: Optional[str] = None,
        start_date: Optional[date] = None,
    ) -> Outcome:
        """Decision and its offer are written together or not at all"""
        with self._unit_of_work("record_primary_seller_decision"):
            request = self.requests.get(request_id, for_update=True)
            outcome = lifecycle.record_primary_seller_decision(
                request,
                action,
                policy,
                offer_items=offer_items,
                total_approved_value=total_approved_value,
                forward_immediately=forward_immediately,
                supplier_ids=supplier_ids,
                admin_notes=admin_notes,
                offer_notes=offer_notes,
                start_date=start_date,
            )
            self.requests.save(outcome.request)
            if outcome.offer is not None:
                self.offers.add(outcome.offer)

        primary_decision_counter.labels(decision=outcome.request.primary_seller_decision.value).inc()
        if outcome.offer is not None:
            offer_submitted_counter.labels(source=outcome.offer.source_type.value).inc()
        log_transition(
            "record_primary_seller_decision",
            request_id,
            outcome.request.status.value,
            decision=outcome.request.primary_seller_decision.value,
            offer_id=outcome.offer.id if outcome.offer else None,
        )
        return outcome

    def forward_to_suppliers(self, request_id: str, supplier_ids: Optional[List[str]], policy: PolicyStore) -> Outcome:
        with self._unit_of_work("forward_to_suppliers"):
            request = self.requests.get(request_id, for_update=True)
            outcome = lifecycle.forward_to_suppliers(request, supplier_ids, policy)
            self.requests.save(outcome.request)

        log_transition(
            "forward_to_suppliers",
            request_id,
            outcome.request.status.value,
            supplier_ids=outcome.request.forwarded_supplier_ids,
        )
        return outcome

    def submit_supplier_offer(
        self,
        request_id: str,
        supplier_id: str,
        offer_type: OfferType,
        items: Sequence[OfferItem],
        total_approved_value: Decimal,
        frequency: PaymentFrequency,
        installment_count: int,
        policy: PolicyStore,
        notes: Optional[str] = None,
        start_date: Optional[date] = None,
    ) -> Outcome:
        """
        The request row is read without a lock so suppliers only contend on the
        final conditional update, which repeats the status check after the
        offer is inserted. If the request left every supplier-open state in the
        meantime, the insert is rolled back.

        Raises:
            ConcurrentModification: request changed state before the offer landed
        """
        with self._unit_of_work("submit_supplier_offer"):
            request = self.requests.get(request_id)
            existing = self.offers.list_by_request(request_id)
            outcome = offer_manager.submit_supplier_offer(
                request,
                existing,
                supplier_id,
                offer_type,
                items,
                total_approved_value,
                frequency,
                installment_count,
                policy,
                notes=notes,
                start_date=start_date,
            )
            self.offers.add(outcome.offer)
            moved = self.requests.advance_status(
                request_id,
                list(offer_manager.SUPPLIER_OPEN_STATUSES),
                RequestStatus.WAITING_FOR_CUSTOMER_DECISION_ON_SUPPLIER_OFFER,
            )
            if moved == 0:
                raise ConcurrentModification(
                    f"Request {request_id} is no longer open to suppliers, offer not recorded"
                )

        offer_submitted_counter.labels(source=outcome.offer.source_type.value).inc()
        log_transition(
            "submit_supplier_offer",
            outcome.offer.id,
            outcome.offer.status.value,
            request_id=request_id,
            supplier_id=supplier_id,
        )
        return outcome

    def resolve_buyer_decision(self, offer_id: str, action: BuyerAction, policy: PolicyStore) -> Outcome:
        """
        Serialized per request: the request row and all its offers are locked
        before the decision is applied, and the request version is checked on
        write.
        """
        with self._unit_of_work("resolve_buyer_decision"):
            request_id = self.offers.get(offer_id).request_id
            request = self.requests.get(request_id, for_update=True)
            siblings = self.offers.list_by_request(request_id, for_update=True)
            offer = next((o for o in siblings if o.id == offer_id), None)
            if offer is None:
                raise OfferNotFound(f"Offer {offer_id} not found")
            profile = self.profiles.get_or_new(request.buyer_id)

            outcome = resolver.resolve_buyer_decision(offer, request, siblings, action, policy, profile)

            self.offers.save(outcome.offer)
            for superseded in outcome.superseded:
                self.offers.save(superseded)
            self.requests.save(outcome.request)
            if outcome.profile is not None:
                self.profiles.save(outcome.profile)

        record_buyer_decision(BuyerAction(action).value, outcome.offer.source_type.value)
        log_transition(
            "resolve_buyer_decision",
            offer_id,
            outcome.offer.status.value,
            request_id=request_id,
            request_status=outcome.request.status.value,
            superseded=len(outcome.superseded),
        )
        return outcome

    def mark_installment_paid(
        self,
        offer_id: str,
        installment_id: str,
        method: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> Outcome:
        """Installment status and the buyer's credit profile change together"""
        with self._unit_of_work("mark_installment_paid"):
            offer = self.offers.get(offer_id, for_update=True)
            request = self.requests.get(offer.request_id)
            profile = self.profiles.get_or_new(request.buyer_id)
            outcome = delinquency.mark_installment_paid(offer, installment_id, profile, method, reference)
            self.offers.save(outcome.offer)
            self.profiles.save(outcome.profile)

        installment_paid_counter.inc()
        log_transition(
            "mark_installment_paid",
            installment_id,
            "paid",
            offer_id=offer_id,
            reference=reference,
        )
        return outcome

    def cancel_request(self, request_id: str, reason: Optional[str] = None) -> Outcome:
        with self._unit_of_work("cancel_request"):
            request = self.requests.get(request_id, for_update=True)
            outcome = lifecycle.cancel_request(request, reason)
            self._withdraw_open_offers(outcome)

        log_transition("cancel_request", request_id, outcome.request.status.value, reason=outcome.request.closed_reason)
        return outcome

    def close_request(self, request_id: str, reason: str) -> Outcome:
        with self._unit_of_work("close_request"):
            request = self.requests.get(request_id, for_update=True)
            outcome = lifecycle.close_request(request, reason)
            self._withdraw_open_offers(outcome)

        log_transition("close_request", request_id, outcome.request.status.value, reason=reason)
        return outcome

    def _withdraw_open_offers(self, outcome: Outcome) -> None:
        siblings = self.offers.list_by_request(outcome.request.id, for_update=True)
        outcome.superseded = resolver.supersede_open_offers(siblings)
        for offer in outcome.superseded:
            self.offers.save(offer)
        self.requests.save(outcome.request)

    def sweep_overdue(self, policy: PolicyStore, today: Optional[date] = None) -> SweepReport:
        """
        Mark overdue installments across all active contracts.

        Each contract is swept in its own transaction; installments already
        overdue are never counted again, so the sweep can be re-run at will.
        """
        report = SweepReport()
        start_time = time.time()
        for offer_id in self.offers.list_contract_offer_ids():
            with self._unit_of_work("sweep_overdue"):
                offer = self.offers.get(offer_id, for_update=True)
                request = self.requests.get(offer.request_id)
                profile = self.profiles.get_or_new(request.buyer_id)
                outcome = delinquency.sweep_offer(offer, profile, policy.grace_period_days, today)
                if outcome.events:
                    self.offers.save(outcome.offer)
                    self.profiles.save(outcome.profile)

            report.offers_scanned += 1
            report.newly_overdue += len(outcome.events)
            report.events.extend(outcome.events)

        sweep_duration_histogram.observe(time.time() - start_time)
        installment_overdue_counter.inc(report.newly_overdue)
        logging.info(
            "Delinquency sweep completed",
            extra={"offers_scanned": report.offers_scanned, "newly_overdue": report.newly_overdue},
        )
        return report

    def update_policy(self, policy: NegotiationPolicy) -> PolicyStore:
        """Replace the global policy; commands already holding a store keep their snapshot"""
        with self._unit_of_work("update_policy"):
            PolicyRepository(self.db).save(policy)

        logging.info("Negotiation policy updated", extra={"policy": policy.model_dump(mode="json")})
        return PolicyStore(policy)

    # Queries

    def get_request(self, request_id: str) -> InstallmentRequest:
        return self.requests.get(request_id)

    def list_requests_by_buyer(self, buyer_id: str, limit: int = 50, offset: int = 0) -> List[InstallmentRequest]:
        return self.requests.list_by_buyer(buyer_id, limit, offset)

    def list_requests_by_status(
        self, status: RequestStatus, limit: int = 50, offset: int = 0
    ) -> List[InstallmentRequest]:
        return self.requests.list_by_status(status, limit, offset)

    def list_requests_for_supplier(
        self, supplier_id: str, limit: int = 50, offset: int = 0
    ) -> List[InstallmentRequest]:
        """Supplier inbox; targeted forwarding lists are JSON, so they are matched here"""
        visible = [
            r for r in self.requests.list_open_to_suppliers() if offer_manager.is_open_to_supplier(r, supplier_id)
        ]
        return visible[offset : offset + limit]

    def list_offers_by_request(self, request_id: str) -> List[InstallmentOffer]:
        self.requests.get(request_id)  # 404 for unknown requests rather than an empty list
        return self.offers.list_by_request(request_id)

    def get_offer(self, offer_id: str) -> InstallmentOffer:
        return self.offers.get(offer_id)

    def get_credit_profile(self, buyer_id: str) -> CustomerCreditProfile:
        return self.profiles.get(buyer_id) or CustomerCreditProfile(buyer_id=buyer_id)

    def get_stats(self) -> InstallmentStats:
        return compute_stats(self.requests.list_all(), self.offers.list_all())
