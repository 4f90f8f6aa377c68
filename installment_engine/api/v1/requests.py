"""Installment request endpoints - intake, primary-seller review, forwarding, supplier offers"""

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from installment_engine.api.dependencies import (
    get_engine,
    get_notification_client,
    get_policy_store,
    schedule_notifications,
)
from installment_engine.api.v1.schemas import (
    CancelBody,
    CloseBody,
    CreateRequestBody,
    DecisionResponse,
    ForwardBody,
    OfferItemIn,
    OfferResponse,
    PrimaryDecisionBody,
    RequestResponse,
    SupplierOfferBody,
)
from installment_engine.domain.models import LineItem, OfferItem, RequestStatus
from installment_engine.domain.policy import PolicyStore
from installment_engine.infrastructure.clients.notifications import NotificationClient
from installment_engine.services.engine import InstallmentEngine

router = APIRouter()


def _offer_items(items: List[OfferItemIn]) -> List[OfferItem]:
    return [
        OfferItem(
            request_item_id=item.request_item_id,
            quantity_approved=item.quantity_approved,
            unit_price_approved=item.unit_price_approved,
        )
        for item in items
    ]


@router.post("/requests", response_model=RequestResponse, status_code=201)
def create_request(
    body: CreateRequestBody,
    background_tasks: BackgroundTasks,
    engine: InstallmentEngine = Depends(get_engine),
    policy: PolicyStore = Depends(get_policy_store),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """Open an installment request pending the primary seller's review"""
    outcome = engine.create_request(
        buyer_id=body.buyer_id,
        line_items=[
            LineItem(
                product_id=item.product_id,
                quantity_requested=item.quantity_requested,
                unit_price_requested=item.unit_price_requested,
            )
            for item in body.line_items
        ],
        duration_months=body.duration_months,
        frequency=body.payment_frequency,
        policy=policy,
    )
    schedule_notifications(background_tasks, notifier, policy, outcome.events)
    return RequestResponse.model_validate(outcome.request)


@router.get("/requests", response_model=List[RequestResponse])
def list_requests(
    buyer_id: Optional[str] = Query(None, description="Buyer identifier"),
    status: Optional[RequestStatus] = Query(None, description="Request status"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    engine: InstallmentEngine = Depends(get_engine),
):
    """List a buyer's requests, or all requests in one status"""
    if buyer_id:
        requests = engine.list_requests_by_buyer(buyer_id, limit, offset)
        if status:
            requests = [r for r in requests if r.status == status]
    elif status:
        requests = engine.list_requests_by_status(status, limit, offset)
    else:
        raise HTTPException(status_code=400, detail="Provide buyer_id or status")
    return [RequestResponse.model_validate(r) for r in requests]


@router.get("/requests/{request_id}", response_model=RequestResponse)
def get_request(request_id: str, engine: InstallmentEngine = Depends(get_engine)):
    return RequestResponse.model_validate(engine.get_request(request_id))


@router.get("/requests/{request_id}/offers", response_model=List[OfferResponse])
def list_offers(request_id: str, engine: InstallmentEngine = Depends(get_engine)):
    return [OfferResponse.model_validate(o) for o in engine.list_offers_by_request(request_id)]


@router.post("/requests/{request_id}/primary-decision", response_model=DecisionResponse)
def record_primary_decision(
    request_id: str,
    body: PrimaryDecisionBody,
    background_tasks: BackgroundTasks,
    engine: InstallmentEngine = Depends(get_engine),
    policy: PolicyStore = Depends(get_policy_store),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """
    Record the primary seller's approve_full / approve_partial / reject.

    Approvals must carry an offer payload; the generated schedule uses the
    request's own duration and frequency.
    """
    outcome = engine.record_primary_seller_decision(
        request_id,
        body.decision,
        policy,
        offer_items=_offer_items(body.offer.items_approved) if body.offer else None,
        total_approved_value=body.offer.total_approved_value if body.offer else None,
        forward_immediately=body.forward_immediately,
        supplier_ids=body.supplier_ids,
        admin_notes=body.admin_notes,
        offer_notes=body.offer.notes if body.offer else None,
    )
    schedule_notifications(background_tasks, notifier, policy, outcome.events)
    return DecisionResponse(
        request=RequestResponse.model_validate(outcome.request),
        offer=OfferResponse.model_validate(outcome.offer) if outcome.offer else None,
    )


@router.post("/requests/{request_id}/forward", response_model=RequestResponse)
def forward_request(
    request_id: str,
    body: ForwardBody,
    background_tasks: BackgroundTasks,
    engine: InstallmentEngine = Depends(get_engine),
    policy: PolicyStore = Depends(get_policy_store),
    notifier: NotificationClient = Depends(get_notification_client),
):
    outcome = engine.forward_to_suppliers(request_id, body.supplier_ids, policy)
    schedule_notifications(background_tasks, notifier, policy, outcome.events)
    return RequestResponse.model_validate(outcome.request)


@router.post("/requests/{request_id}/supplier-offers", response_model=OfferResponse, status_code=201)
def submit_supplier_offer(
    request_id: str,
    body: SupplierOfferBody,
    background_tasks: BackgroundTasks,
    engine: InstallmentEngine = Depends(get_engine),
    policy: PolicyStore = Depends(get_policy_store),
    notifier: NotificationClient = Depends(get_notification_client),
):
    outcome = engine.submit_supplier_offer(
        request_id,
        body.supplier_id,
        body.type,
        _offer_items(body.items_approved),
        body.total_approved_value,
        body.frequency or policy.default_frequency,
        body.installment_count,
        policy,
        notes=body.notes,
    )
    schedule_notifications(background_tasks, notifier, policy, outcome.events)
    return OfferResponse.model_validate(outcome.offer)


@router.post("/requests/{request_id}/cancel", response_model=RequestResponse)
def cancel_request(
    request_id: str,
    background_tasks: BackgroundTasks,
    body: Optional[CancelBody] = None,
    engine: InstallmentEngine = Depends(get_engine),
    policy: PolicyStore = Depends(get_policy_store),
    notifier: NotificationClient = Depends(get_notification_client),
):
    outcome = engine.cancel_request(request_id, body.reason if body else None)
    schedule_notifications(background_tasks, notifier, policy, outcome.events)
    return RequestResponse.model_validate(outcome.request)


@router.post("/requests/{request_id}/close", response_model=RequestResponse)
def close_request(
    request_id: str,
    body: CloseBody,
    background_tasks: BackgroundTasks,
    engine: InstallmentEngine = Depends(get_engine),
    policy: PolicyStore = Depends(get_policy_store),
    notifier: NotificationClient = Depends(get_notification_client),
):
    outcome = engine.close_request(request_id, body.reason)
    schedule_notifications(background_tasks, notifier, policy, outcome.events)
    return RequestResponse.model_validate(outcome.request)
