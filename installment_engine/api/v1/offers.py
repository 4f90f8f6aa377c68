"""Offer endpoints - buyer decisions and installment payments"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends

from installment_engine.api.dependencies import (
    get_engine,
    get_notification_client,
    get_policy_store,
    schedule_notifications,
)
from installment_engine.api.v1.schemas import (
    BuyerDecisionBody,
    BuyerDecisionResponse,
    OfferResponse,
    PayInstallmentBody,
    RequestResponse,
)
from installment_engine.domain.policy import PolicyStore
from installment_engine.infrastructure.clients.notifications import NotificationClient
from installment_engine.services.engine import InstallmentEngine

router = APIRouter()


@router.get("/offers/{offer_id}", response_model=OfferResponse)
def get_offer(offer_id: str, engine: InstallmentEngine = Depends(get_engine)):
    return OfferResponse.model_validate(engine.get_offer(offer_id))


@router.post("/offers/{offer_id}/respond", response_model=BuyerDecisionResponse)
def respond_to_offer(
    offer_id: str,
    body: BuyerDecisionBody,
    background_tasks: BackgroundTasks,
    engine: InstallmentEngine = Depends(get_engine),
    policy: PolicyStore = Depends(get_policy_store),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """
    Buyer accepts or rejects an offer.

    Accepting activates the contract and supersedes every other waiting offer
    on the request. Rejecting cascades as the policy dictates: forward to
    suppliers, keep waiting for other suppliers, or close the request.
    """
    outcome = engine.resolve_buyer_decision(offer_id, body.decision, policy)
    schedule_notifications(background_tasks, notifier, policy, outcome.events)
    return BuyerDecisionResponse(
        offer=OfferResponse.model_validate(outcome.offer),
        request=RequestResponse.model_validate(outcome.request),
        superseded_offer_ids=[o.id for o in outcome.superseded],
    )


@router.post("/offers/{offer_id}/installments/{installment_id}/pay", response_model=OfferResponse)
def pay_installment(
    offer_id: str,
    installment_id: str,
    background_tasks: BackgroundTasks,
    body: Optional[PayInstallmentBody] = None,
    engine: InstallmentEngine = Depends(get_engine),
    policy: PolicyStore = Depends(get_policy_store),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """Record a confirmed payment for one installment of an active contract"""
    outcome = engine.mark_installment_paid(
        offer_id,
        installment_id,
        method=body.method if body else None,
        reference=body.reference if body else None,
    )
    schedule_notifications(background_tasks, notifier, policy, outcome.events)
    return OfferResponse.model_validate(outcome.offer)
