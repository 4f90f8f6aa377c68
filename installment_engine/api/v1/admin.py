"""Administrator endpoints - dashboard stats, negotiation policy, delinquency sweep"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from installment_engine.api.dependencies import (
    get_engine,
    get_notification_client,
    get_policy_store,
    schedule_notifications,
)
from installment_engine.api.v1.schemas import StatsResponse, SweepResponse
from installment_engine.domain.policy import NegotiationPolicy, PolicyStore
from installment_engine.infrastructure.clients.notifications import NotificationClient
from installment_engine.services.engine import InstallmentEngine

router = APIRouter()


@router.get("/stats", response_model=StatsResponse)
def get_stats(engine: InstallmentEngine = Depends(get_engine)):
    return StatsResponse.model_validate(engine.get_stats())


@router.get("/admin/policy", response_model=NegotiationPolicy)
def get_policy(policy: PolicyStore = Depends(get_policy_store)):
    return policy.policy


@router.put("/admin/policy", response_model=NegotiationPolicy)
def update_policy(body: NegotiationPolicy, engine: InstallmentEngine = Depends(get_engine)):
    """Replace the negotiation policy; applies to commands started afterwards"""
    return engine.update_policy(body).policy


@router.post("/admin/sweep", response_model=SweepResponse)
def run_sweep(
    background_tasks: BackgroundTasks,
    today: Optional[date] = Query(None, description="Evaluate due dates as of this day"),
    engine: InstallmentEngine = Depends(get_engine),
    policy: PolicyStore = Depends(get_policy_store),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """Run the delinquency sweep on demand, same as the scheduled worker"""
    report = engine.sweep_overdue(policy, today=today)
    schedule_notifications(background_tasks, notifier, policy, report.events)
    return SweepResponse(offers_scanned=report.offers_scanned, newly_overdue=report.newly_overdue)
