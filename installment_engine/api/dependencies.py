"""Dependency injection for FastAPI endpoints"""

from typing import Iterable

from fastapi import BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from installment_engine.domain.events import DomainEvent
from installment_engine.domain.policy import PolicyStore
from installment_engine.infrastructure.clients.notifications import NotificationClient
from installment_engine.infrastructure.database.session import get_db
from installment_engine.services.engine import InstallmentEngine, load_policy_store


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_engine(db: Session = Depends(get_db)) -> InstallmentEngine:
    return InstallmentEngine(db)


def get_policy_store(db: Session = Depends(get_db)) -> PolicyStore:
    """Policy snapshot for this command, passed explicitly to the engine"""
    return load_policy_store(db)


def get_notification_client() -> NotificationClient:
    """Provide notification webhook client instance"""
    return NotificationClient()


def schedule_notifications(
    background_tasks: BackgroundTasks,
    client: NotificationClient,
    policy: PolicyStore,
    events: Iterable[DomainEvent],
) -> None:
    """Hand committed events allowed by the policy toggles to the dispatcher"""
    allowed = [event for event in events if policy.should_notify(event.name)]
    if allowed:
        background_tasks.add_task(client.publish, allowed)
