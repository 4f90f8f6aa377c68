"""Scheduled delinquency sweep - marks overdue installments on active contracts"""

import asyncio
import logging
from datetime import date
from typing import Optional

from installment_engine.config import settings
from installment_engine.infrastructure.clients.notifications import NotificationClient
from installment_engine.infrastructure.database.session import SessionLocal
from installment_engine.infrastructure.observability.logging import setup_logging
from installment_engine.services.engine import InstallmentEngine, SweepReport, load_policy_store


async def run_once(
    today: Optional[date] = None,
    notifier: Optional[NotificationClient] = None,
) -> SweepReport:
    """Sweep every active contract once, then dispatch the overdue events"""
    db = SessionLocal()
    try:
        policy = load_policy_store(db)
        report = InstallmentEngine(db).sweep_overdue(policy, today=today)
    finally:
        db.close()

    allowed = [event for event in report.events if policy.should_notify(event.name)]
    if allowed:
        await (notifier or NotificationClient()).publish(allowed)
    return report


async def run_forever(interval_seconds: float) -> None:
    while True:
        try:
            await run_once()
        except Exception:
            # Next tick retries; per-contract transactions already committed stay committed
            logging.exception("Delinquency sweep failed")
        await asyncio.sleep(interval_seconds)


def main() -> None:
    setup_logging(settings.log_level)
    logging.info("Starting delinquency sweeper", extra={"interval_seconds": settings.sweep_interval_seconds})
    asyncio.run(run_forever(settings.sweep_interval_seconds))


if __name__ == "__main__":
    main()
