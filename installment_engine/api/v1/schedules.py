"""POST /v1/schedules/preview - dry-run schedule generation"""

from fastapi import APIRouter

from installment_engine.api.v1.schemas import ScheduleSchema, SchedulePreviewBody
from installment_engine.domain.schedule import generate_payment_schedule

router = APIRouter()


@router.post("/schedules/preview", response_model=ScheduleSchema)
def preview_schedule(body: SchedulePreviewBody):
    """Show the installments an offer would carry, without persisting anything"""
    schedule = generate_payment_schedule(
        body.total_amount,
        body.frequency,
        body.installment_count,
        start_date=body.start_date,
    )
    return ScheduleSchema.model_validate(schedule)
