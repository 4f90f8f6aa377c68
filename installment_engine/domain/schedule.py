"""Payment schedule generation for accepted installment offers"""

from datetime import date, timedelta
from decimal import Decimal, ROUND_CEILING
from typing import List
from installment_engine.domain.models import Installment, PaymentFrequency, PaymentSchedule
from installment_engine.domain.exceptions import InvalidScheduleInput
from installment_engine.utils.date_utils import add_months

FIRST_PAYMENT_OFFSET_DAYS = 7
WEEKLY_INTERVAL_DAYS = 7


def _ceil_units(value: Decimal) -> Decimal:
    return value.to_integral_value(rounding=ROUND_CEILING)


def _due_date(first_due: date, frequency: PaymentFrequency, index: int) -> date:
    if frequency == PaymentFrequency.MONTHLY:
        # Always offset from the first due date so month-end clamping does not drift
        return add_months(first_due, index)
    return first_due + timedelta(days=index * WEEKLY_INTERVAL_DAYS)


def generate_payment_schedule(
    total_amount: Decimal,
    frequency: PaymentFrequency,
    installment_count: int,
    start_date: date | None = None,
) -> PaymentSchedule:
    """
    Split a total into dated installments.

    Requirements:
    - First installment is due 7 days after start_date, whatever the frequency
    - Monthly schedules advance one calendar month, weekly ones 7 days
    - Each installment but the last is the ceiling (whole currency units) of what is
      still owed divided by the payments left, so the first equals ceil(total / count)
    - Last installment absorbs the remainder so the schedule sums exactly to total
    - per_installment_amount is the first installment; later ones may be smaller

    Args:
        total_amount: Amount to split (must be positive)
        frequency: monthly or weekly
        installment_count: Number of payments (must be >= 1, clamped by caller)
        start_date: Schedule start (default: today)

    Raises:
        InvalidScheduleInput: count < 1 or total <= 0

    Example:
        1000 over 3 → [334, 333, 333]
        ceil(1000 / 3) = 334, ceil(666 / 2) = 333, last = 666 - 333 = 333
    """
    total_amount = Decimal(total_amount)
    if installment_count < 1:
        raise InvalidScheduleInput(f"Installment count must be at least 1, got {installment_count}")
    if total_amount <= 0:
        raise InvalidScheduleInput(f"Schedule total must be positive, got {total_amount}")

    frequency = PaymentFrequency(frequency)
    if start_date is None:
        start_date = date.today()
    first_due = start_date + timedelta(days=FIRST_PAYMENT_OFFSET_DAYS)

    per_installment = _ceil_units(total_amount / installment_count)

    installments: List[Installment] = []
    remaining = total_amount
    for i in range(installment_count):
        payments_left = installment_count - i
        if payments_left == 1:
            amount = remaining
        else:
            amount = _ceil_units(remaining / payments_left)
        remaining -= amount
        installments.append(
            Installment(sequence=i + 1, due_date=_due_date(first_due, frequency, i), amount=amount)
        )

    return PaymentSchedule(
        frequency=frequency,
        installment_count=installment_count,
        per_installment_amount=per_installment,
        start_date=start_date,
        end_date=installments[-1].due_date,
        installments=installments,
    )
