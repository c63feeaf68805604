from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from ..config import settings
from ..constants import FEE_STATUS_PENDING, MONTH_NAMES, PLAN_INSTALLMENTS
from ..core.errors import ValidationFailure
from ..models.models import Enrollment, Fee
from . import store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Installment:
    installment_number: int
    total_installments: int
    due_date: date
    amount: Decimal
    description: str
    status: str = FEE_STATUS_PENDING


def installment_count(plan_type: Optional[str]) -> int:
    # Unknown tiers (and a zero count) fall back to one installment.
    return PLAN_INSTALLMENTS.get(plan_type or "", 0) or 1


def parse_amount(value: Any, field: str = "monthly_fee") -> Decimal:
    """Parse a non-negative, finite money amount or raise ``ValidationFailure``."""
    if value is None or value == "":
        raise ValidationFailure("missing_field", "Amount is required.", field=field)
    if isinstance(value, bool):
        raise ValidationFailure("invalid_amount", "Amount must be numeric.", field=field, value=str(value))
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        raise ValidationFailure("invalid_amount", "Amount must be numeric.", field=field, value=str(value)) from None
    if not amount.is_finite():
        raise ValidationFailure("invalid_amount", "Amount must be numeric.", field=field, value=str(value))
    if amount < 0:
        raise ValidationFailure("negative_amount", "Amount cannot be negative.", field=field, value=str(value))
    return amount


def _as_date(value: Any, field: str) -> date:
    if value is None or value == "":
        raise ValidationFailure("missing_field", f"{field} is required.", field=field)
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ValidationFailure("invalid_date", f"{field} must be an ISO date.", field=field, value=str(value))


def _as_payment_day(value: Any) -> int:
    try:
        day = int(value)
    except (TypeError, ValueError):
        raise ValidationFailure("invalid_payment_day", "Payment day must be a number.", value=str(value))
    if not 1 <= day <= 31:
        raise ValidationFailure("invalid_payment_day", "Payment day must be between 1 and 31.", value=day)
    return day


def due_date_for(start_date: date, months_ahead: int, payment_day: int) -> date:
    month_index = start_date.month - 1 + months_ahead
    year = start_date.year + month_index // 12
    month = month_index % 12 + 1
    days_in_month = calendar.monthrange(year, month)[1]
    return date(year, month, min(payment_day, days_in_month))


def describe_installment(number: int, total: int, due_date: date) -> str:
    return f"{number}/{total} - {MONTH_NAMES[due_date.month - 1]} {due_date.year}"


def build_schedule(
    plan_type: Optional[str],
    monthly_amount: Any,
    start_date: Any,
    payment_day: Any,
) -> List[Installment]:
    """Lay out the installments for an enrollment plan.

    Each installment falls ``i`` months after the start month, on
    ``payment_day`` clamped to the length of that month. The clamp is
    computed per month, so a day-31 plan lands on Feb 29 and then back on
    Mar 31 rather than drifting.
    """
    amount = parse_amount(monthly_amount)
    start = _as_date(start_date, "start_date")
    day = _as_payment_day(payment_day)
    total = installment_count(plan_type)

    installments: List[Installment] = []
    for index in range(total):
        due = due_date_for(start, index, day)
        installments.append(
            Installment(
                installment_number=index + 1,
                total_installments=total,
                due_date=due,
                amount=amount,
                description=describe_installment(index + 1, total, due),
            )
        )
    return installments


def schedule_for_enrollment(enrollment: Enrollment) -> List[Installment]:
    plan_type = enrollment.plan_type or settings.default_plan_type
    payment_day = enrollment.payment_day or settings.default_payment_day
    return build_schedule(plan_type, enrollment.monthly_fee, enrollment.start_date, payment_day)


def generate_fee_schedule(session: Session, enrollment: Enrollment) -> List[Fee]:
    """Persist the full installment schedule of ``enrollment`` as one batch.

    The enrollment itself is left untouched when the insert fails; callers
    can retry through the schedule repair endpoint.
    """
    for field in ("id", "tenant_id", "athlete_id"):
        if not getattr(enrollment, field, None):
            raise ValidationFailure("missing_field", f"Enrollment {field} is required.", field=field)

    installments = schedule_for_enrollment(enrollment)

    existing = store.count_enrollment_fees(session, enrollment.tenant_id, enrollment.id)
    if existing:
        raise ValidationFailure(
            "schedule_exists",
            "Enrollment already has a fee schedule.",
            enrollment_id=enrollment.id,
            existing=existing,
        )

    records = [
        Fee(
            tenant_id=enrollment.tenant_id,
            athlete_id=enrollment.athlete_id,
            enrollment_id=enrollment.id,
            installment_number=item.installment_number,
            due_date=item.due_date,
            amount=item.amount,
            status=item.status,
            paid_at=None,
            description=item.description,
        )
        for item in installments
    ]
    fees = store.insert_fees(session, records)
    logger.info(
        "Generated %d installment(s) for enrollment %s (tenant %s)",
        len(fees),
        enrollment.id,
        enrollment.tenant_id,
    )
    return fees
