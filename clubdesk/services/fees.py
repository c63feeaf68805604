"""Fee status lifecycle.

``pending`` moves to ``overdue`` through the sweep once its due date has
passed; ``pending`` and ``overdue`` move to ``paid`` through an explicit
payment. ``paid`` is terminal and nothing ever returns a fee to ``pending``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from ..config import settings
from ..constants import (
    FEE_STATUS_OVERDUE,
    FEE_STATUS_PAID,
    FEE_STATUS_PENDING,
    PAYMENT_METHODS,
)
from ..core.errors import ValidationFailure
from ..models.models import Fee, utcnow
from . import store
from .schedule import installment_count, parse_amount

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    FEE_STATUS_PENDING: frozenset({FEE_STATUS_OVERDUE, FEE_STATUS_PAID}),
    FEE_STATUS_OVERDUE: frozenset({FEE_STATUS_PAID}),
    FEE_STATUS_PAID: frozenset(),
}

# Fields an operator may edit directly; status and paid_at only move through
# the lifecycle functions below.
EDITABLE_FIELDS = frozenset({"amount", "due_date", "description", "notes"})


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def local_today(tz_name: Optional[str] = None) -> date:
    return datetime.now(ZoneInfo(tz_name or settings.club_timezone)).date()


def is_overdue(fee: Fee, today: date) -> bool:
    return fee.status == FEE_STATUS_PENDING and fee.due_date < today


def sweep_overdue(session: Session, tenant_id: str, today: date) -> int:
    """Mark every pending fee of the tenant due before ``today`` as overdue.

    Runs as a single statement, so either every stale fee moves or none do.
    Re-running with the same ``today`` changes nothing.
    """
    if not tenant_id:
        raise ValidationFailure("missing_field", "Tenant id is required.", field="tenant_id")
    updated = store.bulk_update_status(
        session,
        tenant_id,
        status=FEE_STATUS_PENDING,
        due_before=today,
        patch={"status": FEE_STATUS_OVERDUE},
    )
    if updated:
        logger.info("Marked %d fee(s) overdue for tenant %s as of %s", updated, tenant_id, today.isoformat())
    return updated


def _validate_payment_method(payment_method: Optional[str]) -> Optional[str]:
    if payment_method is None or payment_method == "":
        return None
    if payment_method not in PAYMENT_METHODS:
        raise ValidationFailure(
            "invalid_payment_method",
            "Unsupported payment method.",
            value=payment_method,
            allowed=list(PAYMENT_METHODS),
        )
    return payment_method


def mark_paid(
    session: Session,
    tenant_id: str,
    fee_id: str,
    payment_method: Optional[str] = None,
    paid_at: Optional[datetime] = None,
) -> Fee:
    """Move a pending or overdue fee to ``paid``.

    Status, paid timestamp and payment method are written in one guarded
    statement. Marking a fee that is already paid leaves it unchanged.
    """
    method = _validate_payment_method(payment_method)
    patch: Dict[str, Any] = {"status": FEE_STATUS_PAID, "paid_at": paid_at or utcnow()}
    if method:
        patch["payment_method"] = method

    changed = store.conditional_update_fee(
        session,
        tenant_id,
        fee_id,
        from_statuses=[FEE_STATUS_PENDING, FEE_STATUS_OVERDUE],
        patch=patch,
    )
    fee = store.get_fee(session, tenant_id, fee_id)
    session.refresh(fee)
    if changed:
        logger.info("Fee %s marked paid (tenant %s, method %s)", fee_id, tenant_id, method or "-")
    else:
        logger.info("Fee %s was already paid; leaving it unchanged", fee_id)
    return fee


def _check_enrollment_slot(
    session: Session,
    tenant_id: str,
    enrollment_id: str,
    athlete_id: str,
    installment_number: Optional[int],
) -> None:
    """A fee linked to an enrollment must fill one of the plan's installment slots."""
    enrollment = store.get_enrollment(session, tenant_id, enrollment_id)
    if enrollment.athlete_id != athlete_id:
        raise ValidationFailure(
            "athlete_mismatch",
            "Fee athlete does not match the enrollment.",
            enrollment_id=enrollment_id,
            athlete_id=athlete_id,
        )
    total = installment_count(enrollment.plan_type)
    if installment_number is None or not 1 <= installment_number <= total:
        raise ValidationFailure(
            "invalid_installment",
            f"Installment number must be between 1 and {total}.",
            value=installment_number,
            total=total,
        )
    if store.installment_exists(session, tenant_id, enrollment_id, installment_number):
        raise ValidationFailure(
            "installment_taken",
            "Enrollment already has a fee for this installment.",
            enrollment_id=enrollment_id,
            installment_number=installment_number,
        )


def create_fee(
    session: Session,
    tenant_id: str,
    *,
    athlete_id: str,
    due_date: date,
    amount: Any,
    enrollment_id: Optional[str] = None,
    installment_number: Optional[int] = None,
    description: Optional[str] = None,
    notes: Optional[str] = None,
) -> Fee:
    if not tenant_id:
        raise ValidationFailure("missing_field", "Tenant id is required.", field="tenant_id")
    if not athlete_id:
        raise ValidationFailure("missing_field", "Athlete id is required.", field="athlete_id")
    if enrollment_id:
        _check_enrollment_slot(session, tenant_id, enrollment_id, athlete_id, installment_number)
    elif installment_number is not None:
        raise ValidationFailure(
            "invalid_installment", "Installment numbers belong to an enrollment.", value=installment_number
        )
    if due_date is None:
        raise ValidationFailure("missing_field", "Due date is required.", field="due_date")
    fee = Fee(
        tenant_id=tenant_id,
        athlete_id=athlete_id,
        enrollment_id=enrollment_id,
        installment_number=installment_number,
        due_date=due_date,
        amount=parse_amount(amount, field="amount"),
        status=FEE_STATUS_PENDING,
        paid_at=None,
        description=description,
        notes=notes,
    )
    (created,) = store.insert_fees(session, [fee])
    return created


def edit_fee(session: Session, tenant_id: str, fee_id: str, changes: Mapping[str, Any]) -> Fee:
    blocked = sorted(set(changes) - EDITABLE_FIELDS)
    if blocked:
        raise ValidationFailure("field_not_editable", "Fields cannot be edited directly.", fields=blocked)
    patch = dict(changes)
    if "due_date" in patch and patch["due_date"] is None:
        raise ValidationFailure("missing_field", "Due date cannot be cleared.", field="due_date")
    if "amount" in patch:
        patch["amount"] = parse_amount(patch["amount"], field="amount")
    return store.update_fee(session, tenant_id, fee_id, patch)


def list_fees(
    session: Session,
    fee_filter: store.FeeFilter,
    *,
    today: Optional[date] = None,
) -> List[Fee]:
    """Return the tenant's fees, sweeping stale pending ones first when ``today`` is given."""
    if today is not None:
        sweep_overdue(session, fee_filter.tenant_id, today)
    return store.query_fees(session, fee_filter)


def delete_fee(session: Session, tenant_id: str, fee_id: str) -> None:
    store.delete_fee(session, tenant_id, fee_id)
    logger.info("Fee %s deleted (tenant %s)", fee_id, tenant_id)
