"""Tenant-scoped record store used by the billing and membership services.

Every function takes the tenant id explicitly and commits its own unit of
work. Database errors roll the session back and surface as
``PersistenceFailure`` so a multi-row write is either fully visible or not
at all.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.errors import NotFoundFailure, PersistenceFailure
from ..models.models import Enrollment, Fee, TenantMembership, utcnow

logger = logging.getLogger(__name__)

# Columns a generic fee patch may touch; tenant and athlete never change.
FEE_PATCHABLE_FIELDS = frozenset(
    {"amount", "due_date", "status", "paid_at", "payment_method", "description", "notes"}
)


@contextmanager
def _unit_of_work(session: Session, operation: str) -> Iterator[None]:
    try:
        yield
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        logger.warning("%s violated a constraint: %s", operation, exc.orig)
        raise PersistenceFailure("constraint_violation", str(exc.orig), operation=operation) from exc
    except SQLAlchemyError as exc:
        session.rollback()
        logger.warning("%s failed: %s", operation, exc)
        raise PersistenceFailure("store_unavailable", str(exc), operation=operation) from exc


@dataclass
class FeeFilter:
    tenant_id: str
    status: Optional[str] = None
    athlete_id: Optional[str] = None
    enrollment_id: Optional[str] = None
    due_month: Optional[str] = None  # YYYY-MM
    due_before: Optional[date] = None


def insert_fees(session: Session, records: Sequence[Fee]) -> List[Fee]:
    with _unit_of_work(session, "insert_fees"):
        session.add_all(records)
        session.flush()
    for record in records:
        session.refresh(record)
    return list(records)


def get_fee(session: Session, tenant_id: str, fee_id: str) -> Fee:
    fee = session.query(Fee).filter(Fee.id == fee_id, Fee.tenant_id == tenant_id).first()
    if not fee:
        raise NotFoundFailure("fee_not_found", "Fee not found.", fee_id=fee_id)
    return fee


def update_fee(session: Session, tenant_id: str, fee_id: str, patch: Mapping[str, Any]) -> Fee:
    disallowed = sorted(set(patch) - FEE_PATCHABLE_FIELDS)
    if disallowed:
        raise ValueError(f"Fields cannot be patched: {', '.join(disallowed)}")
    fee = get_fee(session, tenant_id, fee_id)
    with _unit_of_work(session, "update_fee"):
        for key, value in patch.items():
            setattr(fee, key, value)
        session.add(fee)
    session.refresh(fee)
    return fee


def conditional_update_fee(
    session: Session,
    tenant_id: str,
    fee_id: str,
    *,
    from_statuses: Sequence[str],
    patch: Mapping[str, Any],
) -> int:
    """Apply ``patch`` in a single statement if the fee is in ``from_statuses``.

    Returns the number of rows changed (0 or 1).
    """
    values: Dict[str, Any] = dict(patch)
    values["updated_at"] = utcnow()
    statement = (
        update(Fee)
        .where(Fee.id == fee_id, Fee.tenant_id == tenant_id, Fee.status.in_(list(from_statuses)))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    with _unit_of_work(session, "conditional_update_fee"):
        result = session.execute(statement)
    return result.rowcount or 0


def bulk_update_status(
    session: Session,
    tenant_id: str,
    *,
    status: str,
    due_before: date,
    patch: Mapping[str, Any],
) -> int:
    values: Dict[str, Any] = dict(patch)
    values["updated_at"] = utcnow()
    statement = (
        update(Fee)
        .where(Fee.tenant_id == tenant_id, Fee.status == status, Fee.due_date < due_before)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    with _unit_of_work(session, "bulk_update_status"):
        result = session.execute(statement)
    return result.rowcount or 0


def delete_fee(session: Session, tenant_id: str, fee_id: str) -> None:
    fee = get_fee(session, tenant_id, fee_id)
    with _unit_of_work(session, "delete_fee"):
        session.delete(fee)


def query_fees(session: Session, fee_filter: FeeFilter) -> List[Fee]:
    query = session.query(Fee).filter(Fee.tenant_id == fee_filter.tenant_id)
    if fee_filter.status:
        query = query.filter(Fee.status == fee_filter.status)
    if fee_filter.athlete_id:
        query = query.filter(Fee.athlete_id == fee_filter.athlete_id)
    if fee_filter.due_before:
        query = query.filter(Fee.due_date < fee_filter.due_before)
    if fee_filter.due_month:
        first_day, next_month = _month_bounds(fee_filter.due_month)
        query = query.filter(Fee.due_date >= first_day, Fee.due_date < next_month)
    if fee_filter.enrollment_id:
        query = query.filter(Fee.enrollment_id == fee_filter.enrollment_id)
        return query.order_by(Fee.installment_number.asc()).all()
    return query.order_by(Fee.due_date.desc(), Fee.installment_number.asc()).all()


def _month_bounds(due_month: str) -> tuple[date, date]:
    year, month = (int(part) for part in due_month.split("-", 1))
    first_day = date(year, month, 1)
    next_month = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return first_day, next_month


def get_enrollment(session: Session, tenant_id: str, enrollment_id: str) -> Enrollment:
    enrollment = (
        session.query(Enrollment)
        .filter(Enrollment.id == enrollment_id, Enrollment.tenant_id == tenant_id)
        .first()
    )
    if not enrollment:
        raise NotFoundFailure("enrollment_not_found", "Enrollment not found.", enrollment_id=enrollment_id)
    return enrollment


def count_enrollment_fees(session: Session, tenant_id: str, enrollment_id: str) -> int:
    return (
        session.query(Fee)
        .filter(Fee.tenant_id == tenant_id, Fee.enrollment_id == enrollment_id)
        .count()
    )


def installment_exists(session: Session, tenant_id: str, enrollment_id: str, installment_number: int) -> bool:
    query = session.query(Fee).filter(
        Fee.tenant_id == tenant_id,
        Fee.enrollment_id == enrollment_id,
        Fee.installment_number == installment_number,
    )
    return session.query(query.exists()).scalar()


def read_membership(session: Session, tenant_id: str, user_id: str) -> TenantMembership:
    membership = (
        session.query(TenantMembership)
        .filter(TenantMembership.tenant_id == tenant_id, TenantMembership.user_id == user_id)
        .first()
    )
    if not membership:
        raise NotFoundFailure("membership_not_found", "User is not a member of this tenant.", user_id=user_id)
    return membership


def write_membership_role(
    session: Session,
    tenant_id: str,
    user_id: str,
    role: str,
    permission_override: Optional[Dict[str, bool]] = None,
) -> TenantMembership:
    membership = read_membership(session, tenant_id, user_id)
    with _unit_of_work(session, "write_membership_role"):
        membership.role = role
        membership.permissions = permission_override
        session.add(membership)
    session.refresh(membership)
    return membership
