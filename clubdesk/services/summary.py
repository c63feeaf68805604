from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable

from ..constants import FEE_STATUS_OVERDUE, FEE_STATUS_PAID, FEE_STATUS_PENDING

ZERO = Decimal("0.00")


def _as_decimal(amount: Any) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))


@dataclass(frozen=True)
class BillingSummary:
    total_expected: Decimal = ZERO
    total_received: Decimal = ZERO
    total_pending: Decimal = ZERO
    total_overdue: Decimal = ZERO
    pending_count: int = 0
    overdue_count: int = 0


def summarize_fees(fees: Iterable[Any]) -> BillingSummary:
    """Aggregate fee records (anything with ``amount`` and ``status``) into totals."""
    expected = received = pending = overdue = ZERO
    pending_count = overdue_count = 0
    for fee in fees:
        amount = _as_decimal(fee.amount)
        expected += amount
        if fee.status == FEE_STATUS_PAID:
            received += amount
        elif fee.status == FEE_STATUS_PENDING:
            pending += amount
            pending_count += 1
        elif fee.status == FEE_STATUS_OVERDUE:
            overdue += amount
            overdue_count += 1
    return BillingSummary(
        total_expected=expected,
        total_received=received,
        total_pending=pending,
        total_overdue=overdue,
        pending_count=pending_count,
        overdue_count=overdue_count,
    )
