from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, condecimal, conint

Money = condecimal(ge=0, max_digits=10, decimal_places=2)
PaymentMethod = Literal["pix", "credit_card", "boleto", "cash"]
FeeStatus = Literal["pending", "paid", "overdue"]
RoleName = Literal["admin", "manager", "member"]


class FeeBase(BaseModel):
    athlete_id: str
    due_date: date
    amount: Money  # type: ignore[valid-type]
    enrollment_id: Optional[str] = None
    installment_number: Optional[conint(ge=1)] = None  # type: ignore[valid-type]
    description: Optional[str] = None
    notes: Optional[str] = None


class FeeCreate(FeeBase):
    pass


class FeeUpdate(BaseModel):
    amount: Optional[Money] = None  # type: ignore[valid-type]
    due_date: Optional[date] = None
    description: Optional[str] = None
    notes: Optional[str] = None


class FeeRead(BaseModel):
    id: str
    tenant_id: str
    athlete_id: str
    enrollment_id: Optional[str]
    installment_number: Optional[int]
    due_date: date
    amount: Decimal
    status: FeeStatus
    paid_at: Optional[datetime]
    payment_method: Optional[str]
    description: Optional[str]
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MarkPaidPayload(BaseModel):
    payment_method: Optional[PaymentMethod] = None


class SweepRequest(BaseModel):
    today: Optional[date] = None


class SweepResult(BaseModel):
    as_of: date
    updated: int


class BillingSummaryRead(BaseModel):
    total_expected: Decimal
    total_received: Decimal
    total_pending: Decimal
    total_overdue: Decimal
    pending_count: int
    overdue_count: int

    model_config = ConfigDict(from_attributes=True)


class FailureRead(BaseModel):
    kind: str
    cause: str
    detail: str
    details: Dict[str, Any] = {}


class EnrollmentCreate(BaseModel):
    athlete_id: str
    start_date: date
    monthly_fee: Money  # type: ignore[valid-type]
    plan_type: Optional[str] = None
    payment_day: Optional[conint(ge=1, le=31)] = None  # type: ignore[valid-type]
    enrollment_date: Optional[date] = None
    end_date: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None
    status: Literal["pending", "active", "cancelled", "expired"] = "pending"
    notes: Optional[str] = None


class EnrollmentRead(BaseModel):
    id: str
    tenant_id: str
    athlete_id: str
    enrollment_date: Optional[date]
    start_date: date
    end_date: Optional[date]
    plan_type: str
    monthly_fee: Decimal
    payment_day: Optional[int]
    payment_method: Optional[str]
    status: str
    notes: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class EnrollmentCreateResult(BaseModel):
    enrollment: EnrollmentRead
    fees: List[FeeRead] = []
    schedule_error: Optional[FailureRead] = None


class MembershipRead(BaseModel):
    tenant_id: str
    user_id: str
    role: str
    is_owner: bool
    is_admin: bool
    has_override: bool
    permissions: Dict[str, bool]


class MembershipRoleUpdate(BaseModel):
    role: RoleName
    permissions: Optional[Dict[str, bool]] = None
