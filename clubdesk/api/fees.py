from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, get_tenant_id, require_permission
from ..auth.jwt import CurrentUser, get_current_user
from ..config import settings
from ..models.models import Fee
from ..schemas.schemas import (
    BillingSummaryRead,
    FeeCreate,
    FeeRead,
    FeeStatus,
    FeeUpdate,
    MarkPaidPayload,
    SweepRequest,
    SweepResult,
)
from ..services import fees as fee_service
from ..services.audit import audit_log, snapshot
from ..services.permissions import Resource
from ..services.store import FeeFilter, get_fee
from ..services.summary import BillingSummary, summarize_fees

router = APIRouter()

can_view_fees = require_permission(Resource.MONTHLY_FEES, "view")
can_manage_fees = require_permission(Resource.MONTHLY_FEES, "manage")


def _sweep_date() -> Optional[date]:
    return fee_service.local_today() if settings.sweep_on_read else None


@router.get("", response_model=List[FeeRead])
def list_fees(
    status: Optional[FeeStatus] = None,
    month: Optional[str] = Query(default=None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$"),
    athlete_id: Optional[str] = None,
    enrollment_id: Optional[str] = None,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    _: object = Depends(can_view_fees),
) -> List[Fee]:
    fee_filter = FeeFilter(
        tenant_id=tenant_id,
        status=status,
        athlete_id=athlete_id,
        enrollment_id=enrollment_id,
        due_month=month,
    )
    return fee_service.list_fees(db, fee_filter, today=_sweep_date())


@router.get("/summary", response_model=BillingSummaryRead)
def fees_summary(
    month: Optional[str] = Query(default=None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$"),
    athlete_id: Optional[str] = None,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    _: object = Depends(can_view_fees),
) -> BillingSummary:
    fee_filter = FeeFilter(tenant_id=tenant_id, athlete_id=athlete_id, due_month=month)
    return summarize_fees(fee_service.list_fees(db, fee_filter, today=_sweep_date()))


@router.post("/sweep", response_model=SweepResult)
def sweep_fees(
    payload: SweepRequest,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: CurrentUser = Depends(get_current_user),
    _: object = Depends(can_manage_fees),
) -> SweepResult:
    as_of = payload.today or fee_service.local_today()
    updated = fee_service.sweep_overdue(db, tenant_id, as_of)
    if updated:
        audit_log(
            db_session=db,
            tenant_id=tenant_id,
            actor_user_id=actor.id,
            action="fees.sweep",
            target_entity_type="Fee",
            after={"as_of": as_of.isoformat(), "updated": updated},
        )
    return SweepResult(as_of=as_of, updated=updated)


@router.get("/{fee_id}", response_model=FeeRead)
def read_fee(
    fee_id: str,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    _: object = Depends(can_view_fees),
) -> Fee:
    return get_fee(db, tenant_id, fee_id)


@router.post("", response_model=FeeRead, status_code=201)
def create_fee(
    payload: FeeCreate,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: CurrentUser = Depends(get_current_user),
    _: object = Depends(can_manage_fees),
) -> Fee:
    fee = fee_service.create_fee(db, tenant_id, **payload.model_dump())
    audit_log(
        db_session=db,
        tenant_id=tenant_id,
        actor_user_id=actor.id,
        action="fees.create",
        target_entity_type="Fee",
        target_entity_id=fee.id,
        after=payload.model_dump(),
    )
    return fee


@router.patch("/{fee_id}", response_model=FeeRead)
def update_fee(
    fee_id: str,
    payload: FeeUpdate,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: CurrentUser = Depends(get_current_user),
    _: object = Depends(can_manage_fees),
) -> Fee:
    before = snapshot(get_fee(db, tenant_id, fee_id))
    fee = fee_service.edit_fee(db, tenant_id, fee_id, payload.model_dump(exclude_unset=True))
    audit_log(
        db_session=db,
        tenant_id=tenant_id,
        actor_user_id=actor.id,
        action="fees.update",
        target_entity_type="Fee",
        target_entity_id=fee_id,
        before=before,
        after=snapshot(fee),
    )
    return fee


@router.post("/{fee_id}/pay", response_model=FeeRead)
def pay_fee(
    fee_id: str,
    payload: MarkPaidPayload,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: CurrentUser = Depends(get_current_user),
    _: object = Depends(can_manage_fees),
) -> Fee:
    fee = fee_service.mark_paid(db, tenant_id, fee_id, payment_method=payload.payment_method)
    audit_log(
        db_session=db,
        tenant_id=tenant_id,
        actor_user_id=actor.id,
        action="fees.mark_paid",
        target_entity_type="Fee",
        target_entity_id=fee_id,
        after={"status": fee.status, "paid_at": fee.paid_at, "payment_method": fee.payment_method},
    )
    return fee


@router.delete("/{fee_id}", status_code=204)
def delete_fee(
    fee_id: str,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: CurrentUser = Depends(get_current_user),
    _: object = Depends(can_manage_fees),
) -> Response:
    before = snapshot(get_fee(db, tenant_id, fee_id))
    fee_service.delete_fee(db, tenant_id, fee_id)
    audit_log(
        db_session=db,
        tenant_id=tenant_id,
        actor_user_id=actor.id,
        action="fees.delete",
        target_entity_type="Fee",
        target_entity_id=fee_id,
        before=before,
    )
    return Response(status_code=204)
