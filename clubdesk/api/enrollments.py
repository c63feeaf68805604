import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..api.dependencies import get_db, get_tenant_id, require_permission
from ..auth.jwt import CurrentUser, get_current_user
from ..config import settings
from ..core.errors import CoreFailure, PersistenceFailure
from ..models.models import Enrollment, Fee
from ..schemas.schemas import EnrollmentCreate, EnrollmentCreateResult, EnrollmentRead, FailureRead, FeeRead
from ..services import store
from ..services.audit import audit_log
from ..services.permissions import Resource
from ..services.schedule import generate_fee_schedule, schedule_for_enrollment

logger = logging.getLogger(__name__)

router = APIRouter()


def _failure_read(exc: CoreFailure) -> FailureRead:
    return FailureRead(kind=exc.kind, cause=exc.cause, detail=exc.message, details=exc.details)


@router.post("", response_model=EnrollmentCreateResult, status_code=201)
def create_enrollment(
    payload: EnrollmentCreate,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: CurrentUser = Depends(get_current_user),
    _: object = Depends(require_permission(Resource.ENROLLMENTS, "manage")),
) -> EnrollmentCreateResult:
    data = payload.model_dump()
    data["plan_type"] = data.get("plan_type") or settings.default_plan_type
    enrollment = Enrollment(tenant_id=tenant_id, **data)
    # Reject bad schedule inputs before anything is written.
    schedule_for_enrollment(enrollment)

    db.add(enrollment)
    db.commit()
    db.refresh(enrollment)
    audit_log(
        db_session=db,
        tenant_id=tenant_id,
        actor_user_id=actor.id,
        action="enrollments.create",
        target_entity_type="Enrollment",
        target_entity_id=enrollment.id,
        after=data,
    )

    fees: List[Fee] = []
    schedule_error = None
    try:
        fees = generate_fee_schedule(db, enrollment)
    except PersistenceFailure as exc:
        # The enrollment stays; its schedule can be rebuilt through the repair endpoint.
        logger.warning("Fee schedule for enrollment %s was not created: %s", enrollment.id, exc.cause)
        schedule_error = _failure_read(exc)

    return EnrollmentCreateResult(
        enrollment=EnrollmentRead.model_validate(enrollment),
        fees=[FeeRead.model_validate(fee) for fee in fees],
        schedule_error=schedule_error,
    )


@router.get("/{enrollment_id}/fees", response_model=List[FeeRead])
def list_enrollment_fees(
    enrollment_id: str,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    _: object = Depends(require_permission(Resource.MONTHLY_FEES, "view")),
) -> List[Fee]:
    store.get_enrollment(db, tenant_id, enrollment_id)
    return store.query_fees(db, store.FeeFilter(tenant_id=tenant_id, enrollment_id=enrollment_id))


@router.post("/{enrollment_id}/fees", response_model=List[FeeRead], status_code=201)
def regenerate_enrollment_fees(
    enrollment_id: str,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
    actor: CurrentUser = Depends(get_current_user),
    _: object = Depends(require_permission(Resource.MONTHLY_FEES, "manage")),
) -> List[Fee]:
    enrollment = store.get_enrollment(db, tenant_id, enrollment_id)
    fees = generate_fee_schedule(db, enrollment)
    audit_log(
        db_session=db,
        tenant_id=tenant_id,
        actor_user_id=actor.id,
        action="enrollments.schedule.regenerate",
        target_entity_type="Enrollment",
        target_entity_id=enrollment_id,
        after={"installments": len(fees)},
    )
    return fees
