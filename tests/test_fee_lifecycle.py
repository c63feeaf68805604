from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from clubdesk.constants import FEE_STATUSES
from clubdesk.core.errors import NotFoundFailure, PersistenceFailure, ValidationFailure
from clubdesk.models.models import Fee
from clubdesk.services import fees as fee_service
from clubdesk.services.schedule import generate_fee_schedule
from clubdesk.services.store import FeeFilter, insert_fees


def _states(session, tenant_id="tenant-a"):
    session.expire_all()
    return {
        fee.id: (fee.status, fee.paid_at)
        for fee in session.query(Fee).filter(Fee.tenant_id == tenant_id).all()
    }


def test_sweep_marks_only_past_due_installments(db_session, create_enrollment):
    enrollment = create_enrollment()
    january, february, march = generate_fee_schedule(db_session, enrollment)

    updated = fee_service.sweep_overdue(db_session, "tenant-a", date(2024, 3, 1))

    assert updated == 2
    db_session.expire_all()
    assert db_session.get(Fee, january.id).status == "overdue"
    assert db_session.get(Fee, february.id).status == "overdue"
    assert db_session.get(Fee, march.id).status == "pending"


def test_sweep_does_not_touch_fee_due_today(db_session, create_fee):
    fee = create_fee(due_date=date(2024, 3, 1))

    assert fee_service.sweep_overdue(db_session, "tenant-a", date(2024, 3, 1)) == 0
    db_session.expire_all()
    assert db_session.get(Fee, fee.id).status == "pending"


def test_sweep_is_idempotent(db_session, create_enrollment, create_fee):
    generate_fee_schedule(db_session, create_enrollment())
    create_fee(due_date=date(2024, 1, 5), status="paid", paid_at=datetime(2024, 1, 4, tzinfo=timezone.utc))
    create_fee(due_date=date(2023, 12, 5), status="overdue")

    fee_service.sweep_overdue(db_session, "tenant-a", date(2024, 3, 1))
    after_first = _states(db_session)
    second = fee_service.sweep_overdue(db_session, "tenant-a", date(2024, 3, 1))
    after_second = _states(db_session)

    assert second == 0
    assert after_first == after_second


def test_sweep_never_touches_paid_fees(db_session, create_fee):
    paid_at = datetime(2024, 1, 9, 12, 30)
    fee = create_fee(due_date=date(2024, 1, 10), status="paid", paid_at=paid_at)

    fee_service.sweep_overdue(db_session, "tenant-a", date(2024, 6, 1))

    db_session.expire_all()
    stored = db_session.get(Fee, fee.id)
    assert stored.status == "paid"
    assert stored.paid_at == paid_at


def test_sweep_is_scoped_to_tenant(db_session, create_fee):
    ours = create_fee(due_date=date(2024, 1, 10))
    theirs = create_fee(due_date=date(2024, 1, 10), tenant_id="tenant-b")

    fee_service.sweep_overdue(db_session, "tenant-a", date(2024, 2, 1))

    db_session.expire_all()
    assert db_session.get(Fee, ours.id).status == "overdue"
    assert db_session.get(Fee, theirs.id).status == "pending"


def test_sweep_requires_tenant(db_session):
    with pytest.raises(ValidationFailure):
        fee_service.sweep_overdue(db_session, "", date(2024, 2, 1))


def test_mark_paid_from_pending_and_overdue(db_session, create_fee):
    pending = create_fee(due_date=date(2024, 5, 10))
    overdue = create_fee(due_date=date(2024, 1, 10), status="overdue")

    paid_pending = fee_service.mark_paid(db_session, "tenant-a", pending.id, payment_method="pix")
    paid_overdue = fee_service.mark_paid(db_session, "tenant-a", overdue.id)

    assert paid_pending.status == "paid"
    assert paid_pending.paid_at is not None
    assert paid_pending.payment_method == "pix"
    assert paid_overdue.status == "paid"
    assert paid_overdue.paid_at is not None
    assert paid_overdue.payment_method is None


def test_paid_timestamp_survives_later_sweeps(db_session, create_fee):
    fee = create_fee(due_date=date(2024, 1, 10))
    fee_service.mark_paid(db_session, "tenant-a", fee.id, payment_method="cash")

    for today in (date(2024, 2, 1), date(2024, 6, 1), date(2025, 1, 1)):
        fee_service.sweep_overdue(db_session, "tenant-a", today)

    db_session.expire_all()
    stored = db_session.get(Fee, fee.id)
    assert stored.status == "paid"
    assert stored.paid_at is not None


def test_second_mark_paid_keeps_first_timestamp(db_session, create_fee):
    fee = create_fee(due_date=date(2024, 1, 10))
    first_paid_at = datetime(2024, 1, 8, 9, 0, tzinfo=timezone.utc)

    fee_service.mark_paid(db_session, "tenant-a", fee.id, payment_method="boleto", paid_at=first_paid_at)
    again = fee_service.mark_paid(
        db_session, "tenant-a", fee.id, payment_method="pix", paid_at=datetime(2024, 2, 1, tzinfo=timezone.utc)
    )

    assert again.status == "paid"
    assert again.paid_at.replace(tzinfo=None) == first_paid_at.replace(tzinfo=None)
    assert again.payment_method == "boleto"


def test_mark_paid_rejects_unknown_payment_method(db_session, create_fee):
    fee = create_fee(due_date=date(2024, 1, 10))

    with pytest.raises(ValidationFailure) as excinfo:
        fee_service.mark_paid(db_session, "tenant-a", fee.id, payment_method="bitcoin")

    assert excinfo.value.cause == "invalid_payment_method"
    db_session.expire_all()
    assert db_session.get(Fee, fee.id).status == "pending"


def test_mark_paid_is_tenant_scoped(db_session, create_fee):
    fee = create_fee(due_date=date(2024, 1, 10), tenant_id="tenant-b")

    with pytest.raises(NotFoundFailure) as excinfo:
        fee_service.mark_paid(db_session, "tenant-a", fee.id)

    assert excinfo.value.cause == "fee_not_found"
    db_session.expire_all()
    assert db_session.get(Fee, fee.id).status == "pending"


def test_no_transition_returns_to_pending():
    for status in FEE_STATUSES:
        assert not fee_service.can_transition(status, "pending")
    assert fee_service.can_transition("pending", "overdue")
    assert fee_service.can_transition("overdue", "paid")
    assert not fee_service.can_transition("paid", "overdue")
    assert not fee_service.can_transition("overdue", "overdue")


def test_is_overdue_compares_calendar_dates():
    fee = Fee(status="pending", due_date=date(2024, 3, 1))
    assert not fee_service.is_overdue(fee, date(2024, 3, 1))
    assert fee_service.is_overdue(fee, date(2024, 3, 2))
    fee.status = "paid"
    assert not fee_service.is_overdue(fee, date(2024, 3, 2))


def test_store_rejects_paid_fee_without_timestamp(db_session):
    broken = Fee(
        tenant_id="tenant-a",
        athlete_id="athlete-1",
        due_date=date(2024, 1, 10),
        amount=Decimal("10.00"),
        status="paid",
        paid_at=None,
    )

    with pytest.raises(PersistenceFailure) as excinfo:
        insert_fees(db_session, [broken])

    assert excinfo.value.cause == "constraint_violation"
    assert db_session.query(Fee).count() == 0


def test_edit_fee_cannot_change_lifecycle_fields(db_session, create_fee):
    fee = create_fee(due_date=date(2024, 1, 10))

    with pytest.raises(ValidationFailure) as excinfo:
        fee_service.edit_fee(db_session, "tenant-a", fee.id, {"status": "pending", "paid_at": None})

    assert excinfo.value.cause == "field_not_editable"


def test_edit_fee_updates_amount_and_notes(db_session, create_fee):
    fee = create_fee(due_date=date(2024, 1, 10))

    updated = fee_service.edit_fee(db_session, "tenant-a", fee.id, {"amount": "120.50", "notes": "Desconto irmão"})

    assert updated.amount == Decimal("120.50")
    assert updated.notes == "Desconto irmão"

    with pytest.raises(ValidationFailure):
        fee_service.edit_fee(db_session, "tenant-a", fee.id, {"amount": "-5"})


def test_create_fee_starts_pending(db_session):
    fee = fee_service.create_fee(
        db_session,
        "tenant-a",
        athlete_id="athlete-9",
        due_date=date(2024, 8, 10),
        amount=Decimal("75.00"),
        description="Uniforme",
    )

    assert fee.status == "pending"
    assert fee.paid_at is None
    assert fee.tenant_id == "tenant-a"


def test_delete_fee_removes_record(db_session, create_fee):
    fee = create_fee(due_date=date(2024, 1, 10))

    fee_service.delete_fee(db_session, "tenant-a", fee.id)

    assert db_session.query(Fee).count() == 0
    with pytest.raises(NotFoundFailure):
        fee_service.delete_fee(db_session, "tenant-a", fee.id)


def test_list_fees_sweeps_then_filters(db_session, create_enrollment):
    generate_fee_schedule(db_session, create_enrollment())

    overdue = fee_service.list_fees(
        db_session,
        FeeFilter(tenant_id="tenant-a", status="overdue"),
        today=date(2024, 3, 1),
    )
    february = fee_service.list_fees(db_session, FeeFilter(tenant_id="tenant-a", due_month="2024-02"))

    assert [fee.due_date for fee in overdue] == [date(2024, 2, 29), date(2024, 1, 31)]
    assert [fee.installment_number for fee in february] == [2]


def test_concurrent_payments_keep_a_single_paid_timestamp(db_session, create_fee):
    fee = create_fee(due_date=date(2024, 1, 10), status="overdue")
    first_paid_at = datetime(2024, 2, 1, 10, 0)
    second_paid_at = datetime(2024, 2, 1, 10, 5)

    with Session(bind=db_session.get_bind()) as cashier, Session(bind=db_session.get_bind()) as treasurer:
        # Both operators see the fee as unpaid before either payment lands.
        assert cashier.get(Fee, fee.id).status == "overdue"
        assert treasurer.get(Fee, fee.id).status == "overdue"

        first = fee_service.mark_paid(cashier, "tenant-a", fee.id, payment_method="pix", paid_at=first_paid_at)
        second = fee_service.mark_paid(
            treasurer, "tenant-a", fee.id, payment_method="cash", paid_at=second_paid_at
        )

        assert first.paid_at.replace(tzinfo=None) == first_paid_at
        assert second.status == "paid"
        assert second.paid_at.replace(tzinfo=None) == first_paid_at
        assert second.payment_method == "pix"

    db_session.expire_all()
    stored = db_session.get(Fee, fee.id)
    assert stored.paid_at.replace(tzinfo=None) == first_paid_at
    assert stored.payment_method == "pix"


def test_create_fee_checks_enrollment_slot(db_session, create_enrollment):
    enrollment = create_enrollment(plan_type="monthly", tenant_id="tenant-b")

    with pytest.raises(NotFoundFailure) as excinfo:
        fee_service.create_fee(
            db_session,
            "tenant-a",
            athlete_id=enrollment.athlete_id,
            due_date=date(2024, 1, 31),
            amount="150",
            enrollment_id=enrollment.id,
            installment_number=1,
        )
    assert excinfo.value.cause == "enrollment_not_found"

    with pytest.raises(ValidationFailure) as excinfo:
        fee_service.create_fee(
            db_session,
            "tenant-b",
            athlete_id=enrollment.athlete_id,
            due_date=date(2024, 2, 29),
            amount="150",
            enrollment_id=enrollment.id,
            installment_number=2,
        )
    assert excinfo.value.cause == "invalid_installment"
    assert db_session.query(Fee).count() == 0


def test_edit_fee_rejects_null_amount_and_due_date(db_session, create_fee):
    fee = create_fee(due_date=date(2024, 1, 10))

    with pytest.raises(ValidationFailure) as excinfo:
        fee_service.edit_fee(db_session, "tenant-a", fee.id, {"amount": None})
    assert excinfo.value.cause == "missing_field"

    with pytest.raises(ValidationFailure) as excinfo:
        fee_service.edit_fee(db_session, "tenant-a", fee.id, {"due_date": None})
    assert excinfo.value.details["field"] == "due_date"

    db_session.expire_all()
    assert db_session.get(Fee, fee.id).due_date == date(2024, 1, 10)
