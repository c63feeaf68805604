import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship as orm_relationship

from ..config import Base
from ..constants import FEE_STATUS_PENDING


def utcnow():
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class TenantMembership(Base):
    __tablename__ = "tenant_users"
    __table_args__ = (UniqueConstraint("tenant_id", "user_id", name="uq_tenant_user"),)

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    role = Column(String, nullable=False, default="member")
    is_owner = Column(Boolean, nullable=False, default=False)
    # Stored capability override; when set it replaces the role defaults.
    permissions = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Enrollment(Base):
    __tablename__ = "enrollments"

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    athlete_id = Column(String(36), nullable=False, index=True)
    enrollment_date = Column(Date, nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    plan_type = Column(String, nullable=False, default="monthly")
    monthly_fee = Column(Numeric(10, 2), nullable=False)
    payment_day = Column(Integer, nullable=True)
    payment_method = Column(String, nullable=True)
    status = Column(String, nullable=False, default="pending")
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    fees = orm_relationship(
        "Fee",
        back_populates="enrollment",
        order_by="Fee.installment_number",
        cascade="all, delete-orphan",
    )


class Fee(Base):
    __tablename__ = "monthly_fees"
    __table_args__ = (
        UniqueConstraint("enrollment_id", "installment_number", name="uq_fee_installment"),
        CheckConstraint("amount >= 0", name="ck_fee_amount_non_negative"),
        CheckConstraint("status IN ('pending', 'paid', 'overdue')", name="ck_fee_status"),
        CheckConstraint(
            "(status = 'paid' AND paid_at IS NOT NULL) OR (status != 'paid' AND paid_at IS NULL)",
            name="ck_fee_paid_timestamp",
        ),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), nullable=False, index=True)
    athlete_id = Column(String(36), nullable=False, index=True)
    enrollment_id = Column(String(36), ForeignKey("enrollments.id", ondelete="CASCADE"), nullable=True, index=True)
    installment_number = Column(Integer, nullable=True)
    due_date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String, nullable=False, default=FEE_STATUS_PENDING, index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    payment_method = Column(String, nullable=True)
    description = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    enrollment = orm_relationship("Enrollment", back_populates="fees")


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime, default=utcnow, index=True, nullable=False)
    tenant_id = Column(String(36), nullable=True, index=True)
    actor_user_id = Column(String(36), nullable=True)
    action = Column(String, nullable=False)
    target_entity_type = Column(String, nullable=True)
    target_entity_id = Column(String, nullable=True)
    before = Column(Text, nullable=True)
    after = Column(Text, nullable=True)
