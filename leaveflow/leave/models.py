"""Leave ORM models: types, policies, calendars, attachments, requests,
approval-flow entries, entitlements and manual adjustments."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leaveflow.common.constants import (
    AdjustmentType,
    ApprovalStatus,
    LeaveStatus,
)
from leaveflow.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LeaveType(Base):
    __tablename__ = "leave_types"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    code: Mapped[str] = mapped_column(sa.String(10), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    is_paid: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    requires_attachment: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    max_duration_days: Mapped[Optional[Decimal]] = mapped_column(sa.Numeric(5, 1))
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow
    )

    # Relationships
    policy: Mapped[Optional[LeavePolicy]] = relationship(back_populates="leave_type")


class LeavePolicy(Base):
    __tablename__ = "leave_policies"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("leave_types.id"),
        unique=True,
        nullable=False,
    )
    min_notice_days: Mapped[int] = mapped_column(sa.Integer, default=0)
    # Eligibility; empty/NULL means "no restriction"
    min_tenure_months: Mapped[Optional[int]] = mapped_column(sa.Integer)
    contract_types_allowed: Mapped[Optional[list]] = mapped_column(JSONB)
    positions_allowed: Mapped[Optional[list]] = mapped_column(JSONB)

    # Relationships
    leave_type: Mapped[LeaveType] = relationship(back_populates="policy")


class LeaveCalendar(Base):
    __tablename__ = "leave_calendars"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    year: Mapped[int] = mapped_column(sa.Integer, unique=True, nullable=False)

    # Relationships
    blocked_periods: Mapped[list[BlockedPeriod]] = relationship(
        back_populates="calendar",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class BlockedPeriod(Base):
    __tablename__ = "leave_blocked_periods"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    calendar_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("leave_calendars.id", ondelete="CASCADE"),
        nullable=False,
    )
    from_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    to_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(sa.String(255))

    # Relationships
    calendar: Mapped[LeaveCalendar] = relationship(back_populates="blocked_periods")


class Attachment(Base):
    """Uploaded supporting document; rows are never updated."""

    __tablename__ = "leave_attachments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    original_name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(sa.String(500), nullable=False)
    file_type: Mapped[Optional[str]] = mapped_column(sa.String(100))
    size: Mapped[Optional[int]] = mapped_column(sa.Integer)
    uploaded_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow
    )


class LeaveRequest(Base):
    __tablename__ = "leave_requests"
    __table_args__ = (
        sa.Index("ix_leave_requests_employee_dates", "employee_id", "from_date", "to_date"),
        sa.Index("ix_leave_requests_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    from_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    to_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    duration_days: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), nullable=False)
    justification: Mapped[Optional[str]] = mapped_column(sa.Text)
    attachment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_attachments.id")
    )
    is_emergency: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status", create_type=False),
        default=LeaveStatus.pending,
        nullable=False,
    )
    decided_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    decided_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    decision_reason: Mapped[Optional[str]] = mapped_column(sa.Text)
    irregular_pattern_flag: Mapped[bool] = mapped_column(sa.Boolean, default=False)
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow
    )

    # Relationships
    approval_flow: Mapped[list[ApprovalFlowEntry]] = relationship(
        back_populates="leave_request",
        cascade="all, delete-orphan",
        order_by="ApprovalFlowEntry.sequence",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def flow_entry(self, role: str) -> Optional[ApprovalFlowEntry]:
        for entry in self.approval_flow:
            if entry.role == role:
                return entry
        return None


class ApprovalFlowEntry(Base):
    """One role's decision on a leave request."""

    __tablename__ = "leave_approval_flow"
    __table_args__ = (
        sa.UniqueConstraint("leave_request_id", "role", name="uq_approval_flow_role"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    leave_request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("leave_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    role: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    status: Mapped[ApprovalStatus] = mapped_column(
        sa.Enum(ApprovalStatus, name="approval_status", create_type=False),
        default=ApprovalStatus.pending,
        nullable=False,
    )
    decided_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id")
    )
    decided_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    justification: Mapped[Optional[str]] = mapped_column(sa.Text)

    # Relationships
    leave_request: Mapped[LeaveRequest] = relationship(back_populates="approval_flow")


class LeaveEntitlement(Base):
    __tablename__ = "leave_entitlements"
    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "leave_type_id", name="uq_leave_entitlement"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    yearly_entitlement: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), default=Decimal("0")
    )
    accrued_actual: Mapped[Decimal] = mapped_column(
        sa.Numeric(8, 3), default=Decimal("0")
    )
    accrued_rounded: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), default=Decimal("0")
    )
    carry_forward: Mapped[Decimal] = mapped_column(
        sa.Numeric(6, 1), default=Decimal("0")
    )
    taken: Mapped[Decimal] = mapped_column(sa.Numeric(6, 1), default=Decimal("0"))
    pending: Mapped[Decimal] = mapped_column(sa.Numeric(6, 1), default=Decimal("0"))
    remaining: Mapped[Decimal] = mapped_column(sa.Numeric(6, 1), default=Decimal("0"))
    version: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow
    )

    # Relationships
    leave_type: Mapped[LeaveType] = relationship(lazy="selectin")

    __mapper_args__ = {"version_id_col": version}


class LeaveAdjustment(Base):
    """Manual, out-of-band change to an entitlement; rows are never updated."""

    __tablename__ = "leave_adjustments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    leave_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("leave_types.id"), nullable=False
    )
    adjustment_type: Mapped[AdjustmentType] = mapped_column(
        sa.Enum(AdjustmentType, name="leave_adjustment_type", create_type=False),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(sa.Numeric(5, 1), nullable=False)
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    hr_user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow
    )
