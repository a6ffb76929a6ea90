"""Organisation ORM models: Employee and RoleAssignment.

Only the columns the leave engine reads are mapped here; the org-structure
itself is maintained elsewhere.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leaveflow.common.constants import ContractType, SystemRole
from leaveflow.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Employee(Base):
    """Employee profile as consumed by the leave workflow."""

    __tablename__ = "employees"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_code: Mapped[str] = mapped_column(
        sa.String(20), unique=True, nullable=False,
    )

    # ── Name ────────────────────────────────────────────────────────
    first_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    display_name: Mapped[Optional[str]] = mapped_column(sa.String(255))
    email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False,
    )

    # ── Employment ──────────────────────────────────────────────────
    date_of_hire: Mapped[Optional[date]] = mapped_column(sa.Date)
    contract_type: Mapped[Optional[ContractType]] = mapped_column(
        sa.Enum(ContractType, name="contract_type", create_type=False),
    )
    designation: Mapped[Optional[str]] = mapped_column(sa.String(150))

    # ── Hierarchy ───────────────────────────────────────────────────
    reporting_manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), sa.ForeignKey("employees.id"),
    )
    primary_position_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), index=True,
    )
    supervisor_position_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
    )

    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow,
    )

    # Relationships
    role_assignments: Mapped[list[RoleAssignment]] = relationship(
        back_populates="employee",
        foreign_keys="RoleAssignment.employee_id",
    )

    @property
    def full_name(self) -> str:
        return self.display_name or f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return (
            f"<Employee {self.employee_code} "
            f"{self.first_name} {self.last_name}>"
        )


class RoleAssignment(Base):
    __tablename__ = "role_assignments"
    __table_args__ = (
        sa.Index("ix_role_assignments_role", "role"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    role: Mapped[SystemRole] = mapped_column(
        sa.Enum(SystemRole, name="system_role", create_type=False), nullable=False
    )
    assigned_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow,
    )
    is_active: Mapped[bool] = mapped_column(sa.Boolean, default=True)

    # Relationships
    employee: Mapped[Employee] = relationship(
        back_populates="role_assignments",
        foreign_keys=[employee_id],
    )
