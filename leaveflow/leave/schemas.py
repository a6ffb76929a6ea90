"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Request / *Patch → request bodies (write); closed to extra fields
  - *Out                       → response bodies (read)
  - *Brief                     → compact embedded representations
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from leaveflow.common.constants import (
    AdjustmentType,
    ApprovalStatus,
    BulkAction,
    LeaveStatus,
)
from leaveflow.org.schemas import EmployeeBrief


def _to_date(value: Any) -> Any:
    """Normalise datetimes to their calendar day; time-of-day is ignored."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and "T" in value:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    return value


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class LeaveTypeBrief(BaseModel):
    """Minimal leave type info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    name: str
    is_paid: bool = True


class ApprovalFlowEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    role: str
    status: ApprovalStatus
    decided_by: Optional[uuid.UUID] = None
    decided_at: Optional[datetime] = None
    justification: Optional[str] = None


# ═════════════════════════════════════════════════════════════════════
# Attachments
# ═════════════════════════════════════════════════════════════════════


class AttachmentCreate(BaseModel):
    """Metadata of an already-stored upload."""

    model_config = ConfigDict(extra="forbid")

    original_name: str = Field(..., min_length=1, max_length=255)
    file_path: str = Field(..., min_length=1, max_length=500)
    file_type: Optional[str] = Field(None, max_length=100)
    size: Optional[int] = Field(None, ge=0, description="Size in bytes")


class AttachmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    original_name: str
    file_path: str
    file_type: Optional[str] = None
    size: Optional[int] = None
    uploaded_at: datetime


# ═════════════════════════════════════════════════════════════════════
# Leave Request — write payloads
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting a leave request."""

    model_config = ConfigDict(extra="forbid")

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    from_date: date = Field(..., description="Leave start date (inclusive)")
    to_date: date = Field(..., description="Leave end date (inclusive)")
    duration_days: Decimal = Field(..., gt=0, max_digits=5, decimal_places=1)
    justification: Optional[str] = Field(None, max_length=2000)
    is_emergency: bool = False
    attachment_id: Optional[uuid.UUID] = None
    attachment: Optional[AttachmentCreate] = Field(
        default=None,
        description="Inline upload metadata; creates the attachment on submit",
    )

    @field_validator("from_date", "to_date", mode="before")
    @classmethod
    def normalise_dates(cls, value: Any) -> Any:
        return _to_date(value)

    @model_validator(mode="after")
    def validate_request(self) -> "LeaveRequestCreate":
        if self.from_date > self.to_date:
            raise ValueError("from_date must be on or before to_date")
        if self.attachment_id is not None and self.attachment is not None:
            raise ValueError("Provide either attachment_id or attachment, not both")
        return self


class LeaveRequestPatch(BaseModel):
    """Fields an employee may change while the request is pending."""

    model_config = ConfigDict(extra="forbid")

    from_date: Optional[date] = None
    to_date: Optional[date] = None
    duration_days: Optional[Decimal] = Field(
        None, gt=0, max_digits=5, decimal_places=1
    )
    justification: Optional[str] = Field(None, max_length=2000)
    attachment_id: Optional[uuid.UUID] = None
    is_emergency: Optional[bool] = None

    @field_validator("from_date", "to_date", mode="before")
    @classmethod
    def normalise_dates(cls, value: Any) -> Any:
        return _to_date(value)

    @model_validator(mode="after")
    def validate_patch(self) -> "LeaveRequestPatch":
        if not self.model_fields_set:
            raise ValueError("At least one field must be provided")
        # attachment_id may be null (detach); these may not
        nulled = [
            field
            for field in ("from_date", "to_date", "duration_days", "is_emergency")
            if field in self.model_fields_set and getattr(self, field) is None
        ]
        if nulled:
            raise ValueError(f"{', '.join(nulled)} cannot be null")
        if self.from_date and self.to_date and self.from_date > self.to_date:
            raise ValueError("from_date must be on or before to_date")
        return self


class PostLeaveCreate(BaseModel):
    """Leave already taken, reported after the employee's return.

    ``duration_days`` defaults to the inclusive calendar-day span.
    """

    model_config = ConfigDict(extra="forbid")

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    from_date: date
    to_date: date
    duration_days: Optional[Decimal] = Field(
        None, gt=0, max_digits=5, decimal_places=1
    )
    justification: Optional[str] = Field(None, max_length=2000)
    attachment_id: Optional[uuid.UUID] = None

    @field_validator("from_date", "to_date", mode="before")
    @classmethod
    def normalise_dates(cls, value: Any) -> Any:
        return _to_date(value)

    @model_validator(mode="after")
    def validate_range(self) -> "PostLeaveCreate":
        if self.from_date > self.to_date:
            raise ValueError("from_date must be on or before to_date")
        return self

    @property
    def effective_duration(self) -> Decimal:
        if self.duration_days is not None:
            return self.duration_days
        return Decimal((self.to_date - self.from_date).days + 1)


class LeaveCancelRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    actor_id: Optional[uuid.UUID] = None


class AttachDocumentRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    attachment_id: uuid.UUID


class ApprovalFlowSet(BaseModel):
    model_config = ConfigDict(extra="forbid")

    roles: list[str] = Field(..., min_length=1)


class FlowDecisionRequest(BaseModel):
    """Line-level approve/reject by a named approval role."""

    model_config = ConfigDict(extra="forbid")

    role: str = Field(..., description="Approval-flow role deciding")
    decided_by: uuid.UUID
    justification: Optional[str] = Field(None, max_length=1000)


class FinalizeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hr_user_id: uuid.UUID
    final_status: LeaveStatus = LeaveStatus.approved


class OverrideRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hr_user_id: uuid.UUID
    new_status: LeaveStatus
    reason: str = Field(..., min_length=1, max_length=1000)


class MedicalVerificationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hr_user_id: uuid.UUID
    verified: bool
    notes: Optional[str] = Field(None, max_length=1000)


class IrregularFlagRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    hr_user_id: uuid.UUID
    flag: bool


class BulkProcessRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    request_ids: list[uuid.UUID] = Field(..., min_length=1, max_length=500)
    action: BulkAction
    hr_user_id: uuid.UUID
    reason: Optional[str] = Field(None, max_length=1000)


class BulkProcessResult(BaseModel):
    processed: int
    failed: int


# ═════════════════════════════════════════════════════════════════════
# Leave Request — responses
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestOut(BaseModel):
    """Full leave request representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    from_date: date
    to_date: date
    duration_days: Decimal
    justification: Optional[str] = None
    attachment_id: Optional[uuid.UUID] = None
    is_emergency: bool = False
    status: LeaveStatus
    approval_flow: list[ApprovalFlowEntryOut] = []
    decided_by: Optional[uuid.UUID] = None
    decided_at: Optional[datetime] = None
    decision_reason: Optional[str] = None
    irregular_pattern_flag: bool = False
    created_at: datetime
    updated_at: datetime

    # Enrichment — filled by service, not from ORM
    employee: Optional[EmployeeBrief] = None
    leave_type: Optional[LeaveTypeBrief] = None


# ═════════════════════════════════════════════════════════════════════
# Entitlements
# ═════════════════════════════════════════════════════════════════════


class LeaveEntitlementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    yearly_entitlement: Decimal
    accrued_actual: Decimal
    accrued_rounded: Decimal
    carry_forward: Decimal
    taken: Decimal
    pending: Decimal
    remaining: Decimal

    leave_type: Optional[LeaveTypeBrief] = None


class TeamMemberBalanceOut(BaseModel):
    employee: EmployeeBrief
    entitlements: list[LeaveEntitlementOut]
    upcoming_leaves: list[LeaveRequestOut]


class ManualAdjustmentCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    adjustment_type: AdjustmentType
    amount: Decimal = Field(..., gt=0, max_digits=5, decimal_places=1)
    reason: str = Field(..., min_length=3, max_length=1000)
    hr_user_id: uuid.UUID


class LeaveAdjustmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    adjustment_type: AdjustmentType
    amount: Decimal
    reason: str
    hr_user_id: uuid.UUID
    created_at: datetime


class PayrollReadinessOut(BaseModel):
    employee_id: uuid.UUID
    year: int
    month: int
    unpaid_leave_requests: int
    unpaid_leave_days: Decimal
