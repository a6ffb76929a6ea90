"""Domain events emitted by leave-request operations.

Events are snapshots taken after the primary change is flushed; the
notification dispatcher consumes them without touching the request.
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Optional

from leaveflow.common.constants import LeaveStatus


class LeaveEventType(str, enum.Enum):
    submitted = "submitted"
    modified = "modified"
    cancelled = "cancelled"
    approval_flow_set = "approval_flow_set"
    flow_decided = "flow_decided"
    finalized = "finalized"
    override_rejected = "override_rejected"
    overridden = "overridden"


@dataclass(frozen=True)
class LeaveEvent:
    type: LeaveEventType
    request_id: uuid.UUID
    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    from_date: date
    to_date: date
    duration_days: Decimal
    status: LeaveStatus
    actor_id: Optional[uuid.UUID] = None
    role: Optional[str] = None
    decision: Optional[str] = None
    reason: Optional[str] = None
    changed_fields: tuple[str, ...] = ()
    approval_roles: tuple[str, ...] = ()

    @classmethod
    def from_request(cls, event_type: LeaveEventType, req: Any, **kwargs: Any) -> "LeaveEvent":
        return cls(
            type=event_type,
            request_id=req.id,
            employee_id=req.employee_id,
            leave_type_id=req.leave_type_id,
            from_date=req.from_date,
            to_date=req.to_date,
            duration_days=req.duration_days,
            status=req.status,
            **kwargs,
        )
