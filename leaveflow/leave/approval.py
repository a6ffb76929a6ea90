"""Approval-flow state machine.

Each request carries one flow entry per approval role, with its own
pending/approved/rejected status. Entries never move the request's
overall status; only finalization and HR override do. Finalization is
gated on both the HR document check and the department head having
approved.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.constants import (
    APPROVAL_ROLE_DEPARTMENT_HEAD,
    APPROVAL_ROLE_HR,
    ApprovalStatus,
)
from leaveflow.common.exceptions import BadRequestException
from leaveflow.leave.models import ApprovalFlowEntry, LeaveRequest

FINALIZE_GATES = (
    (APPROVAL_ROLE_HR, "Medical/document verification by HR has not been approved."),
    (APPROVAL_ROLE_DEPARTMENT_HEAD, "Department head approval is missing."),
)


def normalize_roles(roles: Sequence[str]) -> list[str]:
    """Strip, drop blanks and de-duplicate, keeping first-seen order."""
    seen: list[str] = []
    for role in roles:
        role = (role or "").strip()
        if role and role not in seen:
            seen.append(role)
    return seen


def finalize_blocker(req: LeaveRequest) -> Optional[str]:
    """Message for the first unmet finalize precondition, else ``None``."""
    for role, message in FINALIZE_GATES:
        entry = req.flow_entry(role)
        if entry is None or entry.status != ApprovalStatus.approved:
            return message
    return None


def upsert_flow_entry(
    req: LeaveRequest,
    role: str,
    status: ApprovalStatus,
    *,
    decided_by: Optional[uuid.UUID],
    justification: Optional[str] = None,
    decided_at: Optional[datetime] = None,
) -> ApprovalFlowEntry:
    """Update the entry for *role* in place, or append a new one."""
    entry = req.flow_entry(role)
    if entry is None:
        entry = ApprovalFlowEntry(
            role=role,
            sequence=max((e.sequence for e in req.approval_flow), default=0) + 1,
        )
        req.approval_flow.append(entry)
    entry.status = status
    entry.decided_by = decided_by
    entry.decided_at = decided_at or datetime.now(timezone.utc)
    entry.justification = justification
    return entry


async def update_with_approval_flow(
    db: AsyncSession,
    req: LeaveRequest,
    *,
    role: str,
    decision: ApprovalStatus,
    decided_by: Optional[uuid.UUID],
    justification: Optional[str] = None,
    status_patch: Optional[dict[str, Any]] = None,
) -> ApprovalFlowEntry:
    """Record one role's decision and optionally patch top-level fields,
    persisted together in a single flush."""
    if not role or not role.strip():
        raise BadRequestException(
            "An approver role is required.", code="approver-role-required",
        )
    now = datetime.now(timezone.utc)
    entry = upsert_flow_entry(
        req,
        role.strip(),
        decision,
        decided_by=decided_by,
        justification=justification,
        decided_at=now,
    )
    for field, value in (status_patch or {}).items():
        setattr(req, field, value)
    req.updated_at = now
    await db.flush()
    return entry


async def replace_approval_flow(
    db: AsyncSession,
    req: LeaveRequest,
    roles: Sequence[str],
) -> list[ApprovalFlowEntry]:
    """Reset the flow to one pending entry per role."""
    roles = normalize_roles(roles)
    if not roles:
        raise BadRequestException(
            "At least one approval role is required.", code="invalid-approval-flow",
        )
    # Old rows must be gone before re-inserting the same (request, role) pairs
    req.approval_flow.clear()
    await db.flush()

    for sequence, role in enumerate(roles, start=1):
        req.approval_flow.append(
            ApprovalFlowEntry(role=role, sequence=sequence, status=ApprovalStatus.pending)
        )
    req.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return list(req.approval_flow)
