"""Leave service layer — submission, approval flow, finalization, override,
bulk processing, entitlements and read models.

Every mutating operation follows the same shape:
  - load what the evaluator needs and validate before any write
  - mutate the request and move ledger buckets in the caller's transaction
  - write an audit entry
  - hand domain events to the notification fan-out, whose failures stay local
"""

from __future__ import annotations

import calendar
import logging
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.audit import create_audit_entry
from leaveflow.common.concurrency import bounded
from leaveflow.common.constants import (
    APPROVAL_ROLE_HR,
    APPROVAL_ROLE_HR_OVERRIDE,
    DECIDED_LEAVE_STATUSES,
    OPEN_LEAVE_STATUSES,
    AdjustmentType,
    ApprovalStatus,
    BulkAction,
    LeaveStatus,
)
from leaveflow.common.exceptions import BadRequestException, NotFoundException
from leaveflow.common.pagination import PaginationParams, paginate
from leaveflow.config import settings
from leaveflow.leave.approval import (
    finalize_blocker,
    normalize_roles,
    replace_approval_flow,
    update_with_approval_flow,
)
from leaveflow.leave.events import LeaveEvent, LeaveEventType
from leaveflow.leave.ledger import EntitlementLedger
from leaveflow.leave.models import (
    Attachment,
    BlockedPeriod,
    LeaveAdjustment,
    LeaveCalendar,
    LeaveEntitlement,
    LeavePolicy,
    LeaveRequest,
    LeaveType,
)
from leaveflow.leave.schemas import (
    AttachmentCreate,
    AttachmentOut,
    BulkProcessResult,
    FlowDecisionRequest,
    LeaveAdjustmentOut,
    LeaveEntitlementOut,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveRequestPatch,
    LeaveTypeBrief,
    ManualAdjustmentCreate,
    PayrollReadinessOut,
    PostLeaveCreate,
    TeamMemberBalanceOut,
)
from leaveflow.leave.validation import LeaveDraft, validate
from leaveflow.notifications.fanout import LeaveNotificationFanout
from leaveflow.org.models import Employee
from leaveflow.org.schemas import EmployeeBrief
from leaveflow.org.service import EmployeeProfileService

logger = logging.getLogger(__name__)

# Patch fields that change what the evaluator sees
_REVALIDATED_FIELDS = {"from_date", "to_date", "duration_days", "attachment_id", "is_emergency"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _request_snapshot(req: LeaveRequest) -> dict[str, Any]:
    return {
        "status": req.status.value,
        "from_date": req.from_date.isoformat(),
        "to_date": req.to_date.isoformat(),
        "duration_days": str(req.duration_days),
        "attachment_id": str(req.attachment_id) if req.attachment_id else None,
        "is_emergency": req.is_emergency,
    }


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave-request operations."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _get_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> LeaveRequest:
        query = select(LeaveRequest).where(LeaveRequest.id == request_id)
        if for_update:
            query = query.with_for_update()
        leave_req = (await db.execute(query)).scalars().first()
        if leave_req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return leave_req

    @staticmethod
    def _require_status(
        leave_req: LeaveRequest,
        *allowed: LeaveStatus,
        action: str,
    ) -> None:
        if leave_req.status not in allowed:
            raise BadRequestException(
                f"Cannot {action} a leave request that is {leave_req.status.value}.",
                code="invalid-state",
            )

    @staticmethod
    async def _get_attachment(db: AsyncSession, attachment_id: uuid.UUID) -> Attachment:
        attachment = await db.get(Attachment, attachment_id)
        if attachment is None:
            raise NotFoundException("Attachment", str(attachment_id))
        return attachment

    @staticmethod
    def _check_attachment_meta(data: AttachmentCreate) -> None:
        max_bytes = settings.MAX_ATTACHMENT_SIZE_MB * 1024 * 1024
        if data.size is not None and data.size > max_bytes:
            raise BadRequestException(
                f"Attachment exceeds {settings.MAX_ATTACHMENT_SIZE_MB} MB.",
                code="attachment-too-large",
            )
        allowed = settings.allowed_attachment_types_list
        if data.file_type is not None and allowed and data.file_type not in allowed:
            raise BadRequestException(
                f"Attachment type '{data.file_type}' is not allowed.",
                code="attachment-type-not-allowed",
            )

    @staticmethod
    async def _get_blocked_periods(db: AsyncSession, year: int) -> list[BlockedPeriod]:
        result = await db.execute(
            select(BlockedPeriod)
            .join(LeaveCalendar, BlockedPeriod.calendar_id == LeaveCalendar.id)
            .where(LeaveCalendar.year == year)
        )
        return list(result.scalars().all())

    @staticmethod
    async def _find_overlapping(
        db: AsyncSession,
        employee_id: uuid.UUID,
        from_date: date,
        to_date: date,
        *,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> list[LeaveRequest]:
        """Open requests of the employee sharing at least one day with the range."""
        query = select(LeaveRequest).where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status.in_(OPEN_LEAVE_STATUSES),
            LeaveRequest.from_date <= to_date,
            LeaveRequest.to_date >= from_date,
        )
        if exclude_id is not None:
            query = query.where(LeaveRequest.id != exclude_id)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def _load_validation_context(
        db: AsyncSession,
        draft: LeaveDraft,
    ) -> dict[str, Any]:
        """Gather everything the evaluator reads; locks the entitlement row."""
        leave_type = await db.get(LeaveType, draft.leave_type_id)
        if leave_type is None or not leave_type.is_active:
            raise NotFoundException("LeaveType", str(draft.leave_type_id))

        policy = (
            await db.execute(
                select(LeavePolicy).where(LeavePolicy.leave_type_id == leave_type.id)
            )
        ).scalars().first()

        return {
            "leave_type": leave_type,
            "policy": policy,
            "profile": await EmployeeProfileService.get_profile(db, draft.employee_id),
            "blocked_periods": await LeaveService._get_blocked_periods(
                db, draft.from_date.year,
            ),
            "existing_requests": await LeaveService._find_overlapping(
                db, draft.employee_id, draft.from_date, draft.to_date,
                exclude_id=draft.request_id,
            ),
            "entitlement": await EntitlementLedger.fetch(
                db, draft.employee_id, draft.leave_type_id, for_update=True,
            ),
        }

    @staticmethod
    def _build_request_response(leave_req: LeaveRequest) -> LeaveRequestOut:
        return LeaveRequestOut.model_validate(leave_req)

    @staticmethod
    async def _enrich(
        db: AsyncSession,
        requests: Sequence[LeaveRequest],
    ) -> list[LeaveRequestOut]:
        """Attach employee and leave-type briefs; on lookup failure return
        the requests unenriched."""
        outs = [LeaveService._build_request_response(r) for r in requests]
        if not outs:
            return outs

        employee_ids = {r.employee_id for r in requests}
        leave_type_ids = {r.leave_type_id for r in requests}
        try:
            async with db.begin_nested():
                employees = {
                    e.id: e
                    for e in (
                        await db.execute(select(Employee).where(Employee.id.in_(employee_ids)))
                    ).scalars().all()
                }
                leave_types = {
                    lt.id: lt
                    for lt in (
                        await db.execute(select(LeaveType).where(LeaveType.id.in_(leave_type_ids)))
                    ).scalars().all()
                }
        except Exception:
            logger.exception("Could not enrich %d leave request(s)", len(outs))
            return outs

        for out in outs:
            employee = employees.get(out.employee_id)
            if employee is not None:
                out.employee = EmployeeBrief.model_validate(employee)
            leave_type = leave_types.get(out.leave_type_id)
            if leave_type is not None:
                out.leave_type = LeaveTypeBrief.model_validate(leave_type)
        return outs

    @staticmethod
    async def _emit(db: AsyncSession, *events: LeaveEvent) -> None:
        await LeaveNotificationFanout.dispatch(db, events)

    # ─────────────────────────────────────────────────────────────────
    # Attachments
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    @bounded()
    async def upload_attachment(
        db: AsyncSession,
        data: AttachmentCreate,
    ) -> AttachmentOut:
        """Record metadata of an uploaded supporting document."""
        LeaveService._check_attachment_meta(data)
        attachment = Attachment(**data.model_dump())
        db.add(attachment)
        await db.flush()
        return AttachmentOut.model_validate(attachment)

    @staticmethod
    @bounded()
    async def attach_to_leave_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        attachment_id: uuid.UUID,
    ) -> LeaveRequestOut:
        leave_req = await LeaveService._get_request(db, request_id, for_update=True)
        LeaveService._require_status(leave_req, LeaveStatus.pending, action="attach a document to")
        await LeaveService._get_attachment(db, attachment_id)

        old_attachment = leave_req.attachment_id
        leave_req.attachment_id = attachment_id
        leave_req.updated_at = _utcnow()
        await db.flush()

        await create_audit_entry(
            db,
            action="attach",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=leave_req.employee_id,
            old_values={"attachment_id": str(old_attachment) if old_attachment else None},
            new_values={"attachment_id": str(attachment_id)},
        )
        return LeaveService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Submit / Modify / Cancel
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    @bounded()
    async def submit_leave_request(
        db: AsyncSession,
        data: LeaveRequestCreate,
    ) -> LeaveRequestOut:
        """Validate a new request, persist it as PENDING and reserve its days."""
        if data.attachment_id is not None:
            await LeaveService._get_attachment(db, data.attachment_id)
        elif data.attachment is not None:
            LeaveService._check_attachment_meta(data.attachment)

        draft = LeaveDraft(
            employee_id=data.employee_id,
            leave_type_id=data.leave_type_id,
            from_date=data.from_date,
            to_date=data.to_date,
            duration_days=data.duration_days,
            has_attachment=data.attachment_id is not None or data.attachment is not None,
            is_emergency=data.is_emergency,
        )
        validate(draft, **await LeaveService._load_validation_context(db, draft))

        attachment_id = data.attachment_id
        if data.attachment is not None:
            attachment = Attachment(**data.attachment.model_dump())
            db.add(attachment)
            await db.flush()
            attachment_id = attachment.id

        now = _utcnow()
        leave_req = LeaveRequest(
            employee_id=data.employee_id,
            leave_type_id=data.leave_type_id,
            from_date=data.from_date,
            to_date=data.to_date,
            duration_days=data.duration_days,
            justification=data.justification,
            attachment_id=attachment_id,
            is_emergency=data.is_emergency,
            status=LeaveStatus.pending,
            irregular_pattern_flag=False,
            approval_flow=[],
            created_at=now,
            updated_at=now,
        )
        db.add(leave_req)
        await db.flush()

        await EntitlementLedger.on_submit(
            db, leave_req.employee_id, leave_req.leave_type_id, leave_req.duration_days,
            actor_id=leave_req.employee_id,
        )
        await create_audit_entry(
            db,
            action="submit",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=leave_req.employee_id,
            new_values=_request_snapshot(leave_req),
        )
        await LeaveService._emit(
            db,
            LeaveEvent.from_request(
                LeaveEventType.submitted, leave_req, actor_id=leave_req.employee_id,
            ),
        )
        return LeaveService._build_request_response(leave_req)

    @staticmethod
    @bounded()
    async def submit_post_leave(
        db: AsyncSession,
        data: PostLeaveCreate,
    ) -> LeaveRequestOut:
        """Record leave already taken as a PENDING request.

        Only past dates, reported within ``POST_LEAVE_WINDOW_DAYS`` of the
        return. Notice, blackout and duration rules do not apply; overlap and
        a tracked balance still do.
        """
        today = _utcnow().date()
        if data.to_date > today:
            raise BadRequestException(
                "Post-leave requests must be for past dates.",
                code="post-leave-future-date",
            )
        window = settings.POST_LEAVE_WINDOW_DAYS
        if (today - data.to_date).days > window:
            raise BadRequestException(
                f"Post-leave must be submitted within {window} days after return.",
                code="post-leave-window-expired",
            )

        leave_type = await db.get(LeaveType, data.leave_type_id)
        if leave_type is None or not leave_type.is_active:
            raise NotFoundException("LeaveType", str(data.leave_type_id))
        await EmployeeProfileService.get_profile(db, data.employee_id)
        if data.attachment_id is not None:
            await LeaveService._get_attachment(db, data.attachment_id)

        if await LeaveService._find_overlapping(
            db, data.employee_id, data.from_date, data.to_date,
        ):
            raise BadRequestException(
                "Leave overlaps with an existing request.", code="overlapping-request",
            )

        duration = data.effective_duration
        ent = await EntitlementLedger.fetch(
            db, data.employee_id, data.leave_type_id, for_update=True,
        )
        if ent is not None and ent.remaining < duration:
            raise BadRequestException(
                f"Requested {duration} day(s) but only {ent.remaining} remaining.",
                code="insufficient-balance",
            )

        now = _utcnow()
        leave_req = LeaveRequest(
            employee_id=data.employee_id,
            leave_type_id=data.leave_type_id,
            from_date=data.from_date,
            to_date=data.to_date,
            duration_days=duration,
            justification=data.justification,
            attachment_id=data.attachment_id,
            is_emergency=False,
            status=LeaveStatus.pending,
            irregular_pattern_flag=False,
            approval_flow=[],
            created_at=now,
            updated_at=now,
        )
        db.add(leave_req)
        await db.flush()

        await EntitlementLedger.on_submit(
            db, leave_req.employee_id, leave_req.leave_type_id, duration,
            actor_id=leave_req.employee_id,
        )
        await create_audit_entry(
            db,
            action="submit_post_leave",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=leave_req.employee_id,
            new_values=_request_snapshot(leave_req),
        )
        await LeaveService._emit(
            db,
            LeaveEvent.from_request(
                LeaveEventType.submitted, leave_req, actor_id=leave_req.employee_id,
            ),
        )
        return LeaveService._build_request_response(leave_req)

    @staticmethod
    @bounded()
    async def modify_leave_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        patch: LeaveRequestPatch,
    ) -> LeaveRequestOut:
        """Apply an employee's edit to a PENDING request and re-size its reservation."""
        leave_req = await LeaveService._get_request(db, request_id, for_update=True)
        LeaveService._require_status(leave_req, LeaveStatus.pending, action="modify")

        changes = {
            field: value
            for field, value in patch.model_dump(exclude_unset=True).items()
            if getattr(leave_req, field) != value
        }
        if not changes:
            return LeaveService._build_request_response(leave_req)

        merged = {
            field: changes.get(field, getattr(leave_req, field))
            for field in _REVALIDATED_FIELDS
        }
        if merged["from_date"] > merged["to_date"]:
            raise BadRequestException(
                "from_date must be on or before to_date.", code="invalid-date-range",
            )

        if _REVALIDATED_FIELDS & changes.keys():
            if changes.get("attachment_id") is not None:
                await LeaveService._get_attachment(db, changes["attachment_id"])
            draft = LeaveDraft(
                employee_id=leave_req.employee_id,
                leave_type_id=leave_req.leave_type_id,
                from_date=merged["from_date"],
                to_date=merged["to_date"],
                duration_days=merged["duration_days"],
                has_attachment=merged["attachment_id"] is not None,
                is_emergency=merged["is_emergency"],
                request_id=leave_req.id,
                reserved_days=leave_req.duration_days,
            )
            validate(draft, **await LeaveService._load_validation_context(db, draft))

        before = _request_snapshot(leave_req)
        old_duration = leave_req.duration_days
        for field, value in changes.items():
            setattr(leave_req, field, value)
        leave_req.updated_at = _utcnow()
        await db.flush()

        await EntitlementLedger.on_modify(
            db, leave_req.employee_id, leave_req.leave_type_id,
            old_duration, leave_req.duration_days,
            actor_id=leave_req.employee_id,
        )
        await create_audit_entry(
            db,
            action="modify",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=leave_req.employee_id,
            old_values=before,
            new_values=_request_snapshot(leave_req),
        )
        await LeaveService._emit(
            db,
            LeaveEvent.from_request(
                LeaveEventType.modified,
                leave_req,
                actor_id=leave_req.employee_id,
                changed_fields=tuple(sorted(changes)),
            ),
        )
        return LeaveService._build_request_response(leave_req)

    @staticmethod
    @bounded()
    async def cancel_leave_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> LeaveRequestOut:
        """Withdraw a PENDING request and release its reservation."""
        leave_req = await LeaveService._get_request(db, request_id, for_update=True)
        LeaveService._require_status(leave_req, LeaveStatus.pending, action="cancel")

        actor_id = actor_id or leave_req.employee_id
        leave_req.status = LeaveStatus.cancelled
        leave_req.updated_at = _utcnow()
        await db.flush()

        await EntitlementLedger.on_cancel(
            db, leave_req.employee_id, leave_req.leave_type_id, leave_req.duration_days,
            actor_id=actor_id,
        )
        await create_audit_entry(
            db,
            action="cancel",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=actor_id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.cancelled.value},
        )
        await LeaveService._emit(
            db,
            LeaveEvent.from_request(LeaveEventType.cancelled, leave_req, actor_id=actor_id),
        )
        return LeaveService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Approval flow
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    @bounded()
    async def set_approval_flow(
        db: AsyncSession,
        request_id: uuid.UUID,
        roles: Sequence[str],
    ) -> LeaveRequestOut:
        """Reset the flow to one pending entry per role and notify approvers."""
        leave_req = await LeaveService._get_request(db, request_id, for_update=True)
        LeaveService._require_status(
            leave_req, LeaveStatus.pending, action="configure approvals for",
        )

        entries = await replace_approval_flow(db, leave_req, roles)
        await create_audit_entry(
            db,
            action="set_approval_flow",
            entity_type="leave_request",
            entity_id=leave_req.id,
            new_values={"roles": [e.role for e in entries]},
        )
        await LeaveService._emit(
            db,
            LeaveEvent.from_request(
                LeaveEventType.approval_flow_set,
                leave_req,
                approval_roles=tuple(normalize_roles(roles)),
            ),
        )
        return LeaveService._build_request_response(leave_req)

    @staticmethod
    async def _decide_flow(
        db: AsyncSession,
        request_id: uuid.UUID,
        decision: ApprovalStatus,
        data: FlowDecisionRequest,
    ) -> LeaveRequestOut:
        action = "approve" if decision == ApprovalStatus.approved else "reject"
        leave_req = await LeaveService._get_request(db, request_id, for_update=True)
        LeaveService._require_status(leave_req, LeaveStatus.pending, action=action)

        entry = await update_with_approval_flow(
            db,
            leave_req,
            role=data.role,
            decision=decision,
            decided_by=data.decided_by,
            justification=data.justification,
        )
        await create_audit_entry(
            db,
            action=f"flow_{action}",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=data.decided_by,
            new_values={
                "role": entry.role,
                "status": decision.value,
                "justification": data.justification,
            },
        )
        await LeaveService._emit(
            db,
            LeaveEvent.from_request(
                LeaveEventType.flow_decided,
                leave_req,
                actor_id=data.decided_by,
                role=entry.role,
                decision=decision.value,
                reason=data.justification,
            ),
        )
        return LeaveService._build_request_response(leave_req)

    @staticmethod
    @bounded()
    async def manager_approve(
        db: AsyncSession,
        request_id: uuid.UUID,
        data: FlowDecisionRequest,
    ) -> LeaveRequestOut:
        """Record a role-level approval; overall status stays PENDING."""
        return await LeaveService._decide_flow(db, request_id, ApprovalStatus.approved, data)

    @staticmethod
    @bounded()
    async def manager_reject(
        db: AsyncSession,
        request_id: uuid.UUID,
        data: FlowDecisionRequest,
    ) -> LeaveRequestOut:
        """Record a role-level rejection; overall status stays PENDING."""
        return await LeaveService._decide_flow(db, request_id, ApprovalStatus.rejected, data)

    @staticmethod
    @bounded()
    async def verify_medical_documents(
        db: AsyncSession,
        request_id: uuid.UUID,
        hr_user_id: uuid.UUID,
        verified: bool,
        notes: Optional[str] = None,
    ) -> LeaveRequestOut:
        """HR's document check, recorded as the "hr" flow entry."""
        leave_req = await LeaveService._get_request(db, request_id, for_update=True)
        if leave_req.attachment_id is None:
            raise BadRequestException(
                "The leave request has no attachment to verify.",
                code="attachment-missing",
            )

        decision = ApprovalStatus.approved if verified else ApprovalStatus.rejected
        await update_with_approval_flow(
            db,
            leave_req,
            role=APPROVAL_ROLE_HR,
            decision=decision,
            decided_by=hr_user_id,
            justification=notes,
        )
        await create_audit_entry(
            db,
            action="verify_documents",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=hr_user_id,
            new_values={"verified": verified, "notes": notes},
        )
        return LeaveService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Finalize / Override
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    @bounded()
    async def finalize_leave_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        hr_user_id: uuid.UUID,
        final_status: LeaveStatus = LeaveStatus.approved,
    ) -> LeaveRequestOut:
        """Turn a fully approved PENDING request into APPROVED and move its
        days from pending to taken.

        Only ``approved`` is accepted; rejection goes through override.
        Finalizing an already approved request changes nothing.
        """
        leave_req = await LeaveService._get_request(db, request_id, for_update=True)
        if final_status != LeaveStatus.approved:
            raise BadRequestException(
                "Finalize only accepts 'approved'; use override to reject.",
                code="invalid-final-status",
            )
        if leave_req.status == LeaveStatus.approved:
            logger.info("Leave request %s is already finalized", leave_req.id)
            return LeaveService._build_request_response(leave_req)
        LeaveService._require_status(leave_req, LeaveStatus.pending, action="finalize")

        blocker = finalize_blocker(leave_req)
        if blocker is not None:
            raise BadRequestException(blocker, code="finalize-precondition")

        now = _utcnow()
        leave_req.status = LeaveStatus.approved
        leave_req.decided_by = hr_user_id
        leave_req.decided_at = now
        leave_req.updated_at = now
        await db.flush()

        await EntitlementLedger.on_finalize(
            db, leave_req.employee_id, leave_req.leave_type_id, leave_req.duration_days,
            LeaveStatus.approved, actor_id=hr_user_id,
        )
        await create_audit_entry(
            db,
            action="finalize",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=hr_user_id,
            old_values={"status": LeaveStatus.pending.value},
            new_values={"status": LeaveStatus.approved.value},
        )
        await LeaveService._emit(
            db,
            LeaveEvent.from_request(LeaveEventType.finalized, leave_req, actor_id=hr_user_id),
        )
        return LeaveService._build_request_response(leave_req)

    @staticmethod
    @bounded()
    async def override_leave_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        hr_user_id: uuid.UUID,
        new_status: LeaveStatus,
        reason: str,
    ) -> LeaveRequestOut:
        """Set the overall status unconditionally, bypassing the finalize gate."""
        leave_req = await LeaveService._get_request(db, request_id, for_update=True)
        old_status = leave_req.status

        if new_status == LeaveStatus.approved:
            decision = ApprovalStatus.approved
        elif new_status == LeaveStatus.pending:
            decision = ApprovalStatus.pending
        else:
            decision = ApprovalStatus.rejected

        now = _utcnow()
        await update_with_approval_flow(
            db,
            leave_req,
            role=APPROVAL_ROLE_HR_OVERRIDE,
            decision=decision,
            decided_by=hr_user_id,
            justification=reason,
            status_patch={
                "status": new_status,
                "decided_by": hr_user_id,
                "decided_at": now,
                "decision_reason": f"HR override: {reason}",
            },
        )
        if old_status != new_status:
            await EntitlementLedger.on_status_change(
                db, leave_req.employee_id, leave_req.leave_type_id,
                leave_req.duration_days, old_status, new_status,
                actor_id=hr_user_id,
            )
        await create_audit_entry(
            db,
            action="override",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=hr_user_id,
            old_values={"status": old_status.value},
            new_values={"status": new_status.value, "reason": reason},
        )

        if old_status == new_status:
            event_type = LeaveEventType.overridden
        elif new_status == LeaveStatus.approved:
            event_type = LeaveEventType.finalized
        elif new_status == LeaveStatus.rejected:
            event_type = LeaveEventType.override_rejected
        else:
            event_type = LeaveEventType.overridden
        await LeaveService._emit(
            db,
            LeaveEvent.from_request(
                event_type, leave_req, actor_id=hr_user_id, reason=reason,
            ),
        )
        return LeaveService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Bulk
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def _process_one(
        db: AsyncSession,
        request_id: uuid.UUID,
        action: Optional[BulkAction],
        hr_user_id: uuid.UUID,
        reason: Optional[str],
    ) -> None:
        if action in (BulkAction.approve, BulkAction.reject):
            decision = FlowDecisionRequest(
                role=APPROVAL_ROLE_HR, decided_by=hr_user_id, justification=reason,
            )
            if action == BulkAction.approve:
                await LeaveService.manager_approve(db, request_id, decision)
            else:
                await LeaveService.manager_reject(db, request_id, decision)
        elif action == BulkAction.finalize:
            await LeaveService.finalize_leave_request(db, request_id, hr_user_id)
        elif action in (BulkAction.override_approve, BulkAction.override_reject):
            new_status = (
                LeaveStatus.approved
                if action == BulkAction.override_approve
                else LeaveStatus.rejected
            )
            await LeaveService.override_leave_request(
                db, request_id, hr_user_id, new_status, reason or "Bulk override",
            )
        else:
            raise BadRequestException(
                "Unsupported bulk action.", code="invalid-bulk-action",
            )

    @staticmethod
    @bounded("BULK_OPERATION_TIMEOUT_SECONDS")
    async def bulk_process(
        db: AsyncSession,
        request_ids: Iterable[uuid.UUID],
        action: BulkAction | str,
        hr_user_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> BulkProcessResult:
        """Best-effort batch: each id succeeds or fails on its own.

        Every item runs in its own SAVEPOINT, so a failed item leaves no
        writes behind and does not stop the batch.
        """
        try:
            bulk_action: Optional[BulkAction] = BulkAction(action)
        except ValueError:
            bulk_action = None

        processed = failed = 0
        for request_id in request_ids:
            try:
                async with db.begin_nested():
                    await LeaveService._process_one(
                        db, request_id, bulk_action, hr_user_id, reason,
                    )
            except Exception as exc:
                failed += 1
                logger.warning(
                    "Bulk %s failed for leave request %s: %s", action, request_id, exc,
                )
                continue
            processed += 1

        return BulkProcessResult(processed=processed, failed=failed)

    # ─────────────────────────────────────────────────────────────────
    # HR markers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    @bounded()
    async def flag_irregular_pattern(
        db: AsyncSession,
        request_id: uuid.UUID,
        flag: bool,
        hr_user_id: uuid.UUID,
    ) -> LeaveRequestOut:
        leave_req = await LeaveService._get_request(db, request_id, for_update=True)
        old_flag = leave_req.irregular_pattern_flag
        leave_req.irregular_pattern_flag = flag
        leave_req.updated_at = _utcnow()
        await db.flush()

        await create_audit_entry(
            db,
            action="flag_irregular",
            entity_type="leave_request",
            entity_id=leave_req.id,
            actor_id=hr_user_id,
            old_values={"irregular_pattern_flag": old_flag},
            new_values={"irregular_pattern_flag": flag},
        )
        return LeaveService._build_request_response(leave_req)

    # ─────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_leave_request(
        db: AsyncSession,
        request_id: uuid.UUID,
    ) -> LeaveRequestOut:
        leave_req = await LeaveService._get_request(db, request_id)
        return (await LeaveService._enrich(db, [leave_req]))[0]

    @staticmethod
    async def get_requests_for_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        status: Optional[LeaveStatus] = None,
    ) -> list[LeaveRequestOut]:
        query = (
            select(LeaveRequest)
            .where(LeaveRequest.employee_id == employee_id)
            .order_by(LeaveRequest.from_date.desc())
        )
        if status is not None:
            query = query.where(LeaveRequest.status == status)
        result = await db.execute(query)
        return await LeaveService._enrich(db, result.scalars().all())

    @staticmethod
    async def get_pending_requests_for_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> list[LeaveRequestOut]:
        return await LeaveService.get_requests_for_employee(
            db, employee_id, status=LeaveStatus.pending,
        )

    @staticmethod
    async def get_leave_history(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        leave_type_id: Optional[uuid.UUID] = None,
        status: Optional[LeaveStatus] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> list[LeaveRequestOut]:
        """Decided requests only; the date range filters on the start date."""
        if status is not None and status not in DECIDED_LEAVE_STATUSES:
            return []
        statuses = (status,) if status is not None else DECIDED_LEAVE_STATUSES

        query = (
            select(LeaveRequest)
            .where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status.in_(statuses),
            )
            .order_by(LeaveRequest.from_date.desc())
        )
        if leave_type_id is not None:
            query = query.where(LeaveRequest.leave_type_id == leave_type_id)
        if from_date is not None:
            query = query.where(LeaveRequest.from_date >= from_date)
        if to_date is not None:
            query = query.where(LeaveRequest.from_date <= to_date)
        result = await db.execute(query)
        return await LeaveService._enrich(db, result.scalars().all())

    @staticmethod
    async def get_team_requests(
        db: AsyncSession,
        manager_id: uuid.UUID,
        *,
        status: Optional[LeaveStatus] = None,
    ) -> list[LeaveRequestOut]:
        """Requests of the manager's direct reports."""
        team = await EmployeeProfileService.get_team_profiles(db, manager_id)
        if not team:
            return []
        query = (
            select(LeaveRequest)
            .where(LeaveRequest.employee_id.in_([e.id for e in team]))
            .order_by(LeaveRequest.from_date.desc())
        )
        if status is not None:
            query = query.where(LeaveRequest.status == status)
        result = await db.execute(query)
        return await LeaveService._enrich(db, result.scalars().all())

    @staticmethod
    async def get_all_requests(
        db: AsyncSession,
        params: PaginationParams,
        *,
        status: Optional[LeaveStatus] = None,
        employee_id: Optional[uuid.UUID] = None,
        leave_type_id: Optional[uuid.UUID] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> dict:
        """HR listing with filters and pagination."""
        query = select(LeaveRequest).order_by(LeaveRequest.created_at.desc())
        if status is not None:
            query = query.where(LeaveRequest.status == status)
        if employee_id is not None:
            query = query.where(LeaveRequest.employee_id == employee_id)
        if leave_type_id is not None:
            query = query.where(LeaveRequest.leave_type_id == leave_type_id)
        if from_date is not None:
            query = query.where(LeaveRequest.to_date >= from_date)
        if to_date is not None:
            query = query.where(LeaveRequest.from_date <= to_date)

        page = await paginate(db, query, params, model=LeaveRequest)
        return {
            "data": await LeaveService._enrich(db, page.data),
            "meta": page.meta,
        }

    # ─────────────────────────────────────────────────────────────────
    # Entitlements
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _build_entitlement_response(ent: LeaveEntitlement) -> LeaveEntitlementOut:
        return LeaveEntitlementOut.model_validate(ent)

    @staticmethod
    async def get_entitlements(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> list[LeaveEntitlementOut]:
        result = await db.execute(
            select(LeaveEntitlement)
            .where(LeaveEntitlement.employee_id == employee_id)
            .order_by(LeaveEntitlement.leave_type_id)
            .execution_options(populate_existing=True)
        )
        return [
            LeaveService._build_entitlement_response(ent)
            for ent in result.scalars().all()
        ]

    @staticmethod
    async def get_entitlement(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
    ) -> LeaveEntitlementOut:
        result = await db.execute(
            select(LeaveEntitlement)
            .where(
                LeaveEntitlement.employee_id == employee_id,
                LeaveEntitlement.leave_type_id == leave_type_id,
            )
            .execution_options(populate_existing=True)
        )
        ent = result.scalars().first()
        if ent is None:
            raise NotFoundException("LeaveEntitlement", f"{employee_id}/{leave_type_id}")
        return LeaveService._build_entitlement_response(ent)

    @staticmethod
    async def get_team_balances(
        db: AsyncSession,
        manager_id: uuid.UUID,
    ) -> list[TeamMemberBalanceOut]:
        """Each direct report's entitlements and upcoming open leave."""
        team = await EmployeeProfileService.get_team_profiles(db, manager_id)
        today = _utcnow().date()
        balances: list[TeamMemberBalanceOut] = []
        for member in team:
            upcoming = await db.execute(
                select(LeaveRequest)
                .where(
                    LeaveRequest.employee_id == member.id,
                    LeaveRequest.status.in_(OPEN_LEAVE_STATUSES),
                    LeaveRequest.to_date >= today,
                )
                .order_by(LeaveRequest.from_date)
            )
            balances.append(
                TeamMemberBalanceOut(
                    employee=EmployeeBrief.model_validate(member),
                    entitlements=await LeaveService.get_entitlements(db, member.id),
                    upcoming_leaves=[
                        LeaveService._build_request_response(r)
                        for r in upcoming.scalars().all()
                    ],
                )
            )
        return balances

    @staticmethod
    @bounded()
    async def adjust_entitlement(
        db: AsyncSession,
        data: ManualAdjustmentCreate,
    ) -> LeaveAdjustmentOut:
        """Record an HR adjustment; add/deduct move ``remaining``,
        encashment is recorded only."""
        ent = await EntitlementLedger.fetch(
            db, data.employee_id, data.leave_type_id, for_update=True,
        )
        if ent is None:
            raise NotFoundException(
                "LeaveEntitlement", f"{data.employee_id}/{data.leave_type_id}",
            )
        if data.adjustment_type == AdjustmentType.deduct and data.amount > ent.remaining:
            raise BadRequestException(
                f"Cannot deduct {data.amount} day(s); only {ent.remaining} remaining.",
                code="invalid-adjustment",
            )

        adjustment = LeaveAdjustment(**data.model_dump())
        db.add(adjustment)
        await db.flush()

        before = str(ent.remaining)
        if data.adjustment_type == AdjustmentType.add:
            await EntitlementLedger.adjust_remaining(db, ent, data.amount)
        elif data.adjustment_type == AdjustmentType.deduct:
            await EntitlementLedger.adjust_remaining(db, ent, -data.amount)

        await create_audit_entry(
            db,
            action=f"adjust_{data.adjustment_type.value}",
            entity_type="leave_adjustment",
            entity_id=adjustment.id,
            actor_id=data.hr_user_id,
            old_values={"remaining": before},
            new_values={
                "remaining": str(ent.remaining),
                "amount": str(data.amount),
                "reason": data.reason,
            },
        )
        return LeaveAdjustmentOut.model_validate(adjustment)

    @staticmethod
    async def get_adjustment_history(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        leave_type_id: Optional[uuid.UUID] = None,
    ) -> list[LeaveAdjustmentOut]:
        query = (
            select(LeaveAdjustment)
            .where(LeaveAdjustment.employee_id == employee_id)
            .order_by(LeaveAdjustment.created_at.desc())
        )
        if leave_type_id is not None:
            query = query.where(LeaveAdjustment.leave_type_id == leave_type_id)
        result = await db.execute(query)
        return [LeaveAdjustmentOut.model_validate(a) for a in result.scalars().all()]

    # ─────────────────────────────────────────────────────────────────
    # Payroll readiness
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_payroll_readiness(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        month: int,
    ) -> PayrollReadinessOut:
        """Approved unpaid leave overlapping the given month."""
        if not 1 <= month <= 12:
            raise BadRequestException("month must be between 1 and 12.", code="invalid-period")
        first = date(year, month, 1)
        last = date(year, month, calendar.monthrange(year, month)[1])

        result = await db.execute(
            select(
                func.count(LeaveRequest.id),
                func.coalesce(func.sum(LeaveRequest.duration_days), 0),
            )
            .join(LeaveType, LeaveType.id == LeaveRequest.leave_type_id)
            .where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status == LeaveStatus.approved,
                LeaveType.is_paid.is_(False),
                LeaveRequest.from_date <= last,
                LeaveRequest.to_date >= first,
            )
        )
        count, total = result.one()
        return PayrollReadinessOut(
            employee_id=employee_id,
            year=year,
            month=month,
            unpaid_leave_requests=count,
            unpaid_leave_days=Decimal(str(total)),
        )
