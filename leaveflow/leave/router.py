"""Leave router — requests, approval flow, HR actions, entitlements.

Authentication is out of scope; actor ids travel in request bodies.
"""


import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.constants import LeaveStatus
from leaveflow.common.pagination import PaginationParams
from leaveflow.database import get_db
from leaveflow.leave.schemas import (
    ApprovalFlowSet,
    AttachDocumentRequest,
    AttachmentCreate,
    AttachmentOut,
    BulkProcessRequest,
    BulkProcessResult,
    FinalizeRequest,
    FlowDecisionRequest,
    IrregularFlagRequest,
    LeaveAdjustmentOut,
    LeaveCancelRequest,
    LeaveEntitlementOut,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveRequestPatch,
    ManualAdjustmentCreate,
    MedicalVerificationRequest,
    OverrideRequest,
    PayrollReadinessOut,
    PostLeaveCreate,
    TeamMemberBalanceOut,
)
from leaveflow.leave.service import LeaveService

router = APIRouter(prefix="", tags=["leave"])


# ── POST /attachments ───────────────────────────────────────────────

@router.post("/attachments", response_model=AttachmentOut, status_code=201)
async def upload_attachment(
    body: AttachmentCreate,
    db: AsyncSession = Depends(get_db),
):
    """Register metadata for an uploaded supporting document."""
    return await LeaveService.upload_attachment(db, body)


# ── POST /requests ──────────────────────────────────────────────────

@router.post("/requests", response_model=LeaveRequestOut, status_code=201)
async def submit_leave_request(
    body: LeaveRequestCreate,
    db: AsyncSession = Depends(get_db),
):
    """Submit a leave request. Runs every eligibility rule before saving."""
    return await LeaveService.submit_leave_request(db, body)


# ── GET /requests — HR listing ──────────────────────────────────────

@router.get("/requests")
async def list_leave_requests(
    status: Optional[LeaveStatus] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    leave_type_id: Optional[uuid.UUID] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    pagination: PaginationParams = Depends(),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_all_requests(
        db,
        pagination,
        status=status,
        employee_id=employee_id,
        leave_type_id=leave_type_id,
        from_date=from_date,
        to_date=to_date,
    )


# ── POST /requests/bulk ─────────────────────────────────────────────
# Registered before /requests/{request_id} routes.

@router.post("/requests/bulk", response_model=BulkProcessResult)
async def bulk_process(
    body: BulkProcessRequest,
    db: AsyncSession = Depends(get_db),
):
    """Apply one action to many requests; failures are counted, not raised."""
    return await LeaveService.bulk_process(
        db, body.request_ids, body.action, body.hr_user_id, body.reason,
    )


# ── POST /requests/post-leave ───────────────────────────────────────

@router.post("/requests/post-leave", response_model=LeaveRequestOut, status_code=201)
async def submit_post_leave(
    body: PostLeaveCreate,
    db: AsyncSession = Depends(get_db),
):
    """Report leave already taken, within the post-leave window."""
    return await LeaveService.submit_post_leave(db, body)


# ── GET /requests/{request_id} ──────────────────────────────────────

@router.get("/requests/{request_id}", response_model=LeaveRequestOut)
async def get_leave_request(
    request_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_leave_request(db, request_id)


# ── PATCH /requests/{request_id} ────────────────────────────────────

@router.patch("/requests/{request_id}", response_model=LeaveRequestOut)
async def modify_leave_request(
    request_id: uuid.UUID,
    body: LeaveRequestPatch,
    db: AsyncSession = Depends(get_db),
):
    """Edit a pending request."""
    return await LeaveService.modify_leave_request(db, request_id, body)


# ── POST /requests/{request_id}/cancel ──────────────────────────────

@router.post("/requests/{request_id}/cancel", response_model=LeaveRequestOut)
async def cancel_leave_request(
    request_id: uuid.UUID,
    body: Optional[LeaveCancelRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.cancel_leave_request(
        db, request_id, actor_id=body.actor_id if body else None,
    )


# ── PUT /requests/{request_id}/attachment ───────────────────────────

@router.put("/requests/{request_id}/attachment", response_model=LeaveRequestOut)
async def attach_document(
    request_id: uuid.UUID,
    body: AttachDocumentRequest,
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.attach_to_leave_request(db, request_id, body.attachment_id)


# ── PUT /requests/{request_id}/approval-flow ────────────────────────

@router.put("/requests/{request_id}/approval-flow", response_model=LeaveRequestOut)
async def set_approval_flow(
    request_id: uuid.UUID,
    body: ApprovalFlowSet,
    db: AsyncSession = Depends(get_db),
):
    """Replace the approval flow and notify the approvers in the chain."""
    return await LeaveService.set_approval_flow(db, request_id, body.roles)


# ── POST /requests/{request_id}/approve | /reject ───────────────────

@router.post("/requests/{request_id}/approve", response_model=LeaveRequestOut)
async def approve_leave_request(
    request_id: uuid.UUID,
    body: FlowDecisionRequest,
    db: AsyncSession = Depends(get_db),
):
    """Role-level approval. The overall status stays pending until finalize."""
    return await LeaveService.manager_approve(db, request_id, body)


@router.post("/requests/{request_id}/reject", response_model=LeaveRequestOut)
async def reject_leave_request(
    request_id: uuid.UUID,
    body: FlowDecisionRequest,
    db: AsyncSession = Depends(get_db),
):
    """Role-level rejection. The overall status stays pending."""
    return await LeaveService.manager_reject(db, request_id, body)


# ── HR actions ──────────────────────────────────────────────────────

@router.post("/requests/{request_id}/verify-documents", response_model=LeaveRequestOut)
async def verify_medical_documents(
    request_id: uuid.UUID,
    body: MedicalVerificationRequest,
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.verify_medical_documents(
        db, request_id, body.hr_user_id, body.verified, body.notes,
    )


@router.post("/requests/{request_id}/finalize", response_model=LeaveRequestOut)
async def finalize_leave_request(
    request_id: uuid.UUID,
    body: FinalizeRequest,
    db: AsyncSession = Depends(get_db),
):
    """Approve a request whose HR and department-head entries are approved."""
    return await LeaveService.finalize_leave_request(
        db, request_id, body.hr_user_id, body.final_status,
    )


@router.post("/requests/{request_id}/override", response_model=LeaveRequestOut)
async def override_leave_request(
    request_id: uuid.UUID,
    body: OverrideRequest,
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.override_leave_request(
        db, request_id, body.hr_user_id, body.new_status, body.reason,
    )


@router.put("/requests/{request_id}/irregular-flag", response_model=LeaveRequestOut)
async def flag_irregular_pattern(
    request_id: uuid.UUID,
    body: IrregularFlagRequest,
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.flag_irregular_pattern(
        db, request_id, body.flag, body.hr_user_id,
    )


# ── Employee views ──────────────────────────────────────────────────

@router.get("/employees/{employee_id}/requests", response_model=list[LeaveRequestOut])
async def employee_requests(
    employee_id: uuid.UUID,
    status: Optional[LeaveStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_requests_for_employee(db, employee_id, status=status)


@router.get(
    "/employees/{employee_id}/requests/pending",
    response_model=list[LeaveRequestOut],
)
async def employee_pending_requests(
    employee_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_pending_requests_for_employee(db, employee_id)


@router.get("/employees/{employee_id}/history", response_model=list[LeaveRequestOut])
async def employee_leave_history(
    employee_id: uuid.UUID,
    leave_type_id: Optional[uuid.UUID] = Query(None),
    status: Optional[LeaveStatus] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Approved, rejected and cancelled requests; pending ones are excluded."""
    return await LeaveService.get_leave_history(
        db,
        employee_id,
        leave_type_id=leave_type_id,
        status=status,
        from_date=from_date,
        to_date=to_date,
    )


@router.get(
    "/employees/{employee_id}/adjustments",
    response_model=list[LeaveAdjustmentOut],
)
async def employee_adjustments(
    employee_id: uuid.UUID,
    leave_type_id: Optional[uuid.UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_adjustment_history(
        db, employee_id, leave_type_id=leave_type_id,
    )


@router.get(
    "/employees/{employee_id}/entitlements",
    response_model=list[LeaveEntitlementOut],
)
async def employee_entitlements(
    employee_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_entitlements(db, employee_id)


@router.get(
    "/employees/{employee_id}/entitlements/{leave_type_id}",
    response_model=LeaveEntitlementOut,
)
async def employee_entitlement(
    employee_id: uuid.UUID,
    leave_type_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_entitlement(db, employee_id, leave_type_id)


@router.get(
    "/employees/{employee_id}/payroll-readiness",
    response_model=PayrollReadinessOut,
)
async def payroll_readiness(
    employee_id: uuid.UUID,
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
    db: AsyncSession = Depends(get_db),
):
    """Approved unpaid leave overlapping the month, for payroll."""
    return await LeaveService.get_payroll_readiness(db, employee_id, year, month)


# ── Manager views ───────────────────────────────────────────────────

@router.get("/managers/{manager_id}/team-requests", response_model=list[LeaveRequestOut])
async def team_requests(
    manager_id: uuid.UUID,
    status: Optional[LeaveStatus] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_team_requests(db, manager_id, status=status)


@router.get(
    "/managers/{manager_id}/team-balances",
    response_model=list[TeamMemberBalanceOut],
)
async def team_balances(
    manager_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_team_balances(db, manager_id)


# ── POST /entitlements/adjustments ──────────────────────────────────

@router.post(
    "/entitlements/adjustments",
    response_model=LeaveAdjustmentOut,
    status_code=201,
)
async def adjust_entitlement(
    body: ManualAdjustmentCreate,
    db: AsyncSession = Depends(get_db),
):
    """Manual HR adjustment: add, deduct or record an encashment."""
    return await LeaveService.adjust_entitlement(db, body)
