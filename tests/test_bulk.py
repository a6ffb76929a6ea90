"""Bulk processing — each request succeeds or fails on its own."""

from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.constants import (
    APPROVAL_ROLE_DEPARTMENT_HEAD,
    APPROVAL_ROLE_HR,
    ApprovalStatus,
    BulkAction,
    LeaveStatus,
)
from leaveflow.leave.ledger import EntitlementLedger
from leaveflow.leave.schemas import FlowDecisionRequest, LeaveRequestCreate
from leaveflow.leave.service import LeaveService
from tests.conftest import future


async def _submit_many(db: AsyncSession, world, count: int) -> list[uuid.UUID]:
    ids = []
    for i in range(count):
        day = future(20 + i * 2)
        result = await LeaveService.submit_leave_request(
            db,
            LeaveRequestCreate(
                employee_id=world.employee.id,
                leave_type_id=world.annual.id,
                from_date=day,
                to_date=day,
                duration_days=Decimal("1"),
            ),
        )
        ids.append(result.id)
    return ids


class TestBulkProcess:

    async def test_missing_ids_counted_as_failed(self, db: AsyncSession, world):
        ids = await _submit_many(db, world, 3)

        result = await LeaveService.bulk_process(
            db, [*ids, uuid.uuid4(), uuid.uuid4()], BulkAction.approve, world.hr.id,
        )

        assert (result.processed, result.failed) == (3, 2)

    async def test_bulk_approve_records_hr_entry_only(self, db: AsyncSession, world):
        ids = await _submit_many(db, world, 2)

        await LeaveService.bulk_process(
            db, ids, BulkAction.approve, world.hr.id, "Batch review",
        )

        for request_id in ids:
            result = await LeaveService.get_leave_request(db, request_id)
            assert result.status == LeaveStatus.pending
            entry = result.approval_flow[0]
            assert entry.role == APPROVAL_ROLE_HR
            assert entry.status == ApprovalStatus.approved
            assert entry.justification == "Batch review"

    async def test_failed_item_leaves_no_trace(self, db: AsyncSession, world):
        """Only the request with both gates approved finalizes."""
        ready, blocked = await _submit_many(db, world, 2)
        for role, actor in ((APPROVAL_ROLE_HR, world.hr), (APPROVAL_ROLE_DEPARTMENT_HEAD, world.head)):
            await LeaveService.manager_approve(
                db, ready, FlowDecisionRequest(role=role, decided_by=actor.id),
            )

        result = await LeaveService.bulk_process(
            db, [ready, blocked], BulkAction.finalize, world.hr.id,
        )

        assert (result.processed, result.failed) == (1, 1)
        assert (await LeaveService.get_leave_request(db, ready)).status == LeaveStatus.approved
        assert (await LeaveService.get_leave_request(db, blocked)).status == LeaveStatus.pending
        ent = await EntitlementLedger.fetch(db, world.employee.id, world.annual.id)
        await db.refresh(ent)
        assert (ent.remaining, ent.pending, ent.taken) == (
            Decimal("8"), Decimal("1"), Decimal("1"),
        )

    async def test_override_reject_batch(self, db: AsyncSession, world):
        ids = await _submit_many(db, world, 3)

        result = await LeaveService.bulk_process(
            db, ids, BulkAction.override_reject, world.hr.id, "Office closure",
        )

        assert (result.processed, result.failed) == (3, 0)
        ent = await EntitlementLedger.fetch(db, world.employee.id, world.annual.id)
        await db.refresh(ent)
        assert (ent.remaining, ent.pending) == (Decimal("10"), Decimal("0"))

    async def test_unknown_action_fails_every_item(self, db: AsyncSession, world):
        ids = await _submit_many(db, world, 2)

        result = await LeaveService.bulk_process(db, ids, "escalate", world.hr.id)

        assert (result.processed, result.failed) == (0, 2)

    async def test_empty_batch(self, db: AsyncSession, world):
        result = await LeaveService.bulk_process(db, [], BulkAction.finalize, world.hr.id)
        assert (result.processed, result.failed) == (0, 0)
