"""Notification service and the leave fan-out.

Notification delivery never affects the outcome of the leave operation
that produced it.
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.constants import (
    APPROVAL_ROLE_DEPARTMENT_HEAD,
    APPROVAL_ROLE_HR,
    DeliveryType,
    LeaveStatus,
    NotificationType,
)
from leaveflow.common.exceptions import NotFoundException
from leaveflow.common.pagination import PaginationParams
from leaveflow.leave.ledger import EntitlementLedger
from leaveflow.leave.schemas import (
    FlowDecisionRequest,
    LeaveRequestCreate,
    LeaveRequestPatch,
)
from leaveflow.leave.service import LeaveService
from leaveflow.notifications.models import Notification
from leaveflow.notifications.service import NotificationService
from tests.conftest import future


def _page() -> PaginationParams:
    return PaginationParams(page=1, page_size=50, sort=None)


async def _submit(db: AsyncSession, world):
    return await LeaveService.submit_leave_request(
        db,
        LeaveRequestCreate(
            employee_id=world.employee.id,
            leave_type_id=world.annual.id,
            from_date=future(20),
            to_date=future(22),
            duration_days=Decimal("3"),
        ),
    )


async def _titles_for(db: AsyncSession, recipient_id: uuid.UUID) -> list[str]:
    result = await db.execute(
        select(Notification.title)
        .where(Notification.recipient_id == recipient_id)
        .order_by(Notification.created_at)
    )
    return list(result.scalars().all())


# ═════════════════════════════════════════════════════════════════════
# 1. NotificationService
# ═════════════════════════════════════════════════════════════════════


class TestNotificationService:

    async def test_create_dedups_recipients(self, db: AsyncSession, world):
        created = await NotificationService.create_notification(
            db,
            recipient_ids=[world.hr.id, world.hr.id, None, world.head.id],
            title="Heads up",
            message="Payroll closes Friday",
        )
        assert {n.recipient_id for n in created} == {world.hr.id, world.head.id}
        assert len(created) == 2

    async def test_list_and_mark_read(self, db: AsyncSession, world):
        [notification] = await NotificationService.create_notification(
            db, recipient_ids=[world.employee.id], title="Hi", message="Welcome",
        )

        unread = await NotificationService.get_notifications(
            db, world.employee.id, _page(), is_read=False,
        )
        assert unread.meta.total == 1

        marked = await NotificationService.mark_read(db, notification.id)
        assert marked.is_read is True
        assert marked.read_at is not None

        unread = await NotificationService.get_notifications(
            db, world.employee.id, _page(), is_read=False,
        )
        assert unread.meta.total == 0

    async def test_mark_read_missing(self, db: AsyncSession, world):
        with pytest.raises(NotFoundException):
            await NotificationService.mark_read(db, uuid.uuid4())


# ═════════════════════════════════════════════════════════════════════
# 2. Leave fan-out
# ═════════════════════════════════════════════════════════════════════


class TestLeaveFanout:

    async def test_submit_notifies_manager(self, db: AsyncSession, world):
        await _submit(db, world)
        assert await _titles_for(db, world.head.id) == ["New Leave Request for Review"]

    async def test_modify_notifies_employee_and_manager(self, db: AsyncSession, world):
        submitted = await _submit(db, world)
        await LeaveService.modify_leave_request(
            db, submitted.id, LeaveRequestPatch(justification="Moved flights"),
        )

        assert await _titles_for(db, world.employee.id) == ["Leave Request Updated"]
        assert "Leave Request Modified" in await _titles_for(db, world.head.id)

    async def test_cancel_notifies_manager(self, db: AsyncSession, world):
        submitted = await _submit(db, world)
        await LeaveService.cancel_leave_request(db, submitted.id)

        assert "Leave Request Cancelled" in await _titles_for(db, world.head.id)

    async def test_flow_set_multicasts_to_matching_chain(self, db: AsyncSession, world):
        submitted = await _submit(db, world)
        await LeaveService.set_approval_flow(db, submitted.id, ["department head"])

        titles = await _titles_for(db, world.head.id)
        assert "Leave Request Awaiting Your Approval" in titles
        # HR is not in the employee's chain
        assert await _titles_for(db, world.hr.id) == []

    async def test_flow_decision_notifies_employee(self, db: AsyncSession, world):
        submitted = await _submit(db, world)
        await LeaveService.manager_reject(
            db, submitted.id,
            FlowDecisionRequest(
                role=APPROVAL_ROLE_DEPARTMENT_HEAD,
                decided_by=world.head.id,
                justification="Release week",
            ),
        )

        result = await db.execute(
            select(Notification).where(Notification.recipient_id == world.employee.id)
        )
        notification = result.scalars().one()
        assert notification.title == "Leave Request Rejected by department head"
        assert notification.type == NotificationType.alert
        assert "Release week" in notification.message

    async def test_finalize_notifies_employee_manager_and_payroll(self, db: AsyncSession, world):
        submitted = await _submit(db, world)
        for role, actor in ((APPROVAL_ROLE_HR, world.hr), (APPROVAL_ROLE_DEPARTMENT_HEAD, world.head)):
            await LeaveService.manager_approve(
                db, submitted.id, FlowDecisionRequest(role=role, decided_by=actor.id),
            )
        await LeaveService.finalize_leave_request(db, submitted.id, world.hr.id)

        result = await db.execute(
            select(Notification).where(Notification.title == "Leave Request Finalized")
        )
        finalized = result.scalars().all()
        assert {n.recipient_id for n in finalized} == {
            world.employee.id, world.head.id, world.payroll.id,
        }
        assert all(n.delivery_type == DeliveryType.multicast for n in finalized)

    async def test_override_reject_notifies_employee(self, db: AsyncSession, world):
        submitted = await _submit(db, world)
        await LeaveService.override_leave_request(
            db, submitted.id, world.hr.id, LeaveStatus.rejected, "Audit week",
        )
        assert "Leave Request Rejected by HR" in await _titles_for(db, world.employee.id)

    async def test_repeated_approval_override_is_not_refinalized(self, db: AsyncSession, world):
        submitted = await _submit(db, world)
        await LeaveService.override_leave_request(
            db, submitted.id, world.hr.id, LeaveStatus.approved, "Agreed",
        )
        await LeaveService.override_leave_request(
            db, submitted.id, world.hr.id, LeaveStatus.approved, "Paperwork fixed",
        )

        result = await db.execute(
            select(Notification).where(Notification.title == "Leave Request Finalized")
        )
        assert len(result.scalars().all()) == 3
        assert "Leave Request Status Updated" in await _titles_for(db, world.employee.id)
        ent = await EntitlementLedger.fetch(db, world.employee.id, world.annual.id)
        assert (ent.remaining, ent.pending, ent.taken) == (Decimal("7"), Decimal("0"), Decimal("3"))

    async def test_delivery_failure_does_not_fail_operation(self, db: AsyncSession, world):
        failing = AsyncMock(side_effect=RuntimeError("mail relay down"))
        with patch.object(NotificationService, "create_notification", failing):
            result = await _submit(db, world)

        assert failing.await_count == 1
        assert result.status == LeaveStatus.pending
        ent = await EntitlementLedger.fetch(db, world.employee.id, world.annual.id)
        assert (ent.remaining, ent.pending) == (Decimal("7"), Decimal("3"))
        assert await _titles_for(db, world.head.id) == []

    async def test_no_manager_is_not_an_error(self, db: AsyncSession, world):
        world.employee.reporting_manager_id = None
        await db.flush()

        result = await _submit(db, world)
        assert result.status == LeaveStatus.pending
        assert await _titles_for(db, world.head.id) == []
