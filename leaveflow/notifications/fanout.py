"""Leave notification fan-out.

Consumes ``LeaveEvent`` records after the leave operation has flushed
its own changes. Each event is delivered inside its own SAVEPOINT; a
failure is logged and rolled back to that savepoint, and never reaches
the caller of the leave operation.
"""

from __future__ import annotations

import logging
import uuid
from typing import Awaitable, Callable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.constants import (
    LEAVE_MODULE,
    PAYROLL_COORDINATOR_ROLES,
    ApprovalStatus,
    DeliveryType,
    NotificationType,
)
from leaveflow.leave.events import LeaveEvent, LeaveEventType
from leaveflow.notifications.service import NotificationService
from leaveflow.org.hierarchy import ManagerResolutionService
from leaveflow.org.models import Employee
from leaveflow.org.service import EmployeeProfileService

logger = logging.getLogger(__name__)


# ── Helpers ─────────────────────────────────────────────────────────

async def _employee_name(db: AsyncSession, employee_id: uuid.UUID) -> str:
    employee = (
        await db.execute(select(Employee).where(Employee.id == employee_id))
    ).scalars().first()
    return employee.full_name if employee else "An employee"


def _span(event: LeaveEvent) -> str:
    return (
        f"{event.duration_days} day(s) from {event.from_date} to {event.to_date}"
    )


async def _send(
    db: AsyncSession,
    event: LeaveEvent,
    recipients: Sequence[Optional[uuid.UUID]],
    *,
    type: NotificationType,
    delivery_type: DeliveryType,
    title: str,
    message: str,
) -> None:
    await NotificationService.create_notification(
        db,
        recipient_ids=[r for r in recipients if r is not None],
        type=type,
        delivery_type=delivery_type,
        title=title,
        message=message,
        related_entity_id=event.request_id,
        related_module=LEAVE_MODULE,
    )


# ── Handlers ────────────────────────────────────────────────────────

async def _on_submitted(db: AsyncSession, event: LeaveEvent) -> None:
    manager = await ManagerResolutionService.resolve_manager(db, event.employee_id)
    if manager is None:
        logger.info("No manager resolved for employee %s", event.employee_id)
        return
    name = await _employee_name(db, event.employee_id)
    await _send(
        db, event, [manager.id],
        type=NotificationType.action_required,
        delivery_type=DeliveryType.unicast,
        title="New Leave Request for Review",
        message=f"{name} requested {_span(event)}.",
    )


async def _on_modified(db: AsyncSession, event: LeaveEvent) -> None:
    changed = ", ".join(event.changed_fields) or "details"
    await _send(
        db, event, [event.employee_id],
        type=NotificationType.info,
        delivery_type=DeliveryType.unicast,
        title="Leave Request Updated",
        message=f"Your leave request was updated ({changed}). It now covers {_span(event)}.",
    )
    manager = await ManagerResolutionService.resolve_manager(db, event.employee_id)
    if manager is None:
        return
    name = await _employee_name(db, event.employee_id)
    await _send(
        db, event, [manager.id],
        type=NotificationType.action_required,
        delivery_type=DeliveryType.unicast,
        title="Leave Request Modified",
        message=(
            f"{name} changed {changed} on a pending leave request, "
            f"now {_span(event)}. Please review it again."
        ),
    )


async def _on_cancelled(db: AsyncSession, event: LeaveEvent) -> None:
    manager = await ManagerResolutionService.resolve_manager(db, event.employee_id)
    if manager is None:
        return
    name = await _employee_name(db, event.employee_id)
    await _send(
        db, event, [manager.id],
        type=NotificationType.info,
        delivery_type=DeliveryType.unicast,
        title="Leave Request Cancelled",
        message=f"{name} cancelled the leave request for {_span(event)}.",
    )


async def _on_approval_flow_set(db: AsyncSession, event: LeaveEvent) -> None:
    chain = await ManagerResolutionService.resolve_chain_above(db, event.employee_id)
    roles_by_employee = await EmployeeProfileService.get_system_roles(db, chain)
    wanted = set(event.approval_roles)
    approvers = [
        employee_id for employee_id in chain
        if roles_by_employee.get(employee_id, set()) & wanted
    ]
    if not approvers:
        logger.info(
            "No approvers in the chain above %s hold roles %s",
            event.employee_id, sorted(wanted),
        )
        return
    name = await _employee_name(db, event.employee_id)
    await _send(
        db, event, approvers,
        type=NotificationType.action_required,
        delivery_type=DeliveryType.multicast,
        title="Leave Request Awaiting Your Approval",
        message=f"{name}'s leave request for {_span(event)} needs your decision.",
    )


async def _on_flow_decided(db: AsyncSession, event: LeaveEvent) -> None:
    approved = event.decision == ApprovalStatus.approved.value
    verdict = "approved" if approved else "rejected"
    message = f"Your leave request for {_span(event)} was {verdict} by {event.role}."
    if event.reason:
        message += f" Justification: {event.reason}"
    await _send(
        db, event, [event.employee_id],
        type=NotificationType.approval if approved else NotificationType.alert,
        delivery_type=DeliveryType.unicast,
        title=f"Leave Request {verdict.capitalize()} by {event.role}",
        message=message,
    )


async def _on_finalized(db: AsyncSession, event: LeaveEvent) -> None:
    manager = await ManagerResolutionService.resolve_manager(db, event.employee_id)
    payroll = await EmployeeProfileService.find_ids_by_roles(db, PAYROLL_COORDINATOR_ROLES)
    name = await _employee_name(db, event.employee_id)
    await _send(
        db, event, [event.employee_id, manager.id if manager else None, *payroll],
        type=NotificationType.approval,
        delivery_type=DeliveryType.multicast,
        title="Leave Request Finalized",
        message=f"Leave for {name} ({_span(event)}) has been finalized as approved.",
    )


async def _on_override_rejected(db: AsyncSession, event: LeaveEvent) -> None:
    await _send(
        db, event, [event.employee_id],
        type=NotificationType.alert,
        delivery_type=DeliveryType.unicast,
        title="Leave Request Rejected by HR",
        message=f"Your leave request for {_span(event)} was rejected. Reason: {event.reason}",
    )


async def _on_overridden(db: AsyncSession, event: LeaveEvent) -> None:
    await _send(
        db, event, [event.employee_id],
        type=NotificationType.info,
        delivery_type=DeliveryType.unicast,
        title="Leave Request Status Updated",
        message=(
            f"HR set your leave request for {_span(event)} to "
            f"{event.status.value}. Reason: {event.reason}"
        ),
    )


_HANDLERS: dict[LeaveEventType, Callable[[AsyncSession, LeaveEvent], Awaitable[None]]] = {
    LeaveEventType.submitted: _on_submitted,
    LeaveEventType.modified: _on_modified,
    LeaveEventType.cancelled: _on_cancelled,
    LeaveEventType.approval_flow_set: _on_approval_flow_set,
    LeaveEventType.flow_decided: _on_flow_decided,
    LeaveEventType.finalized: _on_finalized,
    LeaveEventType.override_rejected: _on_override_rejected,
    LeaveEventType.overridden: _on_overridden,
}


# ── Dispatcher ──────────────────────────────────────────────────────

class LeaveNotificationFanout:
    """Deliver leave events as notifications; failures stay local."""

    @staticmethod
    async def dispatch(db: AsyncSession, events: Sequence[LeaveEvent]) -> int:
        """Returns the number of events delivered without error."""
        delivered = 0
        for event in events:
            handler = _HANDLERS.get(event.type)
            if handler is None:
                logger.warning("No notification handler for %s events", event.type.value)
                continue
            try:
                async with db.begin_nested():
                    await handler(db, event)
            except Exception:
                logger.exception(
                    "Notification dispatch failed for %s event on leave request %s",
                    event.type.value, event.request_id,
                )
                continue
            delivered += 1
        return delivered
