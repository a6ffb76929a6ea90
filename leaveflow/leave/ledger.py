"""Entitlement ledger — the remaining / pending / taken counters.

Every leave request's days live in exactly one bucket, chosen by its
status: PENDING in ``pending``, APPROVED in ``taken``, anything terminal
and unapproved back in ``remaining``. Ledger operations are transfers
between buckets on a row locked with ``SELECT ... FOR UPDATE`` and
versioned by the mapper, so two writers cannot both commit a change
computed from the same read.

Moves out of ``pending`` or ``taken`` are applied only when the source
holds at least the moved amount; that guard makes a repeated finalize a
no-op. ``remaining`` may go negative (emergency requests skip the balance
check).

Employees without an entitlement row for a leave type are untracked for
that type: every operation logs and returns ``None``.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.audit import create_audit_entry
from leaveflow.common.constants import LeaveStatus
from leaveflow.leave.models import LeaveEntitlement

logger = logging.getLogger(__name__)

REMAINING = "remaining"
PENDING = "pending"
TAKEN = "taken"

STATUS_BUCKET = {
    LeaveStatus.pending: PENDING,
    LeaveStatus.approved: TAKEN,
    LeaveStatus.rejected: REMAINING,
    LeaveStatus.cancelled: REMAINING,
}

_GUARDED_BUCKETS = (PENDING, TAKEN)


def _snapshot(ent: LeaveEntitlement) -> dict[str, str]:
    return {
        REMAINING: str(ent.remaining),
        PENDING: str(ent.pending),
        TAKEN: str(ent.taken),
    }


class EntitlementLedger:
    """Bucket transfers on ``LeaveEntitlement`` rows."""

    @staticmethod
    async def fetch(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> Optional[LeaveEntitlement]:
        query = select(LeaveEntitlement).where(
            LeaveEntitlement.employee_id == employee_id,
            LeaveEntitlement.leave_type_id == leave_type_id,
        )
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalars().first()

    @staticmethod
    async def transfer(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        *,
        source: str,
        target: str,
        amount: Decimal,
        action: str,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Optional[LeaveEntitlement]:
        """Move *amount* days from bucket *source* to bucket *target*."""
        ent = await EntitlementLedger.fetch(
            db, employee_id, leave_type_id, for_update=True,
        )
        if ent is None:
            logger.info(
                "No entitlement for employee %s / leave type %s; %s not tracked",
                employee_id, leave_type_id, action,
            )
            return None
        if source == target or amount == 0:
            return ent

        available = getattr(ent, source)
        if source in _GUARDED_BUCKETS and available < amount:
            logger.info(
                "Skipping %s on entitlement %s: %s holds %s, need %s",
                action, ent.id, source, available, amount,
            )
            return ent

        before = _snapshot(ent)
        setattr(ent, source, available - amount)
        setattr(ent, target, getattr(ent, target) + amount)
        ent.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action=action,
            entity_type="leave_entitlement",
            entity_id=ent.id,
            actor_id=actor_id,
            old_values=before,
            new_values=_snapshot(ent),
        )
        return ent

    # ── Lifecycle hooks ─────────────────────────────────────────────

    @staticmethod
    async def on_submit(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        duration: Decimal,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Optional[LeaveEntitlement]:
        """Reserve *duration*: remaining → pending."""
        return await EntitlementLedger.transfer(
            db, employee_id, leave_type_id,
            source=REMAINING, target=PENDING, amount=duration,
            action="ledger_submit", actor_id=actor_id,
        )

    @staticmethod
    async def on_modify(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        old_duration: Decimal,
        new_duration: Decimal,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Optional[LeaveEntitlement]:
        """Re-size a reservation with one net delta on one row."""
        ent = await EntitlementLedger.fetch(
            db, employee_id, leave_type_id, for_update=True,
        )
        if ent is None:
            logger.info(
                "No entitlement for employee %s / leave type %s; modify not tracked",
                employee_id, leave_type_id,
            )
            return None
        delta = new_duration - old_duration
        if delta == 0:
            return ent

        before = _snapshot(ent)
        ent.remaining -= delta
        ent.pending += delta
        ent.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action="ledger_modify",
            entity_type="leave_entitlement",
            entity_id=ent.id,
            actor_id=actor_id,
            old_values=before,
            new_values=_snapshot(ent),
        )
        return ent

    @staticmethod
    async def on_cancel(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        duration: Decimal,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Optional[LeaveEntitlement]:
        """Release a reservation: pending → remaining."""
        return await EntitlementLedger.transfer(
            db, employee_id, leave_type_id,
            source=PENDING, target=REMAINING, amount=duration,
            action="ledger_cancel", actor_id=actor_id,
        )

    @staticmethod
    async def on_finalize(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        duration: Decimal,
        outcome: LeaveStatus,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Optional[LeaveEntitlement]:
        """Settle a reservation: pending → taken, or pending → remaining."""
        target = TAKEN if outcome == LeaveStatus.approved else REMAINING
        return await EntitlementLedger.transfer(
            db, employee_id, leave_type_id,
            source=PENDING, target=target, amount=duration,
            action=f"ledger_finalize_{outcome.value}", actor_id=actor_id,
        )

    @staticmethod
    async def on_status_change(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type_id: uuid.UUID,
        duration: Decimal,
        old_status: LeaveStatus,
        new_status: LeaveStatus,
        *,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Optional[LeaveEntitlement]:
        """Move a request's days to the bucket its new status belongs in."""
        return await EntitlementLedger.transfer(
            db, employee_id, leave_type_id,
            source=STATUS_BUCKET[old_status],
            target=STATUS_BUCKET[new_status],
            amount=duration,
            action=f"ledger_override_{new_status.value}",
            actor_id=actor_id,
        )

    @staticmethod
    async def adjust_remaining(
        db: AsyncSession,
        ent: LeaveEntitlement,
        delta: Decimal,
    ) -> LeaveEntitlement:
        """Out-of-band change to ``remaining``; *ent* must be locked by the caller."""
        ent.remaining += delta
        ent.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return ent
