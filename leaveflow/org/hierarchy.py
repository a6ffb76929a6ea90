"""Manager resolution over the reporting hierarchy.

A manager is the employee's recorded reporting manager or, failing that,
whoever currently occupies the employee's supervisor position. Walking
upwards is capped by ``MANAGER_CHAIN_MAX_HOPS`` and tracks visited ids,
so cyclic reporting lines terminate.
"""

from __future__ import annotations

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.config import settings
from leaveflow.org.models import Employee
from leaveflow.org.service import EmployeeProfileService


class ManagerResolutionService:

    @staticmethod
    async def resolve_manager(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> Optional[Employee]:
        manager = await EmployeeProfileService.get_manager_for_employee(db, employee_id)
        if manager is not None:
            return manager

        supervisor_position_id = (
            await db.execute(
                select(Employee.supervisor_position_id).where(Employee.id == employee_id)
            )
        ).scalar()
        if supervisor_position_id is None:
            return None
        return await EmployeeProfileService.find_by_primary_position(
            db, supervisor_position_id, exclude_id=employee_id,
        )

    @staticmethod
    async def resolve_chain_above(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        max_hops: Optional[int] = None,
    ) -> list[uuid.UUID]:
        """Ordered ancestor ids, nearest manager first."""
        hops = max_hops if max_hops is not None else settings.MANAGER_CHAIN_MAX_HOPS
        visited = {employee_id}
        chain: list[uuid.UUID] = []
        current = employee_id

        for _ in range(hops):
            manager = await ManagerResolutionService.resolve_manager(db, current)
            if manager is None or manager.id in visited:
                break
            chain.append(manager.id)
            visited.add(manager.id)
            current = manager.id

        return chain
