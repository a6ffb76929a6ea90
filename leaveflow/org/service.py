"""Employee profile lookups used by the leave workflow."""

from __future__ import annotations

import uuid
from collections import defaultdict
from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leaveflow.common.constants import SystemRole
from leaveflow.common.exceptions import NotFoundException
from leaveflow.org.models import Employee, RoleAssignment
from leaveflow.org.schemas import EmployeeProfile


class EmployeeProfileService:
    """Read-only access to employees, their roles and reporting lines."""

    @staticmethod
    async def get_profile(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> EmployeeProfile:
        """Return the active employee's profile with assigned system roles."""
        result = await db.execute(
            select(Employee).where(
                Employee.id == employee_id,
                Employee.is_active.is_(True),
            )
        )
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))

        roles = await EmployeeProfileService.get_system_roles(db, [employee_id])
        profile = EmployeeProfile.model_validate(employee)
        profile.system_roles = sorted(roles.get(employee_id, set()))
        return profile

    @staticmethod
    async def get_system_roles(
        db: AsyncSession,
        employee_ids: Iterable[uuid.UUID],
    ) -> dict[uuid.UUID, set[str]]:
        """Map each employee id to the values of its active system roles."""
        ids = list(employee_ids)
        if not ids:
            return {}
        result = await db.execute(
            select(RoleAssignment.employee_id, RoleAssignment.role).where(
                RoleAssignment.employee_id.in_(ids),
                RoleAssignment.is_active.is_(True),
            )
        )
        roles: dict[uuid.UUID, set[str]] = defaultdict(set)
        for employee_id, role in result.all():
            roles[employee_id].add(role.value)
        return dict(roles)

    @staticmethod
    async def get_team_profiles(
        db: AsyncSession,
        manager_id: uuid.UUID,
    ) -> list[Employee]:
        """Active direct reports of *manager_id*."""
        result = await db.execute(
            select(Employee)
            .where(
                Employee.reporting_manager_id == manager_id,
                Employee.is_active.is_(True),
            )
            .order_by(Employee.first_name, Employee.last_name)
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_manager_for_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
    ) -> Optional[Employee]:
        """Direct reporting manager, if one is recorded and still active."""
        manager_id = (
            await db.execute(
                select(Employee.reporting_manager_id).where(Employee.id == employee_id)
            )
        ).scalar()
        if manager_id is None or manager_id == employee_id:
            return None
        result = await db.execute(
            select(Employee).where(
                Employee.id == manager_id,
                Employee.is_active.is_(True),
            )
        )
        return result.scalars().first()

    @staticmethod
    async def find_by_primary_position(
        db: AsyncSession,
        position_id: uuid.UUID,
        *,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> Optional[Employee]:
        """Current active occupant of a position (indexed lookup)."""
        query = select(Employee).where(
            Employee.primary_position_id == position_id,
            Employee.is_active.is_(True),
        )
        if exclude_id is not None:
            query = query.where(Employee.id != exclude_id)
        result = await db.execute(query.order_by(Employee.employee_code).limit(1))
        return result.scalars().first()

    @staticmethod
    async def find_ids_by_roles(
        db: AsyncSession,
        roles: Sequence[SystemRole],
    ) -> list[uuid.UUID]:
        """Ids of active employees holding any of *roles*."""
        result = await db.execute(
            select(RoleAssignment.employee_id)
            .join(Employee, Employee.id == RoleAssignment.employee_id)
            .where(
                RoleAssignment.role.in_(list(roles)),
                RoleAssignment.is_active.is_(True),
                Employee.is_active.is_(True),
            )
            .distinct()
        )
        return [row[0] for row in result.all()]
