"""Organisation Pydantic schemas consumed by the leave workflow."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict

from leaveflow.common.constants import ContractType


class EmployeeBrief(BaseModel):
    """Minimal employee info embedded in leave responses."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    full_name: str
    designation: Optional[str] = None


class EmployeeProfile(BaseModel):
    """Everything the eligibility checks need to know about an employee."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_code: str
    full_name: str
    date_of_hire: Optional[date] = None
    contract_type: Optional[ContractType] = None
    reporting_manager_id: Optional[uuid.UUID] = None
    primary_position_id: Optional[uuid.UUID] = None
    supervisor_position_id: Optional[uuid.UUID] = None
    system_roles: list[str] = []
