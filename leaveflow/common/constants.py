"""Enums and constants for the leave workflow — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Organisation ────────────────────────────────────────────────────

class ContractType(str, enum.Enum):
    full_time = "full_time"
    part_time = "part_time"
    fixed_term = "fixed_term"
    internship = "internship"


class SystemRole(str, enum.Enum):
    department_employee = "department employee"
    department_head = "department head"
    hr_manager = "HR Manager"
    hr_employee = "HR Employee"
    hr_admin = "HR Admin"
    payroll_specialist = "Payroll Specialist"
    payroll_manager = "Payroll Manager"
    system_admin = "System Admin"


PAYROLL_COORDINATOR_ROLES = (
    SystemRole.payroll_specialist,
    SystemRole.payroll_manager,
)


# ── Leave ───────────────────────────────────────────────────────────

class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


OPEN_LEAVE_STATUSES = (LeaveStatus.pending, LeaveStatus.approved)
DECIDED_LEAVE_STATUSES = (LeaveStatus.approved, LeaveStatus.rejected, LeaveStatus.cancelled)


class ApprovalStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


# Approval-flow roles that gate finalization
APPROVAL_ROLE_HR = "hr"
APPROVAL_ROLE_DEPARTMENT_HEAD = "department head"
APPROVAL_ROLE_HR_OVERRIDE = "HR Manager"


class AdjustmentType(str, enum.Enum):
    add = "add"
    deduct = "deduct"
    encashment = "encashment"


class BulkAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"
    finalize = "finalize"
    override_approve = "override_approve"
    override_reject = "override_reject"


# ── Notifications ───────────────────────────────────────────────────

class NotificationType(str, enum.Enum):
    info = "info"
    action_required = "action_required"
    approval = "approval"
    reminder = "reminder"
    alert = "alert"


class DeliveryType(str, enum.Enum):
    unicast = "unicast"
    multicast = "multicast"


LEAVE_MODULE = "leave"


# ── Misc ────────────────────────────────────────────────────────────

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100