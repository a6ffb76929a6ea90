"""Policy and eligibility evaluation for leave-request drafts.

Pure decision logic: the caller loads the leave type, policy, employee
profile, blocked periods, the employee's open requests and the
entitlement, and this module decides. Checks run in a fixed order and
stop at the first failure:

 1. leave type exists            7. contract-type allow-list
 2. policy configured            8. position/role allow-list
 3. attachment when required     9. calendar blackout
 4. maximum duration            10. overlap with own open requests
 5. minimum notice              11. remaining balance
 6. tenure
"""

from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional

from leaveflow.common.constants import OPEN_LEAVE_STATUSES
from leaveflow.common.exceptions import BadRequestException, NotFoundException
from leaveflow.org.schemas import EmployeeProfile


class RejectionCode(str, enum.Enum):
    policy_missing = "leave-type-policy-missing"
    attachment_required = "attachment-required"
    max_duration_exceeded = "max-duration-exceeded"
    insufficient_notice = "insufficient-notice"
    tenure_not_met = "tenure-not-met"
    tenure_unknown = "tenure-unknown"
    contract_type_not_allowed = "contract-type-not-allowed"
    position_not_allowed = "position-not-allowed"
    blackout_period = "blackout-period"
    overlapping_request = "overlapping-request"
    insufficient_balance = "insufficient-balance"


@dataclass(frozen=True)
class LeaveDraft:
    """A request as it would look after submission or modification."""

    employee_id: uuid.UUID
    leave_type_id: uuid.UUID
    from_date: date
    to_date: date
    duration_days: Decimal
    has_attachment: bool = False
    is_emergency: bool = False
    # Set when re-validating an existing request
    request_id: Optional[uuid.UUID] = None
    reserved_days: Decimal = Decimal("0")


@dataclass(frozen=True)
class Verdict:
    ok: bool
    code: Optional[RejectionCode] = None
    reason: Optional[str] = None


ACCEPTED = Verdict(ok=True)


def _reject(code: RejectionCode, reason: str) -> Verdict:
    return Verdict(ok=False, code=code, reason=reason)


def ranges_overlap(a_from: date, a_to: date, b_from: date, b_to: date) -> bool:
    """Inclusive date ranges share at least one day."""
    return a_from <= b_to and a_to >= b_from


def tenure_in_months(date_of_hire: date, today: date) -> int:
    """Whole months served; a month counts once its day-of-month is reached."""
    months = (today.year - date_of_hire.year) * 12 + (today.month - date_of_hire.month)
    if today.day < date_of_hire.day:
        months -= 1
    return max(months, 0)


def _as_values(items: Optional[Iterable[Any]]) -> set[str]:
    return {getattr(item, "value", item) for item in items or ()}


def evaluate(
    draft: LeaveDraft,
    *,
    leave_type: Any,
    policy: Any,
    profile: EmployeeProfile,
    blocked_periods: Iterable[Any] = (),
    existing_requests: Iterable[Any] = (),
    entitlement: Any = None,
    today: Optional[date] = None,
) -> Verdict:
    """Run every check in order and return the first failure, if any.

    A missing leave type raises ``NotFoundException``; every other
    failure is reported as a rejected ``Verdict``.
    """
    today = today or datetime.now(timezone.utc).date()

    if leave_type is None:
        raise NotFoundException("LeaveType", str(draft.leave_type_id))

    if policy is None:
        return _reject(
            RejectionCode.policy_missing,
            f"No leave policy is configured for {leave_type.name}.",
        )

    if leave_type.requires_attachment and not draft.has_attachment:
        return _reject(
            RejectionCode.attachment_required,
            f"{leave_type.name} requires a supporting document.",
        )

    if (
        leave_type.max_duration_days is not None
        and draft.duration_days > leave_type.max_duration_days
    ):
        return _reject(
            RejectionCode.max_duration_exceeded,
            f"{leave_type.name} allows at most {leave_type.max_duration_days} day(s) "
            f"per request.",
        )

    if not draft.is_emergency and policy.min_notice_days:
        notice = (draft.from_date - today).days
        if notice < policy.min_notice_days:
            return _reject(
                RejectionCode.insufficient_notice,
                f"{leave_type.name} requires at least {policy.min_notice_days} "
                f"day(s) notice.",
            )

    if policy.min_tenure_months is not None:
        if profile.date_of_hire is None:
            return _reject(
                RejectionCode.tenure_unknown,
                "Tenure cannot be determined without a date of hire.",
            )
        tenure = tenure_in_months(profile.date_of_hire, today)
        if tenure < policy.min_tenure_months:
            return _reject(
                RejectionCode.tenure_not_met,
                f"Requires {policy.min_tenure_months} month(s) of tenure; "
                f"employee has {tenure}.",
            )

    allowed_contracts = _as_values(policy.contract_types_allowed)
    if allowed_contracts:
        contract = getattr(profile.contract_type, "value", profile.contract_type)
        if contract not in allowed_contracts:
            return _reject(
                RejectionCode.contract_type_not_allowed,
                f"Contract type '{contract}' is not eligible for {leave_type.name}.",
            )

    allowed_positions = _as_values(policy.positions_allowed)
    if allowed_positions and not allowed_positions & set(profile.system_roles):
        return _reject(
            RejectionCode.position_not_allowed,
            f"None of the employee's roles are eligible for {leave_type.name}.",
        )

    for period in blocked_periods:
        if ranges_overlap(draft.from_date, draft.to_date, period.from_date, period.to_date):
            return _reject(
                RejectionCode.blackout_period,
                f"Leave is blocked between {period.from_date} and {period.to_date}.",
            )

    for other in existing_requests:
        if draft.request_id is not None and other.id == draft.request_id:
            continue
        if other.employee_id != draft.employee_id or other.status not in OPEN_LEAVE_STATUSES:
            continue
        if ranges_overlap(draft.from_date, draft.to_date, other.from_date, other.to_date):
            return _reject(
                RejectionCode.overlapping_request,
                f"Dates overlap an existing {other.status.value} request "
                f"({other.from_date} to {other.to_date}).",
            )

    if not draft.is_emergency and entitlement is not None:
        available = entitlement.remaining + draft.reserved_days
        if available < draft.duration_days:
            return _reject(
                RejectionCode.insufficient_balance,
                f"Insufficient balance: {available} day(s) available, "
                f"{draft.duration_days} requested.",
            )

    return ACCEPTED


def check(draft: LeaveDraft, **context: Any) -> tuple[bool, Optional[str]]:
    """``(ok, reason)`` form of :func:`evaluate`."""
    verdict = evaluate(draft, **context)
    return verdict.ok, verdict.reason


def validate(draft: LeaveDraft, **context: Any) -> None:
    """Raise ``BadRequestException`` carrying the first failed rule."""
    verdict = evaluate(draft, **context)
    if not verdict.ok:
        raise BadRequestException(verdict.reason, code=verdict.code.value)
