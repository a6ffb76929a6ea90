"""Eligibility evaluator — pure rule tests, no database."""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from leaveflow.common.constants import ContractType, LeaveStatus
from leaveflow.common.exceptions import BadRequestException, NotFoundException
from leaveflow.leave.validation import (
    LeaveDraft,
    RejectionCode,
    check,
    evaluate,
    ranges_overlap,
    tenure_in_months,
    validate,
)
from leaveflow.org.schemas import EmployeeProfile

TODAY = date(2026, 3, 2)
EMPLOYEE_ID = uuid.uuid4()
LEAVE_TYPE_ID = uuid.uuid4()


def _leave_type(**overrides) -> SimpleNamespace:
    data = dict(
        id=LEAVE_TYPE_ID,
        name="Annual Leave",
        requires_attachment=False,
        max_duration_days=Decimal("15"),
    )
    data.update(overrides)
    return SimpleNamespace(**data)


def _policy(**overrides) -> SimpleNamespace:
    data = dict(
        min_notice_days=0,
        min_tenure_months=None,
        contract_types_allowed=None,
        positions_allowed=None,
    )
    data.update(overrides)
    return SimpleNamespace(**data)


def _profile(**overrides) -> EmployeeProfile:
    data = dict(
        id=EMPLOYEE_ID,
        employee_code="EMP001",
        full_name="Eli Test",
        date_of_hire=date(2024, 1, 15),
        contract_type=ContractType.full_time,
        system_roles=["department employee"],
    )
    data.update(overrides)
    return EmployeeProfile(**data)


def _draft(**overrides) -> LeaveDraft:
    data = dict(
        employee_id=EMPLOYEE_ID,
        leave_type_id=LEAVE_TYPE_ID,
        from_date=date(2026, 3, 16),
        to_date=date(2026, 3, 18),
        duration_days=Decimal("3"),
    )
    data.update(overrides)
    return LeaveDraft(**data)


def _evaluate(draft=None, **context):
    context.setdefault("leave_type", _leave_type())
    context.setdefault("policy", _policy())
    context.setdefault("profile", _profile())
    context.setdefault("today", TODAY)
    return evaluate(draft or _draft(), **context)


# ═════════════════════════════════════════════════════════════════════
# Helpers
# ═════════════════════════════════════════════════════════════════════


class TestRangesOverlap:

    def test_shared_boundary_day_overlaps(self):
        assert ranges_overlap(date(2026, 3, 1), date(2026, 3, 5), date(2026, 3, 5), date(2026, 3, 9))

    def test_adjacent_ranges_do_not_overlap(self):
        assert not ranges_overlap(
            date(2026, 3, 1), date(2026, 3, 4), date(2026, 3, 5), date(2026, 3, 9),
        )

    def test_contained_range_overlaps(self):
        assert ranges_overlap(date(2026, 3, 1), date(2026, 3, 31), date(2026, 3, 10), date(2026, 3, 11))


class TestTenureInMonths:

    def test_partial_month_not_counted(self):
        assert tenure_in_months(date(2025, 3, 15), date(2026, 3, 14)) == 11

    def test_full_months(self):
        assert tenure_in_months(date(2025, 3, 15), date(2026, 3, 15)) == 12

    def test_future_hire_floors_at_zero(self):
        assert tenure_in_months(date(2026, 6, 1), TODAY) == 0


# ═════════════════════════════════════════════════════════════════════
# Rules
# ═════════════════════════════════════════════════════════════════════


class TestEvaluate:

    def test_clean_request_accepted(self):
        verdict = _evaluate()
        assert verdict.ok
        assert verdict.code is None

    def test_missing_leave_type_raises_not_found(self):
        with pytest.raises(NotFoundException):
            _evaluate(leave_type=None)

    def test_missing_policy(self):
        verdict = _evaluate(policy=None)
        assert verdict.code == RejectionCode.policy_missing

    def test_attachment_required(self):
        verdict = _evaluate(leave_type=_leave_type(requires_attachment=True))
        assert verdict.code == RejectionCode.attachment_required

    def test_attachment_present_satisfies_requirement(self):
        verdict = _evaluate(
            _draft(has_attachment=True),
            leave_type=_leave_type(requires_attachment=True),
        )
        assert verdict.ok

    def test_max_duration_exceeded(self):
        verdict = _evaluate(_draft(duration_days=Decimal("16")))
        assert verdict.code == RejectionCode.max_duration_exceeded

    def test_insufficient_notice(self):
        verdict = _evaluate(
            _draft(from_date=date(2026, 3, 5), to_date=date(2026, 3, 5), duration_days=Decimal("1")),
            policy=_policy(min_notice_days=7),
        )
        assert verdict.code == RejectionCode.insufficient_notice

    def test_emergency_skips_notice(self):
        verdict = _evaluate(
            _draft(from_date=date(2026, 3, 3), to_date=date(2026, 3, 3),
                   duration_days=Decimal("1"), is_emergency=True),
            policy=_policy(min_notice_days=7),
        )
        assert verdict.ok

    def test_tenure_not_met(self):
        verdict = _evaluate(
            profile=_profile(date_of_hire=date(2025, 12, 1)),
            policy=_policy(min_tenure_months=6),
        )
        assert verdict.code == RejectionCode.tenure_not_met

    def test_tenure_unknown_without_hire_date(self):
        verdict = _evaluate(
            profile=_profile(date_of_hire=None),
            policy=_policy(min_tenure_months=6),
        )
        assert verdict.code == RejectionCode.tenure_unknown

    def test_contract_type_not_allowed(self):
        verdict = _evaluate(
            profile=_profile(contract_type=ContractType.internship),
            policy=_policy(contract_types_allowed=["full_time", "part_time"]),
        )
        assert verdict.code == RejectionCode.contract_type_not_allowed

    def test_position_not_allowed(self):
        verdict = _evaluate(policy=_policy(positions_allowed=["department head"]))
        assert verdict.code == RejectionCode.position_not_allowed

    def test_position_allowed_when_any_role_matches(self):
        verdict = _evaluate(
            profile=_profile(system_roles=["department employee", "HR Employee"]),
            policy=_policy(positions_allowed=["HR Employee"]),
        )
        assert verdict.ok

    def test_blackout_period(self):
        blocked = SimpleNamespace(from_date=date(2026, 3, 18), to_date=date(2026, 3, 20))
        verdict = _evaluate(blocked_periods=[blocked])
        assert verdict.code == RejectionCode.blackout_period

    def test_overlap_with_open_request(self):
        other = SimpleNamespace(
            id=uuid.uuid4(),
            employee_id=EMPLOYEE_ID,
            status=LeaveStatus.approved,
            from_date=date(2026, 3, 18),
            to_date=date(2026, 3, 19),
        )
        verdict = _evaluate(existing_requests=[other])
        assert verdict.code == RejectionCode.overlapping_request

    def test_overlap_ignores_cancelled_and_self(self):
        request_id = uuid.uuid4()
        cancelled = SimpleNamespace(
            id=uuid.uuid4(), employee_id=EMPLOYEE_ID, status=LeaveStatus.cancelled,
            from_date=date(2026, 3, 16), to_date=date(2026, 3, 18),
        )
        same = SimpleNamespace(
            id=request_id, employee_id=EMPLOYEE_ID, status=LeaveStatus.pending,
            from_date=date(2026, 3, 16), to_date=date(2026, 3, 18),
        )
        verdict = _evaluate(_draft(request_id=request_id), existing_requests=[cancelled, same])
        assert verdict.ok

    def test_insufficient_balance(self):
        entitlement = SimpleNamespace(remaining=Decimal("2"))
        verdict = _evaluate(entitlement=entitlement)
        assert verdict.code == RejectionCode.insufficient_balance

    def test_balance_counts_own_reservation_on_modify(self):
        entitlement = SimpleNamespace(remaining=Decimal("1"))
        verdict = _evaluate(
            _draft(duration_days=Decimal("3"), reserved_days=Decimal("2")),
            entitlement=entitlement,
        )
        assert verdict.ok

    def test_emergency_skips_balance(self):
        entitlement = SimpleNamespace(remaining=Decimal("0"))
        verdict = _evaluate(_draft(is_emergency=True), entitlement=entitlement)
        assert verdict.ok

    def test_first_failure_wins(self):
        """Policy check runs before the attachment check."""
        verdict = _evaluate(
            policy=None, leave_type=_leave_type(requires_attachment=True),
        )
        assert verdict.code == RejectionCode.policy_missing


class TestValidateAndCheck:

    def test_check_returns_reason(self):
        ok, reason = check(
            _draft(), leave_type=_leave_type(), policy=None, profile=_profile(), today=TODAY,
        )
        assert ok is False
        assert "No leave policy" in reason

    def test_validate_raises_with_code(self):
        with pytest.raises(BadRequestException) as exc_info:
            validate(
                _draft(duration_days=Decimal("20")),
                leave_type=_leave_type(), policy=_policy(), profile=_profile(), today=TODAY,
            )
        assert exc_info.value.code == "max-duration-exceeded"
