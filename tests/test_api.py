"""HTTP surface — routing, status codes and RFC 7807 error bodies."""

from __future__ import annotations

import uuid
from decimal import Decimal

from httpx import AsyncClient

from tests.conftest import future

API = "/api/v1/leave"


def _submit_body(world, **overrides) -> dict:
    body = {
        "employee_id": str(world.employee.id),
        "leave_type_id": str(world.annual.id),
        "from_date": future(20).isoformat(),
        "to_date": future(22).isoformat(),
        "duration_days": "3",
        "justification": "Family trip",
    }
    body.update(overrides)
    return body


async def _submit(client: AsyncClient, world, **overrides) -> dict:
    resp = await client.post(f"{API}/requests", json=_submit_body(world, **overrides))
    assert resp.status_code == 201, resp.text
    return resp.json()


class TestHealth:

    async def test_health(self, client: AsyncClient):
        resp = await client.get("/api/v1/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "healthy"


class TestLeaveEndpoints:

    async def test_full_approval_round_trip(self, client: AsyncClient, committed_world):
        world = committed_world
        created = await _submit(client, world)
        request_id = created["id"]
        assert created["status"] == "pending"

        resp = await client.put(
            f"{API}/requests/{request_id}/approval-flow",
            json={"roles": ["hr", "department head"]},
        )
        assert resp.status_code == 200
        assert [e["role"] for e in resp.json()["approval_flow"]] == ["hr", "department head"]

        for role, actor in (("hr", world.hr), ("department head", world.head)):
            resp = await client.post(
                f"{API}/requests/{request_id}/approve",
                json={"role": role, "decided_by": str(actor.id)},
            )
            assert resp.status_code == 200
            assert resp.json()["status"] == "pending"

        resp = await client.post(
            f"{API}/requests/{request_id}/finalize",
            json={"hr_user_id": str(world.hr.id)},
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "approved"

        resp = await client.get(
            f"{API}/employees/{world.employee.id}/entitlements/{world.annual.id}",
        )
        body = resp.json()
        assert Decimal(body["remaining"]) == Decimal("7")
        assert Decimal(body["pending"]) == Decimal("0")
        assert Decimal(body["taken"]) == Decimal("3")

    async def test_get_request_enriched(self, client: AsyncClient, committed_world):
        created = await _submit(client, committed_world)

        resp = await client.get(f"{API}/requests/{created['id']}")

        assert resp.status_code == 200
        assert resp.json()["employee"]["employee_code"] == "EMP001"
        assert resp.json()["leave_type"]["code"] == "AL"

    async def test_rule_violation_is_problem_detail(self, client: AsyncClient, committed_world):
        resp = await client.post(
            f"{API}/requests",
            json=_submit_body(committed_world, to_date=future(31).isoformat(), duration_days="12"),
        )

        assert resp.status_code == 400
        assert resp.headers["content-type"].startswith("application/problem+json")
        body = resp.json()
        assert body["errors"]["code"] == "insufficient-balance"
        assert body["instance"] == f"{API}/requests"

    async def test_rejected_submit_commits_nothing(self, client: AsyncClient, committed_world):
        await client.post(
            f"{API}/requests",
            json=_submit_body(committed_world, to_date=future(31).isoformat(), duration_days="12"),
        )

        resp = await client.get(f"{API}/employees/{committed_world.employee.id}/requests")
        assert resp.json() == []

    async def test_unknown_fields_rejected(self, client: AsyncClient, committed_world):
        resp = await client.post(
            f"{API}/requests", json=_submit_body(committed_world, status="approved"),
        )
        assert resp.status_code == 422

    async def test_inverted_dates_rejected(self, client: AsyncClient, committed_world):
        resp = await client.post(
            f"{API}/requests",
            json=_submit_body(
                committed_world,
                from_date=future(25).isoformat(),
                to_date=future(20).isoformat(),
            ),
        )
        assert resp.status_code == 422

    async def test_missing_request_is_404(self, client: AsyncClient, committed_world):
        resp = await client.get(f"{API}/requests/{uuid.uuid4()}")
        assert resp.status_code == 404
        assert resp.json()["title"] == "LeaveRequest Not Found"

    async def test_modify_and_cancel(self, client: AsyncClient, committed_world):
        created = await _submit(client, committed_world)

        resp = await client.patch(
            f"{API}/requests/{created['id']}",
            json={"to_date": future(20).isoformat(), "duration_days": "1"},
        )
        assert resp.status_code == 200
        assert Decimal(resp.json()["duration_days"]) == Decimal("1")

        resp = await client.post(f"{API}/requests/{created['id']}/cancel")
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"

        resp = await client.post(f"{API}/requests/{created['id']}/cancel")
        assert resp.status_code == 400
        assert resp.json()["errors"]["code"] == "invalid-state"

    async def test_null_patch_fields_rejected(self, client: AsyncClient, committed_world):
        created = await _submit(client, committed_world)

        for field in ("from_date", "to_date", "duration_days", "is_emergency"):
            resp = await client.patch(f"{API}/requests/{created['id']}", json={field: None})
            assert resp.status_code == 422, field

        resp = await client.get(f"{API}/requests/{created['id']}")
        assert resp.json()["from_date"] == created["from_date"]

    async def test_post_leave_and_history(self, client: AsyncClient, committed_world):
        world = committed_world
        resp = await client.post(
            f"{API}/requests/post-leave",
            json={
                "employee_id": str(world.employee.id),
                "leave_type_id": str(world.annual.id),
                "from_date": future(-2).isoformat(),
                "to_date": future(-1).isoformat(),
            },
        )
        assert resp.status_code == 201, resp.text
        request_id = resp.json()["id"]
        assert Decimal(resp.json()["duration_days"]) == Decimal("2")

        resp = await client.get(f"{API}/employees/{world.employee.id}/history")
        assert resp.json() == []

        await client.post(f"{API}/requests/{request_id}/cancel")
        resp = await client.get(
            f"{API}/employees/{world.employee.id}/history", params={"status": "cancelled"},
        )
        assert [r["id"] for r in resp.json()] == [request_id]

    async def test_post_leave_future_dates(self, client: AsyncClient, committed_world):
        resp = await client.post(
            f"{API}/requests/post-leave",
            json={
                "employee_id": str(committed_world.employee.id),
                "leave_type_id": str(committed_world.annual.id),
                "from_date": future(1).isoformat(),
                "to_date": future(2).isoformat(),
            },
        )
        assert resp.status_code == 400
        assert resp.json()["errors"]["code"] == "post-leave-future-date"

    async def test_bulk(self, client: AsyncClient, committed_world):
        created = await _submit(client, committed_world)

        resp = await client.post(
            f"{API}/requests/bulk",
            json={
                "request_ids": [created["id"], str(uuid.uuid4())],
                "action": "override_approve",
                "hr_user_id": str(committed_world.hr.id),
                "reason": "Approved offline",
            },
        )

        assert resp.status_code == 200
        assert resp.json() == {"processed": 1, "failed": 1}

    async def test_hr_listing_paginates(self, client: AsyncClient, committed_world):
        await _submit(client, committed_world)
        await _submit(
            client, committed_world,
            from_date=future(40).isoformat(), to_date=future(40).isoformat(), duration_days="1",
        )

        resp = await client.get(f"{API}/requests", params={"page_size": 1, "status": "pending"})

        body = resp.json()
        assert len(body["data"]) == 1
        assert body["meta"]["total"] == 2
        assert body["meta"]["has_next"] is True

    async def test_team_views(self, client: AsyncClient, committed_world):
        await _submit(client, committed_world)

        resp = await client.get(f"{API}/managers/{committed_world.head.id}/team-requests")
        assert len(resp.json()) == 1

        resp = await client.get(f"{API}/managers/{committed_world.head.id}/team-balances")
        [member] = resp.json()
        assert member["employee"]["id"] == str(committed_world.employee.id)
        assert len(member["upcoming_leaves"]) == 1

    async def test_manual_adjustment(self, client: AsyncClient, committed_world):
        resp = await client.post(
            f"{API}/entitlements/adjustments",
            json={
                "employee_id": str(committed_world.employee.id),
                "leave_type_id": str(committed_world.annual.id),
                "adjustment_type": "add",
                "amount": "1.5",
                "reason": "Worked a public holiday",
                "hr_user_id": str(committed_world.hr.id),
            },
        )
        assert resp.status_code == 201

        resp = await client.get(f"{API}/employees/{committed_world.employee.id}/entitlements")
        assert Decimal(resp.json()[0]["remaining"]) == Decimal("11.5")

        resp = await client.get(f"{API}/employees/{committed_world.employee.id}/adjustments")
        [adjustment] = resp.json()
        assert adjustment["adjustment_type"] == "add"
        assert Decimal(adjustment["amount"]) == Decimal("1.5")

    async def test_payroll_readiness_month_validated(self, client: AsyncClient, committed_world):
        resp = await client.get(
            f"{API}/employees/{committed_world.employee.id}/payroll-readiness",
            params={"year": 2026, "month": 13},
        )
        assert resp.status_code == 422


class TestNotificationEndpoints:

    async def test_list_and_mark_read(self, client: AsyncClient, committed_world):
        await _submit(client, committed_world)

        resp = await client.get(
            f"/api/v1/notifications/recipients/{committed_world.head.id}",
            params={"is_read": False},
        )
        body = resp.json()
        assert body["meta"]["total"] == 1
        notification_id = body["data"][0]["id"]

        resp = await client.put(f"/api/v1/notifications/{notification_id}/read")
        assert resp.status_code == 200
        assert resp.json()["data"]["is_read"] is True

    async def test_mark_read_unknown(self, client: AsyncClient, committed_world):
        resp = await client.put(f"/api/v1/notifications/{uuid.uuid4()}/read")
        assert resp.status_code == 404
