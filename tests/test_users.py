"""
User-management API tests.

Run with: PYTHONPATH=. pytest tests/test_users.py -v
"""

import pytest
from sqlalchemy import select

from helpdesk.apps.auth.models import User
from helpdesk.apps.tickets.models import Ticket, TicketComment
from helpdesk.apps.tickets.services import load_ticket

pytestmark = pytest.mark.asyncio

USERS = "/api/v1/users"


async def test_it_staff_always_creates_employees(client, make_user, headers_for, notifier):
    staff = await make_user("it_staff")
    response = await client.post(
        USERS,
        json={"name": "Hire", "email": "hire@example.com", "role": "manager", "department": "  Sales "},
        headers=headers_for(staff),
    )
    assert response.status_code == 201
    data = response.json()["data"]
    assert data["user"]["role"] == "employee"
    assert data["user"]["is_verified"] is True
    assert data["user"]["must_change_password"] is True
    assert data["user"]["created_by"] == staff.id
    assert data["user"]["department"] == "Sales"
    assert data["temporary_password"]

    response = await client.post(
        "/api/v1/auth/login",
        json={"email": "hire@example.com", "password": data["temporary_password"]},
    )
    assert response.status_code == 200

    await notifier.drain()
    assert notifier.to("Your helpdesk account") == [["hire@example.com"]]


async def test_manager_creates_any_role(client, make_user, headers_for):
    manager = await make_user("manager")
    response = await client.post(
        USERS,
        json={"name": "Tech", "email": "tech@example.com", "role": "it_staff", "password": "chosen1"},
        headers=headers_for(manager),
    )
    assert response.json()["data"]["user"]["role"] == "it_staff"

    response = await client.post(
        USERS, json={"name": "Dup", "email": "tech@example.com"}, headers=headers_for(manager)
    )
    assert response.status_code == 409


async def test_employee_cannot_manage_users(client, make_user, headers_for):
    employee = await make_user("employee")
    other = await make_user("employee")
    h = headers_for(employee)

    assert (await client.get(USERS, headers=h)).status_code == 403
    assert (await client.post(USERS, json={"name": "x", "email": "x@example.com"}, headers=h)).status_code == 403
    assert (await client.put(f"{USERS}/{other.id}/status", json={"is_verified": False}, headers=h)).status_code == 403
    assert (await client.delete(f"{USERS}/{other.id}", headers=h)).status_code == 403


async def test_role_change_rules(client, make_user, headers_for):
    manager = await make_user("manager")
    staff = await make_user("it_staff")
    employee = await make_user("employee")

    response = await client.put(f"{USERS}/{manager.id}/role", json={"role": "employee"}, headers=headers_for(manager))
    assert response.status_code == 403

    response = await client.put(f"{USERS}/{employee.id}/role", json={"role": "manager"}, headers=headers_for(staff))
    assert response.status_code == 403

    response = await client.put(f"{USERS}/{employee.id}/role", json={"role": "admin"}, headers=headers_for(manager))
    assert response.status_code == 400

    response = await client.put(f"{USERS}/999/role", json={"role": "manager"}, headers=headers_for(manager))
    assert response.status_code == 404

    response = await client.put(f"{USERS}/{employee.id}/role", json={"role": "it_staff"}, headers=headers_for(manager))
    assert response.status_code == 200
    assert response.json()["data"]["role"] == "it_staff"


async def test_status_change_rules(client, make_user, headers_for):
    manager = await make_user("manager")
    staff = await make_user("it_staff")
    employee = await make_user("employee")

    assert (await client.put(f"{USERS}/{manager.id}/status", json={"is_verified": False}, headers=headers_for(staff))).status_code == 403
    assert (await client.put(f"{USERS}/{staff.id}/status", json={"is_verified": False}, headers=headers_for(staff))).status_code == 403

    response = await client.put(f"{USERS}/{employee.id}/status", json={"is_verified": False}, headers=headers_for(staff))
    assert response.status_code == 200
    assert response.json()["data"]["is_verified"] is False

    response = await client.post(
        "/api/v1/auth/login", json={"email": employee.email, "password": "secret123"}
    )
    assert response.status_code == 403


async def test_department_update_trims_and_clears(client, make_user, headers_for):
    manager = await make_user("manager")
    employee = await make_user("employee", department="IT")

    response = await client.put(f"{USERS}/{employee.id}/department", json={"department": "  Ops  "}, headers=headers_for(manager))
    assert response.json()["data"]["department"] == "Ops"

    response = await client.put(f"{USERS}/{employee.id}/department", json={"department": "   "}, headers=headers_for(manager))
    assert response.json()["data"]["department"] is None

    # Managers may edit their own department
    response = await client.put(f"{USERS}/{manager.id}/department", json={"department": "Exec"}, headers=headers_for(manager))
    assert response.status_code == 200


async def test_delete_user_keeps_tickets_and_drops_comments(client, make_user, headers_for, session_factory):
    manager = await make_user("manager")
    employee = await make_user("employee")
    staff = await make_user("it_staff")

    response = await client.post(
        "/api/v1/tickets",
        json={"title": "Broken", "description": "Everything"},
        headers=headers_for(employee),
    )
    ticket_id = response.json()["data"]["id"]
    await client.put(f"/api/v1/tickets/{ticket_id}/assign", json={"assigned_to": staff.id}, headers=headers_for(manager))
    await client.post(f"/api/v1/tickets/{ticket_id}/comments", json={"body": "mine"}, headers=headers_for(employee))
    await client.post(f"/api/v1/tickets/{ticket_id}/comments", json={"body": "staff"}, headers=headers_for(staff))

    assert (await client.delete(f"{USERS}/{manager.id}", headers=headers_for(manager))).status_code == 403

    assert (await client.delete(f"{USERS}/{employee.id}", headers=headers_for(manager))).status_code == 200
    assert (await client.delete(f"{USERS}/{staff.id}", headers=headers_for(manager))).status_code == 200

    async with session_factory() as session:
        ticket = await load_ticket(session, ticket_id)
        assert ticket is not None
        assert ticket.user_id is None
        assert ticket.creator is None
        assert ticket.assigned_to is None
        assert ticket.assignee is None
        comments = (await session.execute(select(TicketComment))).scalars().all()
        assert comments == []
        assert await User.get_by_id(session, employee.id) is None

    # The orphaned ticket is still visible to staff
    response = await client.get(f"/api/v1/tickets/{ticket_id}", headers=headers_for(manager))
    assert response.status_code == 200
    assert response.json()["data"]["creator"] is None


async def test_delete_creator_of_provisioned_users(client, make_user, headers_for, session_factory):
    manager = await make_user("manager")
    staff = await make_user("it_staff")
    response = await client.post(
        USERS, json={"name": "Hire", "email": "hire@example.com"}, headers=headers_for(staff)
    )
    hire_id = response.json()["data"]["user"]["id"]

    assert (await client.delete(f"{USERS}/{staff.id}", headers=headers_for(manager))).status_code == 200

    async with session_factory() as session:
        hire = await User.get_by_id(session, hire_id)
        assert hire.created_by is None


async def test_list_users_filters_and_department_scope(client, make_user, headers_for):
    manager = await make_user("manager", department="HQ")
    staff = await make_user("it_staff", department="IT")
    await make_user("employee", department="IT", name="Ivy Inside")
    await make_user("employee", department="HR", name="Hal Outside")
    await make_user("employee", department="IT", name="Una Verified", verified=False)

    response = await client.get(USERS, headers=headers_for(staff))
    names = {u["name"] for u in response.json()["data"]["results"]}
    assert names == {staff.name, "Ivy Inside", "Una Verified"}

    response = await client.get(USERS, params={"status": "inactive"}, headers=headers_for(manager))
    assert [u["name"] for u in response.json()["data"]["results"]] == ["Una Verified"]

    response = await client.get(USERS, params={"q": "outside"}, headers=headers_for(manager))
    assert [u["name"] for u in response.json()["data"]["results"]] == ["Hal Outside"]

    response = await client.get(USERS, params={"status": "gone"}, headers=headers_for(manager))
    assert response.status_code == 422

    response = await client.get(USERS, params={"role": "admin"}, headers=headers_for(manager))
    assert response.status_code == 400
    assert response.json()["message"].startswith("Invalid role")

    response = await client.get(USERS, params={"role": "it_staff"}, headers=headers_for(manager))
    assert [u["id"] for u in response.json()["data"]["results"]] == [staff.id]


async def test_user_search_treats_wildcards_literally(client, make_user, headers_for):
    manager = await make_user("manager", name="Boss")
    await make_user("employee", name="Ann")
    await make_user("employee", name="Bob 50% time")

    response = await client.get(USERS, params={"q": "%"}, headers=headers_for(manager))
    assert [u["name"] for u in response.json()["data"]["results"]] == ["Bob 50% time"]

    response = await client.get(USERS, params={"q": "_"}, headers=headers_for(manager))
    assert response.json()["data"]["total"] == 0


async def test_user_ids_beyond_key_range_are_not_found(client, make_user, headers_for):
    manager = await make_user("manager")
    huge = 2**70
    assert (await client.get(f"{USERS}/{huge}", headers=headers_for(manager))).status_code == 404
    assert (await client.delete(f"{USERS}/{huge}", headers=headers_for(manager))).status_code == 404
    response = await client.get(USERS, params={"page": 2**62}, headers=headers_for(manager))
    assert response.status_code == 422


async def test_user_stats_manager_only(client, make_user, headers_for):
    manager = await make_user("manager", department="HQ")
    staff = await make_user("it_staff")
    await make_user("employee", department="HQ")
    await make_user("employee", verified=False)

    assert (await client.get(f"{USERS}/stats", headers=headers_for(staff))).status_code == 403

    response = await client.get(f"{USERS}/stats", headers=headers_for(manager))
    data = response.json()["data"]
    assert data["total"] == 4
    assert data["active"] == 3
    assert data["inactive"] == 1
    assert data["role_breakdown"] == {"employee": 2, "it_staff": 1, "manager": 1}
    departments = {d["department"]: d["count"] for d in data["users_by_department"]}
    assert departments == {"HQ": 2, "Unknown": 2}


async def test_admin_resend_verification(client, make_user, headers_for, notifier):
    staff = await make_user("it_staff")
    manager = await make_user("manager", verified=False)
    pending = await make_user("employee", verified=False)
    done = await make_user("employee")

    response = await client.post(f"{USERS}/{pending.id}/resend", headers=headers_for(staff))
    assert response.status_code == 200
    assert len(response.json()["data"]["verification_code"]) == 6

    assert (await client.post(f"{USERS}/{done.id}/resend", headers=headers_for(staff))).status_code == 400
    assert (await client.post(f"{USERS}/{manager.id}/resend", headers=headers_for(staff))).status_code == 403

    await notifier.drain()
    assert notifier.to("Your verification code") == [[pending.email]]
