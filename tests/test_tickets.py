"""
Tests for the ticket endpoints (/api/tickets) and their permission rules.
"""
import uuid

import pytest

from conftest import API, bearer
from ticketmate.config import Role


async def _create_ticket(client, token, title="Login API returns 500", description="POST /login fails since 9am"):
    response = await client.post(
        f"{API}/tickets",
        json={"title": title, "description": description},
        headers=bearer(token),
    )
    assert response.status_code == 201, response.text
    return response.json()["ticket"]


@pytest.mark.asyncio
async def test_create_ticket_returns_todo_without_classification(client, signup):
    user, token = await signup("alice@example.com")

    response = await client.post(
        f"{API}/tickets",
        json={"title": "Login API returns 500", "description": "POST /login fails"},
        headers=bearer(token),
    )

    assert response.status_code == 201
    data = response.json()
    assert data["message"] == "Ticket Created and Processing"
    ticket = data["ticket"]
    assert ticket["status"] == "TODO"
    assert ticket["createdBy"] == user["id"]
    assert ticket["assignedTo"] is None
    assert ticket["priority"] is None
    assert ticket["replySuggestions"] == []


@pytest.mark.asyncio
async def test_create_ticket_enqueues_one_triage_run(client, signup, engine):
    _, token = await signup("alice@example.com")
    ticket = await _create_ticket(client, token)

    runs = await engine.list_runs("on-ticket-created")
    assert len(runs) == 1
    assert runs[0].idempotency_key == ticket["id"]
    assert runs[0].status == "queued"


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [
    {"title": "", "description": "something"},
    {"title": "Broken", "description": "   "},
    {"description": "no title"},
])
async def test_create_ticket_requires_title_and_description(client, signup, body):
    _, token = await signup("alice@example.com")

    response = await client.post(f"{API}/tickets", json=body, headers=bearer(token))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_ticket_routes_require_auth(client):
    assert (await client.get(f"{API}/tickets")).status_code == 401
    assert (await client.post(f"{API}/tickets", json={"title": "a", "description": "b"})).status_code == 401


@pytest.mark.asyncio
async def test_user_sees_only_own_tickets(client, signup):
    _, alice = await signup("alice@example.com")
    _, bob = await signup("bob@example.com")
    _, mod = await signup("mod@example.com", role="moderator")

    first = await _create_ticket(client, alice, title="first")
    second = await _create_ticket(client, alice, title="second")
    await _create_ticket(client, bob, title="bob's")

    own = (await client.get(f"{API}/tickets", headers=bearer(alice))).json()
    assert [t["id"] for t in own] == [second["id"], first["id"]]

    everything = (await client.get(f"{API}/tickets", headers=bearer(mod))).json()
    assert len(everything) == 3


@pytest.mark.asyncio
async def test_non_creator_view_is_not_found(client, signup):
    _, alice = await signup("alice@example.com")
    _, bob = await signup("bob@example.com")
    ticket = await _create_ticket(client, alice)

    assert (await client.get(f"{API}/tickets/{ticket['id']}", headers=bearer(bob))).status_code == 404
    assert (await client.get(f"{API}/tickets/{ticket['id']}", headers=bearer(alice))).status_code == 200
    assert (await client.get(f"{API}/tickets/{uuid.uuid4()}", headers=bearer(alice))).status_code == 404
    assert (await client.get(f"{API}/tickets/not-a-uuid", headers=bearer(alice))).status_code == 404


@pytest.mark.asyncio
async def test_reply_permissions_and_history(client, signup):
    _, alice = await signup("alice@example.com")
    _, bob = await signup("bob@example.com")
    _, mod = await signup("mod@example.com", role="moderator")
    ticket = await _create_ticket(client, alice)
    url = f"{API}/tickets/{ticket['id']}/reply"

    assert (await client.post(url, json={"message": "me too"}, headers=bearer(bob))).status_code == 403
    assert (await client.post(url, json={"message": ""}, headers=bearer(alice))).status_code == 400

    response = await client.post(url, json={"message": "Any update?"}, headers=bearer(alice))
    assert response.status_code == 200
    assert response.json()["message"] == "Reply added successfully"

    response = await client.post(
        url, json={"message": "Fixed in v2", "status": "resolved"}, headers=bearer(mod)
    )
    assert response.status_code == 200
    assert response.json()["message"] == "Reply added and status updated successfully"

    updated = response.json()["ticket"]
    assert [r["message"] for r in updated["replies"]] == ["Any update?", "Fixed in v2"]
    assert updated["replies"][1]["author"]["email"] == "mod@example.com"
    assert updated["status"] == "resolved"
    assert updated["resolvedAt"] is not None


@pytest.mark.asyncio
async def test_creator_cannot_change_status_with_reply(client, signup):
    _, alice = await signup("alice@example.com")
    ticket = await _create_ticket(client, alice)

    response = await client.post(
        f"{API}/tickets/{ticket['id']}/reply",
        json={"message": "closing", "status": "closed"},
        headers=bearer(alice),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_status_update_requires_assignee_or_staff(client, signup):
    _, alice = await signup("alice@example.com")
    _, mod = await signup("mod@example.com", role="moderator")
    ticket = await _create_ticket(client, alice)

    denied = await client.patch(
        f"{API}/tickets/{ticket['id']}/status", json={"status": "closed"}, headers=bearer(alice)
    )
    assert denied.status_code == 403

    missing = await client.patch(f"{API}/tickets/{ticket['id']}/status", json={}, headers=bearer(mod))
    assert missing.status_code == 400

    ok = await client.patch(
        f"{API}/tickets/{ticket['id']}/resolve", json={"status": "resolved"}, headers=bearer(mod)
    )
    assert ok.status_code == 200
    assert ok.json()["ticket"]["status"] == "resolved"
    assert ok.json()["ticket"]["resolvedAt"] is not None


@pytest.mark.asyncio
async def test_assignee_with_user_role_can_set_status(client, signup):
    _, alice = await signup("alice@example.com")
    bob, bob_token = await signup("bob@example.com")
    _, mod = await signup("mod@example.com", role="moderator")
    ticket = await _create_ticket(client, alice)

    assigned = await client.patch(
        f"{API}/tickets/{ticket['id']}/assign", json={"assignedTo": bob["id"]}, headers=bearer(mod)
    )
    assert assigned.status_code == 200
    assert assigned.json()["ticket"]["assignedTo"]["id"] == bob["id"]
    assert assigned.json()["ticket"]["assignedAt"] is not None

    response = await client.patch(
        f"{API}/tickets/{ticket['id']}/status", json={"status": "in-progress"}, headers=bearer(bob_token)
    )
    assert response.status_code == 200
    assert (await client.get(f"{API}/tickets/{ticket['id']}", headers=bearer(bob_token))).status_code == 200


@pytest.mark.asyncio
async def test_update_ignores_created_by(client, signup):
    alice, alice_token = await signup("alice@example.com")
    bob, _ = await signup("bob@example.com")
    _, mod = await signup("mod@example.com", role="moderator")
    ticket = await _create_ticket(client, alice_token)

    response = await client.patch(
        f"{API}/tickets/{ticket['id']}",
        json={"title": "Login API returns 503", "createdBy": bob["id"], "priority": "high"},
        headers=bearer(mod),
    )

    assert response.status_code == 200
    updated = response.json()["ticket"]
    assert updated["title"] == "Login API returns 503"
    assert updated["priority"] == "high"
    assert updated["createdBy"] == alice["id"]


@pytest.mark.asyncio
async def test_update_rejects_unknown_assignee_and_bad_priority(client, signup):
    _, alice = await signup("alice@example.com")
    _, mod = await signup("mod@example.com", role="moderator")
    ticket = await _create_ticket(client, alice)
    url = f"{API}/tickets/{ticket['id']}"

    unknown = await client.patch(url, json={"assignedTo": str(uuid.uuid4())}, headers=bearer(mod))
    assert unknown.status_code == 400

    bad_priority = await client.patch(url, json={"priority": "urgent"}, headers=bearer(mod))
    assert bad_priority.status_code == 400


@pytest.mark.asyncio
async def test_user_may_update_only_to_take_the_ticket(client, signup):
    _, alice = await signup("alice@example.com")
    bob, bob_token = await signup("bob@example.com")
    ticket = await _create_ticket(client, alice)
    url = f"{API}/tickets/{ticket['id']}"

    denied = await client.patch(url, json={"title": "mine now"}, headers=bearer(bob_token))
    assert denied.status_code == 403

    taken = await client.patch(url, json={"assignedTo": bob["id"]}, headers=bearer(bob_token))
    assert taken.status_code == 200
    assert taken.json()["ticket"]["assignedTo"]["email"] == "bob@example.com"


@pytest.mark.asyncio
async def test_delete_is_admin_only(client, signup, admin):
    _, alice = await signup("alice@example.com")
    _, mod = await signup("mod@example.com", role="moderator")
    _, admin_token = admin
    ticket = await _create_ticket(client, alice)
    url = f"{API}/tickets/{ticket['id']}"

    assert (await client.delete(url, headers=bearer(alice))).status_code == 403
    assert (await client.delete(url, headers=bearer(mod))).status_code == 403

    response = await client.delete(url, headers=bearer(admin_token))
    assert response.status_code == 200
    assert response.json() == {"message": "Ticket deleted successfully"}
    assert (await client.get(url, headers=bearer(admin_token))).status_code == 404


@pytest.mark.asyncio
async def test_staff_activity_notifies_creator(client, signup, engine, mailer):
    _, alice = await signup("alice@example.com")
    _, mod = await signup("mod@example.com", role="moderator")
    ticket = await _create_ticket(client, alice)

    await client.post(
        f"{API}/tickets/{ticket['id']}/reply", json={"message": "Looking into it"}, headers=bearer(mod)
    )
    await client.post(
        f"{API}/tickets/{ticket['id']}/reply", json={"message": "thanks"}, headers=bearer(alice)
    )

    runs = await engine.list_runs("on-ticket-activity")
    assert len(runs) == 1
    assert runs[0].event_name == "ticket/reply-added"

    await engine.run_pending(limit=50)

    to_alice = [m for m in mailer.sent_emails if m["to"] == "alice@example.com" and "reply" in m["subject"]]
    assert len(to_alice) == 1
    assert "Looking into it" in to_alice[0]["body"]
    assert "mod@example.com" in to_alice[0]["body"]


@pytest.mark.asyncio
async def test_admin_role_promotion_grants_full_view(client, signup, promote):
    _, alice = await signup("alice@example.com")
    _, carl = await signup("carl@example.com")
    ticket = await _create_ticket(client, alice)

    assert (await client.get(f"{API}/tickets/{ticket['id']}", headers=bearer(carl))).status_code == 404
    await promote("carl@example.com", Role.MODERATOR)
    assert (await client.get(f"{API}/tickets/{ticket['id']}", headers=bearer(carl))).status_code == 200


@pytest.mark.asyncio
async def test_overlong_title_and_status_are_rejected(client, signup):
    _, alice = await signup("alice@example.com")
    _, mod = await signup("mod@example.com", role="moderator")

    too_long_title = await client.post(
        f"{API}/tickets", json={"title": "t" * 501, "description": "desc"}, headers=bearer(alice)
    )
    assert too_long_title.status_code == 400
    assert too_long_title.json()["details"]["field"] == "title"

    ticket = await _create_ticket(client, alice, title="t" * 500)
    base = f"{API}/tickets/{ticket['id']}"

    assert (await client.patch(f"{base}/status", json={"status": "x" * 51}, headers=bearer(mod))).status_code == 400
    assert (await client.patch(base, json={"status": "x" * 51}, headers=bearer(mod))).status_code == 400
    assert (await client.patch(base, json={"title": "t" * 501}, headers=bearer(mod))).status_code == 400
    reply = await client.post(
        f"{base}/reply", json={"message": "on it", "status": "x" * 51}, headers=bearer(mod)
    )
    assert reply.status_code == 400

    unchanged = (await client.get(base, headers=bearer(mod))).json()["ticket"]
    assert unchanged["status"] == "TODO"
    assert unchanged["replies"] == []

    ok = await client.patch(f"{base}/status", json={"status": "x" * 50}, headers=bearer(mod))
    assert ok.status_code == 200
