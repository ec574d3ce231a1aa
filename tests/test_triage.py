"""
Tests for ticket triage: classifier reply parsing, moderator selection and
the on-ticket-created workflow end to end.
"""
import json
from types import SimpleNamespace

import pytest

from conftest import API, bearer
from ticketmate.core import LLMException
from ticketmate.infrastructure.llm import MOCK_ANALYSIS, MockLLMClient
from ticketmate.triage.application import ClassificationService, build_assignment_email
from ticketmate.triage.domain import (
    DEFAULT_REPLY_SUGGESTIONS,
    TriageConfig,
    extract_json,
    select_moderator,
    validate_classification,
)
from ticketmate.triage.infrastructure import TriageConfigManager


VALID = {
    "summary": "Login endpoint crashes",
    "priority": "high",
    "helpfulNotes": "Check the Node.js error logs",
    "relatedSkills": ["Node.js", "Express"],
    "replySuggestions": ["We are on it."],
}


# ========== Reply parsing ==========

class TestExtractJson:

    def test_plain_json(self):
        assert extract_json(json.dumps(VALID)) == VALID

    def test_fenced_json_block(self):
        raw = "Here you go:\n```json\n" + json.dumps(VALID) + "\n```\nHope it helps"
        assert extract_json(raw) == VALID

    def test_fenced_block_without_language(self):
        raw = "```\n" + json.dumps(VALID) + "\n```"
        assert extract_json(raw) == VALID

    def test_braces_inside_prose(self):
        raw = "Sure! " + json.dumps(VALID) + " Let me know if you need more."
        assert extract_json(raw) == VALID

    def test_broken_fence_falls_back_to_braces(self):
        raw = "```json\nnot json\n``` but later " + json.dumps(VALID)
        assert extract_json(raw) == VALID

    @pytest.mark.parametrize("raw", ["", "no json here", "{broken", None])
    def test_failure(self, raw):
        with pytest.raises(ValueError):
            extract_json(raw)


class TestValidateClassification:

    def test_valid(self):
        result = validate_classification(VALID)
        assert result.priority == "high"
        assert result.related_skills == ["Node.js", "Express"]
        assert result.reply_suggestions == ["We are on it."]
        assert not result.is_fallback

    @pytest.mark.parametrize("override", [
        {"priority": "urgent"},
        {"summary": None},
        {"helpfulNotes": 42},
        {"relatedSkills": "Node.js"},
        {"relatedSkills": ["ok", 1]},
        {"replySuggestions": []},
        {"replySuggestions": None},
    ])
    def test_invalid(self, override):
        assert validate_classification({**VALID, **override}) is None

    def test_not_a_dict(self):
        assert validate_classification(["a"]) is None
        assert validate_classification(None) is None


# ========== Moderator selection ==========

def _user(email, role, skills=()):
    return SimpleNamespace(email=email, role=role, skills=list(skills))


class TestSelectModerator:

    def test_skill_match_is_case_insensitive_substring(self):
        users = [
            _user("m1@example.com", "moderator", ["react"]),
            _user("m2@example.com", "moderator", ["node.js", "aws"]),
        ]
        assert select_moderator(["Node.js"], users).email == "m2@example.com"

    def test_no_match_takes_first_moderator(self):
        users = [
            _user("admin@example.com", "admin"),
            _user("m1@example.com", "moderator", ["react"]),
            _user("m2@example.com", "moderator", ["vue"]),
        ]
        assert select_moderator(["Kubernetes"], users).email == "m1@example.com"
        assert select_moderator([], users).email == "m1@example.com"

    def test_admin_fallback(self):
        users = [
            _user("u@example.com", "user", ["node.js"]),
            _user("admin@example.com", "admin"),
        ]
        assert select_moderator(["Node.js"], users).email == "admin@example.com"

    def test_nobody_available(self):
        assert select_moderator(["Node.js"], [_user("u@example.com", "user")]) is None
        assert select_moderator(None, []) is None

    def test_tags_are_escaped(self):
        users = [
            _user("m1@example.com", "moderator", ["cxx"]),
            _user("m2@example.com", "moderator", ["C++ templates"]),
        ]
        assert select_moderator(["C++"], users).email == "m2@example.com"


# ========== Classification service ==========

class TestClassificationService:

    @pytest.mark.asyncio
    async def test_analyze_parses_fenced_reply(self):
        service = ClassificationService(MockLLMClient(), TriageConfigManager())
        assert await service.analyze("Title", "Description") == MOCK_ANALYSIS

    @pytest.mark.asyncio
    async def test_prompt_contains_ticket(self):
        llm = MockLLMClient()
        await ClassificationService(llm, TriageConfigManager()).analyze("Disk full", "Server /var is full")

        system, user = llm.calls[0]
        assert system["role"] == "system"
        assert "Title: Disk full" in user["content"]
        assert "Description: Server /var is full" in user["content"]

    @pytest.mark.asyncio
    async def test_classifier_error_yields_no_result(self):
        llm = MockLLMClient(error=LLMException("provider down"))
        service = ClassificationService(llm, TriageConfigManager())

        assert await service.analyze("Title", "Description") is None
        fallback = service.resolve(None)
        assert fallback.is_fallback
        assert fallback.priority == "medium"
        assert fallback.helpful_notes == "AI analysis failed - requires manual review"
        assert fallback.related_skills == []
        assert fallback.reply_suggestions == DEFAULT_REPLY_SUGGESTIONS

    @pytest.mark.asyncio
    async def test_missing_client_yields_no_result(self):
        service = ClassificationService(None, TriageConfigManager())
        assert await service.analyze("Title", "Description") is None
        assert not service.is_available


def test_assignment_email_lists_numbered_replies():
    subject, body = build_assignment_email("Disk full", "high", "Clean /var/log", ["First", "Second"])

    assert subject == "Ticket Assigned - Reply Suggestions Included"
    assert "A new ticket has been assigned to you: Disk full" in body
    assert "Priority: high" in body
    assert "1. First\n2. Second" in body


def test_triage_config_reload(tmp_path):
    path = tmp_path / "triage.yaml"
    path.write_text("fallback:\n  priority: low\n  helpful_notes: manual\n")

    manager = TriageConfigManager()
    config = manager.load(path)
    assert config.fallback.priority == "low"
    assert config.fallback.reply_suggestions == DEFAULT_REPLY_SUGGESTIONS

    path.write_text("fallback:\n  priority: high\n")
    assert manager.reload() is True
    assert manager.config.fallback.priority == "high"

    path.write_text("fallback:\n  priority: urgent\n")
    assert manager.reload() is False
    assert manager.config.fallback.priority == "high"


def test_fallback_with_related_skills_is_rejected(tmp_path):
    path = tmp_path / "triage.yaml"
    path.write_text("fallback:\n  priority: low\n")

    manager = TriageConfigManager()
    manager.load(path)

    path.write_text("fallback:\n  priority: high\n  related_skills: [\"react\"]\n")
    assert manager.reload() is False
    assert manager.config.fallback.priority == "low"
    assert manager.config.fallback.to_classification().related_skills == []

    with pytest.raises(ValueError):
        TriageConfig(fallback={"related_skills": ["react"]})


def test_triage_config_defaults_when_file_missing(tmp_path):
    manager = TriageConfigManager()
    assert manager.load(tmp_path / "nope.yaml") == TriageConfig()
    manager.start_watching()
    assert not manager.is_watching


# ========== Workflow end to end ==========

async def _create_ticket(client, token, title="Login API returns 500"):
    response = await client.post(
        f"{API}/tickets",
        json={"title": title, "description": "Our Node.js backend throws on POST /login"},
        headers=bearer(token),
    )
    assert response.status_code == 201
    return response.json()["ticket"]


@pytest.mark.asyncio
async def test_ticket_is_classified_assigned_and_assignee_mailed(client, signup, engine, mailer, llm_client):
    _, user_token = await signup("alice@example.com")
    await signup("react@example.com", role="moderator", skills=["react"])
    node_mod, _ = await signup("node@example.com", role="moderator", skills=["node.js", "aws"])
    ticket = await _create_ticket(client, user_token)

    await engine.run_pending(limit=50)

    view = (await client.get(f"{API}/tickets/{ticket['id']}", headers=bearer(user_token))).json()["ticket"]
    assert view["status"] == "in-progress"
    assert view["priority"] == MOCK_ANALYSIS["priority"]
    assert view["helpfulNotes"] == MOCK_ANALYSIS["helpfulNotes"]
    assert view["relatedSkills"] == ["Node.js"]
    assert view["replySuggestions"] == MOCK_ANALYSIS["replySuggestions"]
    assert view["assignedTo"]["id"] == node_mod["id"]
    assert view["assignedAt"] is not None

    assigned = [m for m in mailer.sent_emails if m["subject"] == "Ticket Assigned - Reply Suggestions Included"]
    assert [m["to"] for m in assigned] == ["node@example.com"]
    assert "1. " + MOCK_ANALYSIS["replySuggestions"][0] in assigned[0]["body"]

    run = (await engine.list_runs("on-ticket-created"))[0]
    assert run.status == "completed"
    assert run.output == {"success": True, "ticketId": ticket["id"], "assignedTo": node_mod["id"]}
    steps = await engine.get_steps(str(run.id))
    assert list(steps) == [
        "fetch-ticket",
        "update-ticket-status",
        "analyze-ticket",
        "process-ai-response",
        "assign-moderator",
        "send-email-notification",
    ]
    assert steps["send-email-notification"]["notified"] is True


@pytest.mark.asyncio
@pytest.mark.parametrize("llm_client", [
    MockLLMClient(error=LLMException("provider down")),
    MockLLMClient(content="I cannot help with that."),
    MockLLMClient(content=json.dumps({**VALID, "priority": "urgent"})),
])
async def test_unusable_classifier_reply_stores_fallback(client, signup, engine, llm_client):
    _, user_token = await signup("alice@example.com")
    moderator, _ = await signup("mod@example.com", role="moderator")
    ticket = await _create_ticket(client, user_token)

    await engine.run_pending(limit=50)

    view = (await client.get(f"{API}/tickets/{ticket['id']}", headers=bearer(user_token))).json()["ticket"]
    assert view["status"] == "in-progress"
    assert view["priority"] == "medium"
    assert view["helpfulNotes"] == "AI analysis failed - requires manual review"
    assert view["relatedSkills"] == []
    assert view["replySuggestions"] == DEFAULT_REPLY_SUGGESTIONS
    assert view["assignedTo"]["id"] == moderator["id"]


@pytest.mark.asyncio
async def test_falls_back_to_admin_without_moderators(client, signup, admin, engine):
    admin_user, _ = admin
    _, user_token = await signup("alice@example.com")
    ticket = await _create_ticket(client, user_token)

    await engine.run_pending(limit=50)

    view = (await client.get(f"{API}/tickets/{ticket['id']}", headers=bearer(user_token))).json()["ticket"]
    assert view["assignedTo"]["id"] == admin_user["id"]


@pytest.mark.asyncio
async def test_no_staff_leaves_ticket_unassigned(client, signup, engine, mailer):
    _, user_token = await signup("alice@example.com")
    ticket = await _create_ticket(client, user_token)

    await engine.run_pending(limit=50)

    view = (await client.get(f"{API}/tickets/{ticket['id']}", headers=bearer(user_token))).json()["ticket"]
    assert view["assignedTo"] is None
    assert view["status"] == "in-progress"

    run = (await engine.list_runs("on-ticket-created"))[0]
    assert run.status == "completed"
    assert run.output["success"] is True
    assert run.output["assignedTo"] is None
    assert not [m for m in mailer.sent_emails if m["subject"].startswith("Ticket Assigned")]


@pytest.mark.asyncio
async def test_mail_failure_is_not_a_triage_failure(client, signup, engine, mailer):
    _, user_token = await signup("alice@example.com")
    await signup("mod@example.com", role="moderator")
    await engine.run_pending(limit=50)

    mailer.fail = True
    ticket = await _create_ticket(client, user_token)
    await engine.run_pending(limit=50)

    run = (await engine.list_runs("on-ticket-created"))[0]
    assert run.status == "completed"
    assert run.output["success"] is True
    steps = await engine.get_steps(str(run.id))
    assert steps["send-email-notification"]["notified"] is False

    view = (await client.get(f"{API}/tickets/{ticket['id']}", headers=bearer(user_token))).json()["ticket"]
    assert view["assignedTo"]["email"] == "mod@example.com"


@pytest.mark.asyncio
async def test_missing_ticket_dead_letters_the_run(client, engine):
    await client.post(
        f"{API}/inngest/e/test-event-key",
        json={"name": "ticket/created", "data": {"ticketId": "00000000-0000-0000-0000-000000000000"}},
    )

    await engine.run_pending()
    await engine.run_pending()

    run = (await engine.list_runs("on-ticket-created"))[0]
    assert run.status == "dead"
    assert run.attempts == 1
    assert "Ticket not found" in run.error


@pytest.mark.asyncio
async def test_duplicate_ticket_created_event_is_ignored(client, signup, engine):
    _, user_token = await signup("alice@example.com")
    ticket = await _create_ticket(client, user_token)

    response = await client.post(
        f"{API}/inngest/e/test-event-key",
        json={"name": "ticket/created", "data": {"ticketId": ticket["id"]}},
    )
    assert response.status_code == 200
    assert response.json()["runIds"] == []
    assert len(await engine.list_runs("on-ticket-created")) == 1
