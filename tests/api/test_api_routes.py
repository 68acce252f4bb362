"""
Tests for the HTTP API.

Runs the FastAPI app in-process with injected services backed by a
temporary SQLite gate and the in-memory knowledge store.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from review_forge.api.server import create_app
from review_forge.api.services import Services
from review_forge.errors import GateUnavailableError
from review_forge.events import HumanComment
from review_forge.learning.feedback import FeedbackRecorder, HumanCommentIngestor
from review_forge.learning.inmemory import InMemoryKnowledgeStore
from review_forge.learning.sync import HistorySync
from review_forge.models import InlineComment, PRContext, ReviewResult, interaction_marker
from review_forge.review.gate import REVIEW_GATE_FLAG, SYNC_FLAG, ReviewGate


@pytest.fixture
def gate(tmp_path):
    g = ReviewGate(str(tmp_path / "api.db"))
    yield g
    g.close()


@pytest.fixture
def store(make_interaction) -> InMemoryKnowledgeStore:
    s = InMemoryKnowledgeStore()
    s.interactions["int-1"] = make_interaction()
    return s


@pytest.fixture
def orchestrator():
    orch = MagicMock()
    orch.publish_pending = AsyncMock(return_value=9001)
    orch.run_review = AsyncMock()
    return orch


@pytest.fixture
def services(gate, store, orchestrator) -> Services:
    return Services(
        gate=gate,
        recorder=FeedbackRecorder([store], gate),
        ingestor=HumanCommentIngestor([store]),
        orchestrator=orchestrator,
    )


@pytest.fixture
def client(services):
    with TestClient(create_app(services=services)) as c:
        yield c


@pytest.fixture
def held_id(gate, pr_context) -> str:
    result = ReviewResult(
        body="## Review Forge",
        comments=[InlineComment(path="src/app.py", line=3, body="Check None")],
    )
    return asyncio.run(gate.hold(pr_context, result)).id


def pull_request_delivery(action: str) -> dict:
    return {
        "action": action,
        "installation": {"id": 555},
        "repository": {"full_name": "acme/widgets"},
        "pull_request": {
            "number": 42,
            "draft": False,
            "user": {"login": "octocat"},
            "head": {"sha": "abc123", "ref": "feature/x"},
            "base": {"ref": "main", "repo": {"name": "widgets", "owner": {"login": "acme"}}},
        },
    }


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


# =============================================================================
# FEATURE FLAGS
# =============================================================================


class TestFlags:
    """Tests for the flag endpoints."""

    def test_unknown_flag_reads_disabled(self, client):
        response = client.get("/api/flags/nothing-here")
        assert response.status_code == 200
        assert response.json()["enabled"] is False

    def test_set_then_read(self, client):
        assert client.post(f"/api/flags/{REVIEW_GATE_FLAG}", json={"enabled": True}).json()["enabled"] is True
        assert client.get(f"/api/flags/{REVIEW_GATE_FLAG}").json()["enabled"] is True
        assert [f["key"] for f in client.get("/api/flags").json()["flags"]] == [REVIEW_GATE_FLAG]

    def test_invalid_body(self, client):
        assert client.post("/api/flags/x", json={"enabled": "maybe"}).status_code == 422

    def test_gate_outage_is_503(self, services):
        services.gate = MagicMock()
        services.gate.list_flags = AsyncMock(side_effect=GateUnavailableError("database is locked"))

        with TestClient(create_app(services=services)) as c:
            response = c.get("/api/flags")

        assert response.status_code == 503
        assert "locked" in response.json()["detail"]


# =============================================================================
# PENDING REVIEWS
# =============================================================================


class TestPendingReviews:
    """Tests for approving and rejecting held reviews."""

    def test_list(self, client, held_id):
        reviews = client.get("/api/pending-reviews", params={"status": "pending"}).json()["reviews"]
        assert [r["id"] for r in reviews] == [held_id]
        assert client.get("/api/pending-reviews", params={"status": "approved"}).json()["reviews"] == []

    def test_approve_publishes_once(self, client, held_id, orchestrator):
        response = client.post(f"/api/pending-reviews/{held_id}/approve")

        assert response.status_code == 200
        body = response.json()
        assert body["posted"] is True
        assert body["review_id"] == 9001
        assert body["review"]["status"] == "approved"
        orchestrator.publish_pending.assert_awaited_once()

        assert client.post(f"/api/pending-reviews/{held_id}/approve").status_code == 404
        assert client.post(f"/api/pending-reviews/{held_id}/reject").status_code == 404
        assert orchestrator.publish_pending.await_count == 1

    def test_approve_without_source_control(self, services, held_id):
        services.orchestrator = None
        with TestClient(create_app(services=services)) as c:
            body = c.post(f"/api/pending-reviews/{held_id}/approve").json()
        assert body["posted"] is False
        assert body["review_id"] is None

    def test_reject(self, client, held_id, orchestrator):
        response = client.post(f"/api/pending-reviews/{held_id}/reject")

        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        assert client.post(f"/api/pending-reviews/{held_id}/approve").status_code == 404
        orchestrator.publish_pending.assert_not_awaited()

    def test_unknown_id(self, client):
        assert client.post("/api/pending-reviews/missing/approve").status_code == 404


# =============================================================================
# FEEDBACK
# =============================================================================


class TestFeedback:
    """Tests for the feedback endpoints."""

    def test_resolved_signal(self, client, store, gate):
        response = client.post(
            "/api/feedback",
            json={"kind": "comment_resolved", "interaction_id": "int-1", "repo": "acme/widgets", "pull_number": 7},
        )

        assert response.json() == {"kind": "comment_resolved", "recorded": True}
        assert store.interactions["int-1"].approved is True
        assert asyncio.run(gate.count_feedback("int-1")) == 1

    def test_repeat_signal_not_recorded(self, client):
        payload = {"kind": "comment_deleted", "interaction_id": "int-1", "repo": "acme/widgets"}
        assert client.post("/api/feedback", json=payload).json()["recorded"] is True
        assert client.post("/api/feedback", json=payload).json()["recorded"] is False

    def test_human_comment(self, client, store):
        response = client.post(
            "/api/feedback",
            json={
                "kind": "human_comment",
                "comment_id": 77,
                "repo": "acme/widgets",
                "pull_number": 7,
                "body": "This should validate the input length first",
                "path": "src/app.py",
                "line": 4,
            },
        )

        assert response.json() == {"kind": "human_comment", "recorded": True}
        assert len(store.interactions) == 2

    def test_unknown_kind_rejected(self, client):
        response = client.post("/api/feedback", json={"kind": "thumbs_up", "interaction_id": "x"})
        assert response.status_code == 422
        assert response.json()["detail"]

    def test_missing_fields_rejected(self, client):
        assert client.post("/api/feedback", json={"kind": "comment_resolved"}).status_code == 422


class TestGithubWebhook:
    """Tests for raw GitHub deliveries."""

    def test_resolved_comment(self, client, store):
        payload = {
            "action": "resolved",
            "repository": {"full_name": "acme/widgets"},
            "pull_request": {"number": 7},
            "comment": {"body": f"Check None\n\n{interaction_marker('int-1')}"},
        }

        response = client.post(
            "/api/webhooks/github", json=payload, headers={"X-GitHub-Event": "pull_request_review_comment"}
        )

        assert response.json() == {"handled": True, "kind": "comment_resolved", "recorded": True}
        assert store.interactions["int-1"].approved is True

    def test_irrelevant_delivery(self, client):
        response = client.post("/api/webhooks/github", json={"action": "opened"}, headers={"X-GitHub-Event": "push"})
        assert response.json() == {"handled": False}

    def test_pull_request_schedules_review(self, client, orchestrator):
        payload = pull_request_delivery("synchronize")

        response = client.post("/api/webhooks/github", json=payload, headers={"X-GitHub-Event": "pull_request"})

        assert response.json() == {"handled": True, "kind": "pull_request", "scheduled": True}
        orchestrator.run_review.assert_awaited_once()
        ctx = orchestrator.run_review.await_args.args[0]
        assert ctx == PRContext(
            owner="acme",
            repo="widgets",
            pull_number=42,
            head_sha="abc123",
            head_ref="feature/x",
            base_ref="main",
            installation_id=555,
            pr_author="octocat",
        )
        assert orchestrator.run_review.await_args.kwargs["is_resync"] is True

    def test_opened_pull_request_is_not_resync(self, client, orchestrator):
        client.post(
            "/api/webhooks/github", json=pull_request_delivery("opened"), headers={"X-GitHub-Event": "pull_request"}
        )
        assert orchestrator.run_review.await_args.kwargs["is_resync"] is False

    def test_closed_pull_request_ignored(self, client, orchestrator):
        response = client.post(
            "/api/webhooks/github", json=pull_request_delivery("closed"), headers={"X-GitHub-Event": "pull_request"}
        )
        assert response.json() == {"handled": False}
        orchestrator.run_review.assert_not_awaited()

    def test_review_failure_does_not_fail_delivery(self, client, orchestrator):
        orchestrator.run_review.side_effect = RuntimeError("GitHub API 502")

        response = client.post(
            "/api/webhooks/github", json=pull_request_delivery("opened"), headers={"X-GitHub-Event": "pull_request"}
        )

        assert response.status_code == 200
        assert response.json()["scheduled"] is True

    def test_pull_request_without_source_control(self, services):
        services.orchestrator = None
        with TestClient(create_app(services=services)) as c:
            response = c.post(
                "/api/webhooks/github", json=pull_request_delivery("opened"), headers={"X-GitHub-Event": "pull_request"}
            )
        assert response.json() == {"handled": True, "kind": "pull_request", "scheduled": False}


# =============================================================================
# HISTORY SYNC
# =============================================================================


class TestHistorySyncRoutes:
    """Tests for starting and polling a history sync."""

    @pytest.fixture
    def history(self):
        source = AsyncMock()
        source.list_pull_numbers.return_value = [3]
        source.list_review_comments.return_value = [
            HumanComment(comment_id=11, repo="", pull_number=0, body="This leaks the file handle on error")
        ]
        source.list_issue_comments.return_value = []
        return source

    @pytest.fixture
    def sync_client(self, services, history):
        services.history_sync = HistorySync(history, services.ingestor)
        with TestClient(create_app(services=services)) as c:
            yield c

    def test_disabled_by_default(self, sync_client, history):
        response = sync_client.post("/api/sync", json={"repo": "acme/widgets", "installation_id": 9})

        assert response.status_code == 403
        history.list_pull_numbers.assert_not_awaited()

    def test_sync_runs_in_background(self, sync_client, store, gate):
        asyncio.run(gate.set_flag(SYNC_FLAG, True))

        response = sync_client.post("/api/sync", json={"repo": "acme/widgets", "installation_id": 9})

        assert response.status_code == 202
        assert response.json()["status"] == "running"
        status = sync_client.get("/api/sync/status").json()
        assert status["status"] == "done"
        assert status["comments_ingested"] == 1
        assert len(store.interactions) == 2

    def test_concurrent_sync_rejected(self, sync_client, services, gate):
        asyncio.run(gate.set_flag(SYNC_FLAG, True))
        services.history_sync.begin("acme/widgets")

        response = sync_client.post("/api/sync", json={"repo": "acme/other", "installation_id": 9})

        assert response.status_code == 409
        assert "already in progress" in response.json()["detail"]

    def test_invalid_body(self, sync_client):
        assert sync_client.post("/api/sync", json={"repo": "acme/widgets"}).status_code == 422

    def test_status_without_sync_configured(self, client):
        assert client.get("/api/sync/status").json()["status"] == "idle"
