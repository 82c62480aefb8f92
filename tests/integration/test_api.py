"""Integration tests for the HTTP API."""

import json

import pytest

from zpr.api import routes
from zpr.database.store import ReviewStore
from zpr.main import app
from zpr.models.repo_types import PullRequestDetails, Thread, ThreadComment

REPO_NAME = "demo"
REPO_ID = "11111111-2222-3333-4444-555555555555"


def issue(path: str, line: int) -> dict:
    return {
        "filepath": path,
        "lineNumber": line,
        "issue": "Missing null check",
        "reason": "user may be None",
        "recommendation": "Guard against None",
    }


def parse_sse(text: str) -> list[dict]:
    frames = [frame for frame in text.split("\n\n") if frame.strip()]
    assert all(frame.startswith("data: ") for frame in frames)
    return [json.loads(frame[len("data: ") :]) for frame in frames]


@pytest.fixture
def overrides(repo_client, backend, session_factory, configured_repositories):
    app.dependency_overrides[routes.get_repo_client] = lambda: repo_client
    app.dependency_overrides[routes.get_model_backend] = lambda: backend
    app.dependency_overrides[routes.get_session_factory] = lambda: session_factory
    yield
    app.dependency_overrides.clear()


# === API key guard ===


def test_missing_api_key_is_unauthorized(client, overrides):
    response = client.post("/review", json={"repoName": REPO_NAME, "prId": 1})

    assert response.status_code == 401
    assert "API key is required" in response.json()["message"]


def test_wrong_api_key_is_forbidden(client, overrides):
    response = client.post(
        "/review",
        json={"repoName": REPO_NAME, "prId": 1},
        headers={"X-API-Key": "wrong"},
    )

    assert response.status_code == 403
    assert response.json() == {"message": "Invalid API key"}


def test_bearer_api_key_is_accepted(client, overrides, api_headers):
    response = client.post(
        "/re-review",
        json={"repoName": REPO_NAME, "prId": 1},
        headers={"Authorization": f"Bearer {api_headers['X-API-Key']}"},
    )

    # Passes the guard; fails the precondition instead
    assert response.status_code == 400


# === /review ===


def test_review_streams_progress_events(
    client, overrides, api_headers, repo_client, backend, session_factory
):
    repo_client.add_file("app.py", "user = get()\n", "user = get()\nuser.name\n")
    backend.replies = [json.dumps([issue("app.py", 2)])]

    response = client.post(
        "/review", json={"repoName": REPO_NAME, "prId": 9}, headers=api_headers
    )

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.headers["cache-control"] == "no-cache"

    events = parse_sse(response.text)
    assert [e["type"] for e in events] == [
        "status",
        "status",
        "fileStart",
        "fileComplete",
        "status",
        "complete",
    ]
    assert events[3]["issueCount"] == 1
    assert events[-1]["result"] == [[issue("app.py", 2)]]

    db = session_factory()
    assert ReviewStore(db).get_pull_request(REPO_ID, 9).is_reviewed
    db.close()


def test_review_without_streaming_returns_result(
    client, overrides, api_headers, repo_client, backend
):
    repo_client.add_file("app.py", "a\n", "b\n")
    backend.replies = ["not json"]

    response = client.post(
        "/review",
        json={"repoName": REPO_NAME, "prId": 10, "stream": False},
        headers=api_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "review"
    assert body["result"] == [[]]
    assert [e["type"] for e in body["events"]][-1] == "complete"
    assert any(e["type"] == "error" and e["file"] == "app.py" for e in body["events"])


def test_review_unknown_repo(client, overrides, api_headers):
    response = client.post(
        "/review", json={"repoName": "unknown", "prId": 1}, headers=api_headers
    )

    assert response.status_code == 400
    assert response.json() == {"message": "invalid repoName"}


def test_review_twice_is_conflict(client, overrides, api_headers, backend):
    first = client.post(
        "/review",
        json={"repoName": REPO_NAME, "prId": 11, "stream": False},
        headers=api_headers,
    )
    calls = len(backend.calls)
    second = client.post(
        "/review", json={"repoName": REPO_NAME, "prId": 11}, headers=api_headers
    )

    assert first.status_code == 200
    assert second.status_code == 409
    assert second.json() == {"message": "PR already reviewed, try re-reviewing it"}
    assert len(backend.calls) == calls


def test_review_validation_error(client, overrides, api_headers):
    response = client.post("/review", json={"repoName": REPO_NAME}, headers=api_headers)

    assert response.status_code == 422


# === /re-review ===


def test_re_review_without_first_review(client, overrides, api_headers):
    response = client.post(
        "/re-review", json={"repoName": REPO_NAME, "prId": 12}, headers=api_headers
    )

    assert response.status_code == 400
    assert response.json() == {
        "message": "cannot re-review on a PR, if no first review is done"
    }


def test_re_review_reports_reconciliation(
    client, overrides, api_headers, repo_client, backend, session_factory
):
    repo_client.add_file("app.py", "a\n", "b\n")
    backend.replies = [json.dumps([issue("app.py", 1), issue("app.py", 2)])]
    client.post(
        "/review",
        json={"repoName": REPO_NAME, "prId": 13, "stream": False},
        headers=api_headers,
    )
    first_thread, second_thread = repo_client.next_thread_id - 1, repo_client.next_thread_id
    repo_client.threads = [
        Thread(
            id=first_thread,
            comments=[
                ThreadComment(id=1, content="**line**: 1"),
                ThreadComment(id=2, content=":ignore-project bad heuristic"),
            ],
        ),
        Thread(id=second_thread, comments=[ThreadComment(id=1, content="**line**: 2")]),
    ]

    response = client.post(
        "/re-review", json={"repoName": REPO_NAME, "prId": 13}, headers=api_headers
    )

    assert response.status_code == 200
    assert response.json() == {
        "message": "complete",
        "updated": 1,
        "pending": 1,
        "unmatched": 0,
        "failures": [],
    }
    db = session_factory()
    record = ReviewStore(db).find_comment_by_thread(REPO_ID, 13, first_thread)
    assert record.dev_feedback == {
        "falseAlarm": True,
        "scope": "project",
        "content": "bad heuristic",
    }
    db.close()


# === Service endpoints ===


def test_unknown_route(client):
    response = client.get("/does-not-exist")

    assert response.status_code == 404
    assert response.json() == {"message": "Requested route does not exist"}


def test_health(client):
    response = client.get("/health")
    data = response.json()

    assert response.status_code == 200
    assert data["status"] == "healthy"
    assert data["repo_provider"] in {"azure", "github"}
    assert data["llm_provider"] in {"ollama", "openai"}


def test_pull_request_details_fixture_is_stored_without_refs(
    client, overrides, api_headers, repo_client, session_factory
):
    repo_client.details = PullRequestDetails(
        source_branch="refs/heads/fix/npe",
        target_branch="refs/heads/release",
        last_merge_commit="cafe",
    )

    client.post(
        "/review",
        json={"repoName": REPO_NAME, "prId": 14, "stream": False},
        headers=api_headers,
    )

    db = session_factory()
    record = ReviewStore(db).get_pull_request(REPO_ID, 14)
    assert (record.source_branch, record.target_branch) == ("fix/npe", "release")
    db.close()
