"""Pytest configuration and fixtures."""

import os

# Must be set before zpr.config.settings is imported
os.environ.setdefault("API_KEY", "test-api-key")
os.environ.setdefault("DB_URI", "sqlite://")

from collections.abc import Callable, Iterator  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from zpr.config.settings import RepositoryConfig, settings  # noqa: E402
from zpr.models.records import Base  # noqa: E402
from zpr.models.repo_types import (  # noqa: E402
    ChangedFile,
    CommentDetails,
    PostedComment,
    PullRequestDetails,
    Thread,
)
from zpr.services.llm.base import LLMMessage, LLMResponse  # noqa: E402

REPO_NAME = "demo"
REPO_ID = "11111111-2222-3333-4444-555555555555"
PR_ID = 42


class FakeRepoClient:
    """In-memory repository collaborator."""

    def __init__(self) -> None:
        self.files: list[ChangedFile] = []
        self.blobs: dict[str, bytes] = {}
        self.blob_errors: dict[str, Exception] = {}
        self.details = PullRequestDetails(
            source_branch="refs/heads/feature/login",
            target_branch="refs/heads/main",
            last_merge_commit="abc123",
            project_id="project-1",
        )
        self.threads: list[Thread] = []
        self.posted: list[CommentDetails] = []
        self.list_error: Exception | None = None
        self.post_error_after: int | None = None
        self.next_thread_id = 100

    def add_file(self, path: str, old: str | bytes, new: str | bytes) -> ChangedFile:
        index = len(self.files)
        changed = ChangedFile(
            path=path,
            initial_file_id=f"old-{index}",
            modified_file_id=f"new-{index}",
        )
        self.blobs[changed.initial_file_id] = old.encode() if isinstance(old, str) else old
        self.blobs[changed.modified_file_id] = new.encode() if isinstance(new, str) else new
        self.files.append(changed)
        return changed

    async def list_changed_files(self, repo_id: str, pr_id: int) -> list[ChangedFile]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.files)

    async def fetch_blob(self, repo_id: str, blob_id: str) -> bytes:
        if blob_id in self.blob_errors:
            raise self.blob_errors[blob_id]
        return self.blobs[blob_id]

    async def get_pull_request_details(
        self, repo_id: str, pr_id: int
    ) -> PullRequestDetails:
        return self.details

    async def post_comment(
        self, repo_id: str, pr_id: int, comment: CommentDetails
    ) -> PostedComment:
        if self.post_error_after is not None and len(self.posted) >= self.post_error_after:
            raise RuntimeError("Failed to create thread")
        self.posted.append(comment)
        self.next_thread_id += 1
        return PostedComment(thread_id=self.next_thread_id, comment_id=1)

    async def list_threads(self, repo_id: str, pr_id: int) -> list[Thread]:
        return list(self.threads)

    async def aclose(self) -> None:
        pass


class FakeBackend:
    """Model backend that replays canned replies in call order."""

    def __init__(self, replies: list[str | Exception] | None = None) -> None:
        self.replies = list(replies or [])
        self.calls: list[tuple[str, list[LLMMessage]]] = []

    async def chat(
        self, model_name: str, messages: list[LLMMessage], output_schema: dict
    ) -> LLMResponse:
        self.calls.append((model_name, messages))
        reply = self.replies.pop(0) if self.replies else "[]"
        if isinstance(reply, Exception):
            raise reply
        return LLMResponse(content=reply)

    async def aclose(self) -> None:
        pass


@pytest.fixture
def repo_client() -> FakeRepoClient:
    return FakeRepoClient()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def session_factory() -> Iterator[Callable[[], Session]]:
    """Session factory over a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory) -> Iterator[Session]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def configured_repositories(monkeypatch) -> dict[str, RepositoryConfig]:
    repositories = {
        REPO_NAME: RepositoryConfig(
            repo_id=REPO_ID, overview="A payments service written in Python."
        )
    }
    monkeypatch.setattr(settings, "repositories", repositories)
    return repositories


@pytest.fixture
def client() -> TestClient:
    """Return a FastAPI TestClient."""
    from zpr.main import app

    return TestClient(app)


@pytest.fixture
def api_headers() -> dict[str, str]:
    return {"X-API-Key": settings.api_key or ""}
