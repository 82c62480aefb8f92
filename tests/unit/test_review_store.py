"""Unit tests for ReviewStore against an in-memory SQLite database."""

import pytest
from sqlalchemy.exc import IntegrityError

from zpr.database.store import ReviewStore, strip_ref
from zpr.models.records import PR_STATUS_PENDING, PR_STATUS_REVIEWED
from zpr.models.repo_types import PostedComment, PullRequestDetails
from zpr.models.review import DevFeedback, ReviewIssue

DETAILS = PullRequestDetails(
    source_branch="refs/heads/feature/login",
    target_branch="refs/heads/main",
    last_merge_commit="abc123",
    project_id="project-1",
)


def test_strip_ref():
    assert strip_ref("refs/heads/feature/x") == "feature/x"
    assert strip_ref("main") == "main"


def test_create_pull_request_is_pending_with_plain_branches(db):
    store = ReviewStore(db)

    record = store.create_pull_request("repo", 1, DETAILS)

    assert record.status == PR_STATUS_PENDING
    assert not record.is_reviewed
    assert record.source_branch == "feature/login"
    assert record.target_branch == "main"
    assert record.last_reviewed_commit == "abc123"
    assert store.get_pull_request("repo", 1) is not None
    assert store.get_pull_request("repo", 2) is None
    assert store.get_pull_request("other-repo", 1) is None


def test_mark_reviewed(db):
    store = ReviewStore(db)
    record = store.create_pull_request("repo", 1, DETAILS)

    store.mark_reviewed(record)

    assert store.get_pull_request("repo", 1).status == PR_STATUS_REVIEWED


def test_duplicate_pull_request_is_rejected_and_rolled_back(db):
    store = ReviewStore(db)
    store.create_pull_request("repo", 1, DETAILS)

    with pytest.raises(IntegrityError):
        store.create_pull_request("repo", 1, DETAILS)

    # Session is usable after the rollback
    assert store.get_pull_request("repo", 1) is not None


def test_comments_are_scoped_to_pull_request(db):
    store = ReviewStore(db)
    issue = ReviewIssue(
        filepath="a.py", lineNumber=4, issue="i", reason="r", recommendation="rec"
    )
    store.add_comment("repo", 1, PostedComment(thread_id=10, comment_id=1), issue)
    store.add_comment("repo", 2, PostedComment(thread_id=10, comment_id=1), issue)

    comments = store.list_comments("repo", 1)

    assert len(comments) == 1
    assert comments[0].line_number == 4
    assert comments[0].dev_feedback is None
    assert store.find_comment_by_thread("repo", 2, 10).pr_id == 2
    assert store.find_comment_by_thread("repo", 1, 11) is None


def test_save_feedback_overwrites(db):
    store = ReviewStore(db)
    issue = ReviewIssue(
        filepath="a.py", lineNumber=4, issue="i", reason="r", recommendation="rec"
    )
    record = store.add_comment("repo", 1, PostedComment(thread_id=10, comment_id=1), issue)

    store.save_feedback(record, DevFeedback(false_alarm=True, scope="global", content="a"))
    store.save_feedback(record, DevFeedback(false_alarm=True, scope="project", content="b"))

    stored = store.find_comment_by_thread("repo", 1, 10)
    assert stored.feedback == DevFeedback(false_alarm=True, scope="project", content="b")
