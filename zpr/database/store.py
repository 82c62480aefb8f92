"""Persistence of reviewed pull requests and their comment records."""

import logging

from sqlalchemy.orm import Session

from zpr.models.records import PR_STATUS_PENDING, CommentRecord, PullRequestRecord
from zpr.models.repo_types import PostedComment, PullRequestDetails
from zpr.models.review import DevFeedback, ReviewIssue

logger = logging.getLogger(__name__)


def strip_ref(ref_name: str) -> str:
    """Turn 'refs/heads/feature/x' into 'feature/x'."""
    prefix = "refs/heads/"
    return ref_name[len(prefix) :] if ref_name.startswith(prefix) else ref_name


class ReviewStore:
    """CRUD operations over PullRequestRecord and CommentRecord for one session.

    Every write commits immediately so a failure part-way through a review
    leaves the rows written so far in place.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_pull_request(self, repo_id: str, pr_id: int) -> PullRequestRecord | None:
        return (
            self.db.query(PullRequestRecord)
            .filter(
                PullRequestRecord.repo_id == repo_id,
                PullRequestRecord.pull_request_id == pr_id,
            )
            .first()
        )

    def create_pull_request(
        self, repo_id: str, pr_id: int, details: PullRequestDetails
    ) -> PullRequestRecord:
        """Record the start of a first review with status pending."""
        record = PullRequestRecord(
            pull_request_id=pr_id,
            repo_id=repo_id,
            project_id=details.project_id,
            source_branch=strip_ref(details.source_branch),
            target_branch=strip_ref(details.target_branch),
            last_reviewed_commit=details.last_merge_commit,
            status=PR_STATUS_PENDING,
        )
        self.db.add(record)
        self._commit()
        logger.info(f"Created PullRequestRecord for {repo_id}#{pr_id}")
        return record

    def mark_reviewed(self, record: PullRequestRecord) -> None:
        record.mark_reviewed()
        self._commit()
        logger.info(
            f"Marked {record.repo_id}#{record.pull_request_id} as {record.status}"
        )

    def add_comment(
        self,
        repo_id: str,
        pr_id: int,
        posted: PostedComment,
        issue: ReviewIssue,
    ) -> CommentRecord:
        """Persist one posted review issue."""
        record = CommentRecord(
            repo_id=repo_id,
            pr_id=pr_id,
            thread_id=posted.thread_id,
            comment_id=posted.comment_id,
            file_path=issue.file_path,
            line_number=issue.line_number,
            issue=issue.issue,
            reason=issue.reason,
            recommendation=issue.recommendation,
        )
        self.db.add(record)
        self._commit()
        return record

    def list_comments(self, repo_id: str, pr_id: int) -> list[CommentRecord]:
        return (
            self.db.query(CommentRecord)
            .filter(CommentRecord.repo_id == repo_id, CommentRecord.pr_id == pr_id)
            .order_by(CommentRecord.id)
            .all()
        )

    def find_comment_by_thread(
        self, repo_id: str, pr_id: int, thread_id: int
    ) -> CommentRecord | None:
        return (
            self.db.query(CommentRecord)
            .filter(
                CommentRecord.repo_id == repo_id,
                CommentRecord.pr_id == pr_id,
                CommentRecord.thread_id == thread_id,
            )
            .first()
        )

    def save_feedback(self, record: CommentRecord, feedback: DevFeedback) -> None:
        """Overwrite a comment's developer feedback and commit."""
        record.set_feedback(feedback)
        self._commit()

    def _commit(self) -> None:
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
