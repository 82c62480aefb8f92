"""SQLAlchemy models for reviewed pull requests and the comments posted on them."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from zpr.models.review import DevFeedback

PR_STATUS_PENDING = "pending"
PR_STATUS_REVIEWED = "reviewed"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PullRequestRecord(Base):
    """
    A pull request that went through a first review.

    The existence of a row decides whether a pull request may be reviewed
    for the first time or only re-reviewed.
    """

    __tablename__ = "pull_requests"
    __table_args__ = (
        UniqueConstraint("repo_id", "pull_request_id", name="uq_pull_request"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    pull_request_id: Mapped[int] = mapped_column(
        Integer, nullable=False, index=True, comment="Pull request number"
    )
    repo_id: Mapped[str] = mapped_column(
        String(255), nullable=False, index=True, comment="Provider repository id"
    )
    project_id: Mapped[str] = mapped_column(
        String(255), nullable=False, default="", comment="Provider project id"
    )
    source_branch: Mapped[str] = mapped_column(String(255), nullable=False)
    target_branch: Mapped[str] = mapped_column(String(255), nullable=False)
    last_reviewed_commit: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="Source commit of the pull request when it was reviewed",
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PR_STATUS_PENDING,
        comment="Status: 'pending' or 'reviewed'",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<PullRequestRecord(id={self.id}, "
            f"repo={self.repo_id}, "
            f"pr={self.pull_request_id}, "
            f"status={self.status})>"
        )

    @property
    def is_reviewed(self) -> bool:
        """Check whether every comment of the first review was posted."""
        return self.status == PR_STATUS_REVIEWED

    def mark_reviewed(self) -> None:
        """Move the record from pending to reviewed."""
        self.status = PR_STATUS_REVIEWED
        self.updated_at = _utcnow()


class CommentRecord(Base):
    """
    A review issue posted as a comment thread on a pull request.

    dev_feedback holds the camelCase DevFeedback document parsed from the
    latest developer reply, or NULL while no command has been seen.
    """

    __tablename__ = "pr_comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    repo_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    pr_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    thread_id: Mapped[int] = mapped_column(
        BigInteger, nullable=False, index=True, comment="Provider thread id"
    )
    comment_id: Mapped[int] = mapped_column(
        BigInteger, nullable=False, comment="Provider id of the opening comment"
    )

    file_path: Mapped[str] = mapped_column(Text, nullable=False)
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    issue: Mapped[str] = mapped_column(Text, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    recommendation: Mapped[str] = mapped_column(Text, nullable=False)

    dev_feedback: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True, default=None
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return (
            f"<CommentRecord(id={self.id}, pr={self.pr_id}, "
            f"thread={self.thread_id}, file={self.file_path}:{self.line_number})>"
        )

    def set_feedback(self, feedback: DevFeedback) -> None:
        """Overwrite the developer feedback with a freshly parsed command."""
        self.dev_feedback = feedback.to_document()
        self.updated_at = _utcnow()

    @property
    def feedback(self) -> DevFeedback | None:
        """Return the stored feedback as a model."""
        if self.dev_feedback is None:
            return None
        return DevFeedback.model_validate(self.dev_feedback)
