"""Data models for ZPR."""

from .records import Base, CommentRecord, PullRequestRecord
from .repo_types import (
    ChangedFile,
    CommentDetails,
    FileDiff,
    PostedComment,
    PullRequestDetails,
    Thread,
    ThreadComment,
)
from .review import REVIEW_ISSUES_SCHEMA, DevFeedback, ReviewIssue, ReviewRun

__all__ = [
    "Base",
    "PullRequestRecord",
    "CommentRecord",
    "ChangedFile",
    "CommentDetails",
    "FileDiff",
    "PostedComment",
    "PullRequestDetails",
    "Thread",
    "ThreadComment",
    "ReviewIssue",
    "ReviewRun",
    "DevFeedback",
    "REVIEW_ISSUES_SCHEMA",
]
