"""Review pipeline: diffing, orchestration, progress and feedback reconciliation."""

from zpr.review.diff import resolve_file_diff
from zpr.review.feedback import (
    FeedbackReconciler,
    ReconciliationReport,
    parse_feedback_command,
)
from zpr.review.orchestrator import ReviewOrchestrator
from zpr.review.progress import ProgressChannel, ProgressEvent, ProgressSink

__all__ = [
    "FeedbackReconciler",
    "ProgressChannel",
    "ProgressEvent",
    "ProgressSink",
    "ReconciliationReport",
    "ReviewOrchestrator",
    "parse_feedback_command",
    "resolve_file_diff",
]
