"""Reconciliation of developer replies on posted review threads."""

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError

from zpr.database.store import ReviewStore
from zpr.errors import PreconditionError, ReconciliationMatchError
from zpr.models.review import DevFeedback
from zpr.services.repo_client import RepoClient

logger = logging.getLogger(__name__)

IGNORE_PROJECT = ":ignore-project"
IGNORE_GLOBAL = ":ignore-global"
IGNORE = ":ignore"
FALSE_ALARM = ":falseAlarm"

DEFAULT_IGNORE_CONTENT = "ignore"
DEFAULT_FALSE_ALARM_CONTENT = "false alarm"


def parse_feedback_command(text: str) -> DevFeedback | None:
    """
    Classify a reply as a feedback command.

    Prefixes are matched longest first, so ":ignore-project" never falls
    through to ":ignore".

    Args:
        text: Content of the latest comment in a thread

    Returns:
        DevFeedback for a recognised command, None otherwise

    Examples:
        ":ignore-project bad heuristic" -> project scope, "bad heuristic"
        ":falseAlarm not a real issue" -> global scope, " not a real issue"
        "looks fine" -> None
    """
    if text.startswith(IGNORE_PROJECT):
        content = text[len(IGNORE_PROJECT) :].lstrip()
        return DevFeedback(
            false_alarm=True,
            scope="project",
            content=content or DEFAULT_IGNORE_CONTENT,
        )

    if text.startswith(IGNORE_GLOBAL):
        content = text[len(IGNORE_GLOBAL) :].lstrip()
        return DevFeedback(
            false_alarm=True,
            scope="global",
            content=content or DEFAULT_IGNORE_CONTENT,
        )

    if text.startswith(IGNORE):
        # Everything after the first whitespace-delimited token
        parts = text.split(maxsplit=1)
        content = parts[1] if len(parts) > 1 else ""
        return DevFeedback(
            false_alarm=True,
            scope="global",
            content=content or DEFAULT_IGNORE_CONTENT,
        )

    if text.startswith(FALSE_ALARM):
        content = text[len(FALSE_ALARM) :]
        return DevFeedback(
            false_alarm=True,
            scope="global",
            content=content or DEFAULT_FALSE_ALARM_CONTENT,
        )

    return None


@dataclass
class ReconciliationFailure:
    thread_id: int
    message: str


@dataclass
class ReconciliationReport:
    """Outcome of one reconciliation pass."""

    updated: int = 0
    pending: int = 0
    unmatched: int = 0
    failures: list[ReconciliationFailure] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "updated": self.updated,
            "pending": self.pending,
            "unmatched": self.unmatched,
            "failures": [
                {"threadId": f.thread_id, "message": f.message} for f in self.failures
            ],
        }


class FeedbackReconciler:
    """
    Attaches developer feedback to stored comments from thread replies.

    Running it twice over unchanged threads stores the same feedback, since
    each pass overwrites rather than merges.
    """

    def __init__(
        self, repo_client: RepoClient, store: ReviewStore, strict: bool = False
    ) -> None:
        self.repo_client = repo_client
        self.store = store
        self.strict = strict

    async def reconcile(self, repo_id: str, pr_id: int) -> ReconciliationReport:
        """
        Update comment records from the latest reply on each of their threads.

        Raises:
            PreconditionError: If the pull request was never reviewed
            ReconciliationMatchError: In strict mode, after all threads were
                processed, if a command thread had no stored comment
        """
        if self.store.get_pull_request(repo_id, pr_id) is None:
            raise PreconditionError(
                "cannot re-review on a PR, if no first review is done"
            )

        comments = self.store.list_comments(repo_id, pr_id)
        thread_ids = {c.thread_id for c in comments}
        threads = await self.repo_client.list_threads(repo_id, pr_id)

        report = ReconciliationReport()
        missing: list[int] = []

        for thread in threads:
            if thread.id not in thread_ids:
                continue

            if not thread.has_reply:
                report.pending += 1
                continue

            latest = thread.latest_comment
            feedback = parse_feedback_command(latest.content if latest else "")
            if feedback is None:
                report.unmatched += 1
                continue

            record = self.store.find_comment_by_thread(repo_id, pr_id, thread.id)
            if record is None:
                message = f"No stored comment for thread {thread.id}"
                logger.warning(f"{repo_id}#{pr_id}: {message}")
                report.failures.append(ReconciliationFailure(thread.id, message))
                missing.append(thread.id)
                continue

            try:
                self.store.save_feedback(record, feedback)
            except SQLAlchemyError as e:
                logger.exception(f"Failed to save feedback for thread {thread.id}")
                report.failures.append(ReconciliationFailure(thread.id, str(e)))
                continue

            report.updated += 1
            logger.info(
                f"Thread {thread.id}: stored {feedback.scope} feedback for "
                f"{record.file_path}:{record.line_number}"
            )

        logger.info(
            f"Reconciled {repo_id}#{pr_id}: {report.updated} updated, "
            f"{report.pending} pending, {report.unmatched} without command, "
            f"{len(report.failures)} failed"
        )

        if self.strict and missing:
            raise ReconciliationMatchError(
                f"No stored comment for threads: {', '.join(map(str, missing))}"
            )
        return report
