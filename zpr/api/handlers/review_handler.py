"""First review of a pull request.

A review request is handled in two steps: prepare_review() validates the
request before any response is started, and run_review() does the work
while reporting progress to a sink.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.orm import Session

from zpr.config.settings import RepositoryConfig, Settings
from zpr.database.store import ReviewStore
from zpr.errors import DuplicateReviewError, PreconditionError
from zpr.models.repo_types import CommentDetails, PullRequestDetails
from zpr.models.review import ReviewRun, dump_review_run
from zpr.review.orchestrator import ReviewOrchestrator
from zpr.review.progress import ProgressEvent, ProgressSink
from zpr.services.llm.base import ModelBackend
from zpr.services.repo_client import RepoClient

logger = logging.getLogger(__name__)


@dataclass
class ReviewContext:
    """A validated review request."""

    repo_name: str
    repo_id: str
    pr_id: int
    overview: str
    model_name: str

    @property
    def review_key(self) -> str:
        return f"{self.repo_name}#{self.pr_id}"


@dataclass
class ReviewOutcome:
    """Result of run_review: the issues on success, the error that ended the run otherwise."""

    result: ReviewRun | None = None
    error: Exception | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


def resolve_repository(repo_name: str, settings: Settings) -> RepositoryConfig:
    """
    Look up a repository in the configured catalogue.

    Raises:
        PreconditionError: If the name is unknown
    """
    config = settings.repositories.get(repo_name)
    if config is None:
        raise PreconditionError("invalid repoName")
    return config


# === MAIN HANDLERS ===


def prepare_review(
    repo_name: str,
    pr_id: int,
    model_name: str | None,
    session_factory: Callable[[], Session],
    settings: Settings,
) -> ReviewContext:
    """
    Validate a first review request.

    === BEHAVIOR ===

    Input:
        repo_name: Name of a repository in settings.repositories
        pr_id: Pull request id
        model_name: Model to use, settings.default_model_name if None

    Output:
        ReviewContext for run_review()

    Logic Flow:

    RESOLVE repository config FROM settings.repositories
        IF missing THEN RAISE PreconditionError
    LOAD project overview
        IF missing or unreadable THEN RAISE PreconditionError
    QUERY PullRequestRecord BY (repo_id, pr_id)
        IF exists THEN RAISE DuplicateReviewError

    Edge Cases:
        - Pull request already reviewed: rejected before any model call
    """
    config = resolve_repository(repo_name, settings)

    try:
        overview = config.load_overview()
    except ValueError as e:
        raise PreconditionError(str(e)) from e
    if not overview:
        raise PreconditionError("invalid repoName")

    db = session_factory()
    try:
        if ReviewStore(db).get_pull_request(config.repo_id, pr_id) is not None:
            raise DuplicateReviewError("PR already reviewed, try re-reviewing it")
    finally:
        db.close()

    return ReviewContext(
        repo_name=repo_name,
        repo_id=config.repo_id,
        pr_id=pr_id,
        overview=overview,
        model_name=model_name or settings.default_model_name,
    )


async def run_review(
    ctx: ReviewContext,
    progress: ProgressSink,
    repo_client: RepoClient,
    backend: ModelBackend,
    session_factory: Callable[[], Session],
    settings: Settings,
) -> ReviewOutcome:
    """
    Review a pull request, post the issues as comments and record the review.

    === BEHAVIOR ===

    Output:
        ReviewOutcome (side effects: posts comment threads, writes records)

    Logic Flow:

    EMIT status "Fetching changed files..."
    LIST changed files of the latest iteration
    EMIT status "Found N changed files"
    FETCH pull request details

    RUN orchestrator.review_files()
        EMITS fileStart / fileComplete / error per file

    PUBLISH review
        CREATE PullRequestRecord with status pending
        FOR each issue: POST comment thread, PERSIST CommentRecord
        MARK record reviewed

    EMIT complete with the review result

    ON any exception:
        LOG exception
        EMIT terminal error event
        RETURN outcome carrying the error

    Edge Cases:
        - One file fails: reported per file, the run continues
        - Credential exchange fails: terminal error, no complete event
        - A comment fails to post: terminal error, record stays pending
    """
    orchestrator = ReviewOrchestrator(
        repo_client,
        backend,
        max_retries=settings.max_retries,
        timeout=settings.model_timeout_seconds,
    )
    logger.info(f"Starting review for {ctx.review_key} with {ctx.model_name}")

    try:
        progress.emit(ProgressEvent.status("Fetching changed files..."))
        changed_files = await repo_client.list_changed_files(ctx.repo_id, ctx.pr_id)
        progress.emit(ProgressEvent.status(f"Found {len(changed_files)} changed files"))

        details = await repo_client.get_pull_request_details(ctx.repo_id, ctx.pr_id)

        result = await orchestrator.review_files(
            ctx.repo_id, ctx.overview, changed_files, ctx.model_name, progress
        )

        await _publish_review(ctx, result, details, repo_client, session_factory, progress)

        progress.emit(ProgressEvent.complete(dump_review_run(result)))
        logger.info(
            f"Review completed for {ctx.review_key}: "
            f"{sum(len(issues) for issues in result)} issues in {len(result)} files"
        )
        return ReviewOutcome(result=result)

    except Exception as e:
        logger.exception(f"Review failed for {ctx.review_key}")
        progress.emit(ProgressEvent.error(str(e) or type(e).__name__))
        return ReviewOutcome(error=e)


# === HELPER FUNCTIONS ===


async def _publish_review(
    ctx: ReviewContext,
    result: ReviewRun,
    details: PullRequestDetails,
    repo_client: RepoClient,
    session_factory: Callable[[], Session],
    progress: ProgressSink,
) -> None:
    """
    Post one comment thread per issue and record the review.

    The PullRequestRecord is written as pending first and each comment is
    persisted right after it is posted, so a failure leaves the record
    pending with the comments posted so far stored.
    """
    issues = [issue for file_issues in result for issue in file_issues]
    progress.emit(ProgressEvent.status(f"Posting {len(issues)} review comments..."))

    db = session_factory()
    try:
        store = ReviewStore(db)
        record = store.create_pull_request(ctx.repo_id, ctx.pr_id, details)

        for issue in issues:
            comment = CommentDetails(
                file_path=issue.file_path,
                content=issue.format_comment(),
                line=issue.line_number,
            )
            posted = await repo_client.post_comment(ctx.repo_id, ctx.pr_id, comment)
            store.add_comment(ctx.repo_id, ctx.pr_id, posted, issue)
            logger.debug(
                f"Posted thread {posted.thread_id} on {issue.file_path}:{issue.line_number}"
            )

        store.mark_reviewed(record)
    finally:
        db.close()
