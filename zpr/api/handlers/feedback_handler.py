"""Re-review of a pull request: collect developer feedback from comment replies."""

import logging
from collections.abc import Callable

from sqlalchemy.orm import Session

from zpr.api.handlers.review_handler import resolve_repository
from zpr.config.settings import Settings
from zpr.database.store import ReviewStore
from zpr.review.feedback import FeedbackReconciler, ReconciliationReport
from zpr.services.repo_client import RepoClient

logger = logging.getLogger(__name__)


async def handle_re_review(
    repo_name: str,
    pr_id: int,
    repo_client: RepoClient,
    session_factory: Callable[[], Session],
    settings: Settings,
) -> ReconciliationReport:
    """
    Reconcile replies on the threads posted by the first review.

    Raises:
        PreconditionError: If the repository is unknown or the pull request
            was never reviewed
        ReconciliationMatchError: With strict matching, if a command reply
            has no stored comment
    """
    config = resolve_repository(repo_name, settings)
    review_key = f"{repo_name}#{pr_id}"
    logger.info(f"Starting re-review for {review_key}")

    db = session_factory()
    try:
        reconciler = FeedbackReconciler(
            repo_client,
            ReviewStore(db),
            strict=settings.feedback_strict_matching,
        )
        return await reconciler.reconcile(config.repo_id, pr_id)
    finally:
        db.close()
        logger.info(f"Finished re-review for {review_key}")
