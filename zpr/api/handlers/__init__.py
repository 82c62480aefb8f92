"""Request handlers for the review endpoints."""

from zpr.api.handlers.feedback_handler import handle_re_review
from zpr.api.handlers.review_handler import prepare_review, run_review

__all__ = ["handle_re_review", "prepare_review", "run_review"]
