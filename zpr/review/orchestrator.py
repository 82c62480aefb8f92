"""Sequential per-file review of a pull request."""

import asyncio
import logging

from pydantic import ValidationError

from zpr.errors import ContentFetchError, ModelBackendError, SchemaValidationError
from zpr.models.repo_types import ChangedFile, FileDiff
from zpr.models.review import (
    REVIEW_ISSUES_SCHEMA,
    ReviewIssue,
    ReviewRun,
    dump_review_run,
    review_issues_adapter,
)
from zpr.prompts import build_system_instruction, build_user_instruction
from zpr.review.diff import resolve_file_diff
from zpr.review.progress import ProgressEvent, ProgressSink
from zpr.services.llm.base import LLMMessage, ModelBackend
from zpr.services.repo_client import RepoClient
from zpr.utils.retry import with_exponential_backoff

logger = logging.getLogger(__name__)

# Per-file failures: reported as an error event, the run continues
FILE_ERRORS = (ContentFetchError, ModelBackendError, SchemaValidationError)


def build_messages(repo_overview: str, file_diff: FileDiff) -> list[LLMMessage]:
    """Build the system and user messages for reviewing one file."""
    return [
        LLMMessage(role="system", content=build_system_instruction(repo_overview)),
        LLMMessage(role="user", content=build_user_instruction(file_diff.diff_text)),
    ]


def parse_review_output(content: str) -> list[ReviewIssue]:
    """
    Parse model output into review issues.

    Raises:
        SchemaValidationError: If content is not JSON or does not match the schema
    """
    try:
        return review_issues_adapter.validate_json(content)
    except ValidationError as e:
        raise SchemaValidationError(
            f"Model output is not a valid review issue list: {e.error_count()} error(s)"
        ) from e


class ReviewOrchestrator:
    """
    Reviews changed files one at a time with a model backend.

    Files are reviewed strictly in order; a failure on one file is reported
    and yields an empty issue list for it. CredentialExchangeError and any
    unexpected exception propagate and end the run.
    """

    def __init__(
        self,
        repo_client: RepoClient,
        backend: ModelBackend,
        max_retries: int = 2,
        timeout: float | None = None,
        retry_initial_delay: float = 1.0,
    ) -> None:
        self.repo_client = repo_client
        self.backend = backend
        self.max_retries = max_retries
        self.timeout = timeout
        self.retry_initial_delay = retry_initial_delay

    async def review_files(
        self,
        repo_id: str,
        repo_overview: str,
        changed_files: list[ChangedFile],
        model_name: str,
        progress: ProgressSink,
    ) -> ReviewRun:
        """Review every file and return one issue list per file, in input order."""
        result: ReviewRun = []
        total = len(changed_files)

        for index, changed_file in enumerate(changed_files, start=1):
            path = changed_file.path
            progress.emit(ProgressEvent.file_start(path, index, total))

            try:
                issues = await self._review_file(
                    repo_id, repo_overview, changed_file, model_name
                )
            except FILE_ERRORS as e:
                logger.error(f"Error reviewing file {path}: {e}")
                progress.emit(ProgressEvent.error(str(e), file=path))
                result.append([])
                continue

            result.append(issues)
            progress.emit(ProgressEvent.file_complete(path, index, total, len(issues)))
            logger.info(f"Reviewed {path} ({index}/{total}): {len(issues)} issue(s)")

        return result

    async def run(
        self,
        repo_id: str,
        repo_overview: str,
        changed_files: list[ChangedFile],
        model_name: str,
        progress: ProgressSink,
    ) -> ReviewRun:
        """Review every file, then emit the terminal complete event."""
        result = await self.review_files(
            repo_id, repo_overview, changed_files, model_name, progress
        )
        progress.emit(ProgressEvent.complete(dump_review_run(result)))
        return result

    async def _review_file(
        self,
        repo_id: str,
        repo_overview: str,
        changed_file: ChangedFile,
        model_name: str,
    ) -> list[ReviewIssue]:
        file_diff = await resolve_file_diff(self.repo_client, repo_id, changed_file)
        messages = build_messages(repo_overview, file_diff)

        response = await with_exponential_backoff(
            self._chat,
            model_name,
            messages,
            max_retries=self.max_retries,
            initial_delay=self.retry_initial_delay,
        )
        return parse_review_output(response.content)

    async def _chat(self, model_name: str, messages: list[LLMMessage]):
        call = self.backend.chat(model_name, messages, REVIEW_ISSUES_SCHEMA)
        if self.timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ModelBackendError(
                f"Model {model_name} did not answer within {self.timeout}s"
            ) from e
