"""GitHub repository client built on PyGithub."""

import base64
import binascii
import logging

import requests
from github import Auth, Github, GithubException

from zpr.errors import ContentFetchError
from zpr.models.repo_types import (
    ChangedFile,
    CommentDetails,
    PostedComment,
    PullRequestDetails,
    Thread,
    ThreadComment,
)
from zpr.services.credentials import CredentialManager

logger = logging.getLogger(__name__)


class GitHubRepoClient:
    """Repository collaborator for GitHub, authenticated as a GitHub App installation.

    repo_id is the 'owner/repo' full name. Threads are review comment chains:
    the opening comment's id is the thread id and replies point at it through
    in_reply_to_id.
    """

    def __init__(self, credentials: CredentialManager) -> None:
        self.credentials = credentials
        self._github: Github | None = None
        self._github_token: str | None = None

    async def _client(self) -> Github:
        """Return a Github client for the current token, rebuilt after a refresh."""
        token = await self.credentials.ensure_valid_token()
        if self._github is None or token != self._github_token:
            if self._github is not None:
                self._github.close()
            self._github = Github(auth=Auth.Token(token), per_page=100)
            self._github_token = token
        return self._github

    async def aclose(self) -> None:
        if self._github is not None:
            self._github.close()
            self._github = None
            self._github_token = None

    async def list_changed_files(self, repo_id: str, pr_id: int) -> list[ChangedFile]:
        github_client = await self._client()
        repo = github_client.get_repo(repo_id)
        pr = repo.get_pull(pr_id)

        changed = []
        for file in pr.get_files():
            if file.status != "modified":
                continue
            base_content = repo.get_contents(file.filename, ref=pr.base.sha)
            if isinstance(base_content, list):
                continue
            changed.append(
                ChangedFile(
                    path=file.filename,
                    initial_file_id=base_content.sha,
                    modified_file_id=file.sha,
                )
            )

        logger.info(f"{repo_id}#{pr_id}: {len(changed)} modified files")
        return changed

    async def fetch_blob(self, repo_id: str, blob_id: str) -> bytes:
        github_client = await self._client()
        try:
            blob = github_client.get_repo(repo_id).get_git_blob(blob_id)
            if blob.encoding == "base64":
                return base64.b64decode(blob.content)
            return blob.content.encode("utf-8")
        except (GithubException, requests.RequestException, binascii.Error) as e:
            raise ContentFetchError(f"Failed to fetch blob {blob_id}: {e}") from e

    async def get_pull_request_details(
        self, repo_id: str, pr_id: int
    ) -> PullRequestDetails:
        github_client = await self._client()
        repo = github_client.get_repo(repo_id)
        pr = repo.get_pull(pr_id)
        return PullRequestDetails(
            project_id=repo.owner.login,
            source_branch=pr.head.ref,
            target_branch=pr.base.ref,
            last_merge_commit=pr.head.sha,
        )

    async def post_comment(
        self, repo_id: str, pr_id: int, comment: CommentDetails
    ) -> PostedComment:
        github_client = await self._client()
        repo = github_client.get_repo(repo_id)
        pr = repo.get_pull(pr_id)

        # File-level comment: the issue's line may sit outside the diff hunks
        created = pr.create_review_comment(
            body=comment.content,
            commit=repo.get_commit(pr.head.sha),
            path=comment.file_path,
            subject_type="file",
        )
        logger.debug(f"Posted review comment {created.id} on {comment.file_path}")
        return PostedComment(thread_id=created.id, comment_id=created.id)

    async def list_threads(self, repo_id: str, pr_id: int) -> list[Thread]:
        github_client = await self._client()
        pr = github_client.get_repo(repo_id).get_pull(pr_id)

        threads: dict[int, Thread] = {}
        for review_comment in pr.get_review_comments():
            root_id = review_comment.in_reply_to_id or review_comment.id
            thread = threads.setdefault(root_id, Thread(id=root_id))
            thread.comments.append(
                ThreadComment(id=review_comment.id, content=review_comment.body or "")
            )
        return list(threads.values())
