"""Source control collaborator interface and provider selection."""

from typing import Protocol

from zpr.config.settings import Settings
from zpr.models.repo_types import (
    ChangedFile,
    CommentDetails,
    PostedComment,
    PullRequestDetails,
    Thread,
)


class RepoClient(Protocol):
    """Operations the review pipeline needs from a source control provider.

    Implementations authenticate every call through a CredentialManager.
    """

    async def list_changed_files(self, repo_id: str, pr_id: int) -> list[ChangedFile]:
        """List files edited in the latest iteration; empty if there is none."""
        ...

    async def fetch_blob(self, repo_id: str, blob_id: str) -> bytes:
        """Return raw blob content. Raises ContentFetchError on failure."""
        ...

    async def get_pull_request_details(
        self, repo_id: str, pr_id: int
    ) -> PullRequestDetails: ...

    async def post_comment(
        self, repo_id: str, pr_id: int, comment: CommentDetails
    ) -> PostedComment: ...

    async def list_threads(self, repo_id: str, pr_id: int) -> list[Thread]: ...

    async def aclose(self) -> None:
        """Release connections held by the client."""
        ...


def create_repo_client(settings: Settings) -> RepoClient:
    """Build the repository client selected by settings.repo_provider."""
    from zpr.services.credentials import (
        AzureADTokenExchange,
        CredentialManager,
        GitHubAppTokenExchange,
    )

    if settings.repo_provider == "azure":
        from zpr.services.azure_repo import AzureRepoClient

        if not settings.azure_org_url:
            raise ValueError("AZURE_ORG_URL must be set for the azure repo provider")
        credentials = CredentialManager(AzureADTokenExchange.from_settings(settings))
        return AzureRepoClient(settings.azure_org_url, credentials)

    if settings.repo_provider == "github":
        from zpr.services.github_repo import GitHubRepoClient

        credentials = CredentialManager(GitHubAppTokenExchange.from_settings(settings))
        return GitHubRepoClient(credentials)

    raise ValueError(f"Unknown repo provider: {settings.repo_provider!r}")
