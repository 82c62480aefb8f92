"""Azure DevOps Git REST client."""

import logging
from typing import Any

import httpx

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

API_VERSION = "7.1"

# Page size for iteration changes (Azure DevOps maximum)
CHANGES_PAGE_SIZE = 2000

# GitPullRequestCommentThread enums
COMMENT_TYPE_CODE_CHANGE = 2
THREAD_STATUS_ACTIVE = 1

# VersionControlChangeType.edit, serialised by name or by value
EDIT_CHANGE_TYPES = {"edit", 2}


class AzureRepoClient:
    """Repository collaborator backed by the Azure DevOps REST API.

    Repositories are addressed by GUID at organisation level, so no
    project segment is needed in the URLs.
    """

    def __init__(
        self,
        org_url: str,
        credentials: CredentialManager,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.org_url = org_url.rstrip("/")
        self.credentials = credentials
        self._http_client = http_client or httpx.AsyncClient(timeout=30.0)

    async def aclose(self) -> None:
        await self._http_client.aclose()

    def _url(self, repo_id: str, path: str) -> str:
        return f"{self.org_url}/_apis/git/repositories/{repo_id}/{path}"

    async def _request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        accept: str = "application/json",
    ) -> httpx.Response:
        token = await self.credentials.ensure_valid_token()
        headers = {"Authorization": f"Bearer {token}", "Accept": accept}
        response = await self._http_client.request(
            method,
            url,
            params={"api-version": API_VERSION, **(params or {})},
            json=json,
            headers=headers,
        )
        response.raise_for_status()
        return response

    async def list_changed_files(self, repo_id: str, pr_id: int) -> list[ChangedFile]:
        response = await self._request(
            "GET", self._url(repo_id, f"pullRequests/{pr_id}/iterations")
        )
        iterations = response.json().get("value", [])
        last_iteration = iterations[-1] if iterations else None
        if not last_iteration or not last_iteration.get("id"):
            logger.info(f"No iterations found for PR {pr_id}. PR might be empty.")
            return []

        iteration_id = last_iteration["id"]
        entries: list[dict[str, Any]] = []
        skip = 0
        while True:
            response = await self._request(
                "GET",
                self._url(
                    repo_id, f"pullRequests/{pr_id}/iterations/{iteration_id}/changes"
                ),
                params={"$top": CHANGES_PAGE_SIZE, "$skip": skip},
            )
            page = response.json()
            entries.extend(page.get("changeEntries", []))
            skip = page.get("nextSkip") or 0
            if not skip:
                break

        changed = [
            ChangedFile(
                path=entry["item"].get("path", ""),
                initial_file_id=entry["item"].get("originalObjectId", ""),
                modified_file_id=entry["item"].get("objectId", ""),
            )
            for entry in entries
            if entry.get("changeType") in EDIT_CHANGE_TYPES
            and not entry.get("item", {}).get("isFolder", False)
        ]
        logger.info(
            f"PR {pr_id} iteration {iteration_id}: {len(changed)} edited files "
            f"out of {len(entries)} changes"
        )
        return changed

    async def fetch_blob(self, repo_id: str, blob_id: str) -> bytes:
        try:
            response = await self._request(
                "GET",
                self._url(repo_id, f"blobs/{blob_id}"),
                params={"$format": "octetstream"},
                accept="application/octet-stream",
            )
        except httpx.HTTPError as e:
            raise ContentFetchError(f"Failed to fetch blob {blob_id}: {e}") from e
        return response.content

    async def get_pull_request_details(
        self, repo_id: str, pr_id: int
    ) -> PullRequestDetails:
        response = await self._request("GET", self._url(repo_id, f"pullRequests/{pr_id}"))
        details = response.json()
        return PullRequestDetails(
            project_id=(details.get("repository") or {}).get("project", {}).get("id", ""),
            source_branch=details.get("sourceRefName", ""),
            target_branch=details.get("targetRefName", ""),
            last_merge_commit=(details.get("lastMergeSourceCommit") or {}).get(
                "commitId", "null"
            ),
        )

    async def post_comment(
        self, repo_id: str, pr_id: int, comment: CommentDetails
    ) -> PostedComment:
        thread = {
            "comments": [
                {"content": comment.content, "commentType": COMMENT_TYPE_CODE_CHANGE}
            ],
            "status": THREAD_STATUS_ACTIVE,
            "threadContext": {"filePath": comment.file_path},
        }
        response = await self._request(
            "POST", self._url(repo_id, f"pullRequests/{pr_id}/threads"), json=thread
        )
        created = response.json()
        return PostedComment(
            thread_id=created["id"], comment_id=created["comments"][0]["id"]
        )

    async def list_threads(self, repo_id: str, pr_id: int) -> list[Thread]:
        response = await self._request(
            "GET", self._url(repo_id, f"pullRequests/{pr_id}/threads")
        )
        return [
            Thread(
                id=thread["id"],
                comments=[
                    ThreadComment(id=c["id"], content=c.get("content") or "")
                    for c in thread.get("comments", [])
                ],
            )
            for thread in response.json().get("value", [])
        ]
