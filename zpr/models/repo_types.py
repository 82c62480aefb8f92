"""Types exchanged with the source control provider."""

from pydantic import BaseModel, ConfigDict, Field


class ChangedFile(BaseModel):
    """A file modified in the latest pull request iteration.

    The before/after contents are identified by content-addressed blob ids.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    initial_file_id: str
    modified_file_id: str


class FileDiff(BaseModel):
    """Unified diff of one file together with both full versions."""

    path: str
    diff_text: str
    old_content: str
    new_content: str

    @property
    def has_changes(self) -> bool:
        """Check whether the diff contains at least one hunk.

        Returns:
            True if any hunk header is present
        """
        return "\n@@ " in self.diff_text


class PullRequestDetails(BaseModel):
    """Metadata of a pull request needed to record a review."""

    source_branch: str
    target_branch: str
    last_merge_commit: str
    project_id: str = ""


class CommentDetails(BaseModel):
    """A review comment to post on a file of a pull request."""

    file_path: str
    content: str
    line: int | None = None


class PostedComment(BaseModel):
    """Identifiers of a comment thread created on the provider."""

    thread_id: int
    comment_id: int


class ThreadComment(BaseModel):
    """A single comment in a pull request thread."""

    id: int
    content: str = ""


class Thread(BaseModel):
    """A comment conversation on a pull request, oldest comment first."""

    id: int
    comments: list[ThreadComment] = Field(default_factory=list)

    @property
    def has_reply(self) -> bool:
        """Check whether anyone answered the opening comment.

        Returns:
            True if the thread holds more than one comment
        """
        return len(self.comments) > 1

    @property
    def latest_comment(self) -> ThreadComment | None:
        """Return the most recent comment, if any."""
        return self.comments[-1] if self.comments else None
