"""Review output and developer feedback models."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class ReviewIssue(BaseModel):
    """A single issue raised by the model for one file.

    Field aliases match the JSON shape the model is asked to produce.
    """

    model_config = ConfigDict(populate_by_name=True)

    file_path: str = Field(alias="filepath", description="path of the file")
    issue: str = Field(description="a short description of the issue")
    line_number: int = Field(
        alias="lineNumber", description="the line number at which the issue exists"
    )
    reason: str = Field(description="the reason for raising the issue")
    recommendation: str = Field(description="recommended solution")

    def format_comment(self) -> str:
        """Render the issue as the markdown body of a review comment."""
        return (
            f"**line**: {self.line_number}\n"
            f"**issue**: {self.issue}\n"
            f"**reason**: {self.reason}\n"
            f"**recommendation**: {self.recommendation}"
        )


# One list of issues per changed file, in the order the files were reviewed
ReviewRun = list[list[ReviewIssue]]

review_issues_adapter: TypeAdapter[list[ReviewIssue]] = TypeAdapter(list[ReviewIssue])
review_run_adapter: TypeAdapter[ReviewRun] = TypeAdapter(ReviewRun)

# JSON schema handed to model backends as the structured output contract
REVIEW_ISSUES_SCHEMA: dict[str, Any] = review_issues_adapter.json_schema()


def dump_review_run(result: ReviewRun) -> list[list[dict[str, Any]]]:
    """Serialise a review run with the JSON field names."""
    return review_run_adapter.dump_python(result, mode="json", by_alias=True)


class DevFeedback(BaseModel):
    """Feedback a developer attached to a posted comment by replying with a command."""

    model_config = ConfigDict(populate_by_name=True)

    false_alarm: bool = Field(alias="falseAlarm")
    scope: Literal["global", "project"]
    content: str

    def to_document(self) -> dict[str, Any]:
        """Return the camelCase document stored on the comment record."""
        return self.model_dump(by_alias=True)
