"""Unified diff rendering of a changed file and retrieval of its two versions."""

import asyncio
import difflib
import logging

from zpr.errors import ContentFetchError
from zpr.models.repo_types import ChangedFile, FileDiff
from zpr.services.repo_client import RepoClient

logger = logging.getLogger(__name__)

OLD_VERSION_HEADER = "Old Version"
NEW_VERSION_HEADER = "New Version"
CONTEXT_LINES = 4
INDEX_SEPARATOR = "=" * 67
NO_NEWLINE_MARKER = "\\ No newline at end of file"


def _split_lines(content: str) -> list[str]:
    """Split on line feeds only, keeping each terminator so a missing final newline shows up."""
    parts = content.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def diff(path: str, old_content: str, new_content: str) -> FileDiff:
    """
    Render the change between two full versions of a file as a unified diff.

    The header lines are always present, so identical contents produce a
    diff with no hunks. Only a line feed ends a line, so hunk line numbers match
    the file as the provider numbers it. A last line without a newline is
    followed by the NO_NEWLINE_MARKER line.

    Args:
        path: Path of the file, used in the header lines
        old_content: Content before the change
        new_content: Content after the change

    Returns:
        FileDiff holding the diff text and both versions
    """
    hunks = difflib.unified_diff(
        _split_lines(old_content),
        _split_lines(new_content),
        n=CONTEXT_LINES,
        lineterm="",
    )

    lines = [
        f"Index: {path}",
        INDEX_SEPARATOR,
        f"--- {path}\t{OLD_VERSION_HEADER}",
        f"+++ {path}\t{NEW_VERSION_HEADER}",
    ]
    # Skip difflib's own ---/+++ pair; the headers above replace it
    for i, line in enumerate(hunks):
        if i < 2:
            continue
        if line.startswith("@@"):
            lines.append(line)
        elif line.endswith("\n"):
            lines.append(line[:-1])
        else:
            lines.extend([line, NO_NEWLINE_MARKER])

    return FileDiff(
        path=path,
        diff_text="\n".join(lines) + "\n",
        old_content=old_content,
        new_content=new_content,
    )


def _decode(path: str, blob_id: str, content: bytes) -> str:
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ContentFetchError(
            f"Blob {blob_id} of {path} is not valid UTF-8: {e}"
        ) from e


async def resolve_file_diff(
    repo_client: RepoClient, repo_id: str, changed_file: ChangedFile
) -> FileDiff:
    """
    Fetch both versions of a changed file and diff them.

    Raises:
        ContentFetchError: If either blob cannot be fetched or decoded
    """
    old_bytes, new_bytes = await asyncio.gather(
        repo_client.fetch_blob(repo_id, changed_file.initial_file_id),
        repo_client.fetch_blob(repo_id, changed_file.modified_file_id),
    )

    old_content = _decode(changed_file.path, changed_file.initial_file_id, old_bytes)
    new_content = _decode(changed_file.path, changed_file.modified_file_id, new_bytes)

    file_diff = diff(changed_file.path, old_content, new_content)
    logger.debug(
        f"Diff for {changed_file.path}: {len(file_diff.diff_text)} characters"
    )
    return file_diff
