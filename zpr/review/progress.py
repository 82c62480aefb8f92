"""Progress events emitted while a review runs, and the channel that carries them."""

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any, Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field

ProgressEventType = Literal["status", "fileStart", "fileComplete", "error", "complete"]


class ProgressEvent(BaseModel):
    """A single progress notification; unset fields are left out of the payload."""

    model_config = ConfigDict(populate_by_name=True)

    type: ProgressEventType
    message: str | None = None
    file: str | None = None
    index: int | None = None
    total: int | None = None
    issue_count: int | None = Field(default=None, alias="issueCount")
    result: list[list[dict[str, Any]]] | None = None

    @classmethod
    def status(cls, message: str) -> "ProgressEvent":
        return cls(type="status", message=message)

    @classmethod
    def file_start(cls, file: str, index: int, total: int) -> "ProgressEvent":
        return cls(type="fileStart", file=file, index=index, total=total)

    @classmethod
    def file_complete(
        cls, file: str, index: int, total: int, issue_count: int
    ) -> "ProgressEvent":
        return cls(
            type="fileComplete",
            file=file,
            index=index,
            total=total,
            issue_count=issue_count,
        )

    @classmethod
    def error(cls, message: str, file: str | None = None) -> "ProgressEvent":
        return cls(type="error", message=message, file=file)

    @classmethod
    def complete(cls, result: list[list[dict[str, Any]]]) -> "ProgressEvent":
        return cls(
            type="complete", message="Review completed successfully", result=result
        )

    @property
    def is_terminal(self) -> bool:
        """An error without a file, or complete, ends the run."""
        return self.type == "complete" or (self.type == "error" and self.file is None)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    def to_sse(self) -> str:
        """Render the event as a server-sent events frame."""
        return f"data: {json.dumps(self.to_payload())}\n\n"


class ProgressSink(Protocol):
    def emit(self, event: ProgressEvent) -> None: ...


class ProgressRecorder:
    """Sink that keeps every event in a list."""

    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []

    def emit(self, event: ProgressEvent) -> None:
        self.events.append(event)


_CLOSED = object()


class ProgressChannel:
    """
    Unbounded, ordered queue of progress events for a single consumer.

    emit() never blocks. close() ends the stream once; emitting afterwards
    raises RuntimeError. Iterating with `async for` yields events until the
    channel is closed.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, event: ProgressEvent) -> None:
        if self._closed:
            raise RuntimeError("Cannot emit on a closed progress channel")
        self._queue.put_nowait(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> AsyncIterator[ProgressEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ProgressEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item
