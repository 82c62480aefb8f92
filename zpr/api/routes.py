"""Review endpoints."""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from functools import lru_cache
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from zpr.api.handlers.feedback_handler import handle_re_review
from zpr.api.handlers.review_handler import ReviewContext, prepare_review, run_review
from zpr.api.security import require_api_key
from zpr.config.settings import Settings, settings
from zpr.database.db import SessionLocal
from zpr.errors import CredentialExchangeError
from zpr.models.review import dump_review_run
from zpr.review.progress import ProgressChannel, ProgressRecorder
from zpr.services.llm import create_model_backend
from zpr.services.llm.base import ModelBackend
from zpr.services.repo_client import RepoClient, create_repo_client

logger = logging.getLogger(__name__)
router = APIRouter(tags=["review"], dependencies=[Depends(require_api_key)])

# Reviews keep running when a streaming client disconnects
_background_reviews: set[asyncio.Task[Any]] = set()


class ReviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    repo_name: str = Field(alias="repoName", min_length=1)
    pr_id: int = Field(alias="prId", gt=0)
    model_name: str | None = Field(default=None, alias="modelName")
    stream: bool = True


class ReReviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    repo_name: str = Field(alias="repoName", min_length=1)
    pr_id: int = Field(alias="prId", gt=0)


# === DEPENDENCY PROVIDERS ===


def get_settings() -> Settings:
    return settings


@lru_cache
def get_repo_client() -> RepoClient:
    """Shared repository client, so its credential is reused across requests."""
    return create_repo_client(settings)


@lru_cache
def get_model_backend() -> ModelBackend:
    return create_model_backend(settings)


async def close_shared_clients() -> None:
    """Close the cached collaborators and forget them."""
    for provider in (get_repo_client, get_model_backend):
        if provider.cache_info().currsize:
            await provider().aclose()
            provider.cache_clear()


def get_session_factory() -> Callable[[], Session]:
    return SessionLocal


# === ROUTES ===


@router.post("/review", response_model=None)
async def review(
    body: ReviewRequest,
    repo_client: RepoClient = Depends(get_repo_client),
    backend: ModelBackend = Depends(get_model_backend),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    app_settings: Settings = Depends(get_settings),
) -> StreamingResponse | JSONResponse:
    """Run a first review, streaming progress as server-sent events unless stream is false."""
    ctx = prepare_review(
        body.repo_name, body.pr_id, body.model_name, session_factory, app_settings
    )

    if not body.stream:
        recorder = ProgressRecorder()
        outcome = await run_review(
            ctx, recorder, repo_client, backend, session_factory, app_settings
        )
        events = [event.to_payload() for event in recorder.events]
        if outcome.error is not None:
            status_code = 502 if isinstance(outcome.error, CredentialExchangeError) else 500
            return JSONResponse(
                status_code=status_code,
                content={"message": str(outcome.error), "events": events},
            )
        return JSONResponse(
            content={
                "message": "review",
                "result": dump_review_run(outcome.result or []),
                "events": events,
            }
        )

    return StreamingResponse(
        _stream_review(ctx, repo_client, backend, session_factory, app_settings),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.post("/re-review")
async def re_review(
    body: ReReviewRequest,
    repo_client: RepoClient = Depends(get_repo_client),
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    app_settings: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Collect developer feedback from replies on the first review's threads."""
    report = await handle_re_review(
        body.repo_name, body.pr_id, repo_client, session_factory, app_settings
    )
    return {"message": "complete", **report.to_dict()}


# === HELPER FUNCTIONS ===


async def _stream_review(
    ctx: ReviewContext,
    repo_client: RepoClient,
    backend: ModelBackend,
    session_factory: Callable[[], Session],
    app_settings: Settings,
) -> AsyncIterator[str]:
    channel = ProgressChannel()

    async def review_then_close() -> None:
        try:
            await run_review(
                ctx, channel, repo_client, backend, session_factory, app_settings
            )
        finally:
            channel.close()

    task = asyncio.create_task(review_then_close())
    _background_reviews.add(task)
    task.add_done_callback(_background_reviews.discard)

    async for event in channel:
        yield event.to_sse()
