"""
Analytics Ingestion API Routes.

Public endpoints the client tracker posts to.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, ConfigDict, Field

from sitepulse.api.deps import AnalyticsContext, get_analytics_context, get_client_key
from sitepulse.api.schemas import ErrorResponse, TrackResponse
from sitepulse.components.analytics import (
    IngestionError,
    TrackInteractionInput,
    TrackPageViewInput,
)

router = APIRouter()


# --- Request Models ---


class PageViewRequest(BaseModel):
    """Page view or duration update."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    path: str = Field(..., description="Logical route of the page")
    session_id: str = Field(..., alias="sessionId", description="Anonymous session id")
    referer: str | None = Field(None, description="Document referrer (first view only)")
    duration: float | None = Field(None, description="Seconds spent on the page")


class InteractionRequest(BaseModel):
    """Interaction submission."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = Field(..., description="Interaction type")
    element: str | None = Field(None, description="Element identifier")
    value: str | None = Field(None, description="Associated value")
    metadata: dict[str, Any] | None = Field(None, description="Free-form metadata")
    session_id: str | None = Field(None, alias="sessionId", description="Anonymous session id")
    path: str | None = Field(None, description="Page path")


# --- Helpers ---


def _raise_for_errors(errors: list[IngestionError]) -> None:
    if not errors:
        return

    if any(e.code == "rate_limit_exceeded" for e in errors):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded",
        )

    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={
            "success": False,
            "errors": [
                {
                    "code": e.code,
                    "message": e.message,
                    "field": e.field_name,
                }
                for e in errors
            ],
        },
    )


# --- Routes ---


@router.post(
    "/track-page-view",
    response_model=TrackResponse,
    responses={
        400: {"model": ErrorResponse},
        429: {"description": "Rate limit exceeded"},
    },
)
def track_page_view(
    request: Request,
    body: PageViewRequest,
    context: AnalyticsContext = Depends(get_analytics_context),
) -> TrackResponse:
    """
    Record a page view, or a duration update when ``duration`` is present.

    Admin paths and sub-second durations are accepted with ``tracked: false``.
    """
    result = context.ingestion.track_page_view(
        TrackPageViewInput(
            data=body.model_dump(by_alias=True),
            user_agent=request.headers.get("user-agent"),
            client_key=get_client_key(request),
        )
    )
    _raise_for_errors(result.errors)
    return TrackResponse(tracked=result.tracked)


@router.post(
    "/track-interaction",
    response_model=TrackResponse,
    responses={
        400: {"model": ErrorResponse},
        429: {"description": "Rate limit exceeded"},
    },
)
def track_interaction(
    request: Request,
    body: InteractionRequest,
    context: AnalyticsContext = Depends(get_analytics_context),
) -> TrackResponse:
    """Record an interaction. Session id defaults to "anonymous" and path to "/"."""
    result = context.ingestion.track_interaction(
        TrackInteractionInput(
            data=body.model_dump(by_alias=True),
            user_agent=request.headers.get("user-agent"),
            client_key=get_client_key(request),
        )
    )
    _raise_for_errors(result.errors)
    return TrackResponse(tracked=result.tracked)
