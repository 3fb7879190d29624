"""
Video upload, metadata and analytics endpoints.
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from engine.transcoder import MediaTranscoder, get_transcoder
from models import get_db
from services.analytics_service import AnalyticsService
from services.blob_store import BlobStore, get_blob_store
from services.upload_pipeline import UploadPipeline
from services.video_repository import VideoRepository
from utils.exceptions import AppError, NotFoundError, ProcessingError

logger = logging.getLogger(__name__)
router = APIRouter()


class ViewRequest(BaseModel):
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class WatchProgressRequest(BaseModel):
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    watched_seconds: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("watchedSeconds", "maxWatchedSeconds")
    )
    video_duration: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("videoDuration", "durationSeconds")
    )


def get_repository(db: AsyncSession = Depends(get_db)) -> VideoRepository:
    return VideoRepository(db)


def get_analytics(repository: VideoRepository = Depends(get_repository)) -> AnalyticsService:
    return AnalyticsService(repository)


@router.post("", status_code=201)
async def upload_video(
    file: Optional[UploadFile] = File(None),
    start_time: Optional[str] = Form(None, alias="startTime"),
    end_time: Optional[str] = Form(None, alias="endTime"),
    repository: VideoRepository = Depends(get_repository),
    blob_store: BlobStore = Depends(get_blob_store),
    transcoder: MediaTranscoder = Depends(get_transcoder),
):
    """
    Upload a recording, optionally trimmed to [startTime, endTime).

    Max size: MAX_UPLOAD_MB (200MB by default)
    """
    pipeline = UploadPipeline(repository, blob_store, transcoder)
    try:
        result = await asyncio.wait_for(
            pipeline.run(file, start_time, end_time),
            timeout=settings.max_request_seconds,
        )
    except asyncio.TimeoutError:
        logger.error(f"Upload exceeded {settings.max_request_seconds}s and was abandoned")
        raise ProcessingError(f"Processing exceeded {settings.max_request_seconds:g} seconds")
    except AppError:
        raise
    except Exception as e:
        logger.exception(f"Upload failed: {e}")
        raise AppError("An unexpected error occurred")

    return result.to_dict()


@router.get("/{video_id}")
async def get_video(video_id: str, analytics: AnalyticsService = Depends(get_analytics)):
    """Get video metadata with view and watch analytics."""
    return await analytics.get_video_with_analytics(video_id)


@router.delete("/{video_id}")
async def delete_video(
    video_id: str,
    repository: VideoRepository = Depends(get_repository),
    blob_store: BlobStore = Depends(get_blob_store),
):
    """Delete a video, its views and watch sessions, and the stored file."""
    if not await repository.delete_video(video_id):
        raise NotFoundError("Video not found")

    await blob_store.delete(video_id)
    logger.info(f"Deleted video {video_id}")
    return {"ok": True}


@router.post("/{video_id}/views")
async def record_view(
    video_id: str,
    request: Request,
    payload: Optional[ViewRequest] = None,
    analytics: AnalyticsService = Depends(get_analytics),
):
    """Count a view, deduplicated per session over a rolling 24 hours."""
    return await analytics.record_view(
        video_id,
        payload.session_id if payload else None,
        user_agent=request.headers.get("user-agent"),
    )


@router.post("/{video_id}/watch-sessions")
async def record_watch_progress(
    video_id: str,
    payload: Optional[WatchProgressRequest] = None,
    analytics: AnalyticsService = Depends(get_analytics),
):
    """Record how far a session has watched. Progress never moves backwards."""
    payload = payload or WatchProgressRequest()
    return await analytics.record_watch_progress(
        video_id,
        payload.session_id,
        payload.watched_seconds,
        payload.video_duration,
    )
