"""
View tracking and watch-progress analytics.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from models.video import Video
from services.video_repository import VideoRepository, watched_percentage
from utils.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Rolling window during which repeat views from one session count once
DEDUP_WINDOW = timedelta(hours=24)


class AnalyticsService:
    """Read-side tracking endpoints for the public watch page."""

    def __init__(self, repository: VideoRepository):
        self.repository = repository

    async def _require_video(self, video_id: str) -> Video:
        video = await self.repository.find_video(video_id)
        if not video:
            raise NotFoundError("Video not found")
        return video

    async def record_view(self, video_id: str, session_id: Optional[str],
                          user_agent: Optional[str] = None, now: Optional[datetime] = None) -> dict:
        """
        Count a view unless this session already viewed the video inside the
        dedup window. The window slides with ``now``; it is not calendar aligned.
        """
        if not session_id:
            raise ValidationError("missing_session_id", "sessionId is required")

        await self._require_video(video_id)

        now = now or datetime.utcnow()
        cutoff = now - DEDUP_WINDOW
        if await self.repository.find_recent_view(video_id, session_id, cutoff):
            logger.info(f"Deduplicated view: video_id={video_id}")
            return {"ok": True, "deduplicated": True}

        await self.repository.record_view(video_id, session_id, user_agent=user_agent, now=now)
        return {"ok": True}

    async def record_watch_progress(self, video_id: str, session_id: Optional[str],
                                    watched_seconds: Optional[float], video_duration: Optional[float]) -> dict:
        if not session_id or watched_seconds is None or not video_duration or video_duration <= 0:
            raise ValidationError(
                "missing_fields",
                "sessionId, watchedSeconds, and videoDuration are required",
            )

        await self._require_video(video_id)

        await self.repository.upsert_watch_session(video_id, session_id, watched_seconds, video_duration)
        return {"ok": True, "watchedPercentage": watched_percentage(watched_seconds, video_duration)}

    async def get_video_with_analytics(self, video_id: str) -> dict:
        video = await self._require_video(video_id)
        avg_watch = await self.repository.average_watch_percentage(video_id)

        return {
            "video": serialize_video(video),
            "analytics": {
                "viewCount": video.view_count,
                "avgWatchPercentage": avg_watch,
            },
        }


def serialize_video(video: Video) -> dict:
    return {
        "id": video.id,
        "filename": video.filename,
        "contentType": video.content_type,
        "durationSeconds": video.duration_seconds,
        "sizeBytes": video.size_bytes,
        "publicUrl": video.public_url,
        "viewCount": video.view_count,
        "createdAt": video.created_at.isoformat() + "Z",
    }
