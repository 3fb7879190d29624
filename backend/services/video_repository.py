"""
Metadata repository for videos, views and watch sessions.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from models.video import Video, View, WatchSession

logger = logging.getLogger(__name__)


def watched_percentage(watched_seconds: float, duration_seconds: float) -> float:
    """Share of the video watched, clamped to 0-100."""
    return max(0.0, min(100.0, watched_seconds / duration_seconds * 100))


class VideoRepository:
    """All persistence for the video domain goes through here."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_video(self, video: Video) -> Video:
        self.db.add(video)
        await self.db.commit()
        await self.db.refresh(video)
        return video

    async def find_video(self, video_id: str) -> Optional[Video]:
        result = await self.db.execute(select(Video).where(Video.id == video_id))
        return result.scalar_one_or_none()

    async def delete_video(self, video_id: str) -> bool:
        """Delete a video and, via cascade, its views and watch sessions."""
        video = await self.find_video(video_id)
        if video is None:
            return False
        await self.db.delete(video)
        await self.db.commit()
        return True

    # ---- views ---------------------------------------------------------

    async def increment_view_count(self, video_id: str) -> None:
        """Bump the counter in SQL. Does not commit."""
        await self.db.execute(
            update(Video)
            .where(Video.id == video_id)
            .values(view_count=Video.view_count + 1, updated_at=datetime.utcnow())
        )

    async def insert_view(self, view: View) -> View:
        """Stage a view row. Does not commit."""
        self.db.add(view)
        await self.db.flush()
        return view

    async def record_view(self, video_id: str, session_id: str, user_agent: Optional[str] = None,
                          now: Optional[datetime] = None) -> View:
        """Insert a view and increment the counter as one transaction."""
        view = View(
            video_id=video_id,
            session_id=session_id,
            user_agent=user_agent,
            created_at=now or datetime.utcnow(),
        )
        try:
            await self.insert_view(view)
            await self.increment_view_count(video_id)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return view

    async def find_recent_view(self, video_id: str, session_id: str, since: datetime) -> Optional[View]:
        result = await self.db.execute(
            select(View)
            .where(
                View.video_id == video_id,
                View.session_id == session_id,
                View.created_at >= since,
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ---- watch sessions ------------------------------------------------

    async def find_watch_session(self, video_id: str, session_id: str) -> Optional[WatchSession]:
        result = await self.db.execute(
            select(WatchSession)
            .where(WatchSession.video_id == video_id, WatchSession.session_id == session_id)
            .order_by(WatchSession.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def upsert_watch_session(self, video_id: str, session_id: str,
                                   watched_seconds: float, duration_seconds: float) -> WatchSession:
        """
        Find-or-create a watch session, only ever moving its progress forward.

        This is a plain read-modify-write. Two concurrent first reports for the
        same session can both miss the read and insert two rows; the average
        then counts that viewer twice. No lock is taken for this.
        """
        percentage = watched_percentage(watched_seconds, duration_seconds)
        session = await self.find_watch_session(video_id, session_id)

        if session is None:
            session = WatchSession(
                video_id=video_id,
                session_id=session_id,
                max_watched_seconds=watched_seconds,
                duration_seconds=duration_seconds,
                watched_percentage=percentage,
            )
            self.db.add(session)
        elif watched_seconds > session.max_watched_seconds:
            session.max_watched_seconds = watched_seconds
            session.duration_seconds = duration_seconds
            session.watched_percentage = percentage
        else:
            # Rewind or repeat report; keep the furthest position
            return session

        await self.db.commit()
        await self.db.refresh(session)
        return session

    async def average_watch_percentage(self, video_id: str) -> float:
        result = await self.db.execute(
            select(func.avg(WatchSession.watched_percentage)).where(WatchSession.video_id == video_id)
        )
        average = result.scalar()
        return float(average) if average is not None else 0.0
