"""
Video, view and watch-session database models.
"""

import uuid
from datetime import datetime
from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from models.database import Base

VIDEO_CONTENT_TYPE = "video/webm"
VIDEO_EXTENSION = ".webm"


def new_id() -> str:
    return str(uuid.uuid4())


class Video(Base):
    """A processed recording and its public location."""

    __tablename__ = "videos"

    id = Column(String(36), primary_key=True, default=new_id)
    filename = Column(String(255), nullable=False)  # storage key, e.g. videos/<id>.webm
    content_type = Column(String(50), nullable=False, default=VIDEO_CONTENT_TYPE)
    duration_seconds = Column(Float, nullable=False)
    size_bytes = Column(Integer, nullable=False)
    public_url = Column(String(1000), nullable=False)
    view_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    views = relationship("View", back_populates="video", cascade="all, delete-orphan")
    watch_sessions = relationship("WatchSession", back_populates="video", cascade="all, delete-orphan")


class View(Base):
    """One counted view of a video by a viewer session."""

    __tablename__ = "views"
    __table_args__ = (Index("idx_views_video_session", "video_id", "session_id"),)

    id = Column(String(36), primary_key=True, default=new_id)
    video_id = Column(String(36), ForeignKey("videos.id", ondelete="CASCADE"), nullable=False)
    session_id = Column(String(255), nullable=False)
    user_agent = Column(String(1000), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    video = relationship("Video", back_populates="views")


class WatchSession(Base):
    """Furthest playback position reached by a viewer session."""

    __tablename__ = "watch_sessions"
    __table_args__ = (Index("idx_watch_sessions_video_session", "video_id", "session_id"),)

    id = Column(String(36), primary_key=True, default=new_id)
    video_id = Column(String(36), ForeignKey("videos.id", ondelete="CASCADE"), nullable=False)
    session_id = Column(String(255), nullable=False)
    max_watched_seconds = Column(Float, nullable=False)
    duration_seconds = Column(Float, nullable=False)
    watched_percentage = Column(Float, nullable=False)  # 0-100
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    video = relationship("Video", back_populates="watch_sessions")
