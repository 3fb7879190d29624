"""
Database models package.
"""

from models.database import Base, engine, get_db, async_session
from models.video import Video, View, WatchSession

__all__ = [
    "Base",
    "engine",
    "get_db",
    "async_session",
    "Video",
    "View",
    "WatchSession",
]
