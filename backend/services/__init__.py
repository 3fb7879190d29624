"""
Services package.
"""

from services.analytics_service import AnalyticsService
from services.blob_store import BlobStore, LocalBlobStore, S3BlobStore, get_blob_store
from services.file_service import FileService
from services.upload_pipeline import UploadPipeline, UploadResult
from services.video_repository import VideoRepository

__all__ = [
    "AnalyticsService",
    "BlobStore",
    "LocalBlobStore",
    "S3BlobStore",
    "get_blob_store",
    "FileService",
    "UploadPipeline",
    "UploadResult",
    "VideoRepository",
]
