"""
Upload pipeline.
Validates an uploaded recording, trims or remuxes it with ffmpeg, publishes
the result to blob storage and records its metadata.
"""

import asyncio
import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Optional

from config import Settings, settings
from engine.transcoder import MediaTranscoder, ToolResult
from models.video import Video, VIDEO_CONTENT_TYPE, VIDEO_EXTENSION
from services.blob_store import BlobStore
from services.video_repository import VideoRepository
from utils.exceptions import FileTooLargeError, ProcessingError, ValidationError
from utils.perf_logger import perf_logger

logger = logging.getLogger(__name__)

# Used when ffprobe cannot report a duration and no trim range was given
DEFAULT_DURATION_SECONDS = 10.0


@dataclass
class UploadResult:
    """Payload returned to the client after a successful upload."""
    video_id: str
    public_url: str
    duration: float
    size_bytes: int
    watch_page_url: str

    def to_dict(self) -> dict:
        return {
            "videoId": self.video_id,
            "publicUrl": self.public_url,
            "duration": self.duration,
            "sizeBytes": self.size_bytes,
            "watchPageUrl": self.watch_page_url,
        }


def parse_seconds(value: Optional[str]) -> Optional[float]:
    """Parse a form field holding decimal seconds. Returns None if unparsable."""
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(seconds) or math.isinf(seconds):
        return None
    return seconds


class UploadPipeline:
    """
    Runs one upload from raw bytes to a published, recorded video.

    Nothing here is retried. The raw scratch file is removed on every exit
    path once a video id has been assigned.
    """

    def __init__(self, repository: VideoRepository, blob_store: BlobStore,
                 transcoder: MediaTranscoder, config: Settings = settings):
        self.repository = repository
        self.blob_store = blob_store
        self.transcoder = transcoder
        self.config = config

    def validate(self, upload) -> None:
        """
        Reject missing, oversized, or non-video uploads.

        The type check is deliberately lenient: either a video/* MIME type or
        a .webm filename is enough.
        """
        if upload is None or not getattr(upload, "filename", None):
            raise ValidationError("missing_file", "No file provided")

        if upload.size is not None and upload.size > self.config.max_upload_bytes:
            raise FileTooLargeError(self.config.max_upload_mb)

        content_type = upload.content_type or ""
        if not (content_type.startswith("video/") or upload.filename.lower().endswith(VIDEO_EXTENSION)):
            raise ValidationError("invalid_type", f"Only video files are allowed. Got: {content_type}")

    async def run(self, upload, start_time: Optional[str] = None, end_time: Optional[str] = None) -> UploadResult:
        self.blob_store.ensure_directories()
        self.validate(upload)

        video_id = str(uuid.uuid4())
        logger.info(f"Upload received: video_id={video_id}, filename={upload.filename}, size={upload.size}")

        try:
            raw_path = await self.blob_store.save_raw(video_id, upload)
            final_path = self.blob_store.final_path_for(video_id)

            start = parse_seconds(start_time) if start_time else 0.0
            end = parse_seconds(end_time)
            trimmed = start is not None and end is not None and start >= 0 and end > start

            result = await self._transcode(video_id, raw_path, final_path, start, end, trimmed)
            if not result.success:
                self.blob_store.discard_local_final(video_id)
                raise ProcessingError(result.error or "Video processing failed", detail=result.error)

            # ffmpeg can exit 0 without writing anything
            if not final_path.is_file():
                logger.error(f"Final file does not exist at: {final_path}")
                raise ProcessingError("Final video file was not created")

            duration = await self._probe_duration(final_path, start, end, trimmed)
            size_bytes = final_path.stat().st_size

            phase = f"Publish (video {video_id})"
            perf_logger.start_phase(phase)
            try:
                await self.blob_store.publish_final(video_id, final_path)
            except Exception:
                self.blob_store.discard_local_final(video_id)
                raise
            finally:
                perf_logger.end_phase(phase, self.blob_store.backend_name)

            public_url = self.blob_store.public_url_for(video_id)
            await self._record_video(video_id, duration, size_bytes, public_url)
        finally:
            self.blob_store.delete_raw(video_id)

        logger.info(f"Upload complete: video_id={video_id}, duration={duration:.2f}s, size={size_bytes}")
        return UploadResult(
            video_id=video_id,
            public_url=public_url,
            duration=duration,
            size_bytes=size_bytes,
            watch_page_url=f"{self.config.public_base_url}/v/{video_id}",
        )

    async def _transcode(self, video_id: str, raw_path: Path, final_path: Path,
                         start: Optional[float], end: Optional[float], trimmed: bool) -> ToolResult:
        loop = asyncio.get_event_loop()
        phase = f"Transcode (video {video_id})"
        perf_logger.start_phase(phase)
        if trimmed:
            call = partial(self.transcoder.trim, str(raw_path), str(final_path), start, end)
        else:
            call = partial(self.transcoder.copy, str(raw_path), str(final_path))
        try:
            result = await loop.run_in_executor(None, call)
        finally:
            perf_logger.end_phase(phase, "trim" if trimmed else "copy")
        return result

    async def _probe_duration(self, final_path: Path, start: Optional[float],
                              end: Optional[float], trimmed: bool) -> float:
        loop = asyncio.get_event_loop()
        duration = await loop.run_in_executor(None, self.transcoder.probe_duration, str(final_path))
        if duration is not None:
            return duration

        estimate = end - start if trimmed else DEFAULT_DURATION_SECONDS
        logger.warning(f"Could not determine duration of {final_path}, using estimate {estimate}s")
        return estimate

    async def _record_video(self, video_id: str, duration: float, size_bytes: int, public_url: str) -> None:
        now = datetime.utcnow()
        video = Video(
            id=video_id,
            filename=self.blob_store.key_for(video_id),
            content_type=VIDEO_CONTENT_TYPE,
            duration_seconds=duration,
            size_bytes=size_bytes,
            public_url=public_url,
            view_count=0,
            created_at=now,
            updated_at=now,
        )
        try:
            await self.repository.create_video(video)
        except (Exception, asyncio.CancelledError):
            # Don't leave a published blob that no row points at, even on timeout
            logger.error(f"Failed to record video {video_id}, removing published file")
            await self.blob_store.delete(video_id)
            raise
