"""
Blob storage for processed recordings.

Two interchangeable backends share one interface:

- LocalBlobStore keeps final videos under ``<upload_dir>/videos`` and serves
  them through the ``/api/uploads`` route.
- S3BlobStore uploads final videos to an S3-compatible bucket (S3, R2, MinIO)
  and serves them from a public base URL.

Both always use the local ``raw`` and ``videos`` directories as scratch space,
because ffmpeg needs a local file to read from and write to. The backend is
chosen once at startup from configuration.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from functools import partial
from pathlib import Path
from typing import Optional

import aiofiles
import boto3
from botocore.exceptions import BotoCoreError, ClientError

from config import Settings, settings
from models.video import VIDEO_CONTENT_TYPE, VIDEO_EXTENSION
from utils.exceptions import FileTooLargeError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1MB


class BlobStore(ABC):
    """Base class holding the local scratch layout shared by every backend."""

    backend_name = "base"

    def __init__(self, root: Path, public_base_url: str, max_upload_bytes: int):
        self.root = Path(root)
        self.raw_dir = self.root / "raw"
        self.videos_dir = self.root / "videos"
        self.public_base_url = public_base_url.rstrip("/")
        self.max_upload_bytes = max_upload_bytes

    # ---- local scratch -------------------------------------------------

    def ensure_directories(self) -> None:
        """Create the scratch and final directories. Safe to call on every request."""
        self.raw_dir.mkdir(parents=True, exist_ok=True)
        self.videos_dir.mkdir(parents=True, exist_ok=True)

    def key_for(self, video_id: str) -> str:
        return f"videos/{video_id}{VIDEO_EXTENSION}"

    def raw_path_for(self, video_id: str) -> Path:
        return self.raw_dir / f"{video_id}{VIDEO_EXTENSION}"

    def final_path_for(self, video_id: str) -> Path:
        """Canonical local path ffmpeg writes the processed video to."""
        return self.videos_dir / f"{video_id}{VIDEO_EXTENSION}"

    async def save_raw(self, video_id: str, upload) -> Path:
        """
        Stream an uploaded file to scratch storage.

        Enforces the size limit while streaming, since the declared size of a
        multipart part is not always known up front.

        Raises:
            FileTooLargeError: If more than max_upload_bytes are received.
        """
        self.ensure_directories()
        file_path = self.raw_path_for(video_id)
        total_size = 0
        try:
            async with aiofiles.open(file_path, "wb") as out_file:
                while chunk := await upload.read(CHUNK_SIZE):
                    total_size += len(chunk)
                    if total_size > self.max_upload_bytes:
                        raise FileTooLargeError(self.max_upload_bytes // (1024 * 1024))
                    await out_file.write(chunk)
        except BaseException:
            _unlink_quietly(file_path)
            raise

        logger.info(f"Saved raw upload: {file_path} ({total_size} bytes)")
        return file_path

    def delete_raw(self, video_id: str) -> None:
        """Best-effort removal of the raw scratch file."""
        _unlink_quietly(self.raw_path_for(video_id))

    def discard_local_final(self, video_id: str) -> None:
        """Best-effort removal of a partially written local output file."""
        _unlink_quietly(self.final_path_for(video_id))

    # ---- backend specific ----------------------------------------------

    @abstractmethod
    async def publish_final(self, video_id: str, local_path: Path) -> None:
        """Make the processed file durable. Errors propagate to the caller."""

    @abstractmethod
    def public_url_for(self, video_id: str) -> str:
        """URL clients use to play the video."""

    @abstractmethod
    async def exists(self, video_id: str) -> bool:
        ...

    @abstractmethod
    async def stat_size(self, video_id: str) -> Optional[int]:
        ...

    @abstractmethod
    async def delete(self, video_id: str) -> None:
        """Best-effort removal of the published video."""


class LocalBlobStore(BlobStore):
    """Stores final videos on the local filesystem, where ffmpeg already wrote them."""

    backend_name = "local"

    async def publish_final(self, video_id: str, local_path: Path) -> None:
        # The ffmpeg output path is already the served path
        logger.info(f"Saved locally: {local_path}")

    def public_url_for(self, video_id: str) -> str:
        return f"{self.public_base_url}/api/uploads/{self.key_for(video_id)}"

    async def exists(self, video_id: str) -> bool:
        return self.final_path_for(video_id).is_file()

    async def stat_size(self, video_id: str) -> Optional[int]:
        path = self.final_path_for(video_id)
        if not path.is_file():
            return None
        return path.stat().st_size

    async def delete(self, video_id: str) -> None:
        _unlink_quietly(self.final_path_for(video_id))


class S3BlobStore(BlobStore):
    """Uploads final videos to an S3-compatible bucket."""

    backend_name = "s3"

    def __init__(self, root: Path, public_base_url: str, max_upload_bytes: int,
                 client, bucket: str, object_public_url: str):
        super().__init__(root, public_base_url, max_upload_bytes)
        self.client = client
        self.bucket = bucket
        self.object_public_url = object_public_url.rstrip("/")

    async def _call(self, func, *args, **kwargs):
        # boto3 is blocking; keep it off the event loop
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    async def publish_final(self, video_id: str, local_path: Path) -> None:
        key = self.key_for(video_id)
        await self._call(
            self.client.upload_file,
            str(local_path),
            self.bucket,
            key,
            ExtraArgs={"ContentType": VIDEO_CONTENT_TYPE},
        )
        logger.info(f"Uploaded to bucket {self.bucket}: {key}")

        # The bucket now owns the bytes; the local copy is only scratch
        _unlink_quietly(Path(local_path))

    def public_url_for(self, video_id: str) -> str:
        return f"{self.object_public_url}/{self.key_for(video_id)}"

    async def exists(self, video_id: str) -> bool:
        return await self.stat_size(video_id) is not None

    async def stat_size(self, video_id: str) -> Optional[int]:
        try:
            response = await self._call(self.client.head_object, Bucket=self.bucket, Key=self.key_for(video_id))
        except ClientError:
            return None
        return response.get("ContentLength", 0)

    async def delete(self, video_id: str) -> None:
        try:
            await self._call(self.client.delete_object, Bucket=self.bucket, Key=self.key_for(video_id))
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Could not delete video from bucket {video_id}: {e}")


def _unlink_quietly(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning(f"Could not delete {path}: {e}")


def create_blob_store(config: Settings) -> BlobStore:
    """Select the storage backend from configuration."""
    if config.use_object_storage:
        client = boto3.client(
            "s3",
            region_name=config.s3_region,
            endpoint_url=config.s3_endpoint,
            aws_access_key_id=config.s3_access_key_id,
            aws_secret_access_key=config.s3_secret_access_key,
        )
        store = S3BlobStore(
            config.upload_dir,
            config.public_base_url,
            config.max_upload_bytes,
            client=client,
            bucket=config.s3_bucket_name,
            object_public_url=config.s3_public_url,
        )
    else:
        store = LocalBlobStore(config.upload_dir, config.public_base_url, config.max_upload_bytes)

    logger.info(f"Storage mode: {store.backend_name}")
    return store


_blob_store: Optional[BlobStore] = None


def get_blob_store() -> BlobStore:
    """Dependency returning the process-wide blob store, created on first use."""
    global _blob_store
    if _blob_store is None:
        _blob_store = create_blob_store(settings)
    return _blob_store
