import asyncio
import io
from unittest.mock import AsyncMock, MagicMock

import pytest
from botocore.exceptions import EndpointConnectionError
from starlette.datastructures import Headers, UploadFile

from config import settings
from engine.transcoder import ToolResult
from services.blob_store import S3BlobStore
from services.upload_pipeline import UploadPipeline, parse_seconds
from utils.exceptions import ProcessingError


def make_upload(data: bytes = b"recording-bytes", filename: str = "clip.webm",
                content_type: str = "video/webm") -> UploadFile:
    return UploadFile(
        file=io.BytesIO(data),
        filename=filename,
        size=len(data),
        headers=Headers({"content-type": content_type}),
    )


@pytest.mark.parametrize("value, expected", [
    ("2", 2.0),
    ("2.75", 2.75),
    ("-1", -1.0),
    (None, None),
    ("", None),
    ("abc", None),
    ("nan", None),
    ("inf", None),
])
def test_parse_seconds(value, expected):
    assert parse_seconds(value) == expected


@pytest.mark.asyncio
async def test_successful_run_records_video(blob_store, transcoder):
    repository = MagicMock()
    repository.create_video = AsyncMock(side_effect=lambda video: video)
    pipeline = UploadPipeline(repository, blob_store, transcoder)

    result = await pipeline.run(make_upload(), "1", "4")

    video = repository.create_video.call_args[0][0]
    assert video.id == result.video_id
    assert video.duration_seconds == pytest.approx(3.0)
    assert video.view_count == 0
    assert video.size_bytes == len(b"recording-bytes")
    assert video.public_url == result.public_url
    assert result.watch_page_url == f"{settings.public_base_url}/v/{result.video_id}"
    assert result.to_dict()["sizeBytes"] == video.size_bytes
    assert not blob_store.raw_path_for(result.video_id).exists()


@pytest.mark.asyncio
async def test_failed_insert_removes_published_file(blob_store, transcoder):
    repository = MagicMock()
    repository.create_video = AsyncMock(side_effect=RuntimeError("database is locked"))
    pipeline = UploadPipeline(repository, blob_store, transcoder)

    with pytest.raises(RuntimeError):
        await pipeline.run(make_upload())

    assert list(blob_store.videos_dir.iterdir()) == []
    assert list(blob_store.raw_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_publish_failure_is_hard_failure(tmp_path, transcoder):
    client = MagicMock()
    client.upload_file.side_effect = EndpointConnectionError(endpoint_url="https://r2.example.com")
    store = S3BlobStore(tmp_path, "http://test", settings.max_upload_bytes,
                        client=client, bucket="recordings", object_public_url="https://cdn.example.com")
    repository = MagicMock()
    repository.create_video = AsyncMock()
    pipeline = UploadPipeline(repository, store, transcoder)

    with pytest.raises(EndpointConnectionError):
        await pipeline.run(make_upload())

    repository.create_video.assert_not_called()
    assert list(store.raw_dir.iterdir()) == []
    assert list(store.videos_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_tool_failure_carries_diagnostic(blob_store, transcoder):
    transcoder.result = ToolResult(success=False, error="ffmpeg exited with code 1: bad header")
    repository = MagicMock()
    repository.create_video = AsyncMock()
    pipeline = UploadPipeline(repository, blob_store, transcoder)

    with pytest.raises(ProcessingError) as exc_info:
        await pipeline.run(make_upload())

    assert exc_info.value.detail.endswith("bad header")
    repository.create_video.assert_not_called()
    assert list(blob_store.raw_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_timeout_during_insert_removes_published_file(blob_store, transcoder):
    async def slow_insert(video):
        await asyncio.sleep(5)

    repository = MagicMock()
    repository.create_video = AsyncMock(side_effect=slow_insert)
    pipeline = UploadPipeline(repository, blob_store, transcoder)

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(pipeline.run(make_upload()), timeout=0.5)

    repository.create_video.assert_called_once()
    assert list(blob_store.videos_dir.iterdir()) == []
    assert list(blob_store.raw_dir.iterdir()) == []


@pytest.mark.asyncio
async def test_s3_insert_failure_deletes_object(tmp_path, transcoder):
    client = MagicMock()
    store = S3BlobStore(tmp_path, "http://test", settings.max_upload_bytes,
                        client=client, bucket="recordings", object_public_url="https://cdn.example.com")
    repository = MagicMock()
    repository.create_video = AsyncMock(side_effect=RuntimeError("database is locked"))
    pipeline = UploadPipeline(repository, store, transcoder)

    with pytest.raises(RuntimeError):
        await pipeline.run(make_upload())

    key = client.upload_file.call_args[0][2]
    client.delete_object.assert_called_once_with(Bucket="recordings", Key=key)
    assert list(store.videos_dir.iterdir()) == []
    assert list(store.raw_dir.iterdir()) == []
