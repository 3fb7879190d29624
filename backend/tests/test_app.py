import pytest
from fastapi import FastAPI
from httpx import AsyncClient
from sqlalchemy import select, func

from config import Settings
from main import include_routers
from models.video import View, WatchSession

WEBM_BYTES = b"\x1aE\xdf\xa3" + b"recording" * 32


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    response = await client.get("http://test/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["storage"] == "local"
    assert "app" in data


@pytest.mark.asyncio
async def test_watch_page_renders_player(client: AsyncClient, make_video):
    video = await make_video(view_count=7)

    response = await client.get(f"http://test/v/{video.id}")

    assert response.status_code == 200
    assert "text/html" in response.headers["content-type"]
    assert video.public_url in response.text
    assert f'var videoId = "{video.id}"' in response.text
    assert "7</span> views" in response.text


@pytest.mark.asyncio
async def test_watch_page_unknown_video(client: AsyncClient):
    response = await client.get("http://test/v/does-not-exist")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_video_removes_row_children_and_file(client: AsyncClient, blob_store, session_factory):
    files = {"file": ("recording.webm", WEBM_BYTES, "video/webm")}
    upload = await client.post("/videos", files=files)
    video_id = upload.json()["videoId"]
    await client.post(f"/videos/{video_id}/views", json={"sessionId": "s1"})
    await client.post(
        f"/videos/{video_id}/watch-sessions",
        json={"sessionId": "s1", "watchedSeconds": 3, "videoDuration": 20},
    )
    assert blob_store.final_path_for(video_id).exists()

    response = await client.delete(f"/videos/{video_id}")

    assert response.status_code == 200
    assert (await client.get(f"/videos/{video_id}")).status_code == 404
    assert not blob_store.final_path_for(video_id).exists()
    async with session_factory() as session:
        for model in (View, WatchSession):
            count = await session.execute(select(func.count()).select_from(model))
            assert count.scalar() == 0


@pytest.mark.asyncio
async def test_delete_unknown_video(client: AsyncClient):
    response = await client.delete("/videos/does-not-exist")

    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


@pytest.mark.parametrize("s3_endpoint, s3_key, serves_uploads", [
    (None, None, True),
    ("https://r2.example.com", "key-id", False),
])
def test_upload_routes_only_for_local_storage(tmp_path, s3_endpoint, s3_key, serves_uploads):
    config = Settings(_env_file=None, upload_dir=tmp_path, s3_endpoint=s3_endpoint, s3_access_key_id=s3_key)
    application = FastAPI()

    include_routers(application, config)

    paths = {route.path for route in application.routes}
    assert ("/api/uploads/{path:path}" in paths) is serves_uploads
    assert "/api/videos/{video_id}" in paths
    assert "/v/{video_id}" in paths
