"""
Local file serving with byte-range support for video playback.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse, StreamingResponse

from services.blob_store import BlobStore, get_blob_store
from services.file_service import FileService

router = APIRouter()


def get_file_service(blob_store: BlobStore = Depends(get_blob_store)) -> FileService:
    return FileService(blob_store.root)


@router.get("/{path:path}")
async def serve_upload(
    path: str,
    request: Request,
    file_service: FileService = Depends(get_file_service),
):
    """Stream a stored file. Honors a single ``Range`` header for seeking."""
    file_path = file_service.resolve(path)
    size = file_path.stat().st_size
    media_type = file_service.get_media_type(file_path)

    range_header = request.headers.get("range")
    if range_header:
        start, end = file_service.parse_range(range_header, size)
        return StreamingResponse(
            file_service.iter_range(file_path, start, end),
            status_code=206,
            media_type=media_type,
            headers={
                "Content-Range": f"bytes {start}-{end}/{size}",
                "Accept-Ranges": "bytes",
                "Content-Length": str(end - start + 1),
            },
        )

    return FileResponse(
        file_path,
        media_type=media_type,
        headers={
            "Accept-Ranges": "bytes",
            "Cache-Control": "public, max-age=31536000, immutable",
        },
    )
