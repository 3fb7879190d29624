"""
Public watch page.
"""

import html

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models import get_db
from services.video_repository import VideoRepository

router = APIRouter()

PAGE_TEMPLATE = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Watch Recording - {app_name}</title>
  <meta name="description" content="Watch this {seconds} second screen recording">
</head>
<body>
  <main>
    <video id="player" src="{public_url}" controls preload="metadata" style="max-width:100%"></video>
    <p><span id="views">{view_count}</span> views &middot; {avg_watch:.0f}% average watched</p>
  </main>
  <script>
    (function () {{
      var videoId = "{video_id}";
      var sessionId = localStorage.getItem("viewerSessionId");
      if (!sessionId) {{
        sessionId = crypto.randomUUID();
        localStorage.setItem("viewerSessionId", sessionId);
      }}
      var player = document.getElementById("player");
      var tracked = false;
      var maxWatched = 0;
      function post(path, body) {{
        return fetch("/api/videos/" + videoId + path, {{
          method: "POST",
          headers: {{"Content-Type": "application/json"}},
          body: JSON.stringify(body),
          keepalive: true
        }});
      }}
      function sendProgress() {{
        if (maxWatched > 0 && player.duration && isFinite(player.duration)) {{
          post("/watch-sessions", {{sessionId: sessionId, watchedSeconds: maxWatched, videoDuration: player.duration}});
        }}
      }}
      player.addEventListener("play", function () {{
        if (!tracked) {{
          tracked = true;
          post("/views", {{sessionId: sessionId}});
        }}
      }});
      player.addEventListener("timeupdate", function () {{
        maxWatched = Math.max(maxWatched, player.currentTime);
      }});
      player.addEventListener("pause", sendProgress);
      player.addEventListener("ended", sendProgress);
      setInterval(sendProgress, 10000);
      window.addEventListener("pagehide", sendProgress);
    }})();
  </script>
</body>
</html>
"""

NOT_FOUND_PAGE = "<!doctype html><html><body><h1>Video not found</h1></body></html>"


@router.get("/v/{video_id}", response_class=HTMLResponse)
async def watch_page(video_id: str, db: AsyncSession = Depends(get_db)):
    """Render the public player for a video."""
    repository = VideoRepository(db)
    video = await repository.find_video(video_id)
    if not video:
        return HTMLResponse(NOT_FOUND_PAGE, status_code=404)

    avg_watch = await repository.average_watch_percentage(video_id)
    return PAGE_TEMPLATE.format(
        app_name=html.escape(settings.app_name),
        seconds=round(video.duration_seconds),
        public_url=html.escape(video.public_url, quote=True),
        view_count=video.view_count,
        avg_watch=avg_watch,
        video_id=html.escape(video.id, quote=True),
    )
