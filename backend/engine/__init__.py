"""
Engine package for media processing.
Contains the ffmpeg-backed transcoder.
"""

from engine.transcoder import MediaTranscoder, ToolResult, run_tool, get_transcoder

__all__ = [
    "MediaTranscoder",
    "ToolResult",
    "run_tool",
    "get_transcoder",
]
