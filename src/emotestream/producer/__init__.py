"""Producer service: streams a video file to the video topic in a loop."""

from .video_source import VideoStreamer, iter_chunks

__all__ = ["VideoStreamer", "iter_chunks"]
