"""
YouTube URL helpers.
"""

import re

_VIDEO_ID_PATTERNS = (
    re.compile(r"(?:youtube\.com/watch\?(?:[^#\s]*&)?v=|youtu\.be/)([^&\n?#/]+)"),
    re.compile(r"youtube\.com/(?:embed|v|shorts)/([^&\n?#/]+)"),
)

_URL_PATTERN = re.compile(
    r"^https?://(www\.|m\.)?(youtube\.com/(watch\?|embed/|v/|shorts/)|youtu\.be/)",
    re.IGNORECASE,
)


def is_youtube_url(url: str) -> bool:
    """Check that a URL points at a YouTube video."""
    return bool(url and _URL_PATTERN.match(url.strip()))


def extract_video_id(url: str) -> str | None:
    """
    Extract the video id from a YouTube URL.

    Args:
        url: watch, youtu.be, embed, v or shorts URL

    Returns:
        Video id, or None if the URL is not recognized

    Example:
        >>> extract_video_id("https://youtu.be/dQw4w9WgXcQ?t=42")
        'dQw4w9WgXcQ'
    """
    if not url:
        return None
    for pattern in _VIDEO_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None
