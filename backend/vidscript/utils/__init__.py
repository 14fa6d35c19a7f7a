"""
Shared utilities.

Modules:
    json_utils: JSON extraction and parsing from LLM responses
    youtube: YouTube URL validation and video id extraction
"""

from vidscript.utils.json_utils import extract_json_object, load_json_object
from vidscript.utils.youtube import extract_video_id, is_youtube_url

__all__ = [
    # json_utils
    "extract_json_object",
    "load_json_object",
    # youtube
    "extract_video_id",
    "is_youtube_url",
]
