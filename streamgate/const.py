HLS_CONTENT_TYPE = "application/vnd.apple.mpegurl"

MANIFEST_EXTENSIONS = (".m3u8",)

MASTER_MANIFEST_NAME = "master.m3u8"

SEGMENT_EXTENSIONS = (
    ".ts",
    ".m4s",
    ".mp4",
    ".m4a",
    ".m4v",
    ".aac",
    ".cmfv",
    ".cmfa",
    ".vtt",
    ".webvtt",
)

PROGRESSIVE_VIDEO_EXTENSIONS = (
    ".mkv",
    ".mp4",
    ".mov",
    ".webm",
    ".m4v",
    ".avi",
)

SUBTITLE_EXTENSIONS = (".vtt",)
