import re
from pathlib import PurePosixPath
from urllib.parse import urlparse

from funnel_cms.models import MediaSourceType, MediaType


EMBED_VIDEO_SOURCES = {MediaSourceType.wistia, MediaSourceType.youtube, MediaSourceType.vimeo}
IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".bmp"}
VIDEO_EXTENSIONS = {".mp4", ".webm", ".ogg", ".mov", ".avi", ".mkv", ".flv", ".wmv"}

_SAFE_FILENAME_PATTERN = re.compile(r"[^0-9A-Za-z._-]+")


def has_scheme(url: str) -> bool:
    return url.startswith("http://") or url.startswith("https://")


def normalize_avatar_url(url: str | None) -> str | None:
    if url is None:
        return None
    value = url.strip()
    if not value:
        return None
    if has_scheme(value):
        return value
    if "b-cdn.net" in value or "cdn" in value:
        return f"https://{value}"
    return value


def url_extension(url: str) -> str:
    path = urlparse(url).path if has_scheme(url) else url.split("?", 1)[0].split("#", 1)[0]
    return PurePosixPath(path).suffix.lower()


def determine_media_type(source_type: MediaSourceType | str, url: str | None) -> MediaType:
    source = MediaSourceType(source_type)
    if source in EMBED_VIDEO_SOURCES:
        return MediaType.video
    extension = url_extension(url or "")
    if extension in IMAGE_EXTENSIONS:
        return MediaType.image
    if extension in VIDEO_EXTENSIONS:
        return MediaType.video
    return MediaType.file


def wistia_url(embed_id: str) -> str:
    return f"wistia:{embed_id.strip()}"


def sanitize_filename(filename: str | None, fallback: str = "file") -> str:
    name = PurePosixPath((filename or "").replace("\\", "/")).name
    stem = PurePosixPath(name).stem
    suffix = PurePosixPath(name).suffix.lower()
    clean = _SAFE_FILENAME_PATTERN.sub("-", stem).strip("-._")
    clean = re.sub(r"-{2,}", "-", clean)[:120]
    return f"{clean or fallback}{suffix}"
