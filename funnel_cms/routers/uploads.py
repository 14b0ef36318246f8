import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from funnel_cms import models, schemas
from funnel_cms.core import storage
from funnel_cms.core.media_urls import sanitize_filename
from funnel_cms.deps import get_current_user


router = APIRouter(tags=["uploads"])
logger = logging.getLogger(__name__)

MAX_IMAGE_SIZE = 10 * 1024 * 1024
MAX_VIDEO_SIZE = 1024 * 1024 * 1024
ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp", "image/svg+xml"}
ALLOWED_VIDEO_TYPES = {
    "video/mp4",
    "video/quicktime",
    "video/x-msvideo",
    "video/webm",
    "video/ogg",
    "video/x-matroska",
}


def _normalize_folder(folder: str) -> str:
    value = folder.strip().replace("\\", "/").strip("/")
    if not value or ".." in value.split("/"):
        raise HTTPException(status_code=400, detail="folder is required")
    return value


@router.post("", response_model=schemas.UploadOut, status_code=status.HTTP_201_CREATED)
def upload_file(
    file: UploadFile = File(...),
    folder: str = Form(default=""),
    _: models.User = Depends(get_current_user),
):
    folder_path = _normalize_folder(folder)
    content_type = (file.content_type or "").lower()
    is_video = content_type in ALLOWED_VIDEO_TYPES
    if content_type not in ALLOWED_IMAGE_TYPES and not is_video:
        allowed = ", ".join(sorted(ALLOWED_IMAGE_TYPES | ALLOWED_VIDEO_TYPES))
        raise HTTPException(status_code=400, detail=f"Invalid file type. Allowed types: {allowed}")

    payload = file.file.read()
    max_size = MAX_VIDEO_SIZE if is_video else MAX_IMAGE_SIZE
    if len(payload) > max_size:
        label = "1GB" if is_video else "10MB"
        raise HTTPException(status_code=400, detail=f"File size exceeds maximum of {label}")

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    path = f"{folder_path}/{timestamp}-{sanitize_filename(file.filename)}"
    try:
        url = storage.upload_bytes(payload, path, content_type)
    except storage.StorageError as error:
        logger.exception("upload failed: path=%s", path)
        raise HTTPException(status_code=500, detail=f"Upload failed: {error}") from error

    return schemas.UploadOut(url=url, path=path, content_type=content_type, size=len(payload))
