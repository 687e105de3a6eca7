import io
import logging
from pathlib import Path
from uuid import uuid4

from fastapi import APIRouter, File, HTTPException, Request, UploadFile, status
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel

from giftlist.api.deps import RequireAdminDep
from giftlist.core.config import settings
from giftlist.core.media import build_media_url, ensure_media_dirs, get_media_root


logger = logging.getLogger("giftlist.uploads")

router = APIRouter(prefix="/uploads", tags=["uploads"])


class UploadImageResponse(BaseModel):
    url: str
    width: int
    height: int


_ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp"}
_FORMAT_EXTENSIONS = {"JPEG": "jpg", "PNG": "png", "WEBP": "webp"}
_UNSUPPORTED = "Only JPEG, PNG or WebP images are supported."


def _validate_upload(file: UploadFile, data: bytes) -> tuple[str, int, int]:
    if file.content_type not in _ALLOWED_CONTENT_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_UNSUPPORTED)

    max_bytes = int(settings.image_upload_max_mb) * 1024 * 1024
    if len(data) > max_bytes:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File must not exceed {settings.image_upload_max_mb} MB.",
        )

    try:
        Image.open(io.BytesIO(data)).verify()
        # verify() leaves the image unusable; reopen to read format and size
        img = Image.open(io.BytesIO(data))
    except (UnidentifiedImageError, OSError, SyntaxError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File is not a valid image.",
        )

    ext = _FORMAT_EXTENSIONS.get((img.format or "").upper())
    if ext is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=_UNSUPPORTED)
    return ext, int(img.width), int(img.height)


def _save_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("wb") as f:
        f.write(data)


@router.post("/images", response_model=UploadImageResponse)
async def upload_image(
    request: Request,
    admin: RequireAdminDep,
    file: UploadFile = File(...),
) -> UploadImageResponse:
    try:
        ensure_media_dirs()
    except OSError:
        logger.exception("Failed to create media dirs")
        raise HTTPException(status_code=500, detail="Could not prepare upload directory")

    data = await file.read(int(settings.image_upload_max_mb) * 1024 * 1024 + 1)
    ext, width, height = _validate_upload(file, data)

    name = f"gift-{uuid4().hex}.{ext}"
    try:
        _save_bytes(get_media_root() / "gifts" / name, data)
    except OSError:
        logger.exception("Failed to save upload name=%s", name)
        raise HTTPException(status_code=500, detail="Could not save image")

    logger.info(
        "Image uploaded name=%s bytes=%d admin=%s id=%s",
        name,
        len(data),
        admin.identity,
        request.headers.get("X-Request-Id"),
    )
    return UploadImageResponse(url=build_media_url(f"gifts/{name}"), width=width, height=height)
