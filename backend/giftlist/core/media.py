import logging
from pathlib import Path
from urllib.parse import urlparse

from giftlist.core.config import settings


logger = logging.getLogger("giftlist.media")

_BACKEND_DIR = Path(__file__).resolve().parents[2]


def get_media_root() -> Path:
    root = Path(settings.media_root)
    if root.is_absolute():
        return root
    return _BACKEND_DIR / root


def ensure_media_dirs() -> None:
    root = get_media_root()
    root.mkdir(parents=True, exist_ok=True)
    (root / "gifts").mkdir(parents=True, exist_ok=True)


def build_media_url(relative_path: str) -> str:
    base = settings.backend_url.rstrip("/")
    rel = relative_path.lstrip("/")
    return f"{base}{settings.media_path.rstrip('/')}/{rel}"


def media_file_for_url(image_url: str | None) -> Path | None:
    """Map a stored image URL back to its file, or None if it is not one of ours."""
    if not image_url:
        return None
    url_path = urlparse(image_url).path
    prefix = settings.media_path.rstrip("/") + "/"
    if not url_path.startswith(prefix):
        return None
    root = get_media_root().resolve()
    candidate = (root / url_path[len(prefix):]).resolve()
    if not candidate.is_relative_to(root) or candidate == root:
        return None
    return candidate


def delete_media_file(image_url: str | None) -> bool:
    """Remove a stored image. A file that is already gone is not an error."""
    path = media_file_for_url(image_url)
    if path is None:
        return False
    try:
        path.unlink()
    except FileNotFoundError:
        logger.debug("Media file already gone path=%s", path)
        return False
    except OSError:
        logger.warning("Failed to delete media file path=%s", path, exc_info=True)
        return False
    logger.info("Deleted media file path=%s", path)
    return True
