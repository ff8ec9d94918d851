"""
Media handling for groups.

Group images are center-cropped to a square thumbnail, re-encoded as JPEG
and written to storage; message attachments are stored as-is. Storage
returns the public URL of what it wrote.
"""
import logging
import uuid
from io import BytesIO
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from groupchat.core.config import settings
from groupchat.core.errors import MediaUploadError
from groupchat.core.server_config import get_static_url
from groupchat.schemas.group_messages import MediaInfo

logger = logging.getLogger(__name__)

GROUP_IMAGE_FOLDER = "group_images"
ATTACHMENT_FOLDER = "upload"


class LocalMediaStorage:
    """Writes under the static directory served at ``url_prefix``."""

    def __init__(self, root: str | Path, url_prefix: str = "/static"):
        self.root = Path(root)
        self.url_prefix = url_prefix.rstrip("/")

    def save(self, folder: str, filename: str, data: bytes) -> str:
        directory = self.root / folder
        try:
            directory.mkdir(parents=True, exist_ok=True)
            (directory / filename).write_bytes(data)
        except OSError as e:
            raise MediaUploadError(f"Failed to store {folder}/{filename}: {e}")
        return get_static_url(f"{self.url_prefix}/{folder}/{filename}")


def process_group_image(data: bytes, size: int | None = None, quality: int | None = None) -> bytes:
    size = size or settings.GROUP_IMAGE_SIZE
    quality = quality or settings.GROUP_IMAGE_QUALITY
    if not data:
        raise MediaUploadError("Group image is empty")

    try:
        with Image.open(BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img).convert("RGB")
            img = ImageOps.fit(img, (size, size), method=Image.Resampling.LANCZOS)
            out = BytesIO()
            img.save(out, format="JPEG", quality=quality, optimize=True)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise MediaUploadError(f"Failed to process group image: {e}")
    return out.getvalue()


def upload_group_image(data: bytes, storage: LocalMediaStorage | None = None) -> str:
    """Thumbnail + store, returns the public URL"""
    storage = storage or default_storage
    processed = process_group_image(data)
    url = storage.save(GROUP_IMAGE_FOLDER, f"{uuid.uuid4().hex}.jpg", processed)
    logger.info(f"Group image uploaded: {url} ({len(processed)} bytes)")
    return url


def save_attachment(
    data: bytes,
    filename: str | None,
    content_type: str | None,
    storage: LocalMediaStorage | None = None,
) -> MediaInfo:
    """Store a message attachment untouched and describe it for sendGroupMessage"""
    storage = storage or default_storage
    ext = Path(filename or "").suffix
    url = storage.save(ATTACHMENT_FOLDER, f"{uuid.uuid4().hex}{ext}", data)
    return MediaInfo(url=url, type=content_type, filename=filename, size=len(data))


default_storage = LocalMediaStorage(settings.STATIC_DIR)
