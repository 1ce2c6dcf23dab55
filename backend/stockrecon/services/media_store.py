"""Media store for report photos.

Only image uploads are accepted. Files are written under the configured
upload directory; the ``report_photos`` row is the reference handed back to
callers.
"""

import hashlib
import logging
import uuid
from pathlib import Path
from typing import Optional, Set

from sqlalchemy.orm import Session

from stockrecon.core.config import Settings, settings as default_settings
from stockrecon.core.exceptions import NotFoundError, ValidationError
from stockrecon.models.report import PhotoCategory, ReportPhoto

logger = logging.getLogger(__name__)

ALLOWED_IMAGE_EXTENSIONS: Set[str] = {".jpg", ".jpeg", ".png", ".gif", ".webp"}

ALLOWED_IMAGE_MIMETYPES: Set[str] = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
}


def get_file_extension(filename: str) -> str:
    """Extract lowercase file extension from filename."""
    if not filename or "." not in filename:
        return ""
    return "." + filename.rsplit(".", 1)[-1].lower()


class MediaStore:
    """Stores photo bytes on disk and their metadata in the database."""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or default_settings
        self.root = Path(self.settings.upload_dir)

    @property
    def max_size_bytes(self) -> int:
        return self.settings.max_upload_size_mb * 1024 * 1024

    def validate_image(self, filename: str, mime_type: Optional[str], size: int) -> str:
        ext = get_file_extension(filename)
        if ext not in ALLOWED_IMAGE_EXTENSIONS or mime_type not in ALLOWED_IMAGE_MIMETYPES:
            raise ValidationError("Only image files are allowed")
        if size == 0:
            raise ValidationError("No photo uploaded")
        if size > self.max_size_bytes:
            raise ValidationError(
                f"File size exceeds the maximum allowed limit of {self.settings.max_upload_size_mb}MB"
            )
        return ext

    def save_photo(
        self,
        report_id: int,
        filename: str,
        content: bytes,
        mime_type: Optional[str],
        category: PhotoCategory = PhotoCategory.STOCK_MEASUREMENT,
    ) -> ReportPhoto:
        """Persist an image and return its metadata row (flushed, not committed)."""
        ext = self.validate_image(filename, mime_type, len(content))

        self.root.mkdir(parents=True, exist_ok=True)
        stored_name = f"stock-{uuid.uuid4().hex}{ext}"
        path = self.root / stored_name
        path.write_bytes(content)

        photo = ReportPhoto(
            report_id=report_id,
            category=category,
            filename=stored_name,
            mime_type=mime_type,
            size=len(content),
            checksum=hashlib.sha256(content).hexdigest(),
        )
        self.db.add(photo)
        try:
            self.db.flush()
        except Exception:
            path.unlink(missing_ok=True)
            raise

        logger.info(f"Stored photo {stored_name} ({len(content)} bytes) for report {report_id}")
        return photo

    def delete_file(self, photo: ReportPhoto) -> None:
        (self.root / photo.filename).unlink(missing_ok=True)

    def get_path(self, photo: ReportPhoto) -> Path:
        path = self.root / photo.filename
        if not path.is_file():
            raise NotFoundError("Photo not found")
        return path
