import logging
import os
import uuid
from pathlib import Path

from django.conf import settings
from rest_framework.exceptions import NotFound, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
    "text/plain",
    "text/markdown",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}

BUFFER_SIZE = 65536  # 64KB


def upload_dir() -> Path:
    path = Path(getattr(settings, "UPLOAD_DIR", "uploads"))
    path.mkdir(parents=True, exist_ok=True)
    return path


def max_upload_bytes() -> int:
    return getattr(settings, "UPLOAD_MAX_BYTES", 10 * 1024 * 1024)


def validate_upload(file):
    limit = max_upload_bytes()
    if file.size > limit:
        raise ValidationError(
            f"File size ({file.size / 1024 / 1024:.2f}MB) exceeds limit of {limit / 1024 / 1024:.0f}MB."
        )
    content_type = (getattr(file, "content_type", "") or "").split(";")[0].strip().lower()
    if content_type not in ALLOWED_MIME_TYPES:
        raise ValidationError(f"Unsupported file type: {content_type or 'unknown'}")
    return content_type


def file_info(stored_name, original_name, content_type, size):
    return {
        "id": stored_name.split(".")[0],
        "filename": stored_name,
        "originalName": original_name,
        "mimetype": content_type,
        "size": size,
        "url": f"/api/uploads/{stored_name}",
    }


def store_upload(file):
    """Validate and write an uploaded file under a generated name. Returns its file info."""
    content_type = validate_upload(file)
    original_name = os.path.basename(file.name or "upload")
    stored_name = f"{uuid.uuid4().hex}{Path(original_name).suffix.lower()}"
    target = upload_dir() / stored_name

    try:
        with open(target, "wb") as out:
            for chunk in file.chunks(chunk_size=BUFFER_SIZE):
                out.write(chunk)
    except Exception:
        target.unlink(missing_ok=True)
        raise
    logger.info(f"Stored upload '{original_name}' as {stored_name} ({file.size} bytes)")
    return file_info(stored_name, original_name, content_type, file.size)


def resolve_upload_path(filename) -> Path:
    """Path of a stored upload. Names that could escape the upload directory are rejected."""
    if not filename or filename != os.path.basename(filename) or filename.startswith("."):
        raise NotFound("File not found")
    base = upload_dir().resolve()
    path = (base / filename).resolve()
    if path.parent != base:
        raise NotFound("File not found")
    return path


def delete_upload(filename) -> bool:
    path = resolve_upload_path(filename)
    if path.exists():
        path.unlink()
        logger.info(f"Deleted upload {filename}")
        return True
    return False


def store_uploads(files):
    """Validate every file, then store them all. A failure removes the files already stored."""
    for file in files:
        validate_upload(file)
    stored = []
    try:
        for file in files:
            stored.append(store_upload(file))
    except Exception:
        for info in stored:
            (upload_dir() / info["filename"]).unlink(missing_ok=True)
        logger.warning(f"Multi-upload failed after {len(stored)}/{len(files)} files; stored files removed")
        raise
    return stored
