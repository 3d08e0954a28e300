"""
Blob storage for message attachments.

A message carries at most one file. Files are written through Django's
default storage backend (local filesystem in development; any configured
STORAGES["default"] in production) under ATTACHMENT_CONFIG.UPLOAD_PREFIX.

    upload(file) -> {"url", "id", "name", "content_type"}
    destroy(id)
"""

from __future__ import annotations

import logging
import uuid

from django.core.files.storage import default_storage
from django.utils.text import get_valid_filename

from chat.constants import ATTACHMENT_CONFIG
from core.services import ServiceResult

logger = logging.getLogger(__name__)


def upload(file) -> ServiceResult[dict]:
    """
    Store an uploaded file.

    Args:
        file: Django UploadedFile (or any File with name, size and content_type)

    Returns:
        ServiceResult with {url, id, name, content_type}
    """
    size = getattr(file, "size", 0) or 0
    if size > ATTACHMENT_CONFIG.MAX_SIZE_BYTES:
        max_mb = ATTACHMENT_CONFIG.MAX_SIZE_BYTES // (1024 * 1024)
        return ServiceResult.failure(
            f"Attachment exceeds the {max_mb}MB limit",
            error_code="VALIDATION_ERROR",
        )

    original_name = get_valid_filename(file.name or "attachment")
    key = f"{ATTACHMENT_CONFIG.UPLOAD_PREFIX}/{uuid.uuid4().hex}_{original_name}"

    try:
        stored_key = default_storage.save(key, file)
    except OSError as e:
        logger.warning(f"Attachment upload failed for {original_name}: {e}")
        return ServiceResult.failure("Attachment upload failed", error_code="UPLOAD_FAILED")

    return ServiceResult.success(
        {
            "url": default_storage.url(stored_key),
            "id": stored_key,
            "name": original_name,
            "content_type": getattr(file, "content_type", "") or "",
        }
    )


def destroy(attachment_id: str) -> None:
    """Remove a stored file. Missing files and storage errors are logged only."""
    if not attachment_id:
        return
    try:
        default_storage.delete(attachment_id)
    except OSError as e:
        logger.warning(f"Failed to destroy attachment {attachment_id}: {e}")
