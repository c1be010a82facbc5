"""Recognise attachments stored under the pre-``tickets/<date>/`` conventions.

Every historical data shape is one predicate in ``_LEGACY_CHECKS``; add new
shapes there rather than in the migrator.
"""

from __future__ import annotations

import re
from typing import Callable

from .models import AttachmentRef

CANONICAL_URL_RE = re.compile(r"/tickets/\d{4}-\d{2}-\d{2}/")
DIRECT_FILE_URL_RE = re.compile(r"/maintenance/[^/]+\.(pdf|jpg|png|doc|docx)$", re.IGNORECASE)

CONTENT_TYPES_BY_EXTENSION: dict[str, str] = {
    "pdf": "application/pdf",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "txt": "text/plain",
    "mp3": "audio/mpeg",
    "m4a": "audio/m4a",
    "wav": "audio/wav",
}

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def _missing_upload_date(att: AttachmentRef) -> bool:
    return not att.upload_date


def _non_canonical_url(att: AttachmentRef) -> bool:
    return not att.url or CANONICAL_URL_RE.search(att.url) is None


def _direct_file_url(att: AttachmentRef) -> bool:
    return bool(att.url) and DIRECT_FILE_URL_RE.search(att.url) is not None


def _base64_identifier(att: AttachmentRef) -> bool:
    return "=" in (att.id or "")


def _audio_labelled_pdf(att: AttachmentRef) -> bool:
    return (att.filename or "").endswith(".pdf") and att.content_type == "audio/m4a"


_LEGACY_CHECKS: tuple[Callable[[AttachmentRef], bool], ...] = (
    _missing_upload_date,
    _non_canonical_url,
    _direct_file_url,
    _base64_identifier,
    _audio_labelled_pdf,
)


def is_legacy(att: AttachmentRef) -> bool:
    """Return True when ``att`` predates the canonical storage layout."""

    return any(check(att) for check in _LEGACY_CHECKS)


def is_canonical(att: AttachmentRef) -> bool:
    return not is_legacy(att)


def content_type_for(filename: str, current: str | None = None) -> str:
    """Content type implied by the file extension, else ``current``, else octet-stream."""

    _, dot, extension = (filename or "").lower().rpartition(".")
    if dot and extension in CONTENT_TYPES_BY_EXTENSION:
        return CONTENT_TYPES_BY_EXTENSION[extension]
    return current or DEFAULT_CONTENT_TYPE
