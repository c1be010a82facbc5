"""Ticket attachment references, legacy detection and migration."""

from .legacy import content_type_for, is_canonical, is_legacy
from .migrator import (
    AttachmentMigrator,
    DownloadFailedError,
    InvalidAttachmentError,
    MigrationBatch,
    MigrationError,
    MigrationFailure,
)
from .models import AttachmentRef, canonical_folder, dedupe_attachments

__all__ = [
    "AttachmentMigrator",
    "AttachmentRef",
    "DownloadFailedError",
    "InvalidAttachmentError",
    "MigrationBatch",
    "MigrationError",
    "MigrationFailure",
    "canonical_folder",
    "content_type_for",
    "dedupe_attachments",
    "is_canonical",
    "is_legacy",
]
