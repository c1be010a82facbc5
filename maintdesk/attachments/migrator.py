from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Sequence
from urllib.parse import quote, unquote

from opentelemetry import trace

from maintdesk.core.concurrency import gather_in_chunks
from maintdesk.core.errors import AppError
from maintdesk.storage.files import FileStore

from .legacy import content_type_for, is_legacy
from .models import AttachmentRef, canonical_folder

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class MigrationError(AppError):
    """Raised when a legacy attachment could not be moved to the canonical layout."""

    code = "MIGRATION_FAILED"


class InvalidAttachmentError(MigrationError):
    status_code = 400
    code = "INVALID_ATTACHMENT"


class DownloadFailedError(MigrationError):
    code = "DOWNLOAD_FAILED"

    def __init__(self, filename: str) -> None:
        super().__init__(f"Failed to download legacy file: {filename}", details={"filename": filename})
        self.filename = filename


@dataclass(slots=True, frozen=True)
class SourceCandidate:
    """One place a legacy file might have been stored."""

    folder_path: str
    filename: str
    description: str


@dataclass(slots=True)
class MigrationFailure:
    attachment: AttachmentRef
    error: MigrationError


@dataclass(slots=True)
class MigrationBatch:
    """Outcome of migrating a ticket's attachments.

    ``attachments`` lines up with the input: migrated references where the
    migration worked, the untouched original where it did not.
    """

    attachments: list[AttachmentRef] = field(default_factory=list)
    migrated: list[AttachmentRef] = field(default_factory=list)
    failed: list[MigrationFailure] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.migrated)


def _today() -> str:
    return datetime.now(timezone.utc).date().isoformat()


class AttachmentMigrator:
    """Move legacy attachments to ``tickets/<date>/<filename>``."""

    def __init__(
        self,
        files: FileStore,
        *,
        root_marker: str = "/maintenance/",
        concurrency: int = 4,
        today: Callable[[], str] = _today,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        self._files = files
        self._root_marker = root_marker
        self._concurrency = concurrency
        self._today = today
        self._id_factory = id_factory

    async def migrate(
        self,
        legacy: AttachmentRef,
        ticket_id: str,
        target_date: str | date | None = None,
    ) -> AttachmentRef:
        if not is_legacy(legacy):
            return legacy

        if not legacy.filename:
            raise InvalidAttachmentError("Invalid attachment: missing filename", details={"id": legacy.id})
        if not legacy.url and not legacy.folder_path:
            raise InvalidAttachmentError(
                f"Invalid attachment: missing url and folderPath for {legacy.filename}",
                details={"id": legacy.id, "filename": legacy.filename},
            )

        upload_date = str(target_date) if target_date else self._today()
        folder_path = canonical_folder(upload_date)

        with tracer.start_as_current_span("attachments.migrate") as span:
            span.set_attribute("ticket.id", ticket_id)
            span.set_attribute("attachment.filename", legacy.filename)

            data = await self._download(legacy)
            content_type = content_type_for(legacy.filename, legacy.content_type)
            new_id = self._id_factory()
            try:
                stored = await self._files.upload(
                    data,
                    legacy.filename,
                    content_type,
                    folder_path,
                    metadata={"ticketId": ticket_id, "attachmentId": new_id, "originalFilename": legacy.filename},
                )
            except Exception as exc:
                raise MigrationError(
                    f"Failed to migrate attachment {legacy.filename}: {exc}",
                    details={"filename": legacy.filename},
                ) from exc

            await self._delete_legacy_blob(legacy, folder_path)

        logger.info("Migrated attachment %s of ticket %s to %s", legacy.filename, ticket_id, folder_path)
        return AttachmentRef(
            id=new_id,
            filename=legacy.filename,
            content_type=content_type,
            size=stored.size,
            url=stored.url,
            uploaded_at=datetime.now(timezone.utc).isoformat(),
            upload_date=upload_date,
            folder_path=folder_path,
        )

    async def migrate_many(
        self,
        ticket_id: str,
        attachments: Sequence[AttachmentRef],
        target_date: str | date | None = None,
    ) -> MigrationBatch:
        async def attempt(attachment: AttachmentRef) -> AttachmentRef | MigrationFailure:
            try:
                return await self.migrate(attachment, ticket_id, target_date)
            except MigrationError as exc:
                logger.warning("Keeping original attachment %s on ticket %s: %s", attachment.filename, ticket_id, exc)
                return MigrationFailure(attachment=attachment, error=exc)

        outcomes = await gather_in_chunks(list(attachments), attempt, limit=self._concurrency)

        batch = MigrationBatch()
        for original, outcome in zip(attachments, outcomes):
            if isinstance(outcome, MigrationFailure):
                batch.failed.append(outcome)
                batch.attachments.append(original)
                continue
            if outcome is not original:
                batch.migrated.append(outcome)
            batch.attachments.append(outcome)
        return batch

    def source_candidates(self, att: AttachmentRef) -> list[SourceCandidate]:
        """Ordered, de-duplicated list of locations to try downloading ``att`` from."""

        candidates: list[SourceCandidate] = []
        url_path = self._path_from_url(att.url)
        if url_path is not None:
            folder, _, name = url_path.rpartition("/")
            description = "URL with folder structure" if folder else "URL at storage root"
            candidates.append(SourceCandidate(folder, unquote(name), description))
        if att.folder_path:
            candidates.append(SourceCandidate(att.folder_path, att.filename, "attachment folderPath"))
        candidates.append(SourceCandidate("", att.filename, "storage root"))
        candidates.append(SourceCandidate("", quote(att.filename), "URL encoded filename at storage root"))
        if att.upload_date:
            candidates.append(
                SourceCandidate(canonical_folder(att.upload_date), att.filename, f"tickets/{att.upload_date}")
            )
        today = self._today()
        candidates.append(SourceCandidate(canonical_folder(today), att.filename, f"tickets/{today}"))

        unique: list[SourceCandidate] = []
        seen: set[tuple[str, str]] = set()
        for candidate in candidates:
            key = (candidate.folder_path, candidate.filename)
            if key in seen:
                continue
            seen.add(key)
            unique.append(candidate)
        return unique

    async def _download(self, att: AttachmentRef) -> bytes:
        for candidate in self.source_candidates(att):
            try:
                data = await self._files.download(candidate.folder_path, candidate.filename)
            except Exception as exc:
                logger.debug("Download from %s failed for %s: %s", candidate.description, att.filename, exc)
                continue
            if data is not None:
                logger.debug("Downloaded %s from %s", att.filename, candidate.description)
                return data
        raise DownloadFailedError(att.filename)

    async def _delete_legacy_blob(self, att: AttachmentRef, new_folder: str) -> None:
        url_path = self._path_from_url(att.url)
        if url_path is None:
            return
        folder, _, name = url_path.rpartition("/")
        name = unquote(name)
        # the "legacy" blob may already sit where the new copy was written
        if (folder, name) == (new_folder, att.filename):
            return
        try:
            await self._files.delete(folder, name)
        except Exception as exc:
            logger.warning("Could not delete legacy blob %s: %s", url_path, exc)

    def _path_from_url(self, url: str | None) -> str | None:
        if not url or self._root_marker not in url:
            return None
        path = url.split(self._root_marker, 1)[1]
        return path or None
