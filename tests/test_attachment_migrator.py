from __future__ import annotations

import pytest

from maintdesk.attachments.legacy import is_legacy
from maintdesk.attachments.migrator import (
    AttachmentMigrator,
    DownloadFailedError,
    InvalidAttachmentError,
    MigrationError,
)

from tests.fakes import FILE_ROOT, FakeFileStore, make_attachment

TODAY = "2024-06-15"


def _migrator(files: FakeFileStore) -> AttachmentMigrator:
    ids = iter(f"new-{index}" for index in range(100))
    return AttachmentMigrator(files, today=lambda: TODAY, id_factory=lambda: next(ids))


def _legacy(filename: str = "invoice.pdf", **overrides):
    fields = {
        "id": "bGVnYWN5==",
        "filename": filename,
        "content_type": "application/octet-stream",
        "url": FILE_ROOT + filename,
        "upload_date": None,
        "folder_path": None,
    }
    fields.update(overrides)
    return make_attachment(**fields)


@pytest.mark.asyncio
async def test_migrate_moves_file_to_canonical_folder(file_store):
    file_store.put("", "invoice.pdf", b"pdf")
    migrator = _migrator(file_store)

    migrated = await migrator.migrate(_legacy(), "ticket-1", "2024-06-01")

    assert migrated.id == "new-0"
    assert migrated.upload_date == "2024-06-01"
    assert migrated.folder_path == "tickets/2024-06-01"
    assert migrated.url == FILE_ROOT + "tickets/2024-06-01/invoice.pdf"
    assert migrated.content_type == "application/pdf"
    assert migrated.size == 3
    assert not is_legacy(migrated)
    assert file_store.blobs[("tickets/2024-06-01", "invoice.pdf")] == b"pdf"
    assert ("", "invoice.pdf") not in file_store.blobs


@pytest.mark.asyncio
async def test_migrate_defaults_to_today(file_store):
    file_store.put("", "invoice.pdf", b"pdf")

    migrated = await _migrator(file_store).migrate(_legacy(), "ticket-1")

    assert migrated.folder_path == f"tickets/{TODAY}"


@pytest.mark.asyncio
async def test_migrate_fixes_mislabelled_audio(file_store):
    file_store.put("voicemail", "message.m4a", b"audio")
    legacy = _legacy("message.m4a", url=FILE_ROOT + "voicemail/message.m4a", content_type="application/pdf")

    migrated = await _migrator(file_store).migrate(legacy, "ticket-1", "2024-06-01")

    assert migrated.content_type == "audio/m4a"
    assert ("voicemail", "message.m4a") in file_store.deleted


@pytest.mark.asyncio
async def test_canonical_attachment_is_returned_without_download(file_store):
    attachment = make_attachment()

    result = await _migrator(file_store).migrate(attachment, "ticket-1")

    assert result is attachment
    assert file_store.uploads == []


def test_source_candidates_are_ordered_and_unique(file_store):
    legacy = _legacy(
        "my file.pdf",
        url=FILE_ROOT + "old/my%20file.pdf",
        folder_path="archive",
        upload_date="2023-01-02",
        id="x",
    )

    candidates = _migrator(file_store).source_candidates(legacy)

    assert [(c.folder_path, c.filename) for c in candidates] == [
        ("old", "my file.pdf"),
        ("archive", "my file.pdf"),
        ("", "my file.pdf"),
        ("", "my%20file.pdf"),
        ("tickets/2023-01-02", "my file.pdf"),
        (f"tickets/{TODAY}", "my file.pdf"),
    ]


@pytest.mark.asyncio
async def test_download_falls_through_candidates(file_store):
    file_store.put("archive", "invoice.pdf", b"found")
    legacy = _legacy(url=FILE_ROOT + "missing/invoice.pdf", folder_path="archive")

    migrated = await _migrator(file_store).migrate(legacy, "ticket-1", "2024-06-01")

    assert file_store.blobs[("tickets/2024-06-01", "invoice.pdf")] == b"found"
    assert migrated.filename == "invoice.pdf"


@pytest.mark.asyncio
async def test_missing_file_raises_download_failed(file_store):
    with pytest.raises(DownloadFailedError) as excinfo:
        await _migrator(file_store).migrate(_legacy(), "ticket-1")

    assert excinfo.value.filename == "invoice.pdf"


@pytest.mark.asyncio
async def test_attachment_without_location_is_invalid(file_store):
    with pytest.raises(InvalidAttachmentError):
        await _migrator(file_store).migrate(_legacy(url=None), "ticket-1")


@pytest.mark.asyncio
async def test_upload_failure_is_a_migration_error(file_store):
    file_store.put("", "invoice.pdf", b"pdf")
    file_store.fail_uploads = True

    with pytest.raises(MigrationError):
        await _migrator(file_store).migrate(_legacy(), "ticket-1")


@pytest.mark.asyncio
async def test_legacy_blob_already_at_target_is_not_deleted(file_store):
    file_store.put("tickets/2024-06-01", "invoice.pdf", b"pdf")
    legacy = _legacy(url=FILE_ROOT + "tickets/2024-06-01/invoice.pdf")

    await _migrator(file_store).migrate(legacy, "ticket-1", "2024-06-01")

    assert ("tickets/2024-06-01", "invoice.pdf") in file_store.blobs
    assert file_store.deleted == []


@pytest.mark.asyncio
async def test_migrate_many_keeps_failed_items_in_place(file_store):
    file_store.put("", "a.pdf", b"a")
    file_store.put("", "c.pdf", b"c")
    items = [
        _legacy("a.pdf", id="a="),
        _legacy("b.pdf", id="b="),
        _legacy("c.pdf", id="c="),
    ]

    batch = await _migrator(file_store).migrate_many("ticket-1", items, "2024-06-01")

    assert len(batch.attachments) == 3
    assert batch.attachments[1] is items[1]
    assert [item.filename for item in batch.migrated] == ["a.pdf", "c.pdf"]
    assert [failure.attachment for failure in batch.failed] == [items[1]]
    assert batch.changed
    assert not is_legacy(batch.attachments[0])
    assert not is_legacy(batch.attachments[2])
