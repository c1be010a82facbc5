from __future__ import annotations

import pytest

from maintdesk.attachments.legacy import content_type_for, is_canonical, is_legacy
from maintdesk.attachments.models import AttachmentRef, dedupe_attachments

from tests.fakes import FILE_ROOT, make_attachment


def test_canonical_attachment_is_not_legacy():
    attachment = make_attachment()

    assert not is_legacy(attachment)
    assert is_canonical(attachment)


@pytest.mark.parametrize(
    "overrides",
    [
        {"upload_date": None},
        {"url": FILE_ROOT + "uploads/report.pdf"},
        {"url": None},
        {"id": "YXR0YWNobWVudA=="},
        {"content_type": "audio/m4a"},
    ],
)
def test_each_historical_shape_is_legacy(overrides):
    assert is_legacy(make_attachment(**overrides))


def test_direct_file_under_storage_root_is_legacy():
    attachment = make_attachment(url=FILE_ROOT + "Invoice.PDF")

    assert is_legacy(attachment)


def test_content_type_follows_extension():
    assert content_type_for("voice.m4a", "application/pdf") == "audio/m4a"
    assert content_type_for("song.MP3") == "audio/mpeg"
    assert content_type_for("sheet.xlsx").startswith("application/vnd.openxmlformats")


def test_unknown_extension_keeps_current_type_or_falls_back():
    assert content_type_for("blob.bin", "image/webp") == "image/webp"
    assert content_type_for("README") == "application/octet-stream"


def test_attachment_document_roundtrip_accepts_mimetype_field():
    attachment = AttachmentRef.from_document(
        {"id": "a", "filename": "x.png", "mimetype": "image/png", "legacyField": 1}
    )

    assert attachment.content_type == "image/png"
    assert attachment.to_document()["legacyField"] == 1
    assert "uploadDate" not in attachment.to_document()


def test_dedupe_keeps_first_occurrence():
    first = make_attachment(id="same", filename="a.pdf")
    duplicate = make_attachment(id="same", filename="b.pdf")
    other = make_attachment(id="other")

    assert dedupe_attachments([first, duplicate, other]) == [first, other]
