from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

CANONICAL_ROOT = "tickets"


def canonical_folder(upload_date: str) -> str:
    """Folder every current-style attachment lives in: ``tickets/<YYYY-MM-DD>``."""

    return f"{CANONICAL_ROOT}/{upload_date}"


@dataclass(slots=True, frozen=True)
class AttachmentRef:
    """Metadata and storage pointer for one file attached to a ticket."""

    id: str
    filename: str
    content_type: str
    size: int | None = None
    url: str | None = None
    uploaded_at: str | None = None
    upload_date: str | None = None
    folder_path: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "AttachmentRef":
        known = {"id", "filename", "contentType", "mimetype", "size", "url", "uploadedAt", "uploadDate", "folderPath"}
        return cls(
            id=str(doc.get("id") or ""),
            filename=str(doc.get("filename") or ""),
            # very old documents used ``mimetype``
            content_type=str(doc.get("contentType") or doc.get("mimetype") or ""),
            size=doc.get("size"),
            url=doc.get("url"),
            uploaded_at=doc.get("uploadedAt"),
            upload_date=doc.get("uploadDate"),
            folder_path=doc.get("folderPath"),
            extra={key: value for key, value in doc.items() if key not in known},
        )

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = dict(self.extra)
        doc.update({"id": self.id, "filename": self.filename, "contentType": self.content_type})
        optional = {
            "size": self.size,
            "url": self.url,
            "uploadedAt": self.uploaded_at,
            "uploadDate": self.upload_date,
            "folderPath": self.folder_path,
        }
        doc.update({key: value for key, value in optional.items() if value is not None})
        return doc


def dedupe_attachments(attachments: Sequence[AttachmentRef]) -> list[AttachmentRef]:
    """Drop later entries that repeat an attachment id, keeping list order."""

    seen: set[str] = set()
    unique: list[AttachmentRef] = []
    for attachment in attachments:
        if attachment.id in seen:
            continue
        seen.add(attachment.id)
        unique.append(attachment)
    return unique
