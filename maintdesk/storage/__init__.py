"""Persistence adapters for documents and binary files."""

from .documents import DocumentPage, DocumentRepository, PostgresDocumentStore
from .files import FileStore, S3FileStore, StoredFile

__all__ = [
    "DocumentPage",
    "DocumentRepository",
    "FileStore",
    "PostgresDocumentStore",
    "S3FileStore",
    "StoredFile",
]
