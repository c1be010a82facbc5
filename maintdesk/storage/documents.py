from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Protocol

import asyncpg

Document = dict[str, Any]


@dataclass(slots=True)
class DocumentPage:
    """One page of a query plus the token needed to fetch the next one."""

    items: list[Document] = field(default_factory=list)
    continuation_token: str | None = None


class DocumentRepository(Protocol):
    async def create(self, doc: Mapping[str, Any]) -> Document:
        ...

    async def get(self, doc_id: str) -> Document | None:
        ...

    async def patch(self, doc_id: str, fields: Mapping[str, Any]) -> Document | None:
        ...

    async def replace(self, doc_id: str, doc: Mapping[str, Any]) -> Document | None:
        ...

    async def delete(self, doc_id: str) -> bool:
        ...

    async def query(
        self,
        filter: Mapping[str, Any] | None = None,
        *,
        sort: tuple[str, str] | None = None,
        page_size: int = 20,
        continuation_token: str | None = None,
    ) -> DocumentPage:
        ...


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PostgresDocumentStore:
    """JSONB document collection stored in a shared ``documents`` table."""

    _CREATE_DOCUMENTS_SQL = """
    CREATE TABLE IF NOT EXISTS documents (
        collection TEXT NOT NULL,
        id TEXT NOT NULL,
        body JSONB NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (collection, id)
    )
    """

    _INSERT_SQL = """
    INSERT INTO documents (collection, id, body)
    VALUES ($1, $2, $3::jsonb)
    RETURNING body
    """

    _SELECT_SQL = """
    SELECT body FROM documents WHERE collection = $1 AND id = $2
    """

    _PATCH_SQL = """
    UPDATE documents
    SET body = body || $3::jsonb,
        updated_at = CURRENT_TIMESTAMP
    WHERE collection = $1 AND id = $2
    RETURNING body
    """

    _REPLACE_SQL = """
    UPDATE documents
    SET body = $3::jsonb,
        updated_at = CURRENT_TIMESTAMP
    WHERE collection = $1 AND id = $2
    RETURNING body
    """

    _DELETE_SQL = """
    DELETE FROM documents WHERE collection = $1 AND id = $2 RETURNING id
    """

    _QUERY_SQL = """
    SELECT body FROM documents
    WHERE collection = $1 AND body @> $2::jsonb
    ORDER BY body->>$3 {direction}, id ASC
    LIMIT $4 OFFSET $5
    """

    _SORT_DIRECTIONS = {"asc": "ASC", "desc": "DESC"}

    def __init__(self, pool: asyncpg.Pool, collection: str) -> None:
        self._pool = pool
        self._collection = collection

    async def ensure_schema(self) -> None:
        async with self._pool.acquire() as connection:
            await connection.execute(self._CREATE_DOCUMENTS_SQL)

    async def create(self, doc: Mapping[str, Any]) -> Document:
        if not doc.get("id"):
            raise ValueError("Documents require an id")
        body = dict(doc)
        now = utc_now_iso()
        body.setdefault("createdAt", now)
        body.setdefault("updatedAt", now)
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(self._INSERT_SQL, self._collection, str(body["id"]), _dumps(body))
        if row is None:
            raise RuntimeError(f"Failed to insert document into {self._collection}")
        return _loads(row["body"])

    async def get(self, doc_id: str) -> Document | None:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(self._SELECT_SQL, self._collection, doc_id)
        if row is None:
            return None
        return _loads(row["body"])

    async def patch(self, doc_id: str, fields: Mapping[str, Any]) -> Document | None:
        changes = {key: value for key, value in fields.items() if key != "id"}
        changes["updatedAt"] = utc_now_iso()
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(self._PATCH_SQL, self._collection, doc_id, _dumps(changes))
        if row is None:
            return None
        return _loads(row["body"])

    async def replace(self, doc_id: str, doc: Mapping[str, Any]) -> Document | None:
        body = dict(doc)
        body["id"] = doc_id
        body["updatedAt"] = utc_now_iso()
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(self._REPLACE_SQL, self._collection, doc_id, _dumps(body))
        if row is None:
            return None
        return _loads(row["body"])

    async def delete(self, doc_id: str) -> bool:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(self._DELETE_SQL, self._collection, doc_id)
        return row is not None

    async def query(
        self,
        filter: Mapping[str, Any] | None = None,
        *,
        sort: tuple[str, str] | None = None,
        page_size: int = 20,
        continuation_token: str | None = None,
    ) -> DocumentPage:
        sort_field, sort_direction = sort or ("createdAt", "desc")
        direction = self._SORT_DIRECTIONS.get(sort_direction.lower())
        if direction is None:
            raise ValueError(f"Unsupported sort direction: {sort_direction}")
        offset = _decode_token(continuation_token)

        sql = self._QUERY_SQL.format(direction=direction)
        # one extra row tells us whether another page exists
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(
                sql,
                self._collection,
                _dumps(dict(filter or {})),
                sort_field,
                page_size + 1,
                offset,
            )
        items = [_loads(row["body"]) for row in rows[:page_size]]
        next_token = str(offset + page_size) if len(rows) > page_size else None
        return DocumentPage(items=items, continuation_token=next_token)


def _decode_token(token: str | None) -> int:
    if not token:
        return 0
    try:
        offset = int(token)
    except ValueError as exc:
        raise ValueError(f"Malformed continuation token: {token!r}") from exc
    return max(offset, 0)


def _dumps(value: Mapping[str, Any]) -> str:
    return json.dumps(value, default=str)


def _loads(value: Any) -> Document:
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return dict(value)

