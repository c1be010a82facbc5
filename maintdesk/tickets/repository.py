from __future__ import annotations

from typing import Any, AsyncIterator, Mapping

from maintdesk.storage.documents import DocumentRepository

from .models import Ticket, changes_to_document


class TicketRepository:
    """Tickets stored as documents in the ``tickets`` collection."""

    def __init__(self, store: DocumentRepository) -> None:
        self._store = store

    async def create(self, ticket: Ticket) -> Ticket:
        created = await self._store.create(ticket.to_document())
        return Ticket.from_document(created)

    async def get(self, ticket_id: str) -> Ticket | None:
        doc = await self._store.get(ticket_id)
        return Ticket.from_document(doc) if doc else None

    async def patch(self, ticket_id: str, changes: Mapping[str, Any]) -> Ticket | None:
        """Write ``changes`` (Ticket attribute names) in a single document patch.

        ``updated_at`` is stamped by the store on every patch.
        """

        fields = changes_to_document({key: value for key, value in changes.items() if key != "updated_at"})
        doc = await self._store.patch(ticket_id, fields)
        return Ticket.from_document(doc) if doc else None

    async def delete(self, ticket_id: str) -> bool:
        return await self._store.delete(ticket_id)

    async def list(
        self,
        filter: Mapping[str, Any] | None = None,
        *,
        sort: tuple[str, str] | None = None,
        page_size: int = 20,
        continuation_token: str | None = None,
    ) -> tuple[list[Ticket], str | None]:
        query = {"type": "ticket", **dict(filter or {})}
        page = await self._store.query(
            query,
            sort=sort or ("createdAt", "desc"),
            page_size=page_size,
            continuation_token=continuation_token,
        )
        return [Ticket.from_document(doc) for doc in page.items], page.continuation_token

    async def iterate(self, filter: Mapping[str, Any] | None = None, *, page_size: int = 100) -> AsyncIterator[Ticket]:
        token: str | None = None
        while True:
            tickets, token = await self.list(filter, page_size=page_size, continuation_token=token)
            for ticket in tickets:
                yield ticket
            if not token:
                return
