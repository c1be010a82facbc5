from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Sequence

from maintdesk.core.errors import ConflictError

from .models import NoteType, TicketNote, TicketStatus, new_note, utc_now


class InvalidTicketTransitionError(ConflictError):
    """Raised when attempting to move a ticket into a state it cannot reach."""

    code = "INVALID_STATUS_TRANSITION"


class TicketLifecycle:
    """Transition rules and the timestamp fields each transition implies.

    ``DONE`` stamps ``resolved_at``; moving back to ``NEW``/``OPEN`` or to
    ``CANCELLED`` clears ``resolved_at`` and ``closed_at``. Values the caller
    supplies explicitly in the same patch always win.
    """

    _DEFAULT_TRANSITIONS: Mapping[TicketStatus, Sequence[TicketStatus]] = {
        TicketStatus.NEW: (TicketStatus.OPEN, TicketStatus.DONE, TicketStatus.CANCELLED),
        TicketStatus.OPEN: (TicketStatus.NEW, TicketStatus.DONE, TicketStatus.CANCELLED),
        TicketStatus.DONE: (TicketStatus.NEW, TicketStatus.OPEN),
        TicketStatus.CANCELLED: (TicketStatus.NEW, TicketStatus.OPEN),
    }

    DONE_STATE = TicketStatus.DONE
    CANCELLED_STATE = TicketStatus.CANCELLED
    TERMINAL_STATES = frozenset({TicketStatus.DONE, TicketStatus.CANCELLED})
    REOPEN_STATES = frozenset({TicketStatus.NEW, TicketStatus.OPEN})

    def __init__(self, transitions: Mapping[TicketStatus, Sequence[TicketStatus]] | None = None) -> None:
        self._transitions = transitions or self._DEFAULT_TRANSITIONS

    @staticmethod
    def initial_state() -> TicketStatus:
        return TicketStatus.NEW

    def is_terminal(self, status: TicketStatus) -> bool:
        return status in self.TERMINAL_STATES

    def can_transition(self, current: TicketStatus, target: TicketStatus) -> bool:
        if current == target:
            return True
        return target in self._transitions.get(current, ())

    def assert_transition(self, current: TicketStatus, target: TicketStatus) -> None:
        if not self.can_transition(current, target):
            raise InvalidTicketTransitionError(
                f"Invalid status transition: {current.value} -> {target.value}",
                details={"from": current.value, "to": target.value},
            )

    def derive_fields(
        self,
        target: TicketStatus,
        patch: Mapping[str, Any],
        *,
        now: datetime | None = None,
        resolved_at: datetime | None = None,
    ) -> dict[str, Any]:
        """Return the ticket fields a move to ``target`` sets.

        ``patch`` is the caller's raw patch; key presence is what counts as
        "explicitly supplied", including an explicit ``None``. ``resolved_at``
        is the ticket's current stamp, kept when a DONE ticket is set to DONE again.
        """

        now = now or utc_now()
        fields: dict[str, Any] = {"status": target, "updated_at": now}

        if target == self.DONE_STATE:
            fields["resolved_at"] = patch.get("resolved_at") or resolved_at or now
            if "closed_at" in patch:
                fields["closed_at"] = patch["closed_at"]
        elif target in self.REOPEN_STATES or target == self.CANCELLED_STATE:
            for name in ("resolved_at", "closed_at"):
                fields[name] = patch[name] if name in patch else None
        return fields

    def cancellation_note(
        self,
        reason: str | None,
        *,
        actor_id: str | None = None,
        actor_name: str | None = None,
        now: datetime | None = None,
    ) -> TicketNote | None:
        if not reason or not reason.strip():
            return None
        return new_note(
            reason.strip(),
            NoteType.CANCELLATION,
            created_by=actor_id,
            created_by_name=actor_name,
            now=now,
        )
