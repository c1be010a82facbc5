"""Ticket domain: models, lifecycle, creation and orchestration."""

from .assignment import Change, TicketAssignmentResolver
from .caller import CallerIdentity, parse_caller
from .factory import AutoAssignment, TicketFactory
from .models import (
    NoteType,
    Reference,
    Subcategory,
    SubcategoryName,
    Ticket,
    TicketCategory,
    TicketNote,
    TicketPriority,
    TicketSource,
    TicketStatus,
)
from .repository import TicketRepository
from .service import TicketAlreadyClosedError, TicketNotFoundError, TicketService
from .state import InvalidTicketTransitionError, TicketLifecycle

__all__ = [
    "AutoAssignment",
    "CallerIdentity",
    "Change",
    "InvalidTicketTransitionError",
    "NoteType",
    "Reference",
    "Subcategory",
    "SubcategoryName",
    "Ticket",
    "TicketAlreadyClosedError",
    "TicketAssignmentResolver",
    "TicketCategory",
    "TicketFactory",
    "TicketLifecycle",
    "TicketNote",
    "TicketNotFoundError",
    "TicketPriority",
    "TicketRepository",
    "TicketService",
    "TicketSource",
    "TicketStatus",
    "parse_caller",
]
