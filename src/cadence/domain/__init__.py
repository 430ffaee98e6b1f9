# Domain Package
from .deck import Deck
from .errors import CadenceError, CardNotFoundError, NoteNotReviewableError
from .models import (
    Card,
    CardType,
    Document,
    Heading,
    LinkStat,
    ReviewResponse,
    ScheduledNote,
    ScheduleResult,
    SchedulingInfo,
)
from .ports import BuriedStore, DocumentSource

__all__ = [
    "BuriedStore",
    "CadenceError",
    "Card",
    "CardNotFoundError",
    "CardType",
    "Deck",
    "Document",
    "DocumentSource",
    "Heading",
    "LinkStat",
    "NoteNotReviewableError",
    "ReviewResponse",
    "ScheduledNote",
    "ScheduleResult",
    "SchedulingInfo",
]
