"""
Domain models for the review engine.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Any


class ReviewResponse(IntEnum):
    """Button pressed by the user when reviewing an item."""

    EASY = 0
    GOOD = 1
    HARD = 2
    RESET = 3


class CardType(Enum):
    SINGLE_LINE_BASIC = "single_line_basic"
    MULTI_LINE_BASIC = "multi_line_basic"
    CLOZE = "cloze"


@dataclass(frozen=True)
class Heading:
    """A heading in a document outline.

    Attributes:
        level: Nesting level (1 for `#`, 6 for `######`).
        text: Heading text without the leading hashes.
        start_offset: Absolute character offset of the heading line.
    """

    level: int
    text: str
    start_offset: int


@dataclass(frozen=True)
class SchedulingInfo:
    """
    Scheduling triple stored with a document or card.

    Attributes:
        due: Due date, or None when the stored date could not be parsed.
        interval: Days until the next review (one decimal place).
        ease: Centesimal ease factor (250 = 2.50x).
    """

    due: datetime | None
    interval: float
    ease: int


@dataclass(frozen=True)
class ScheduleResult:
    interval: float
    ease: int


@dataclass
class Document:
    """
    A reviewable markdown document as supplied by the host.

    `links` maps target document path -> reference count.
    """

    path: str
    tags: list[str] = field(default_factory=list)
    frontmatter: dict[str, Any] = field(default_factory=dict)
    links: dict[str, int] = field(default_factory=dict)
    headings: list[Heading] = field(default_factory=list)

    @property
    def folder(self) -> str:
        return self.path.rsplit("/", 1)[0] if "/" in self.path else ""


@dataclass(frozen=True)
class LinkStat:
    """An incoming link: `source_path` references the target `link_count` times."""

    source_path: str
    link_count: int


@dataclass(frozen=True)
class ScheduledNote:
    document: Document
    due: datetime | None
    importance: float = 0.0


@dataclass
class Card:
    """
    A flashcard extracted from a document during one flashcard pass.

    Cloze siblings are not linked to each other directly. Cards extracted
    from the same cloze block share a `group_key`, which indexes the
    sibling list held by the extraction result.
    """

    card_type: CardType
    front: str
    back: str
    card_text: str
    fingerprint: str
    document_path: str
    offset: int
    context: str = ""
    is_due: bool = False
    scheduling: SchedulingInfo | None = None
    delay_before_review: float = 0.0  # milliseconds past due
    sibling_idx: int = 0
    group_key: tuple[str, int] | None = None

    @property
    def is_new(self) -> bool:
        return self.scheduling is None
