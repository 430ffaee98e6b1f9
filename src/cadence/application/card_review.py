"""Writing flashcard review results back into the note text."""

import logging
from datetime import datetime

from cadence.domain.constants import (
    CLOZE_UNSCHEDULED_ENTRY,
    MULTI_SCHEDULING_RE,
    SCHEDULING_COMMENT_PREFIX,
    SCHEDULING_COMMENT_RE,
    SCHEDULING_COMMENT_SUFFIX,
)
from cadence.domain.errors import CardNotFoundError
from cadence.domain.models import Card, CardType, ReviewResponse, ScheduleResult

from .scheduler import SchedulingSettings, schedule
from .utils.dates import due_after, format_due_date

logger = logging.getLogger(__name__)


def format_scheduling_entry(due: str, interval: float, ease: int) -> str:
    return f"!{due},{interval},{ease}"


def write_card_review(text: str, card: Card, result: ScheduleResult, due: datetime) -> str:
    """
    Return `text` with the card's scheduling comment set to the new schedule.

    Basic cards get `<!--SR:!due,interval,ease-->` on the line after the card.
    Cloze cards keep one entry per deletion, in deletion order: the reviewed
    sibling's entry is replaced, and slots of earlier deletions that were
    never scheduled are filled with an unscheduled placeholder.
    """
    if card.card_text not in text:
        raise CardNotFoundError(card.document_path, card.card_text)

    return text.replace(card.card_text, rewrite_card_text(card, result, due), 1)


def rewrite_card_text(card: Card, result: ScheduleResult, due: datetime) -> str:
    """The card's source block with its scheduling comment updated."""
    entry = format_scheduling_entry(format_due_date(due), result.interval, result.ease)
    body = SCHEDULING_COMMENT_RE.sub("", card.card_text).rstrip()

    if card.card_type == CardType.CLOZE:
        entries = [m.group(0) for m in MULTI_SCHEDULING_RE.finditer(card.card_text)]
        # Earlier deletions without a schedule keep their slot as placeholders
        while len(entries) <= card.sibling_idx:
            entries.append(CLOZE_UNSCHEDULED_ENTRY)
        entries[card.sibling_idx] = entry
        scheduling = "".join(entries)
    else:
        scheduling = entry

    return f"{body}\n{SCHEDULING_COMMENT_PREFIX}{scheduling}{SCHEDULING_COMMENT_SUFFIX}"


def review_card(
    text: str,
    card: Card,
    response: ReviewResponse,
    now: datetime,
    settings: SchedulingSettings,
    base_ease: int,
    due_dates: dict[int, int] | None = None,
) -> tuple[ScheduleResult, str]:
    """
    Schedule a reviewed card and write the result into `text`.

    New cards start from a one day interval at `base_ease`. RESET puts the
    card back to that starting point instead of removing its entry, so cloze
    entries stay aligned with their deletions.
    """
    if response == ReviewResponse.RESET:
        result = ScheduleResult(interval=1.0, ease=base_ease)
    elif card.scheduling is not None:
        result = schedule(
            response,
            card.scheduling.interval,
            card.scheduling.ease,
            card.delay_before_review,
            settings,
            due_dates,
        )
    else:
        result = schedule(response, 1, base_ease, 0, settings, due_dates)

    due = due_after(now, result.interval)
    logger.debug(
        f"Card in {card.document_path} scheduled for {format_due_date(due)} "
        f"(interval={result.interval}, ease={result.ease})"
    )
    return result, write_card_review(text, card, result, due)
