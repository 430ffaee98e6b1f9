"""
Note scheduling pass.

Ranks every review-tagged document: never-reviewed notes by importance
(for triage), scheduled notes by due date and then importance. Also holds
the note review action that turns a response into new frontmatter.
"""

import logging
import random
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from cadence.domain.constants import SR_DUE_KEY, SR_EASE_KEY, SR_INTERVAL_KEY
from cadence.domain.errors import NoteNotReviewableError
from cadence.domain.models import (
    Document,
    LinkStat,
    ReviewResponse,
    ScheduledNote,
    ScheduleResult,
    SchedulingInfo,
)

from .config import AppConfig
from .importance import rank_documents
from .scheduler import estimate_initial_ease, schedule
from .utils.dates import days_until, due_after, format_due_date, millis_between, parse_due_date
from .utils.text import clear_scheduling_frontmatter, set_scheduling_frontmatter

logger = logging.getLogger(__name__)


@dataclass
class NotesPassResult:
    """Read-only snapshot published at the end of a note pass."""

    new_notes: list[Document] = field(default_factory=list)
    scheduled_notes: list[ScheduledNote] = field(default_factory=list)
    due_notes_count: int = 0
    due_dates: dict[int, int] = field(default_factory=dict)
    importance: dict[str, float] = field(default_factory=dict)
    ease_by_path: dict[str, int] = field(default_factory=dict)
    incoming_links: dict[str, list[LinkStat]] = field(default_factory=dict)
    generated_at: datetime | None = None

    def due_notes(self) -> list[ScheduledNote]:
        now = self.generated_at or datetime.now()
        return [n for n in self.scheduled_notes if n.due is not None and n.due <= now]


def has_matching_tag(tags: Iterable[str], wanted: Iterable[str]) -> str | None:
    """Return the first tag equal to, or nested under, one of `wanted`."""
    wanted = list(wanted)
    for tag in tags:
        for w in wanted:
            if tag == w or tag.startswith(w + "/"):
                return tag
    return None


def read_scheduling(frontmatter: dict[str, Any]) -> SchedulingInfo | None:
    """
    Scheduling stored in a note's frontmatter, or None for a new note.

    All three keys must be present with numeric interval/ease. An
    unparseable due date still counts as scheduled, with `due=None`.
    """
    if not all(k in frontmatter for k in (SR_DUE_KEY, SR_INTERVAL_KEY, SR_EASE_KEY)):
        return None
    try:
        interval = float(frontmatter[SR_INTERVAL_KEY])
        ease = int(frontmatter[SR_EASE_KEY])
    except (TypeError, ValueError):
        return None
    return SchedulingInfo(due=parse_due_date(frontmatter[SR_DUE_KEY]), interval=interval, ease=ease)


def run_notes_pass(
    documents: Iterable[Document],
    config: AppConfig,
    now: datetime | None = None,
) -> NotesPassResult:
    """Build the note review queues for one pass over all documents."""
    now = now or datetime.now()
    documents = list(documents)
    graph, importance = rank_documents(documents)

    result = NotesPassResult(
        importance=importance,
        incoming_links={k: list(v) for k, v in graph.incoming.items()},
        generated_at=now,
    )

    for doc in documents:
        try:
            if not has_matching_tag(doc.tags, config.tags_to_review):
                continue

            info = read_scheduling(doc.frontmatter)
            if info is None:
                result.new_notes.append(doc)
                continue

            result.scheduled_notes.append(
                ScheduledNote(document=doc, due=info.due, importance=importance.get(doc.path, 0.0))
            )
            result.ease_by_path[doc.path] = info.ease

            if info.due is None:
                logger.warning(f"Unparseable {SR_DUE_KEY} in {doc.path}; treating as not due")
                continue

            if info.due <= now:
                result.due_notes_count += 1
            n_days = days_until(info.due, now)
            result.due_dates[n_days] = result.due_dates.get(n_days, 0) + 1
        except Exception as e:
            logger.warning(f"Failed to schedule {doc.path}: {e}")
            continue

    result.new_notes.sort(key=lambda d: -importance.get(d.path, 0.0))
    result.scheduled_notes.sort(
        key=lambda n: (n.due is None, n.due or datetime.max, -n.importance)
    )

    logger.debug(
        f"Notes pass: {len(result.new_notes)} new, {len(result.scheduled_notes)} scheduled, "
        f"{result.due_notes_count} due"
    )
    return result


def next_note(result: NotesPassResult, pick_random: bool = False) -> Document | None:
    """The note to open next: a due note first, else a new one."""
    if result.due_notes_count > 0:
        index = random.randrange(result.due_notes_count) if pick_random else 0
        return result.scheduled_notes[index].document

    if result.new_notes:
        index = random.randrange(len(result.new_notes)) if pick_random else 0
        return result.new_notes[index]

    return None


def review_note(
    document: Document,
    text: str,
    response: ReviewResponse,
    result: NotesPassResult,
    config: AppConfig,
    now: datetime | None = None,
    due_dates: dict[int, int] | None = None,
) -> tuple[ScheduleResult | None, str]:
    """
    Apply a review response to a note.

    Returns the new schedule (None after RESET) and the note text with its
    frontmatter updated. Never-reviewed notes get an ease estimated from
    their linked neighbours. `due_dates` defaults to the pass histogram.
    """
    if not has_matching_tag(document.tags, config.tags_to_review):
        raise NoteNotReviewableError(document.path)

    now = now or datetime.now()

    if response == ReviewResponse.RESET:
        return None, clear_scheduling_frontmatter(text)

    info = read_scheduling(document.frontmatter)
    if info is None:
        ease = estimate_initial_ease(
            result.incoming_links.get(document.path, []),
            document.links,
            result.ease_by_path,
            result.importance,
            config,
        )
        interval: float = 1
        delay = 0.0
    else:
        interval = info.interval
        ease = info.ease
        delay = millis_between(info.due, now) if info.due is not None else 0.0

    new_schedule = schedule(
        response,
        interval,
        ease,
        delay,
        config,
        result.due_dates if due_dates is None else due_dates,
    )
    due = format_due_date(due_after(now, new_schedule.interval))
    logger.info(
        f"{document.path}: next review {due} (interval={new_schedule.interval}, "
        f"ease={new_schedule.ease})"
    )
    return new_schedule, set_scheduling_frontmatter(
        text, due, new_schedule.interval, new_schedule.ease
    )


def group_by_due_day(
    scheduled: list[ScheduledNote],
    now: datetime,
    max_days: int,
) -> dict[str, list[ScheduledNote]]:
    """
    Bucket scheduled notes under `Yesterday`/`Today`/`Tomorrow`/ISO-date titles.

    Notes further out than `max_days` are left out; so are notes whose due
    date could not be parsed.
    """
    groups: dict[str, list[ScheduledNote]] = defaultdict(list)
    for note in scheduled:
        if note.due is None:
            continue
        n_days = days_until(note.due, now)
        if n_days > max_days:
            break
        if n_days == -1:
            title = "Yesterday"
        elif n_days == 0:
            title = "Today"
        elif n_days == 1:
            title = "Tomorrow"
        else:
            title = note.due.date().isoformat()
        groups[title].append(note)
    return dict(groups)
