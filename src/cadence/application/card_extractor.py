"""
Flashcard extraction from markdown text.

Recognises three card shapes:

    Single line ::  front::back
    Multi line  ::  front lines, a line holding only the separator, back lines
    Cloze       ::  a paragraph containing one or more ==deletions==

Each may be followed by a scheduling comment, `<!--SR:!2024-01-31,12,250-->`
for basic cards and `<!--SR:!date,ivl,ease!date,ivl,ease-->` (one entry per
deletion) for cloze paragraphs. Matches that sit entirely inside fenced or
inline code are ignored.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from functools import lru_cache

from cadence.domain.constants import (
    ANNOTATION_PATTERN,
    CLOZE_BACK_TEMPLATE,
    CLOZE_CARD_DETECTOR_RE,
    CLOZE_DELETIONS_RE,
    CLOZE_DUE_DATE_FORMATS,
    CLOZE_FRONT_PLACEHOLDER,
    CLOZE_MARK,
    CLOZE_UNSCHEDULED_DUE,
    CODEBLOCK_RE,
    CONTEXT_SEPARATOR,
    DUE_DATE_FORMATS,
    INLINE_CODE_RE,
    MULTI_SCHEDULING_RE,
    SCHEDULING_COMMENT_PREFIX,
    SCHEDULING_COMMENT_RE,
    SCHEDULING_COMMENT_SUFFIX,
)
from cadence.domain.models import Card, CardType, Heading, SchedulingInfo

from .utils.dates import days_until, millis_between, parse_due_date
from .utils.text import fingerprint

logger = logging.getLogger(__name__)


@dataclass
class ExtractionContext:
    """
    Pass-scoped state shared by every extract() call of one flashcard pass.

    `due_dates` is the day-offset histogram; every scheduled card found is
    recorded there, buried or not.
    """

    now: datetime
    buried: frozenset[str] = frozenset()
    due_dates: dict[int, int] = field(default_factory=dict)
    singleline_separator: str = "::"
    multiline_separator: str = "?"
    disable_cloze_cards: bool = False
    show_context: bool = True


@dataclass
class ExtractionResult:
    cards: list[Card] = field(default_factory=list)
    not_due_count: int = 0
    matched: bool = False
    rewritten_text: str | None = None
    siblings: dict[tuple[str, int], list[Card]] = field(default_factory=dict)

    @property
    def file_changed(self) -> bool:
        return self.rewritten_text is not None

    def siblings_of(self, card: Card) -> list[Card]:
        if card.group_key is None:
            return [card]
        return self.siblings.get(card.group_key, [card])


# ---------- Patterns ----------


@lru_cache(maxsize=32)
def singleline_card_regex(separator: str) -> re.Pattern:
    return re.compile(
        rf"^(.+){re.escape(separator)}(.+?)\n?(?:{ANNOTATION_PATTERN}|$)",
        re.MULTILINE,
    )


@lru_cache(maxsize=32)
def multiline_card_regex(separator: str) -> re.Pattern:
    # The back runs until a scheduling comment, a blank line or the end of text
    return re.compile(
        rf"^((?:.+\n)+){re.escape(separator)}\n((?:[^\n]+\n)*?[^\n]+?)"
        rf"(?:\n?{ANNOTATION_PATTERN}|(?=\n[ \t]*(?:\n|\Z))|(?=\n?\Z))",
        re.MULTILINE,
    )


# ---------- Verbatim regions ----------


def find_codeblocks(text: str) -> list[tuple[int, int]]:
    regions = []
    for regex in (CODEBLOCK_RE, INLINE_CODE_RE):
        for m in regex.finditer(text):
            regions.append((m.start(), m.end()))
    return regions


def in_codeblock(match_start: int, match_length: int, codeblocks: list[tuple[int, int]]) -> bool:
    for start, end in codeblocks:
        if match_start >= start and match_start + match_length <= end:
            return True
    return False


# ---------- Context ----------


def get_card_context(card_offset: int, headings: list[Heading]) -> str:
    """Breadcrumb of the headings enclosing `card_offset`, e.g. `Biology > Cells`."""
    stack: list[Heading] = []
    for heading in headings:
        if heading.start_offset > card_offset:
            break
        while stack and stack[-1].level >= heading.level:
            stack.pop()
        stack.append(heading)
    return CONTEXT_SEPARATOR.join(h.text for h in stack)


# ---------- Extraction ----------


def _parse_int(value: str) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _parse_interval(value: str) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _classify(
    card: Card,
    due_str: str,
    interval_str: str,
    ease_str: str,
    ctx: ExtractionContext,
    result: ExtractionResult,
    date_formats: list[str] = DUE_DATE_FORMATS,
) -> bool:
    """
    Apply due/bury logic to a card that carries a scheduling annotation.

    Returns True if the card is due and should be materialized.
    """
    due = parse_due_date(due_str, date_formats)
    interval = _parse_interval(interval_str)
    ease = _parse_int(ease_str)

    if due is None or interval is None or ease is None:
        logger.debug(f"Unparseable scheduling in {card.document_path}: {due_str!r}")
        result.not_due_count += 1
        return False

    n_days = days_until(due, ctx.now)
    ctx.due_dates[n_days] = ctx.due_dates.get(n_days, 0) + 1

    if card.fingerprint in ctx.buried:
        result.not_due_count += 1
        return False

    if due > ctx.now:
        result.not_due_count += 1
        return False

    card.is_due = True
    card.scheduling = SchedulingInfo(due=due, interval=interval, ease=ease)
    card.delay_before_review = millis_between(due, ctx.now)
    return True


def _extract_basic_cards(
    text: str,
    document_path: str,
    headings: list[Heading],
    codeblocks: list[tuple[int, int]],
    ctx: ExtractionContext,
    result: ExtractionResult,
) -> None:
    families = [
        (singleline_card_regex(ctx.singleline_separator), CardType.SINGLE_LINE_BASIC),
        (multiline_card_regex(ctx.multiline_separator), CardType.MULTI_LINE_BASIC),
    ]
    for regex, card_type in families:
        for match in regex.finditer(text):
            card_text = match.group(0).strip()
            if not card_text or in_codeblock(match.start(), len(card_text), codeblocks):
                continue

            result.matched = True
            card = Card(
                card_type=card_type,
                front=match.group(1).strip(),
                back=match.group(2).strip(),
                card_text=card_text,
                fingerprint=fingerprint(card_text),
                document_path=document_path,
                offset=match.start(),
                context=get_card_context(match.start(), headings) if ctx.show_context else "",
            )

            if match.group(3) is not None:
                if not _classify(card, match.group(3), match.group(4), match.group(5), ctx, result):
                    continue

            result.cards.append(card)


def _render_cloze(card_text: str, start: int, end: int) -> tuple[str, str]:
    before, deletion, after = card_text[:start], card_text[start:end], card_text[end:]
    front = before + CLOZE_FRONT_PLACEHOLDER + after
    back = before + CLOZE_BACK_TEMPLATE.format(deletion.replace(CLOZE_MARK, "")) + after
    front = SCHEDULING_COMMENT_RE.sub("", front).replace(CLOZE_MARK, "")
    back = SCHEDULING_COMMENT_RE.sub("", back).replace(CLOZE_MARK, "")
    return front, back


def prune_cloze_scheduling(card_text: str, keep: int) -> str:
    """Drop scheduling entries past the first `keep`, preserving their order."""
    entries = list(MULTI_SCHEDULING_RE.finditer(card_text))
    idx = card_text.rfind(SCHEDULING_COMMENT_PREFIX)
    if idx == -1:
        return card_text

    prefix = card_text[: idx + len(SCHEDULING_COMMENT_PREFIX)]
    kept = "".join(m.group(0) for m in entries[:keep])
    tail_start = card_text.find(SCHEDULING_COMMENT_SUFFIX, idx)
    tail = card_text[tail_start:] if tail_start != -1 else SCHEDULING_COMMENT_SUFFIX
    return prefix + kept + tail


def _extract_cloze_cards(
    text: str,
    document_path: str,
    headings: list[Heading],
    codeblocks: list[tuple[int, int]],
    ctx: ExtractionContext,
    result: ExtractionResult,
) -> str:
    """Extract cloze siblings. Returns the (possibly rewritten) text."""
    edits: list[tuple[int, str, str]] = []
    for match in CLOZE_CARD_DETECTOR_RE.finditer(text):
        raw = match.group(0)
        card_text = raw.strip()
        if not card_text:
            continue
        block_start = match.start() + (len(raw) - len(raw.lstrip()))
        if in_codeblock(block_start, len(card_text), codeblocks):
            continue

        sibling_matches = [
            m
            for m in CLOZE_DELETIONS_RE.finditer(card_text)
            if not in_codeblock(block_start + m.start(), len(m.group(0).strip()), codeblocks)
        ]
        if not sibling_matches:
            continue

        result.matched = True
        scheduling = list(MULTI_SCHEDULING_RE.finditer(card_text))

        # Deletions were removed from the source: drop their stale schedules
        if len(scheduling) > len(sibling_matches):
            new_card_text = prune_cloze_scheduling(card_text, len(sibling_matches))
            edits.append((block_start, card_text, new_card_text))
            logger.info(
                f"Pruned {len(scheduling) - len(sibling_matches)} stale cloze "
                f"schedule(s) in {document_path}"
            )
            # Deletion offsets are unaffected: the comment follows the last deletion
            card_text = new_card_text
            scheduling = scheduling[: len(sibling_matches)]

        context = get_card_context(match.start(), headings) if ctx.show_context else ""
        block_fingerprint = fingerprint(card_text)
        group_key = (document_path, block_start)
        siblings: list[Card] = []

        for i, sibling in enumerate(sibling_matches):
            front, back = _render_cloze(card_text, sibling.start(), sibling.end())
            card = Card(
                card_type=CardType.CLOZE,
                front=front,
                back=back,
                card_text=card_text,
                fingerprint=block_fingerprint,
                document_path=document_path,
                offset=block_start,
                context=context,
                sibling_idx=i,
                group_key=group_key,
            )

            if i < len(scheduling) and scheduling[i].group(1) != CLOZE_UNSCHEDULED_DUE:
                sched = scheduling[i]
                if not _classify(
                    card,
                    sched.group(1),
                    sched.group(2),
                    sched.group(3),
                    ctx,
                    result,
                    CLOZE_DUE_DATE_FORMATS,
                ):
                    continue
            elif block_fingerprint in ctx.buried:
                result.not_due_count += 1
                continue

            result.cards.append(card)
            siblings.append(card)

        result.siblings[group_key] = siblings

    rewritten = text
    for start, old, new in reversed(edits):
        rewritten = rewritten[:start] + new + rewritten[start + len(old) :]
    return rewritten


def extract(
    text: str,
    headings: list[Heading],
    ctx: ExtractionContext,
    document_path: str = "",
) -> ExtractionResult:
    """
    Parse `text` into flashcards.

    Cards come back in source order. Due cards carry their parsed
    scheduling; new cards have `scheduling=None`. Scheduled cards that are
    buried or not yet due are only counted in `not_due_count`. If stale
    cloze schedules were pruned, `rewritten_text` holds the new text for
    the host to persist.
    """
    result = ExtractionResult()
    codeblocks = find_codeblocks(text)

    _extract_basic_cards(text, document_path, headings, codeblocks, ctx, result)

    if not ctx.disable_cloze_cards:
        rewritten = _extract_cloze_cards(text, document_path, headings, codeblocks, ctx, result)
        if rewritten != text:
            result.rewritten_text = rewritten

    result.cards.sort(key=lambda c: (c.offset, c.sibling_idx))
    return result
