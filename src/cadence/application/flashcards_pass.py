"""
Flashcard pass.

Reads every flashcard-tagged document through the host, extracts its cards
and files them into a freshly built deck tree. Text rewritten by stale cloze
pruning is written back before the pass completes.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime

from cadence.domain.constants import ROOT_DECK_SEGMENT
from cadence.domain.deck import Deck
from cadence.domain.models import Card, Document
from cadence.domain.ports import DocumentSource

from .card_extractor import ExtractionContext, extract
from .config import AppConfig
from .notes_pass import has_matching_tag

logger = logging.getLogger(__name__)


@dataclass
class FlashcardsPassResult:
    """Read-only snapshot published at the end of a flashcard pass."""

    deck_tree: Deck = field(default_factory=lambda: Deck("root"))
    due_dates: dict[int, int] = field(default_factory=dict)
    siblings: dict[tuple[str, int], list[Card]] = field(default_factory=dict)
    deck_paths: dict[str, list[str]] = field(default_factory=dict)
    rewritten_files: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    generated_at: datetime | None = None

    @property
    def due_flashcards_count(self) -> int:
        return self.deck_tree.due_flashcards_count

    def siblings_of(self, card: Card) -> list[Card]:
        if card.group_key is None:
            return [card]
        return self.siblings.get(card.group_key, [card])


def split_deck_path(deck: str) -> list[str]:
    """`#flashcards/bio` -> ["flashcards", "bio"]; an empty path is the root deck."""
    path = deck.lstrip("#").split("/")
    if len(path) == 1 and path[0] == "":
        return [ROOT_DECK_SEGMENT]
    return path


def deck_path_for(doc: Document, config: AppConfig) -> list[str] | None:
    """Deck a document's cards belong to, or None if it holds no flashcards."""
    if config.convert_folders_to_decks:
        return split_deck_path(doc.folder)

    tag = has_matching_tag(doc.tags, config.flashcard_tags)
    if tag is None:
        return None
    return split_deck_path(tag)


def make_context(config: AppConfig, now: datetime, buried: set[str]) -> ExtractionContext:
    return ExtractionContext(
        now=now,
        buried=frozenset(buried),
        singleline_separator=config.singleline_card_separator,
        multiline_separator=config.multiline_card_separator,
        disable_cloze_cards=config.disable_cloze_cards,
        show_context=config.show_context_in_cards,
    )


async def run_flashcards_pass(
    source: DocumentSource,
    config: AppConfig,
    buried: set[str] | None = None,
    now: datetime | None = None,
) -> FlashcardsPassResult:
    """Rebuild the deck tree from every flashcard document in `source`."""
    now = now or datetime.now()
    ctx = make_context(config, now, buried or set())
    result = FlashcardsPassResult(due_dates=ctx.due_dates, generated_at=now)

    documents = await asyncio.to_thread(source.list_documents)
    for doc in documents:
        deck_path = deck_path_for(doc, config)
        if deck_path is None:
            continue

        try:
            text = await source.read_text(doc.path)
            extraction = extract(text, doc.headings, ctx, document_path=doc.path)

            if extraction.matched:
                result.deck_tree.create_deck(deck_path)
                result.deck_paths[doc.path] = deck_path
            for card in extraction.cards:
                result.deck_tree.insert_flashcard(deck_path, card)
            if extraction.not_due_count:
                result.deck_tree.count_flashcard(deck_path, extraction.not_due_count)
            result.siblings.update(extraction.siblings)

            if extraction.rewritten_text is not None:
                await source.write_text(doc.path, extraction.rewritten_text)
                result.rewritten_files.append(doc.path)
        except Exception as e:
            logger.warning(f"Failed to extract flashcards from {doc.path}: {e}")
            result.errors[doc.path] = str(e)
            continue

    result.deck_tree.sort_subdecks_list()
    logger.debug(
        f"Flashcards pass: {result.deck_tree.due_flashcards_count} due, "
        f"{result.deck_tree.new_flashcards_count} new"
    )
    return result
