"""
Review Service: application layer orchestrator.

Runs note and flashcard passes against a DocumentSource and publishes their
results. Each pass type has its own guard: a trigger that arrives while the
same pass is running is dropped, not queued. The two pass types are
independent of each other.
"""

import asyncio
import logging
import threading
from datetime import datetime

from cadence.domain.errors import CardNotFoundError
from cadence.domain.models import Card, CardType, ReviewResponse, ScheduleResult
from cadence.domain.ports import BuriedStore, DocumentSource

from .card_review import review_card, rewrite_card_text
from .config import AppConfig
from .flashcards_pass import FlashcardsPassResult, run_flashcards_pass
from .notes_pass import NotesPassResult, review_note, run_notes_pass
from .utils.dates import due_after

logger = logging.getLogger(__name__)


class PassGuard:
    """Non-blocking re-entrancy guard for one pass type."""

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def try_acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()


class ReviewService:
    """
    Application service owning the published review state.

    Readers only ever see `notes` and `flashcards` as complete snapshots:
    each pass builds a new result object and swaps it in when done.
    """

    def __init__(
        self,
        source: DocumentSource,
        config: AppConfig,
        buried_store: BuriedStore | None = None,
    ):
        self._source = source
        self._config = config
        self._buried_store = buried_store
        self._notes_guard = PassGuard("notes")
        self._flashcards_guard = PassGuard("flashcards")
        self.notes = NotesPassResult()
        self.flashcards = FlashcardsPassResult()

    @property
    def config(self) -> AppConfig:
        return self._config

    def sync_notes(self, now: datetime | None = None) -> bool:
        """Run a note pass. Returns False if one was already running."""
        if not self._notes_guard.try_acquire():
            logger.debug("Notes pass already running; trigger ignored")
            return False
        try:
            self.notes = run_notes_pass(self._source.list_documents(), self._config, now)
        finally:
            self._notes_guard.release()
        return True

    async def sync_flashcards(self, now: datetime | None = None) -> bool:
        """Run a flashcard pass. Returns False if one was already running."""
        if not self._flashcards_guard.try_acquire():
            logger.debug("Flashcards pass already running; trigger ignored")
            return False
        try:
            buried = self._buried_store.load() if self._buried_store else set()
            self.flashcards = await run_flashcards_pass(self._source, self._config, buried, now)
        finally:
            self._flashcards_guard.release()
        return True

    async def review_note(
        self,
        path: str,
        response: ReviewResponse,
        now: datetime | None = None,
    ) -> ScheduleResult | None:
        """Schedule a note and persist its frontmatter, then refresh the note queues."""
        documents = await asyncio.to_thread(self._source.list_documents)
        document = next((d for d in documents if d.path == path), None)
        if document is None:
            raise FileNotFoundError(path)

        text = await self._source.read_text(path)
        result, new_text = review_note(document, text, response, self.notes, self._config, now)
        if new_text != text:
            await self._source.write_text(path, new_text)

        await asyncio.to_thread(self.sync_notes, now)
        return result

    async def review_card(
        self,
        card: Card,
        response: ReviewResponse,
        now: datetime | None = None,
    ) -> ScheduleResult:
        """Schedule a flashcard and write its scheduling comment back to the note."""
        now = now or datetime.now()
        text = await self._source.read_text(card.document_path)
        try:
            result, new_text = review_card(
                text,
                card,
                response,
                now,
                self._config,
                self._config.base_ease,
                self.flashcards.due_dates,
            )
        except CardNotFoundError:
            logger.warning(f"Card moved or edited in {card.document_path}; skipping")
            raise

        await self._source.write_text(card.document_path, new_text)

        if card.card_type == CardType.CLOZE:
            # Later siblings must match the block as it now reads on disk
            new_card_text = rewrite_card_text(card, result, due_after(now, result.interval))
            for sibling in self.flashcards.siblings_of(card):
                sibling.card_text = new_card_text
        return result

    def bury(self, card: Card) -> None:
        if self._buried_store is None:
            raise RuntimeError("No buried store configured")
        self._buried_store.bury(card.fingerprint)
