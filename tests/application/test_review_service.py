import asyncio
import threading

import pytest

from cadence.application.review_service import PassGuard, ReviewService
from cadence.domain.errors import NoteNotReviewableError
from cadence.domain.models import Document, ReviewResponse
from cadence.domain.ports import DocumentSource
from cadence.infrastructure.plugin_data import JsonBuriedStore
from cadence.infrastructure.vault import FileSystemVault


class BlockingSource(DocumentSource):
    """Source whose reads wait until `release` is set."""

    def __init__(self):
        self.release = asyncio.Event()
        self.started = asyncio.Event()

    def list_documents(self):
        return [Document(path="a.md", tags=["#flashcards"])]

    async def read_text(self, path):
        self.started.set()
        await self.release.wait()
        return "Q::A\n"

    async def write_text(self, path, text):
        pass


def test_pass_guard():
    guard = PassGuard("notes")
    assert guard.try_acquire()
    assert guard.running
    assert not guard.try_acquire()
    guard.release()
    assert not guard.running


def test_duplicate_notes_trigger_is_dropped(config):
    service = ReviewService(FileSystemVault(config.vault_root), config)
    service._notes_guard.try_acquire()

    assert service.sync_notes() is False
    assert service.notes.generated_at is None

    service._notes_guard.release()
    assert service.sync_notes() is True
    assert service.notes.generated_at is not None


@pytest.mark.asyncio
async def test_flashcards_result_published_only_when_pass_completes(config, now):
    source = BlockingSource()
    service = ReviewService(source, config)
    before = service.flashcards

    first = asyncio.create_task(service.sync_flashcards(now))
    await source.started.wait()

    # A second trigger while the pass runs is ignored
    assert await service.sync_flashcards(now) is False
    assert service.flashcards is before

    source.release.set()
    assert await first is True
    assert service.flashcards is not before
    assert service.flashcards.deck_tree.new_flashcards_count == 1


@pytest.mark.asyncio
async def test_review_note_persists_and_refreshes(config, write_note, now):
    path = write_note("topic.md", "---\ntags: [review]\n---\nBody\n")
    service = ReviewService(FileSystemVault(config.vault_root), config)
    service.sync_notes(now)
    assert [d.path for d in service.notes.new_notes] == ["topic.md"]

    result = await service.review_note("topic.md", ReviewResponse.GOOD, now)

    assert result.interval == 3.0
    assert "sr-due: 2024-01-13" in path.read_text()
    assert service.notes.new_notes == []
    assert [n.document.path for n in service.notes.scheduled_notes] == ["topic.md"]


class ThreadRecordingVault(FileSystemVault):
    def __init__(self, root):
        super().__init__(root)
        self.listed_on: list[int] = []

    def list_documents(self):
        self.listed_on.append(threading.get_ident())
        return super().list_documents()


@pytest.mark.asyncio
async def test_review_note_scans_vault_off_the_event_loop(config, write_note, now):
    write_note("topic.md", "#review\n")
    vault = ThreadRecordingVault(config.vault_root)
    service = ReviewService(vault, config)

    await service.review_note("topic.md", ReviewResponse.GOOD, now)

    # One lookup for the note, one for the refreshed note pass
    assert len(vault.listed_on) == 2
    assert threading.get_ident() not in vault.listed_on
    assert service.notes.generated_at == now


@pytest.mark.asyncio
async def test_review_note_errors(config, write_note, now):
    write_note("plain.md", "Body\n")
    service = ReviewService(FileSystemVault(config.vault_root), config)
    service.sync_notes(now)

    with pytest.raises(NoteNotReviewableError):
        await service.review_note("plain.md", ReviewResponse.GOOD, now)
    with pytest.raises(FileNotFoundError):
        await service.review_note("missing.md", ReviewResponse.GOOD, now)


@pytest.mark.asyncio
async def test_reviewing_cloze_siblings_in_sequence(config, write_note, now):
    path = write_note("c.md", "#flashcards\n\nThe ==a== and ==b==\n")
    service = ReviewService(FileSystemVault(config.vault_root), config)
    await service.sync_flashcards(now)

    deck = service.flashcards.deck_tree.get_subdeck("flashcards")
    first, second = deck.new_flashcards

    await service.review_card(first, ReviewResponse.GOOD, now)
    await service.review_card(second, ReviewResponse.EASY, now)

    text = path.read_text()
    assert text.count("<!--SR:") == 1
    # Day 3 is already booked by the first review, so the second lands on day 4
    assert text.endswith(
        "The ==a== and ==b==\n<!--SR:!2024-01-13,3.0,250!2024-01-14,4.0,270-->\n"
    )


@pytest.mark.asyncio
async def test_bury_uses_store(config, write_note, now):
    write_note("q.md", "#flashcards\n\nQ::A\n<!--SR:!2024-01-01,2,250-->\n")
    store = JsonBuriedStore(config.data_file)
    service = ReviewService(FileSystemVault(config.vault_root), config, store)
    await service.sync_flashcards(now)

    card = service.flashcards.deck_tree.get_subdeck("flashcards").due_flashcards[0]
    service.bury(card)
    assert card.fingerprint in store.load()

    await service.sync_flashcards(now)
    assert service.flashcards.deck_tree.due_flashcards_count == 0
    assert service.flashcards.deck_tree.not_due_flashcards_count == 1
