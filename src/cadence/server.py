import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Literal

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from cadence.application.config import resolve_config
from cadence.application.notes_pass import group_by_due_day
from cadence.application.review_service import ReviewService
from cadence.application.scheduler import schedule
from cadence.consts import VERSION
from cadence.domain.errors import NoteNotReviewableError
from cadence.domain.models import ReviewResponse
from cadence.infrastructure.plugin_data import JsonBuriedStore
from cadence.infrastructure.vault import FileSystemVault

logger = logging.getLogger("cadence.server")

_service: ReviewService | None = None


def get_service() -> ReviewService:
    """Process-wide review service, built from the resolved config on first use."""
    global _service
    if _service is None:
        config = resolve_config()
        _service = ReviewService(
            FileSystemVault(config.vault_root),
            config,
            JsonBuriedStore(config.data_file),
        )
        logger.info(f"Serving vault {config.vault_root}")
    return _service


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Cadence Server v{VERSION} starting up...")
    yield
    # Shutdown
    logger.info("Cadence Server shutting down...")


app = FastAPI(
    title="Cadence Server",
    description="Background scheduling server for markdown vaults.",
    version=VERSION,
    lifespan=lifespan,
)


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


start_time = time.time()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


ResponseName = Literal["easy", "good", "hard", "reset"]


class ScheduleRequest(BaseModel):
    response: ResponseName
    interval: float = Field(ge=0)
    ease: int
    delay_before_review: float = 0.0  # milliseconds
    due_dates: dict[int, int] | None = None
    # Overrides for the configured algorithm settings
    lapses_interval_change: float | None = Field(default=None, gt=0.0, le=1.0)
    easy_bonus: float | None = Field(default=None, ge=1.0)
    maximum_interval: int | None = Field(default=None, ge=1)


class ScheduleResponse(BaseModel):
    interval: float
    ease: int
    due_dates: dict[int, int] | None = None


@app.post("/schedule", response_model=ScheduleResponse)
async def schedule_item(req: ScheduleRequest, service: ReviewService = Depends(get_service)):
    """
    Run the scheduler on a single item without touching the vault.

    When `due_dates` is given, the load-balanced interval is booked into it
    and the updated histogram is returned.
    """
    overrides = {
        "lapses_interval_change": req.lapses_interval_change,
        "easy_bonus": req.easy_bonus,
        "maximum_interval": req.maximum_interval,
    }
    settings = service.config.model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )
    due_dates = dict(req.due_dates) if req.due_dates is not None else None

    result = schedule(
        ReviewResponse[req.response.upper()],
        req.interval,
        req.ease,
        req.delay_before_review,
        settings,
        due_dates,
    )
    return ScheduleResponse(interval=result.interval, ease=result.ease, due_dates=due_dates)


class SyncResponse(BaseModel):
    ran: bool
    due: int
    new: int
    total: int


@app.post("/sync/notes", response_model=SyncResponse)
async def sync_notes(service: ReviewService = Depends(get_service)):
    """
    Trigger a note pass. `ran` is false when one was already in progress.
    """
    ran = await asyncio.to_thread(service.sync_notes)
    notes = service.notes
    return SyncResponse(
        ran=ran,
        due=notes.due_notes_count,
        new=len(notes.new_notes),
        total=len(notes.new_notes) + len(notes.scheduled_notes),
    )


class FlashcardsSyncResponse(SyncResponse):
    rewritten_files: list[str] = Field(default_factory=list)
    errors: dict[str, str] = Field(default_factory=dict)


@app.post("/sync/flashcards", response_model=FlashcardsSyncResponse)
async def sync_flashcards(service: ReviewService = Depends(get_service)):
    try:
        ran = await service.sync_flashcards()
    except Exception as e:
        logger.error(f"Flashcards pass failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e

    result = service.flashcards
    tree = result.deck_tree
    return FlashcardsSyncResponse(
        ran=ran,
        due=tree.due_flashcards_count,
        new=tree.new_flashcards_count,
        total=tree.total_flashcards,
        rewritten_files=result.rewritten_files,
        errors=result.errors,
    )


@app.get("/notes/queue")
async def notes_queue(service: ReviewService = Depends(get_service)):
    """Last published note queue, grouped by due day."""
    result = service.notes
    if result.generated_at is None:
        return {"due": 0, "new": [], "scheduled": {}}

    groups = group_by_due_day(
        result.scheduled_notes,
        result.generated_at,
        service.config.max_n_days_notes_review_queue,
    )
    return {
        "due": result.due_notes_count,
        "new": [doc.path for doc in result.new_notes],
        "scheduled": {
            title: [
                {
                    "path": n.document.path,
                    "due": n.due.date().isoformat(),
                    "importance": n.importance,
                }
                for n in group
            ]
            for title, group in groups.items()
        },
    }


class NoteReviewRequest(BaseModel):
    path: str
    response: ResponseName


@app.post("/notes/review")
async def review_note(req: NoteReviewRequest, service: ReviewService = Depends(get_service)):
    """Review a note and persist its new schedule in the frontmatter."""
    try:
        result = await service.review_note(req.path, ReviewResponse[req.response.upper()])
    except NoteNotReviewableError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except FileNotFoundError as e:
        raise HTTPException(status_code=404, detail=f"Note not found: {req.path}") from e

    if result is None:
        return {"path": req.path, "reset": True}
    return {"path": req.path, "interval": result.interval, "ease": result.ease}


@app.get("/decks")
async def get_decks(service: ReviewService = Depends(get_service)):
    """Deck tree from the last published flashcard pass."""
    return service.flashcards.deck_tree.to_dict()
