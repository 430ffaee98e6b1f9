from datetime import datetime

import pytest

from cadence.application.notes_pass import (
    NotesPassResult,
    group_by_due_day,
    has_matching_tag,
    next_note,
    read_scheduling,
    review_note,
    run_notes_pass,
)
from cadence.domain.errors import NoteNotReviewableError
from cadence.domain.models import Document, ReviewResponse, ScheduledNote


def scheduled(path, due, interval=3, ease=250, links=None):
    return Document(
        path=path,
        tags=["#review"],
        frontmatter={"sr-due": due, "sr-interval": interval, "sr-ease": ease},
        links=links or {},
    )


# ---------- Tag matching ----------


def test_has_matching_tag_nested():
    assert has_matching_tag(["#other", "#review/bio"], ["#review"]) == "#review/bio"
    assert has_matching_tag(["#reviewed"], ["#review"]) is None
    assert has_matching_tag([], ["#review"]) is None


def test_read_scheduling_requires_all_keys():
    assert read_scheduling({"sr-due": "2024-01-01", "sr-interval": 3}) is None
    assert read_scheduling({"sr-due": "2024-01-01", "sr-interval": "x", "sr-ease": 250}) is None

    info = read_scheduling({"sr-due": "Mon Jan 01 2024", "sr-interval": "2.5", "sr-ease": 250})
    assert info.due == datetime(2024, 1, 1)
    assert info.interval == 2.5


def test_read_scheduling_unparseable_date():
    info = read_scheduling({"sr-due": "soon", "sr-interval": 3, "sr-ease": 250})
    assert info is not None
    assert info.due is None


# ---------- Pass ----------


def test_notes_pass_queues(config, now):
    docs = [
        Document(path="untagged.md", tags=["#misc"]),
        Document(path="new-a.md", tags=["#review"], links={"hub.md": 1}),
        Document(path="hub.md", tags=["#review"]),
        scheduled("late.md", "2024-01-20"),
        scheduled("due.md", "2024-01-08", links={"hub.md": 2}),
        scheduled("bad.md", "whenever"),
    ]
    result = run_notes_pass(docs, config, now)

    assert [d.path for d in result.new_notes] == ["hub.md", "new-a.md"]
    assert [n.document.path for n in result.scheduled_notes] == ["due.md", "late.md", "bad.md"]
    assert result.due_notes_count == 1
    assert result.due_dates == {-2: 1, 10: 1}
    assert result.ease_by_path["due.md"] == 250
    assert {s.source_path for s in result.incoming_links["hub.md"]} == {"new-a.md", "due.md"}
    assert [n.document.path for n in result.due_notes()] == ["due.md"]


def test_notes_pass_ties_broken_by_importance(config, now):
    docs = [
        scheduled("a.md", "2024-01-05"),
        scheduled("b.md", "2024-01-05"),
        Document(path="c.md", links={"b.md": 1}),
    ]
    result = run_notes_pass(docs, config, now)
    assert [n.document.path for n in result.scheduled_notes] == ["b.md", "a.md"]


def test_next_note_prefers_due_then_new(config, now):
    docs = [Document(path="new.md", tags=["#review"]), scheduled("due.md", "2024-01-01")]
    result = run_notes_pass(docs, config, now)
    assert next_note(result).path == "due.md"

    result = run_notes_pass(docs[:1], config, now)
    assert next_note(result).path == "new.md"

    assert next_note(NotesPassResult()) is None


def test_next_note_random_pick_stays_in_due_set(config, now):
    docs = [
        scheduled("d1.md", "2024-01-01"),
        scheduled("d2.md", "2024-01-02"),
        scheduled("later.md", "2024-06-01"),
    ]
    result = run_notes_pass(docs, config, now)
    picks = {next_note(result, pick_random=True).path for _ in range(30)}
    assert picks <= {"d1.md", "d2.md"}


# ---------- Review ----------


def test_review_new_note_writes_frontmatter(config, now):
    doc = Document(path="n.md", tags=["#review"])
    result = run_notes_pass([doc], config, now)

    schedule, text = review_note(doc, "Body\n", ReviewResponse.GOOD, result, config, now)

    # interval 1 * 250 / 100 = 2.5, load balanced to day 3
    assert schedule.interval == 3.0
    assert schedule.ease == 250
    assert text == "---\nsr-due: 2024-01-13\nsr-interval: 3.0\nsr-ease: 250\n---\n\nBody\n"


def test_review_scheduled_note_updates_in_place(config, now):
    doc = scheduled("n.md", "2024-01-10", interval=4, ease=230)
    text = "---\ntags: [review]\nsr-due: 2024-01-10\nsr-interval: 4\nsr-ease: 230\n---\nBody\n"
    result = run_notes_pass([doc], config, now)

    schedule, new_text = review_note(doc, text, ReviewResponse.HARD, result, config, now, {})

    assert schedule.ease == 210
    assert schedule.interval == 2.0
    assert new_text == (
        "---\ntags: [review]\nsr-due: 2024-01-12\nsr-interval: 2.0\nsr-ease: 210\n---\nBody\n"
    )


def test_review_reset_clears_scheduling(config, now):
    doc = scheduled("n.md", "2024-01-10")
    text = "---\nsr-due: 2024-01-10\nsr-interval: 3\nsr-ease: 250\n---\nBody\n"
    result = run_notes_pass([doc], config, now)

    schedule, new_text = review_note(doc, text, ReviewResponse.RESET, result, config, now)

    assert schedule is None
    assert new_text == "Body\n"


def test_review_untagged_note_raises(config, now):
    doc = Document(path="n.md", tags=["#misc"])
    with pytest.raises(NoteNotReviewableError):
        review_note(doc, "", ReviewResponse.GOOD, NotesPassResult(), config, now)


# ---------- Grouping ----------


def test_group_by_due_day(now):
    def note(path, due):
        return ScheduledNote(document=Document(path=path), due=due)

    notes = [
        note("y.md", datetime(2024, 1, 9, 8)),
        note("t.md", datetime(2024, 1, 10, 8)),
        note("tm.md", datetime(2024, 1, 11, 8)),
        note("w.md", datetime(2024, 1, 15)),
        note("far.md", datetime(2025, 1, 15)),
        ScheduledNote(document=Document(path="bad.md"), due=None),
    ]
    groups = group_by_due_day(notes, now, max_days=30)

    assert list(groups) == ["Yesterday", "Today", "Tomorrow", "2024-01-15"]
    assert [n.document.path for n in groups["Today"]] == ["t.md"]
