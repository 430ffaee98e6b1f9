"""Tests for cadence.application.utils: frontmatter, dates and file walking."""

import hashlib
from datetime import date, datetime

from cadence.application.utils.dates import days_until, due_after, parse_due_date
from cadence.application.utils.fs import iter_markdown_files
from cadence.application.utils.text import (
    clear_scheduling_frontmatter,
    fingerprint,
    get_frontmatter_tags,
    parse_frontmatter,
    set_scheduling_frontmatter,
)

# ---------- Frontmatter parsing ----------


def test_parse_frontmatter_basic():
    meta, body = parse_frontmatter("---\ntitle: T\ntags: [a, b]\n---\nBody\n")
    assert meta == {"title": "T", "tags": ["a", "b"]}
    assert body == "Body\n"


def test_parse_frontmatter_absent():
    meta, body = parse_frontmatter("No frontmatter\n")
    assert meta == {}
    assert body == "No frontmatter\n"


def test_parse_frontmatter_strips_bom():
    meta, _ = parse_frontmatter("\ufeff---\nx: 1\n---\n")
    assert meta == {"x": 1}


def test_parse_frontmatter_duplicate_keys():
    meta, body = parse_frontmatter("---\na: 1\na: 2\n---\nBody")
    assert "__yaml_error__" in meta
    assert "duplicate key" in meta["__yaml_error__"]
    assert body.startswith("---")


def test_parse_frontmatter_not_a_mapping():
    meta, _ = parse_frontmatter("---\n- a\n- b\n---\n")
    assert "__yaml_error__" in meta


def test_parse_frontmatter_tabs_are_tolerated():
    meta, _ = parse_frontmatter("---\nouter:\n\tinner: 1\n---\n")
    assert meta == {"outer": {"inner": 1}}


def test_get_frontmatter_tags():
    assert get_frontmatter_tags({"tags": ["review", "#bio"]}) == ["#review", "#bio"]
    assert get_frontmatter_tags({"tags": "a, b"}) == ["#a", "#b"]
    assert get_frontmatter_tags({"tag": "solo"}) == ["#solo"]
    assert get_frontmatter_tags({"tags": None}) == []
    assert get_frontmatter_tags({}) == []


# ---------- Scheduling write-back ----------


def test_set_scheduling_prepends_block():
    out = set_scheduling_frontmatter("Body\n", "2024-01-02", 3.0, 250)
    assert out == "---\nsr-due: 2024-01-02\nsr-interval: 3.0\nsr-ease: 250\n---\n\nBody\n"


def test_set_scheduling_appends_missing_keys():
    text = "---\ntitle: T\n---\nBody\n"
    out = set_scheduling_frontmatter(text, "2024-01-02", 3.0, 250)
    assert out == "---\ntitle: T\nsr-due: 2024-01-02\nsr-interval: 3.0\nsr-ease: 250\n---\nBody\n"


def test_set_scheduling_replaces_in_place():
    text = "---\nsr-due: 2020-01-01\ntitle: T\nsr-interval: 1\nsr-ease: 130\n---\nBody\n"
    out = set_scheduling_frontmatter(text, "2024-01-02", 3.5, 270)
    assert out == "---\nsr-due: 2024-01-02\ntitle: T\nsr-interval: 3.5\nsr-ease: 270\n---\nBody\n"

    meta, _ = parse_frontmatter(out)
    assert meta["sr-ease"] == 270


def test_set_scheduling_empty_frontmatter():
    out = set_scheduling_frontmatter("---\n---\nBody\n", "2024-01-02", 3.0, 250)
    meta, body = parse_frontmatter(out)
    assert meta == {"sr-due": date(2024, 1, 2), "sr-interval": 3.0, "sr-ease": 250}
    assert body == "Body\n"


def test_clear_scheduling_keeps_other_keys():
    text = "---\ntitle: T\nsr-due: 2024-01-02\nsr-interval: 3\nsr-ease: 250\n---\nBody\n"
    assert clear_scheduling_frontmatter(text) == "---\ntitle: T\n---\nBody\n"


def test_clear_scheduling_drops_empty_block():
    text = "---\nsr-due: 2024-01-02\nsr-interval: 3\nsr-ease: 250\n---\n\nBody\n"
    assert clear_scheduling_frontmatter(text) == "Body\n"
    assert clear_scheduling_frontmatter("Body\n") == "Body\n"


def test_fingerprint_is_stable():
    assert fingerprint("Q::A") == fingerprint("Q::A")
    assert fingerprint("Q::A") != fingerprint("Q::B")


def test_fingerprint_is_md5_hex():
    assert fingerprint("Q::A") == hashlib.md5(b"Q::A").hexdigest()


# ---------- Dates ----------


def test_parse_due_date_formats():
    assert parse_due_date("2024-03-05") == datetime(2024, 3, 5)
    assert parse_due_date("05-03-2024") == datetime(2024, 3, 5)
    assert parse_due_date("Tue Mar 05 2024") == datetime(2024, 3, 5)
    assert parse_due_date("!2024-03-05") == datetime(2024, 3, 5)
    assert parse_due_date(date(2024, 3, 5)) == datetime(2024, 3, 5)
    assert parse_due_date("tomorrow") is None
    assert parse_due_date(12) is None


def test_days_until_rounds_up():
    now = datetime(2024, 1, 10, 12)
    assert days_until(datetime(2024, 1, 11), now) == 1
    assert days_until(datetime(2024, 1, 10), now) == 0
    assert days_until(datetime(2024, 1, 9), now) == -1
    assert due_after(now, 2.5) == datetime(2024, 1, 13)


# ---------- Files ----------


def test_iter_markdown_files_skips_hidden(mock_vault):
    (mock_vault / "b.md").write_text("b")
    (mock_vault / "sub").mkdir()
    (mock_vault / "sub" / "a.md").write_text("a")
    (mock_vault / ".obsidian").mkdir()
    (mock_vault / ".obsidian" / "x.md").write_text("x")
    (mock_vault / "image.png").write_bytes(b"")

    found = [p.relative_to(mock_vault).as_posix() for p in iter_markdown_files(mock_vault)]
    assert found == ["b.md", "sub/a.md"]


def test_iter_markdown_files_single_file(mock_vault):
    note = mock_vault / "one.md"
    note.write_text("x")
    assert list(iter_markdown_files(note)) == [note]
