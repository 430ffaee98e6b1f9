"""Centralized constants for the cadence engine.

All magic numbers and text patterns live here so every layer
imports from a single source of truth.
"""

import re

# ---------- Time ----------
DAY_MS = 24 * 3600 * 1000

# ---------- Scheduling ----------
MIN_EASE = 130
EASE_STEP = 20
DUE_DATE_FORMATS = ["%Y-%m-%d", "%d-%m-%Y", "%a %b %d %Y"]
CLOZE_DUE_DATE_FORMATS = ["%Y-%m-%d", "%d-%m-%Y"]
DUE_DATE_WRITE_FORMAT = "%Y-%m-%d"

# ---------- Importance (PageRank) ----------
DAMPING_FACTOR = 0.85
CONVERGENCE_TOLERANCE = 1e-6
MAX_RANK_ITERATIONS = 100
IMPORTANCE_SCALE = 10000
LINK_FACTOR_LOG_BASE = 64

# ---------- Note frontmatter ----------
SR_DUE_KEY = "sr-due"
SR_INTERVAL_KEY = "sr-interval"
SR_EASE_KEY = "sr-ease"

# ---------- Flashcards ----------
SCHEDULING_COMMENT_PREFIX = "<!--SR:"
SCHEDULING_COMMENT_SUFFIX = "-->"
CONTEXT_SEPARATOR = " > "
ROOT_DECK_SEGMENT = "/"
CLOZE_MARK = "=="
CLOZE_FRONT_PLACEHOLDER = "[...]"
CLOZE_BACK_TEMPLATE = "[{}]"
# Holds the slot of a cloze deletion that has not been reviewed yet
CLOZE_UNSCHEDULED_DUE = "new"
CLOZE_UNSCHEDULED_ENTRY = "!new,0,0"

CODEBLOCK_RE = re.compile(r"```[\s\S]*?```", re.MULTILINE)
INLINE_CODE_RE = re.compile(r"`(?!`)(.+?)`", re.MULTILINE)
CLOZE_CARD_DETECTOR_RE = re.compile(r"(?:.+\n)*^.*?==.*?==.*(?:\n|\Z)(?:.+\n?)*", re.MULTILINE)
CLOZE_DELETIONS_RE = re.compile(r"==(.*?)==", re.MULTILINE)
MULTI_SCHEDULING_RE = re.compile(r"!([\d-]+|new),(\d+(?:\.\d+)?),(\d+)", re.MULTILINE)
SCHEDULING_COMMENT_RE = re.compile(r"\s*<!--SR:.*?-->")

# Annotation captured by the basic card patterns: due, interval, ease.
ANNOTATION_PATTERN = r"<!--SR:!?(.+),(\d+(?:\.\d+)?),(\d+)-->"

# ---------- Vault scanning ----------
HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.+?)[ \t#]*$", re.MULTILINE)
WIKILINK_RE = re.compile(r"\[\[([^\]|#]+)(?:#[^\]|]*)?(?:\|[^\]]*)?\]\]")
MDLINK_RE = re.compile(r"(?<!!)\[[^\]]*\]\(([^)\s]+?\.md)\)")
INLINE_TAG_RE = re.compile(r"(?:^|(?<=\s))#([A-Za-z0-9_\-/]*[A-Za-z_\-/][A-Za-z0-9_\-/]*)")
