import hashlib
from typing import Any

import yaml  # type: ignore
import yaml.constructor

from cadence.domain.constants import SR_DUE_KEY, SR_EASE_KEY, SR_INTERVAL_KEY

SCHEDULING_KEYS = (SR_DUE_KEY, SR_INTERVAL_KEY, SR_EASE_KEY)


# ---------- Fingerprints ----------


def fingerprint(text: str) -> str:
    """Stable content hash used to identify buried cards across runs."""
    return hashlib.md5(text.encode("utf-8")).hexdigest()


# ---------- Frontmatter helpers ----------


class UniqueKeyLoader(yaml.SafeLoader):
    """Custom YAML loader that forbids duplicate keys."""

    def construct_mapping(self, node, deep=False):
        mapping = set()
        for key_node, _ in node.value:
            key = self.construct_object(key_node, deep=deep)
            if key in mapping:
                raise yaml.constructor.ConstructorError(
                    None, None, f"found duplicate key '{key}'", key_node.start_mark
                )
            mapping.add(key)
        return super().construct_mapping(node, deep)


def _extract_frontmatter_bounds(md_text: str) -> tuple[str, int, int] | None:
    """Extract frontmatter content and its character bounds from markdown text.
    Returns (yaml_content, start_index, end_index) or None if no frontmatter.
    Uses line-by-line parsing (no regex).
    """
    lines = md_text.split("\n")

    if not lines or lines[0].strip() != "---":
        return None

    start = len(lines[0]) + 1  # After opening ---\n
    for i, line in enumerate(lines[1:], start=1):
        if line.strip() == "---":
            yaml_content = "\n".join(lines[1:i])
            return yaml_content, start, start + len(yaml_content)

    return None


def parse_frontmatter(md_text: str) -> tuple[dict[str, Any], str]:
    """Parse YAML frontmatter from markdown text.
    Returns (meta, body). On invalid YAML, meta is {"__yaml_error__": msg}
    and body is the full text.
    """
    # Handle potential BOM (Byte Order Mark)
    md_text = md_text.lstrip("\ufeff")

    bounds = _extract_frontmatter_bounds(md_text)
    if bounds is None:
        return {}, md_text

    raw, _, end = bounds
    # Skip the closing --- line
    body_start = md_text.find("\n", end + 1)
    body = md_text[body_start + 1 :] if body_start != -1 else ""

    # Fix tabs (common user error)
    if "\t" in raw:
        raw = raw.replace("\t", "  ")

    try:
        meta = yaml.load(raw, Loader=UniqueKeyLoader) or {}
    except yaml.YAMLError as e:
        return {"__yaml_error__": str(e)}, md_text

    if not isinstance(meta, dict):
        return {"__yaml_error__": "frontmatter is not a mapping"}, md_text

    return meta, body


def get_frontmatter_tags(meta: dict[str, Any]) -> list[str]:
    """Frontmatter `tags`/`tag` as a list of `#tag` strings."""
    raw = meta.get("tags", meta.get("tag"))
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.replace(",", " ").split()
    if not isinstance(raw, list):
        return []
    return [f"#{str(t).lstrip('#')}" for t in raw if t]


def set_scheduling_frontmatter(md_text: str, due: str, interval: float, ease: int) -> str:
    """
    Write sr-due/sr-interval/sr-ease into the frontmatter, editing in place.

    Existing scheduling keys are replaced where they stand, missing keys are
    appended to the block, and a new block is prepended if there is none.
    Other frontmatter lines are left untouched.
    """
    values = {SR_DUE_KEY: due, SR_INTERVAL_KEY: interval, SR_EASE_KEY: ease}
    bounds = _extract_frontmatter_bounds(md_text)

    if bounds is None:
        block = "\n".join(f"{k}: {v}" for k, v in values.items())
        return f"---\n{block}\n---\n\n{md_text}"

    fm_text, fm_start, fm_end = bounds
    lines = fm_text.split("\n") if fm_text else []
    written: set[str] = set()
    new_lines = []
    for line in lines:
        key = line.split(":", 1)[0].strip()
        if key in values and ":" in line and not line[:1].isspace():
            if key not in written:
                new_lines.append(f"{key}: {values[key]}")
                written.add(key)
            continue
        new_lines.append(line)

    for key in SCHEDULING_KEYS:
        if key not in written:
            new_lines.append(f"{key}: {values[key]}")

    block = "\n".join(new_lines)
    if not fm_text:
        block += "\n"
    return md_text[:fm_start] + block + md_text[fm_end:]


def clear_scheduling_frontmatter(md_text: str) -> str:
    """Remove sr-due/sr-interval/sr-ease from the frontmatter, leaving the rest."""
    bounds = _extract_frontmatter_bounds(md_text)
    if bounds is None:
        return md_text

    fm_text, fm_start, fm_end = bounds
    kept = [
        line
        for line in fm_text.split("\n")
        if line[:1].isspace() or line.split(":", 1)[0].strip() not in SCHEDULING_KEYS
    ]
    if not any(line.strip() for line in kept):
        # Only scheduling keys were there: drop the whole block
        closing = md_text.find("\n", fm_end + 1)
        rest = md_text[closing + 1 :] if closing != -1 else ""
        return rest.lstrip("\n")
    return md_text[:fm_start] + "\n".join(kept) + md_text[fm_end:]
