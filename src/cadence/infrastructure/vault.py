"""
FileSystemVault: DocumentSource over a directory of markdown files.

Document ids are vault-relative POSIX paths (`folder/note.md`). Links are
resolved the way Obsidian resolves them: relative to the linking note's folder
first, then as a vault path, then by basename anywhere in the vault (the
shortest matching path wins when several notes share it).
"""

import asyncio
import logging
from collections import defaultdict
from pathlib import Path, PurePosixPath
from urllib.parse import unquote

from cadence.application.card_extractor import find_codeblocks, in_codeblock
from cadence.application.utils.fs import iter_markdown_files
from cadence.application.utils.text import get_frontmatter_tags, parse_frontmatter
from cadence.domain.constants import HEADING_RE, INLINE_TAG_RE, MDLINK_RE, WIKILINK_RE
from cadence.domain.models import Document, Heading
from cadence.domain.ports import DocumentSource

logger = logging.getLogger(__name__)


def parse_headings(text: str, codeblocks: list[tuple[int, int]]) -> list[Heading]:
    headings = []
    for m in HEADING_RE.finditer(text):
        if in_codeblock(m.start(), len(m.group(0)), codeblocks):
            continue
        headings.append(
            Heading(level=len(m.group(1)), text=m.group(2).strip(), start_offset=m.start())
        )
    return headings


def parse_inline_tags(text: str, codeblocks: list[tuple[int, int]]) -> list[str]:
    tags = []
    for m in INLINE_TAG_RE.finditer(text):
        if in_codeblock(m.start(), len(m.group(0)), codeblocks):
            continue
        tags.append(f"#{m.group(1).rstrip('/')}")
    return tags


def parse_link_targets(text: str, codeblocks: list[tuple[int, int]]) -> list[str]:
    """Raw link targets in source order: `[[target]]` and `[x](target.md)`."""
    found: list[tuple[int, str]] = []
    for regex in (WIKILINK_RE, MDLINK_RE):
        for m in regex.finditer(text):
            if in_codeblock(m.start(), len(m.group(0)), codeblocks):
                continue
            found.append((m.start(), unquote(m.group(1).strip())))
    found.sort()
    return [target for _, target in found]


class FileSystemVault(DocumentSource):
    """
    Host adapter over `root`.

    `list_documents()` rescans the directory every call so each pass sees
    the vault as it is on disk. Reads and writes run in a worker thread.
    """

    def __init__(self, root: Path):
        self.root = Path(root).expanduser().resolve()

    def _path_id(self, path: Path) -> str:
        if self.root.is_file():
            return path.name
        return path.relative_to(self.root).as_posix()

    def _abs(self, path: str) -> Path:
        if self.root.is_file():
            return self.root
        return self.root / path

    def list_documents(self) -> list[Document]:
        files = list(iter_markdown_files(self.root))
        ids = [self._path_id(p) for p in files]

        by_basename: dict[str, list[str]] = defaultdict(list)
        for path_id in ids:
            by_basename[PurePosixPath(path_id).stem.lower()].append(path_id)
        known = {path_id.lower(): path_id for path_id in ids}

        documents = []
        for file, path_id in zip(files, ids):
            try:
                text = file.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Could not read {file}: {e}")
                continue
            documents.append(self._build_document(path_id, text, known, by_basename))

        logger.debug(f"Scanned {len(documents)} documents under {self.root}")
        return documents

    def _build_document(
        self,
        path_id: str,
        text: str,
        known: dict[str, str],
        by_basename: dict[str, list[str]],
    ) -> Document:
        meta, _ = parse_frontmatter(text)
        if "__yaml_error__" in meta:
            logger.warning(f"Invalid frontmatter in {path_id}: {meta['__yaml_error__']}")
            meta = {}

        codeblocks = find_codeblocks(text)
        tags = get_frontmatter_tags(meta)
        for tag in parse_inline_tags(text, codeblocks):
            if tag not in tags:
                tags.append(tag)

        links: dict[str, int] = {}
        for raw in parse_link_targets(text, codeblocks):
            target = self.resolve_link(raw, path_id, known, by_basename)
            if target is not None:
                links[target] = links.get(target, 0) + 1

        return Document(
            path=path_id,
            tags=tags,
            frontmatter=meta,
            links=links,
            headings=parse_headings(text, codeblocks),
        )

    @staticmethod
    def resolve_link(
        raw: str,
        source: str,
        known: dict[str, str],
        by_basename: dict[str, list[str]],
    ) -> str | None:
        """Map a link target to a document id, or None if it names no note."""
        target = raw if raw.lower().endswith(".md") else f"{raw}.md"
        target = target.lstrip("/")

        # Relative to the linking note, then vault-absolute
        folder = PurePosixPath(source).parent
        for candidate in (folder / target, PurePosixPath(target)):
            normalized = _normalize(candidate)
            if normalized is not None and normalized.lower() in known:
                return known[normalized.lower()]

        matches = by_basename.get(PurePosixPath(target).stem.lower(), [])
        if matches:
            # Obsidian picks the shortest path when a basename is ambiguous
            return min(matches, key=lambda p: (p.count("/"), p))
        return None

    async def read_text(self, path: str) -> str:
        return await asyncio.to_thread(self._abs(path).read_text, encoding="utf-8")

    async def write_text(self, path: str, text: str) -> None:
        logger.debug(f"Writing {path}")
        await asyncio.to_thread(self._abs(path).write_text, text, encoding="utf-8")


def _normalize(path: PurePosixPath) -> str | None:
    parts: list[str] = []
    for part in path.parts:
        if part in ("", "."):
            continue
        if part == "..":
            if not parts:
                return None
            parts.pop()
            continue
        parts.append(part)
    return "/".join(parts) if parts else None
