"""Markdown note chunker — heading sections packed into ~target-sized chunks.

Every chunk is prefixed with a short context header naming the note, so a
chunk retrieved on its own still says where it came from::

    [Note: Weekly review (2024-05-03)]
    Date: 2024-05-03
    Tags: review, planning

Line ranges are 1-based, inclusive, and refer to the original file
(frontmatter included in the numbering). Consecutive chunks never share a
line; overlap text is copied into the next chunk but not counted in its range.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath

import yaml

from butler.db.models import Chunk
from butler.ingest.base import BaseChunker

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")
_H1_RE = re.compile(r"^#\s+(.+)$", re.MULTILINE)
_FENCE = "---"

# How far back from the overlap window to look for a clean break.
_BREAK_SLACK = 100


@dataclass
class _Section:
    header: str | None
    start: int  # 0-based line index of the header (or first body line)
    end: int
    body: list[str] = field(default_factory=list)

    def text(self) -> str:
        lines = ([self.header] if self.header else []) + self.body
        return "\n".join(lines) + "\n"

    def is_blank(self) -> bool:
        return not self.header and not any(line.strip() for line in self.body)


# ------------------------------------------------------------------
# Frontmatter + title helpers
# ------------------------------------------------------------------


def split_frontmatter(content: str) -> tuple[dict, int]:
    """Return ``(metadata, first_body_line)`` for *content*.

    ``first_body_line`` is the 0-based index of the line after the closing
    fence, or 0 when there is no frontmatter. Malformed YAML yields empty
    metadata but the fenced block is still skipped.
    """
    lines = content.split("\n")
    if not lines or lines[0].strip() != _FENCE:
        return {}, 0
    for i in range(1, len(lines)):
        if lines[i].strip() == _FENCE:
            raw = "\n".join(lines[1:i])
            try:
                meta = yaml.safe_load(raw) or {}
            except yaml.YAMLError:
                meta = {}
            return (meta if isinstance(meta, dict) else {}), i + 1
    return {}, 0


def extract_title(content: str, path: str) -> str:
    """Note title: frontmatter ``title``, else the first H1, else the file stem."""
    meta, body_start = split_frontmatter(content)
    title = meta.get("title")
    if isinstance(title, str) and title.strip():
        return title.strip()

    body = "\n".join(content.split("\n")[body_start:])
    match = _H1_RE.search(body)
    if match:
        return match.group(1).strip()
    return PurePosixPath(path).stem if path else ""


def _format_tags(value: object) -> str:
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v).strip() for v in value if str(v).strip())
    return str(value).strip()


# ------------------------------------------------------------------
# Chunker
# ------------------------------------------------------------------


class NoteChunker(BaseChunker):
    """Split a Markdown note on headings, then pack sections up to the target size.

    Strategy:
    - Skip the YAML frontmatter; use its ``date`` / ``tags`` in the prefix.
    - Each ATX heading (H1..H6) plus its following lines is a *section*.
      Lines before the first heading form an untitled section.
    - Sections are appended to the current chunk while it stays under
      ``chunk_size`` tokens (prefix included). When the next section does not
      fit, the chunk is emitted and the next one starts with the tail of the
      previous chunk as overlap.
    - A section that alone exceeds the target is split line by line; the
      pieces after the first repeat the heading with ``(continued)``.
    """

    def chunk(self, content: str, path: str = "", title: str | None = None) -> list[Chunk]:
        if not content.strip():
            return []

        meta, body_start = split_frontmatter(content)
        lines = content.split("\n")
        sections = [s for s in _parse_sections(lines, body_start) if not s.is_blank()]
        if not sections:
            return []

        prefix = _build_prefix(path, title, meta)
        budget = max(self.target_chars - len(prefix), self.target_chars // 2)

        pieces: list[tuple[str, int, int]] = []
        carry = ""
        parts: list[str] = []
        size = 0
        start = end = 0

        def emit(body: str, first: int, last: int) -> None:
            nonlocal carry
            pieces.append((prefix + body.strip(), first + 1, last + 1))
            carry = self._overlap_tail(body)

        for section in sections:
            text = section.text()

            if len(text) > budget:
                if parts:
                    emit("".join(parts), start, end)
                    parts, size = [], 0
                for body, first, last in self._split_section(section, budget):
                    emit(body, first, last)
                continue

            if parts and size + len(text) > budget:
                emit("".join(parts), start, end)
                parts, size = [], 0

            if not parts:
                lead = carry + "\n" if carry else ""
                parts, size = [lead], len(lead)
                start = section.start

            parts.append(text)
            size += len(text)
            end = section.end

        if parts:
            emit("".join(parts), start, end)

        return self._make_chunks(pieces)

    def _split_section(self, section: _Section, budget: int) -> list[tuple[str, int, int]]:
        """Split an oversized section at line boundaries."""
        out: list[tuple[str, int, int]] = []
        body_first = section.start + (1 if section.header else 0)

        def opening(overlap: str, continued: bool) -> list[str]:
            buf: list[str] = []
            if section.header:
                buf.append(section.header + (" (continued)" if continued else ""))
            if overlap:
                buf.append(overlap)
            return buf

        buf = opening("", continued=False)
        size = sum(len(b) + 1 for b in buf)
        first = section.start
        has_body = False

        for offset, line in enumerate(section.body):
            line_no = body_first + offset
            if has_body and size + len(line) + 1 > budget:
                body = "\n".join(buf)
                out.append((body, first, line_no - 1))
                buf = opening(self._overlap_tail(body), continued=True)
                size = sum(len(b) + 1 for b in buf)
                first = line_no
                has_body = False
            buf.append(line)
            size += len(line) + 1
            has_body = has_body or bool(line.strip())

        if has_body or not out:
            out.append(("\n".join(buf), first, section.end))
        return out

    def _overlap_tail(self, text: str) -> str:
        """Tail of *text* (about ``overlap_tokens`` long) carried into the next chunk.

        Prefers to start at a paragraph break, then a sentence break, inside
        a small window before the cut.
        """
        size = self.overlap_chars
        text = text.strip()
        if size <= 0 or not text:
            return ""
        if len(text) <= size:
            return text

        window_start = max(0, len(text) - size - _BREAK_SLACK)
        window = text[window_start:]

        para = window.rfind("\n\n")
        if para != -1 and window[para:].strip():
            return window[para:].strip()
        sentence = window.find(". ")
        if sentence != -1 and window[sentence + 2 :].strip():
            return window[sentence + 2 :].strip()
        return text[-size:].strip()


def _parse_sections(lines: list[str], first_line: int) -> list[_Section]:
    sections: list[_Section] = []
    current: _Section | None = None

    for i in range(first_line, len(lines)):
        line = lines[i].rstrip("\r")
        if _HEADING_RE.match(line):
            if current is not None:
                sections.append(current)
            current = _Section(header=line.strip(), start=i, end=i)
            continue
        if current is None:
            current = _Section(header=None, start=i, end=i)
        current.body.append(line)
        current.end = i

    if current is not None:
        sections.append(current)

    for section in sections:
        # Trailing blank lines belong to no chunk.
        while section.body and not section.body[-1].strip():
            section.body.pop()
            section.end -= 1
        if not section.header:
            while section.body and not section.body[0].strip():
                section.body.pop(0)
                section.start += 1
    return sections


def _build_prefix(path: str, title: str | None, meta: dict) -> str:
    stem = PurePosixPath(path).stem if path else ""
    label = title or stem or "untitled"
    if title and stem and title.lower() != stem.lower():
        label = f"{title} ({stem})"

    lines = [f"[Note: {label}]"]
    if meta.get("date"):
        lines.append(f"Date: {meta['date']}")
    if meta.get("tags"):
        tags = _format_tags(meta["tags"])
        if tags:
            lines.append(f"Tags: {tags}")
    return "\n".join(lines) + "\n\n"
