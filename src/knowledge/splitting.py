"""Structural section splitting for knowledge entries.

Knowledge sources are heterogeneous: hand-written FAQs, scraped web pages,
pasted documentation. No single pattern fits all of them, so splitting runs a
ladder of structural strategies and keeps the first one that produces enough
well-sized sections:

1. Markdown headings (levels 1-4)
2. Numbered items on their own line ("1. Title", "20. Title")
3. Inline numbered items inside a wall of text
4. Bold "**Title**" lines
5. Uppercase or symbol-prefixed heading lines
6. Blank-line paragraphs

When nothing fits, paragraphs are grouped greedily into fixed-size chunks.

Every strategy cuts the text at offsets and never rewrites it, so joining
the sections of a long entry gives back the original content exactly.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from functools import partial

from src.knowledge.config import KnowledgeBaseConfig
from src.knowledge.models import KnowledgeDocument, KnowledgeSection

logger = logging.getLogger(__name__)

Strategy = Callable[[str], list[str]]

_INVISIBLE = "\u200b\u200c\u200d\u2060\ufeff\u00a0"
_HEADING_SYMBOLS = "★◆■▶►➤"

_MARKDOWN_HEADING = re.compile(r"^[ \t]{0,3}#{1,4}[ \t]+\S", re.MULTILINE)
_NUMBERED_ITEM = re.compile(
    rf"^[ \t{_INVISIBLE}]*\d{{1,2}}[.)][ \t]+(?:[^\W_]|[{_HEADING_SYMBOLS}])",
    re.MULTILINE,
)
_INLINE_NUMBER = re.compile(r"(?<![\w.,])(\d{1,2})\.\s+(?=[^\W\d_]|[" + _HEADING_SYMBOLS + "])")
_BOLD_HEADING = re.compile(r"^[ \t]*\*\*[^*\n]{2,}\*\*", re.MULTILINE)
_LINE = re.compile(r"^.*$", re.MULTILINE)
_BLANK_LINES = re.compile(r"\n[ \t]*\n(?:[ \t]*\n)*")

_SENTENCE_ENDS = (". ", "! ", "? ", "\n")


def cut_at(text: str, offsets: list[int]) -> list[str]:
    """Cut ``text`` at the given offsets, dropping out-of-range duplicates."""
    cuts = sorted({offset for offset in offsets if 0 < offset < len(text)})
    bounds = [0, *cuts, len(text)]
    return [text[start:end] for start, end in zip(bounds, bounds[1:]) if end > start]


# ── Strategies ──────────────────────────────────────────────────────────────


def markdown_heading_sections(text: str) -> list[str]:
    return cut_at(text, [m.start() for m in _MARKDOWN_HEADING.finditer(text)])


def numbered_item_sections(text: str) -> list[str]:
    return cut_at(text, [m.start() for m in _NUMBERED_ITEM.finditer(text)])


def inline_numbered_sections(text: str, chars_per_newline: int = 500) -> list[str]:
    """Split a wall of text on an ascending "1. ... 2. ... 3." sequence.

    Only applies when the text has almost no line breaks (scraped pages and
    PDF transcripts often collapse a whole FAQ into one line). Numbers must
    start at 1 and then increase, with gaps of at most five to tolerate a
    missed item.
    """
    if text.count("\n") >= len(text) / chars_per_newline:
        return [text]

    offsets: list[int] = []
    expected = 1
    for match in _INLINE_NUMBER.finditer(text):
        number = int(match.group(1))
        if number == expected or (offsets and expected < number <= expected + 5):
            offsets.append(match.start())
            expected = number + 1
    return cut_at(text, offsets)


def bold_heading_sections(text: str) -> list[str]:
    return cut_at(text, [m.start() for m in _BOLD_HEADING.finditer(text)])


def _is_caps_heading(line: str) -> bool:
    stripped = line.strip(_INVISIBLE + " \t")
    if not stripped:
        return False
    if stripped[0] in _HEADING_SYMBOLS:
        return True
    letters = [ch for ch in stripped if ch.isalpha()]
    return len(letters) >= 3 and len(stripped) <= 80 and all(ch.isupper() for ch in letters)


def caps_heading_sections(text: str) -> list[str]:
    offsets = [m.start() for m in _LINE.finditer(text) if _is_caps_heading(m.group())]
    return cut_at(text, offsets)


def paragraph_sections(text: str) -> list[str]:
    return cut_at(text, [m.end() for m in _BLANK_LINES.finditer(text)])


# ── Fixed-size fallback ─────────────────────────────────────────────────────


def _sentence_cut(text: str, target: int) -> int:
    """Offset of the last sentence end at or before ``target``."""
    floor = target // 3
    position = max(text.rfind(end, 0, target) for end in _SENTENCE_ENDS)
    if position >= floor:
        return position + 1
    position = text.rfind(" ", 0, target)
    if position >= floor:
        return position + 1
    return target


def split_oversized(text: str, target: int, cap: int) -> list[str]:
    """Cut a single piece longer than ``cap`` into pieces of at most ``target``."""
    pieces: list[str] = []
    rest = text
    while len(rest) > cap:
        cut = _sentence_cut(rest, target)
        pieces.append(rest[:cut])
        rest = rest[cut:]
    pieces.append(rest)
    return pieces


def fixed_size_chunks(text: str, target: int = 1500, cap: int = 3500) -> list[str]:
    """Group paragraphs greedily into chunks of roughly ``target`` characters.

    A group is flushed as soon as it reaches ``target`` or when the next
    paragraph would push it past ``cap``. Groups that are still longer than
    ``cap`` (one huge paragraph) are cut at sentence boundaries.
    """
    groups: list[str] = []
    current = ""
    for paragraph in paragraph_sections(text):
        if current and len(current) + len(paragraph) > cap:
            groups.append(current)
            current = ""
        current += paragraph
        if len(current) >= target:
            groups.append(current)
            current = ""
    if current:
        groups.append(current)

    chunks: list[str] = []
    for group in groups:
        if len(group) > cap:
            chunks.extend(split_oversized(group, target, cap))
        else:
            chunks.append(group)
    return chunks


# ── Merging ─────────────────────────────────────────────────────────────────


def merge_small(pieces: list[str], floor: int, cap: int | None = None) -> list[str]:
    """Fold pieces whose trimmed length is at most ``floor`` into the next one.

    A trailing small piece is folded into the previous one. With ``cap`` set,
    a fold that would produce a piece longer than ``cap`` is skipped.
    """
    merged: list[str] = []
    carry = ""
    for piece in pieces:
        if carry and cap is not None and len(carry) + len(piece) > cap:
            merged.append(carry)
            carry = ""
        piece = carry + piece
        carry = ""
        if len(piece.strip()) <= floor:
            carry = piece
            continue
        merged.append(piece)
    if carry:
        if merged and (cap is None or len(merged[-1]) + len(carry) <= cap):
            merged[-1] += carry
        else:
            merged.append(carry)
    return merged


# ── Splitter ────────────────────────────────────────────────────────────────


class SectionSplitter:
    """Run the strategy ladder with thresholds from :class:`KnowledgeBaseConfig`.

    Usage:
        splitter = SectionSplitter()
        sections = splitter.split(entry_content)
    """

    def __init__(self, config: KnowledgeBaseConfig | None = None):
        self.config = config or KnowledgeBaseConfig()
        self.strategies: list[tuple[str, Strategy]] = [
            ("markdown", markdown_heading_sections),
            ("numbered", numbered_item_sections),
            (
                "inline_numbered",
                partial(
                    inline_numbered_sections,
                    chars_per_newline=self.config.wall_of_text_chars_per_newline,
                ),
            ),
            ("bold", bold_heading_sections),
            ("caps", caps_heading_sections),
            ("paragraphs", paragraph_sections),
        ]

    def _accept(self, pieces: list[str]) -> list[str] | None:
        pieces = merge_small(pieces, self.config.min_section_chars)
        if len(pieces) > self.config.min_section_count:
            return pieces
        return None

    def _finish(self, pieces: list[str]) -> list[str]:
        cfg = self.config
        pieces = merge_small(pieces, cfg.merge_below_chars, cap=cfg.fallback_max_chunk_chars)
        sized: list[str] = []
        for piece in pieces:
            if len(piece) > cfg.fallback_max_chunk_chars:
                sized.extend(
                    fixed_size_chunks(piece, cfg.fallback_chunk_chars, cfg.fallback_max_chunk_chars)
                )
            else:
                sized.append(piece)
        return sized

    def split(self, content: str) -> list[str]:
        """Split entry content into sections.

        Short content is returned as a single trimmed section. Longer content
        is cut by the first accepted strategy, or by the fixed-size fallback;
        in both cases the returned sections join back to ``content``.
        """
        if len(content) < self.config.short_document_chars:
            return [content.strip()]

        for name, strategy in self.strategies:
            pieces = self._accept(strategy(content))
            if pieces is not None:
                logger.debug("Split %d chars into %d sections (%s)", len(content), len(pieces), name)
                return self._finish(pieces)

        pieces = fixed_size_chunks(
            content,
            self.config.fallback_chunk_chars,
            self.config.fallback_max_chunk_chars,
        )
        logger.debug("No structure in %d chars, %d fixed-size chunks", len(content), len(pieces))
        return self._finish(pieces)

    def split_document(self, document: KnowledgeDocument) -> list[KnowledgeSection]:
        """Split a document into titled sections, skipping blank ones."""
        return [
            KnowledgeSection(entry_title=document.title, text=text.strip(), index=index)
            for index, text in enumerate(self.split(document.content))
            if text.strip()
        ]


def split_into_sections(content: str, config: KnowledgeBaseConfig | None = None) -> list[str]:
    """Convenience wrapper around :meth:`SectionSplitter.split`."""
    return SectionSplitter(config).split(content)
