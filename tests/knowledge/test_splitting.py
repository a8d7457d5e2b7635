"""Tests for the structural section splitter."""

from __future__ import annotations

import pytest

from src.knowledge.config import KnowledgeBaseConfig
from src.knowledge.models import KnowledgeDocument
from src.knowledge.splitting import (
    SectionSplitter,
    caps_heading_sections,
    cut_at,
    fixed_size_chunks,
    inline_numbered_sections,
    markdown_heading_sections,
    merge_small,
    numbered_item_sections,
    split_into_sections,
)

FILLER = (
    "Our support team answers every request within one business day and keeps "
    "you informed at each step of the process until the issue is resolved. "
)


def body(repeat: int = 3) -> str:
    return FILLER * repeat


@pytest.fixture
def splitter() -> SectionSplitter:
    return SectionSplitter(KnowledgeBaseConfig())


# ── Strategies ──────────────────────────────────────────────────────────────


class TestCutAt:
    def test_ignores_boundaries_and_duplicates(self):
        assert cut_at("abcdef", [0, 2, 2, 6, 10]) == ["ab", "cdef"]

    def test_no_offsets(self):
        assert cut_at("abc", []) == ["abc"]


class TestStrategies:
    """Each strategy cuts at offsets without rewriting the text."""

    def test_markdown_headings(self):
        text = "# Intro\nhello\n## Fees\nsome fees\n#### Deep\ndeep text\n##### too deep\n"
        pieces = markdown_heading_sections(text)
        assert [p.splitlines()[0] for p in pieces] == ["# Intro", "## Fees", "#### Deep"]
        assert "".join(pieces) == text

    def test_numbered_items_with_invisible_prefix(self):
        text = "1. First item\nbody\n\u200b2) Second item\nbody\n10. Tenth item\n"
        pieces = numbered_item_sections(text)
        assert len(pieces) == 3
        assert "".join(pieces) == text

    def test_numbered_items_ignore_decimals(self):
        assert numbered_item_sections("3.5 million users\n4.2 stars\n") == ["3.5 million users\n4.2 stars\n"]

    def test_inline_numbers_in_wall_of_text(self):
        text = "FAQ 1. Fees are low. 2. Delays are short. 4. Refunds are fast. 99. Not an item."
        pieces = inline_numbered_sections(text)
        assert [p.split(".")[0].strip() for p in pieces[1:]] == ["1", "2", "4"]
        assert "".join(pieces) == text

    def test_inline_numbers_need_a_wall_of_text(self):
        text = "1. Fees are low.\n2. Delays are short.\n3. Refunds are fast.\n"
        assert inline_numbered_sections(text) == [text]

    def test_inline_numbers_must_start_at_one(self):
        text = "Call us 3. Then wait 4. Then pay 5. Done now."
        assert inline_numbered_sections(text) == [text]

    def test_caps_and_symbol_headings(self):
        text = "ACTIVATION FEES\nbody one\n★ Monthly plan\nbody two\nNot a Heading\n"
        pieces = caps_heading_sections(text)
        assert [p.splitlines()[0] for p in pieces] == ["ACTIVATION FEES", "★ Monthly plan"]


class TestMergeSmall:
    def test_small_piece_folds_into_next(self):
        assert merge_small(["ab", "cdefgh"], floor=3) == ["abcdefgh"]

    def test_trailing_small_piece_folds_into_previous(self):
        assert merge_small(["abcdefgh", "ij"], floor=3) == ["abcdefghij"]

    def test_cap_prevents_fold(self):
        assert merge_small(["ab", "cdefgh"], floor=3, cap=5) == ["ab", "cdefgh"]


class TestFixedSizeChunks:
    def test_groups_paragraphs_up_to_target(self):
        paragraphs = [body(1) + "\n\n" for _ in range(20)]
        text = "".join(paragraphs)
        chunks = fixed_size_chunks(text, target=600, cap=1000)
        assert "".join(chunks) == text
        assert all(len(c) <= 1000 for c in chunks)
        assert len(chunks) > 1

    def test_single_huge_paragraph_is_cut_at_sentences(self):
        text = body(40)
        chunks = fixed_size_chunks(text, target=1500, cap=3500)
        assert "".join(chunks) == text
        assert all(len(c) <= 3500 for c in chunks)
        assert all(c.endswith(".") for c in chunks[:-1])


# ── Splitter ────────────────────────────────────────────────────────────────


class TestSectionSplitter:
    """Strategy ladder, acceptance and lossless output."""

    def test_short_document_is_one_trimmed_section(self, splitter):
        assert splitter.split("  short entry  \n") == ["short entry"]

    def test_markdown_document(self, splitter):
        text = "".join(f"## Topic {i}\n{body()}\n" for i in range(5))
        sections = splitter.split(text)
        assert len(sections) == 5
        assert all(s.startswith("## Topic") for s in sections)
        assert "".join(sections) == text

    def test_three_sections_are_not_enough(self, splitter):
        text = "".join(f"## Topic {i}\n{body(4)}\n" for i in range(3))
        sections = splitter.split(text)
        assert sections == [text]

    def test_bold_headings_when_no_markdown_or_numbers(self, splitter):
        text = "".join(f"**Question {i}**\n{body()}\n" for i in range(5))
        sections = splitter.split(text)
        assert [s.splitlines()[0] for s in sections] == [f"**Question {i}**" for i in range(5)]

    def test_slivers_are_merged(self, splitter):
        text = "# Title\n" + "".join(f"## Topic {i}\n{body()}\n" for i in range(5))
        sections = splitter.split(text)
        assert sections[0].startswith("# Title\n## Topic 0")

    def test_unstructured_50k_entry_falls_back_to_capped_chunks(self, splitter):
        text = body(350)
        text = text[:12000] + "\n\n" + text[12000:30000] + "\n\n" + text[30000:]
        assert len(text) > 45000
        sections = splitter.split(text)
        assert len(sections) > 10
        assert all(len(s) <= splitter.config.fallback_max_chunk_chars for s in sections)
        assert "".join(sections) == text

    def test_split_document_skips_blank_sections(self, splitter):
        doc = KnowledgeDocument(title="Empty", content="   \n  ")
        assert splitter.split_document(doc) == []

    def test_split_document_indexes_sections(self, splitter):
        doc = KnowledgeDocument(title="Guide", content="".join(f"## T{i}\n{body()}\n" for i in range(4)))
        sections = splitter.split_document(doc)
        assert [s.index for s in sections] == [0, 1, 2, 3]
        assert all(s.entry_title == "Guide" for s in sections)

    def test_thresholds_come_from_config(self):
        config = KnowledgeBaseConfig(short_document_chars=10_000)
        text = "".join(f"## Topic {i}\n{body()}\n" for i in range(5))
        assert split_into_sections(text, config) == [text.strip()]
