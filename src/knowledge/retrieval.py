"""Keyword-scored retrieval of knowledge context for the language model.

Pipeline for one question:
1. Extract keywords from the question (src.knowledge.keywords).
2. Split every active entry into sections (src.knowledge.splitting).
3. Score each section: keywords in the heading window weigh more than
   keywords further down the body.
4. Add one zero-score opening slice per entry as low-priority filler.
5. Accumulate rendered chunks by descending score until the budget is hit.
6. If almost nothing matched, fall back to the opening of every entry.

Pure string processing: no I/O, deterministic for identical inputs, and the
result never exceeds the requested budget.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from src.knowledge.config import KnowledgeBaseConfig
from src.knowledge.keywords import contains_keyword, extract_keywords, normalize_text
from src.knowledge.models import KnowledgeDocument, ScoredChunk
from src.knowledge.splitting import SectionSplitter

logger = logging.getLogger(__name__)


def score_chunk(
    title: str,
    text: str,
    keywords: Sequence[str],
    *,
    heading_window: int = 150,
    heading_weight: int = 3,
    body_weight: int = 1,
) -> int:
    """Score a chunk by weighted keyword overlap.

    Each keyword counts once: ``heading_weight`` if it starts a word within
    the first ``heading_window`` characters of "title + text", otherwise
    ``body_weight`` if it appears anywhere in the chunk.
    """
    if not keywords:
        return 0
    raw = f"{title}\n{text}"
    window = normalize_text(raw[:heading_window])
    body = normalize_text(raw)
    score = 0
    for keyword in keywords:
        if contains_keyword(window, keyword):
            score += heading_weight
        elif contains_keyword(body, keyword):
            score += body_weight
    return score


class KnowledgeRetriever:
    """Build bounded, relevance-ranked context from knowledge entries.

    Args:
        config: Thresholds and budgets. Defaults to environment settings.

    Usage:
        retriever = KnowledgeRetriever()
        context = retriever.build_context(entries, "What are the fees?", budget=18000)
    """

    def __init__(self, config: KnowledgeBaseConfig | None = None):
        self.config = config or KnowledgeBaseConfig()
        self.splitter = SectionSplitter(self.config)

    def extract_keywords(self, question: str, extra_stop_words: Iterable[str] = ()) -> list[str]:
        return extract_keywords(
            question,
            min_length=self.config.keyword_min_length,
            max_keywords=self.config.max_keywords,
            extra_stop_words=[*self.config.extra_stop_words, *extra_stop_words],
        )

    def rank(
        self,
        entries: Sequence[KnowledgeDocument],
        question: str,
        *,
        extra_stop_words: Iterable[str] = (),
    ) -> list[ScoredChunk]:
        """Return scored candidate chunks, best first.

        Sections with a positive score are candidates. Each entry also
        contributes its opening slice with score zero, unless its first
        section already scored. Ties keep document order.
        """
        cfg = self.config
        keywords = self.extract_keywords(question, extra_stop_words)
        candidates: list[ScoredChunk] = []

        for entry_index, entry in enumerate(entries):
            if not entry.is_active or not entry.content.strip():
                continue
            opening_scored = False
            for section in self.splitter.split_document(entry):
                score = score_chunk(
                    entry.title,
                    section.text,
                    keywords,
                    heading_window=cfg.heading_window_chars,
                    heading_weight=cfg.heading_weight,
                    body_weight=cfg.body_weight,
                )
                if score <= 0:
                    continue
                if section.index == 0:
                    opening_scored = True
                candidates.append(
                    ScoredChunk(
                        entry_title=entry.title,
                        text=section.text,
                        score=score,
                        entry_index=entry_index,
                        section_index=section.index,
                    )
                )
            if not opening_scored:
                candidates.append(
                    ScoredChunk(
                        entry_title=entry.title,
                        text=entry.content.strip()[: cfg.toc_chars],
                        score=0,
                        entry_index=entry_index,
                    )
                )

        candidates.sort(key=lambda chunk: chunk.score, reverse=True)
        return candidates

    def build_context(
        self,
        entries: Sequence[KnowledgeDocument],
        question: str,
        budget: int,
        *,
        extra_stop_words: Iterable[str] = (),
    ) -> str:
        """Assemble the knowledge context for one question.

        Args:
            entries: Knowledge entries of the current tenant. Inactive and
                empty entries are ignored.
            question: The user's question.
            budget: Maximum length of the returned string.
            extra_stop_words: Per-call noise terms, e.g. the tenant's name.

        Returns:
            Context string of at most ``budget`` characters. Empty when no
            active entry has content.
        """
        cfg = self.config
        active = [e for e in entries if e.is_active and e.content.strip()]
        if not active or budget <= 0:
            return ""

        parts: list[str] = []
        used = 0
        scored_chars = 0
        for chunk in self.rank(active, question, extra_stop_words=extra_stop_words):
            block = chunk.render()
            remaining = budget - used
            if len(block) > remaining:
                if chunk.score > 0 and remaining >= cfg.min_truncated_chunk_chars:
                    parts.append(block[:remaining])
                    used += remaining
                    scored_chars += remaining
                break
            parts.append(block)
            used += len(block)
            if chunk.score > 0:
                scored_chars += len(block)

        if scored_chars < cfg.min_scored_context_chars:
            logger.debug("No keyword match for question, using entry openings")
            return self.openings_context(active, budget)

        logger.debug("Assembled %d chars of knowledge context (%d scored)", used, scored_chars)
        return "".join(parts).strip()

    def openings_context(self, entries: Sequence[KnowledgeDocument], budget: int) -> str:
        """Concatenate the opening of every entry, unfiltered, up to ``budget``."""
        parts: list[str] = []
        used = 0
        for entry in entries:
            remaining = budget - used
            if remaining <= 0:
                break
            opening = entry.content.strip()[: self.config.entry_opening_chars]
            block = f"[{entry.title}]: {opening}\n\n"[:remaining]
            parts.append(block)
            used += len(block)
        return "".join(parts).strip()
