"""FAQ matching against published help-center articles.

Before paying for an LLM call, the livechat checks whether a published
article answers the question outright. Articles are scored with the same
keyword primitive as knowledge retrieval, with title hits weighted highest.
A canned answer is returned only when both the total score and the number
of keywords found in the title clear their thresholds.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from src.knowledge.config import KnowledgeBaseConfig
from src.knowledge.keywords import contains_keyword, extract_keywords, normalize_text
from src.knowledge.models import FaqArticle, FaqMatch

logger = logging.getLogger(__name__)


def article_link(article: FaqArticle) -> str:
    return article.url or f"/help/article/{article.slug}"


class FaqMatcher:
    """Score help-center articles against a question."""

    def __init__(self, config: KnowledgeBaseConfig | None = None):
        self.config = config or KnowledgeBaseConfig()

    def extract_keywords(self, question: str, extra_stop_words: Iterable[str] = ()) -> list[str]:
        return extract_keywords(
            question,
            min_length=self.config.keyword_min_length,
            max_keywords=self.config.max_keywords,
            extra_stop_words=[*self.config.extra_stop_words, *extra_stop_words],
        )

    def score(self, article: FaqArticle, keywords: Sequence[str]) -> FaqMatch:
        """Score one article. Title, excerpt and content hits add up."""
        cfg = self.config
        title = normalize_text(article.title)
        excerpt = normalize_text(article.excerpt)
        content = normalize_text(article.content)

        score = 0
        title_hits = 0
        for keyword in keywords:
            if contains_keyword(title, keyword):
                score += cfg.faq_title_weight
                title_hits += 1
            if contains_keyword(excerpt, keyword):
                score += cfg.faq_excerpt_weight
            if contains_keyword(content, keyword):
                score += cfg.faq_content_weight
        return FaqMatch(article=article, score=score, title_hits=title_hits)

    def rank(
        self,
        question: str,
        articles: Sequence[FaqArticle],
        *,
        extra_stop_words: Iterable[str] = (),
    ) -> list[FaqMatch]:
        """Articles with a positive score, best first (ties keep input order)."""
        keywords = self.extract_keywords(question, extra_stop_words)
        if not keywords:
            return []
        matches = [self.score(article, keywords) for article in articles]
        matches = [m for m in matches if m.score > 0]
        matches.sort(key=lambda m: m.score, reverse=True)
        return matches

    def match(
        self,
        question: str,
        articles: Sequence[FaqArticle],
        *,
        extra_stop_words: Iterable[str] = (),
    ) -> FaqMatch | None:
        """Return a confident match with its canned reply, or None."""
        ranked = self.rank(question, articles, extra_stop_words=extra_stop_words)
        if not ranked:
            return None
        best = ranked[0]
        if best.score < self.config.faq_min_score or best.title_hits < self.config.faq_min_title_hits:
            return None
        logger.info(
            "FAQ match '%s' (score=%d, title_hits=%d)",
            best.article.slug,
            best.score,
            best.title_hits,
        )
        return best.model_copy(update={"reply": self.compose_reply(best.article)})

    def compose_reply(self, article: FaqArticle) -> str:
        body = article.excerpt.strip()
        if not body:
            body = article.content.strip()[: self.config.faq_reply_chars]
            if len(article.content.strip()) > self.config.faq_reply_chars:
                body = body.rstrip() + "..."
        return f"{body}\n\n[{article.title}]({article_link(article)})"

    def build_context(
        self,
        question: str,
        articles: Sequence[FaqArticle],
        budget: int | None = None,
        *,
        extra_stop_words: Iterable[str] = (),
    ) -> str:
        """Format published articles for the prompt, most relevant first.

        Articles that do not match any keyword follow the matching ones in
        their original order. Whole articles are added until the next one
        would exceed the budget. ``extra_stop_words`` are ignored as keywords,
        as in :meth:`rank`.
        """
        budget = self.config.faq_context_budget_chars if budget is None else budget
        keywords = self.extract_keywords(question, extra_stop_words)
        scored = [(self.score(article, keywords).score, article) for article in articles]
        scored.sort(key=lambda pair: pair[0], reverse=True)

        parts: list[str] = []
        used = 0
        for number, (_, article) in enumerate(scored, start=1):
            block = f'--- FAQ #{number}: "{article.title}" (link: {article_link(article)}) ---\n'
            if article.excerpt.strip():
                block += f"Summary: {article.excerpt.strip()}\n"
            block += article.content.strip()[: self.config.entry_opening_chars] + "\n\n"
            if used + len(block) > budget:
                break
            parts.append(block)
            used += len(block)
        return "".join(parts).strip()
