"""Knowledge retrieval configuration via Pydantic BaseSettings.

All settings load from environment variables with the KNOWLEDGE_ prefix.
For example, KNOWLEDGE_LIVECHAT_BUDGET_CHARS sets livechat_budget_chars.

Every threshold used by section splitting, keyword extraction, scoring and
the FAQ short-circuit lives here so it can be tuned per deployment.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class KnowledgeBaseConfig(BaseSettings):
    """Tunable constants for the knowledge retrieval engine.

    Attributes:
        short_document_chars: Entries shorter than this are one section.
        min_section_count: A strategy is accepted only when it yields MORE
            sections than this.
        min_section_chars: Trimmed length every accepted section must exceed.
            Shorter slivers are merged into a neighbour first.
        merge_below_chars: Adjacent sections shorter than this are merged.
        wall_of_text_chars_per_newline: Content with fewer than one newline per
            this many characters is treated as a wall of text.
        fallback_chunk_chars: Target size of greedy paragraph groups.
        fallback_max_chunk_chars: Hard cap for any section of a long entry.
        keyword_min_length: Shortest token kept as a keyword.
        max_keywords: Keyword set cap.
        extra_stop_words: Deployment-specific noise terms (brand names...).
        heading_window_chars: Size of the heading window used for scoring.
        heading_weight: Score per keyword found in the heading window.
        body_weight: Score per keyword found only in the body.
        toc_chars: Length of the per-entry opening filler chunk.
        min_truncated_chunk_chars: Minimum remaining budget for truncating a
            scored chunk instead of dropping it.
        min_scored_context_chars: Below this, the scored assembly is discarded
            in favour of entry openings.
        entry_opening_chars: Per-entry opening length used by that fallback.
        livechat_budget_chars: Context budget for livechat answers.
        ticket_reply_budget_chars: Context budget for ticket reply suggestions.
        faq_context_budget_chars: Budget for the FAQ part of the prompt.
        faq_title_weight: FAQ score per keyword in the article title.
        faq_excerpt_weight: FAQ score per keyword in the excerpt.
        faq_content_weight: FAQ score per keyword in the body.
        faq_min_score: Minimum score for a canned FAQ answer.
        faq_min_title_hits: Minimum keywords matched in the article title.
        faq_reply_chars: Length of the body preview used when an article has
            no excerpt.
    """

    model_config = SettingsConfigDict(
        env_prefix="KNOWLEDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Splitting
    short_document_chars: int = 1500
    min_section_count: int = 3
    min_section_chars: int = 30
    merge_below_chars: int = 80
    wall_of_text_chars_per_newline: int = 500
    fallback_chunk_chars: int = 1500
    fallback_max_chunk_chars: int = 3500

    # Keywords
    keyword_min_length: int = 3
    max_keywords: int = 20
    extra_stop_words: list[str] = []

    # Scoring and assembly
    heading_window_chars: int = 150
    heading_weight: int = 3
    body_weight: int = 1
    toc_chars: int = 600
    min_truncated_chunk_chars: int = 500
    min_scored_context_chars: int = 100
    entry_opening_chars: int = 2000

    # Budgets
    livechat_budget_chars: int = 18000
    ticket_reply_budget_chars: int = 6000
    faq_context_budget_chars: int = 8000

    # FAQ short-circuit
    faq_title_weight: int = 3
    faq_excerpt_weight: int = 2
    faq_content_weight: int = 1
    faq_min_score: int = 6
    faq_min_title_hits: int = 2
    faq_reply_chars: int = 600
