"""Pydantic models for the knowledge retrieval domain.

Defines the types passed between the tenant store and the retrieval engine:
knowledge documents as stored by staff, the transient sections and scored
chunks produced while answering one question, and help-center articles used
for the FAQ short-circuit. Sections and chunks are never persisted.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

SourceType = Literal["text", "url", "file", "image"]


# ── Documents ───────────────────────────────────────────────────────────────


class KnowledgeDocument(BaseModel):
    """A knowledge entry as seen by the retrieval engine.

    Attributes:
        title: Entry title, prefixed to every chunk of this entry.
        content: Full raw text (pasted, scraped or transcribed).
        source_type: Where the text came from.
        is_active: Inactive entries are ignored by retrieval.
        company_id: Optional sub-organization scope.
    """

    title: str
    content: str
    source_type: SourceType = "text"
    is_active: bool = True
    company_id: int | None = None


class KnowledgeSection(BaseModel):
    """A substring of a document produced by the section splitter."""

    entry_title: str
    text: str
    index: int = 0

    @property
    def length(self) -> int:
        return len(self.text)


class ScoredChunk(BaseModel):
    """A section paired with its keyword relevance score.

    Attributes:
        entry_title: Title of the originating entry.
        text: Section text (trimmed).
        score: Non-negative relevance score. Zero marks filler.
        entry_index: Position of the entry in the input list.
        section_index: Position of the section within its entry.
    """

    entry_title: str
    text: str
    score: int = Field(default=0, ge=0)
    entry_index: int = 0
    section_index: int = 0

    @property
    def length(self) -> int:
        return len(self.text)

    def render(self) -> str:
        """Format the chunk the way it is handed to the language model."""
        return f"[{self.entry_title}]: {self.text}\n\n"


# ── FAQ ─────────────────────────────────────────────────────────────────────


class FaqArticle(BaseModel):
    """A published help-center article eligible for FAQ answers."""

    title: str
    slug: str
    excerpt: str = ""
    content: str = ""
    url: str = ""


class FaqMatch(BaseModel):
    """Result of scoring one article against a question.

    Attributes:
        article: The matched article.
        score: Weighted keyword score (title > excerpt > content).
        title_hits: Number of keywords found in the article title.
        reply: Canned answer built from the article.
    """

    article: FaqArticle
    score: int = Field(default=0, ge=0)
    title_hits: int = Field(default=0, ge=0)
    reply: str = ""
