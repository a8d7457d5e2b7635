"""Pydantic schemas for knowledge base and help-center endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, HttpUrl


class KnowledgeEntryCreate(BaseModel):
    """Free-text knowledge entry."""

    title: str = Field(..., min_length=1, max_length=300)
    content: str = Field(..., min_length=1)
    company_id: int | None = None


class KnowledgeEntryUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=300)
    content: str | None = Field(default=None, min_length=1)
    is_active: bool | None = None


class KnowledgeUrlCreate(BaseModel):
    """Web page to scrape into a new entry."""

    url: HttpUrl
    title: str | None = Field(default=None, max_length=300)


class KnowledgeEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    content: str
    source_type: str
    source_ref: str | None = None
    company_id: int | None = None
    is_active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None


class SectionPreview(BaseModel):
    index: int
    chars: int
    text: str


class JobResponse(BaseModel):
    job_id: str
    kind: str
    status: str
    result: dict | None = None
    error: str | None = None


class ArticleCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=300)
    content: str = ""
    excerpt: str = ""
    slug: str | None = Field(default=None, description="Derived from the title when omitted")
    is_public: bool = True
    is_published: bool = False


class ArticleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    slug: str
    content: str
    excerpt: str
    is_public: bool
    is_published: bool
    views: int = 0
    updated_at: datetime | None = None


class ArticleUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=300)
    content: str | None = None
    excerpt: str | None = None
    is_public: bool | None = None
    is_published: bool | None = None


class ArticleGenerateRequest(BaseModel):
    """Write one article from a title and free-form notes."""

    title: str = Field(..., min_length=1, max_length=300)
    resources: str = ""
    language: str | None = Field(default=None, pattern=r"^(fr|en)$")


class ArticleFromContentRequest(BaseModel):
    """Split a source document into draft articles."""

    content: str = Field(..., min_length=1)
    language: str | None = Field(default=None, pattern=r"^(fr|en)$")


class GeneratedArticle(BaseModel):
    title: str
    excerpt: str = ""
    content: str
    category_suggestion: str = "general"
