"""Tenant-scoped access to knowledge entries and help-center articles.

Bridges the tenant store (ORM rows) and the retrieval engine (plain
KnowledgeDocument / FaqArticle models). Functions that take no store argument
use the ambient tenant store, which is what background jobs rely on after
re-entering their captured tenant scope.
"""

from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.core.database import TenantStore
from src.app.core.tenant import get_current_store, get_current_tenant
from src.app.models.tenant import Article, KnowledgeEntry
from src.app.services.scraper import PageScraper
from src.knowledge.models import FaqArticle, KnowledgeDocument

logger = structlog.get_logger(__name__)


def to_document(entry: KnowledgeEntry) -> KnowledgeDocument:
    return KnowledgeDocument(
        title=entry.title,
        content=entry.content,
        source_type=entry.source_type,
        is_active=entry.is_active,
        company_id=entry.company_id,
    )


def to_faq_article(article: Article, tenant_slug: str) -> FaqArticle:
    return FaqArticle(
        title=article.title,
        slug=article.slug,
        excerpt=article.excerpt or "",
        content=article.content or "",
        url=f"/help/{tenant_slug}/article/{article.slug}",
    )


async def active_documents(session: AsyncSession, company_id: int | None = None) -> list[KnowledgeDocument]:
    """Active entries in creation order, optionally narrowed to one company.

    Entries without a company apply to every company.
    """
    query = select(KnowledgeEntry).where(KnowledgeEntry.is_active.is_(True))
    if company_id is not None:
        query = query.where(
            (KnowledgeEntry.company_id == company_id) | KnowledgeEntry.company_id.is_(None)
        )
    result = await session.execute(query.order_by(KnowledgeEntry.id))
    return [to_document(entry) for entry in result.scalars().all()]


async def published_articles(session: AsyncSession, tenant_slug: str) -> list[FaqArticle]:
    """Published, public articles, most viewed first."""
    result = await session.execute(
        select(Article)
        .where(Article.is_published.is_(True), Article.is_public.is_(True))
        .order_by(Article.views.desc(), Article.id)
    )
    return [to_faq_article(article, tenant_slug) for article in result.scalars().all()]


async def add_entry(
    store: TenantStore,
    title: str,
    content: str,
    source_type: str = "text",
    source_ref: str | None = None,
    added_by: int | None = None,
    company_id: int | None = None,
) -> KnowledgeEntry:
    async with store.write_session() as session:
        entry = KnowledgeEntry(
            title=title.strip(),
            content=content.strip(),
            source_type=source_type,
            source_ref=source_ref,
            added_by=added_by,
            company_id=company_id,
        )
        session.add(entry)
        await session.flush()
    logger.info("knowledge.entry_added", entry_id=entry.id, source_type=source_type, chars=len(entry.content))
    return entry


# ── Background job bodies ─────────────────────────────────────────────────────


async def ingest_url(url: str, title: str | None = None, added_by: int | None = None) -> dict:
    """Scrape ``url`` into a new knowledge entry of the current tenant."""
    result = await PageScraper().scrape(url)
    entry = await add_entry(
        get_current_store(),
        title=title or result.title or url,
        content=result.text,
        source_type="url",
        source_ref=url,
        added_by=added_by,
    )
    logger.info("knowledge.url_ingested", tenant_id=get_current_tenant().tenant_id, url=url)
    return {"entry_id": entry.id, "title": entry.title, "chars": len(entry.content)}


async def refresh_url_entry(entry_id: int) -> dict:
    """Re-scrape the source URL of an existing entry and replace its content."""
    store = get_current_store()
    async with store.session() as session:
        entry = await session.get(KnowledgeEntry, entry_id)
        if entry is None or entry.source_type != "url" or not entry.source_ref:
            raise ValueError(f"Knowledge entry {entry_id} has no source URL")
        url = entry.source_ref

    result = await PageScraper().scrape(url)
    async with store.write_session() as session:
        entry = await session.get(KnowledgeEntry, entry_id)
        if entry is None:
            raise ValueError(f"Knowledge entry {entry_id} was deleted")
        entry.content = result.text
    return {"entry_id": entry_id, "chars": len(result.text)}
