"""Public help center: article search and reading.

Visiting a tenant's help center remembers that tenant in the visitor's
session, so the livechat widget on the page reaches the same tenant.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select

from src.app.api.deps import get_directory, resolve_public_tenant
from src.app.core.tenant import tenant_scope
from src.app.models.tenant import Article
from src.app.services.knowledge_base import published_articles, to_faq_article
from src.app.services.tenant_directory import TenantDirectory
from src.knowledge import FaqMatcher

router = APIRouter(prefix="/help", tags=["help"])


@router.get("/{slug}/search")
async def search_articles(
    slug: str,
    request: Request,
    q: str = Query(..., min_length=1, max_length=300),
    directory: TenantDirectory = Depends(get_directory),
):
    """Published articles ranked by keyword relevance to ``q``."""
    ctx, record = await resolve_public_tenant(request, slug, directory)
    with tenant_scope(ctx):
        async with ctx.store.session() as session:
            articles = await published_articles(session, ctx.tenant_slug)

    matches = FaqMatcher().rank(q, articles, extra_stop_words=record.name.split())
    return {
        "query": q,
        "results": [
            {
                "title": m.article.title,
                "slug": m.article.slug,
                "excerpt": m.article.excerpt,
                "url": m.article.url,
                "score": m.score,
            }
            for m in matches
        ],
    }


@router.get("/{slug}/article/{article_slug}")
async def read_article(
    slug: str,
    article_slug: str,
    request: Request,
    directory: TenantDirectory = Depends(get_directory),
):
    ctx, _ = await resolve_public_tenant(request, slug, directory)
    with tenant_scope(ctx):
        async with ctx.store.write_session() as session:
            result = await session.execute(
                select(Article).where(
                    Article.slug == article_slug,
                    Article.is_published.is_(True),
                    Article.is_public.is_(True),
                )
            )
            article = result.scalar_one_or_none()
            if article is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Article not found")
            article.views += 1
            payload = to_faq_article(article, ctx.tenant_slug).model_dump()
    return payload
