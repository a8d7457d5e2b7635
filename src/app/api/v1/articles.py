"""Help-center article administration endpoints (admin and support roles)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.api.deps import get_assistant, get_db, get_tenant, require_support, tenant_name
from src.app.core.tenant import TenantContext
from src.app.models.tenant import Article
from src.app.schemas.knowledge import (
    ArticleCreate,
    ArticleFromContentRequest,
    ArticleGenerateRequest,
    ArticleResponse,
    ArticleUpdate,
    GeneratedArticle,
)
from src.app.services.assistant import HelpdeskAssistant
from src.app.services.llm import LLMServiceError
from src.app.services.tenant_provisioning import slugify

router = APIRouter(prefix="/admin/articles", tags=["articles"], dependencies=[Depends(require_support)])


def _ai_unavailable(exc: LLMServiceError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"error": exc.kind.value, "message": "AI article generation unavailable"},
    )


@router.get("", response_model=list[ArticleResponse])
async def list_articles(db: AsyncSession = Depends(get_db)):
    result = await db.execute(select(Article).order_by(Article.id))
    return result.scalars().all()


@router.post("", response_model=ArticleResponse, status_code=status.HTTP_201_CREATED)
async def create_article(body: ArticleCreate, tenant: TenantContext = Depends(get_tenant)):
    slug = body.slug or slugify(body.title)
    if not slug:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Article needs a slug")

    async with tenant.store.write_session() as session:
        taken = (await session.execute(select(Article.id).where(Article.slug == slug))).first()
        if taken:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"Slug '{slug}' already used")
        article = Article(
            title=body.title.strip(),
            slug=slug,
            content=body.content,
            excerpt=body.excerpt,
            is_public=body.is_public,
            is_published=body.is_published,
        )
        session.add(article)
        await session.flush()
    return article


@router.patch("/{article_id}", response_model=ArticleResponse)
async def update_article(article_id: int, body: ArticleUpdate, tenant: TenantContext = Depends(get_tenant)):
    """Edit an article. The slug stays stable so published links keep working."""
    async with tenant.store.write_session() as session:
        article = await session.get(Article, article_id)
        if article is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Article not found")
        for field, value in body.model_dump(exclude_unset=True).items():
            setattr(article, field, value.strip() if field == "title" else value)
        await session.flush()
    return article


@router.post("/{article_id}/toggle-publish", response_model=ArticleResponse)
async def toggle_publish(article_id: int, tenant: TenantContext = Depends(get_tenant)):
    async with tenant.store.write_session() as session:
        article = await session.get(Article, article_id)
        if article is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Article not found")
        article.is_published = not article.is_published
        await session.flush()
    return article


@router.delete("/{article_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_article(article_id: int, tenant: TenantContext = Depends(get_tenant)):
    async with tenant.store.write_session() as session:
        article = await session.get(Article, article_id)
        if article is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Article not found")
        await session.delete(article)


# ── AI drafts ───────────────────────────────────────────────────────────────


@router.post("/ai/generate")
async def generate_article(
    body: ArticleGenerateRequest,
    request: Request,
    user: dict = Depends(require_support),
    assistant: HelpdeskAssistant = Depends(get_assistant),
):
    """Draft the body of an article from a title and notes. Nothing is saved."""
    try:
        content = await assistant.generate_article(
            body.title,
            body.resources,
            company=tenant_name(request),
            language=body.language,
            user_id=user["id"],
        )
    except LLMServiceError as exc:
        raise _ai_unavailable(exc) from exc
    return {"title": body.title, "content": content}


@router.post("/ai/generate-from-content", response_model=list[GeneratedArticle])
async def generate_from_content(
    body: ArticleFromContentRequest,
    request: Request,
    user: dict = Depends(require_support),
    assistant: HelpdeskAssistant = Depends(get_assistant),
):
    """Split a document into draft articles, one per main heading. Nothing is saved."""
    try:
        return await assistant.articles_from_content(
            body.content,
            company=tenant_name(request),
            language=body.language,
            user_id=user["id"],
        )
    except LLMServiceError as exc:
        raise _ai_unavailable(exc) from exc
