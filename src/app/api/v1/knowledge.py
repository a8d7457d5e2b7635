"""Knowledge base administration endpoints.

Entries are free-text documents in the tenant's store. URL entries are
scraped in a background job; the response carries a job id to poll. All
endpoints require a staff session of the current tenant.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.api.deps import get_current_user, get_db, get_jobs, get_tenant
from src.app.core.tenant import TenantContext
from src.app.models.tenant import KnowledgeEntry
from src.app.schemas.knowledge import (
    JobResponse,
    KnowledgeEntryCreate,
    KnowledgeEntryResponse,
    KnowledgeEntryUpdate,
    KnowledgeUrlCreate,
    SectionPreview,
)
from src.app.services.jobs import JobRegistry
from src.app.services.knowledge_base import add_entry, ingest_url, refresh_url_entry, to_document
from src.knowledge import SectionSplitter

router = APIRouter(prefix="/admin/knowledge", tags=["knowledge"])


def _job_response(job) -> JobResponse:
    return JobResponse(**job.to_dict())


async def _load_entry(db: AsyncSession, entry_id: int) -> KnowledgeEntry:
    entry = await db.get(KnowledgeEntry, entry_id)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Knowledge entry not found")
    return entry


# ── Jobs ────────────────────────────────────────────────────────────────────


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str,
    tenant: TenantContext = Depends(get_tenant),
    jobs: JobRegistry = Depends(get_jobs),
    user: dict = Depends(get_current_user),
):
    """Poll a background job. Jobs of other tenants are reported missing."""
    job = jobs.get(job_id, tenant.tenant_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found or expired")
    return _job_response(job)


@router.post("/url", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED)
async def add_url_entry(
    body: KnowledgeUrlCreate,
    jobs: JobRegistry = Depends(get_jobs),
    user: dict = Depends(get_current_user),
):
    url = str(body.url)
    job = jobs.submit("kb_url", lambda: ingest_url(url, body.title, user["id"]))
    return _job_response(job)


@router.post("/{entry_id}/refresh", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED)
async def refresh_entry(
    entry_id: int,
    db: AsyncSession = Depends(get_db),
    jobs: JobRegistry = Depends(get_jobs),
    user: dict = Depends(get_current_user),
):
    entry = await _load_entry(db, entry_id)
    if entry.source_type != "url":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Only URL entries can be refreshed")
    job = jobs.submit("kb_refresh", lambda: refresh_url_entry(entry_id))
    return _job_response(job)


# ── Entries ─────────────────────────────────────────────────────────────────


@router.get("", response_model=list[KnowledgeEntryResponse])
async def list_entries(db: AsyncSession = Depends(get_db), user: dict = Depends(get_current_user)):
    result = await db.execute(select(KnowledgeEntry).order_by(KnowledgeEntry.id))
    return result.scalars().all()


@router.post("/text", response_model=KnowledgeEntryResponse, status_code=status.HTTP_201_CREATED)
async def add_text_entry(
    body: KnowledgeEntryCreate,
    tenant: TenantContext = Depends(get_tenant),
    user: dict = Depends(get_current_user),
):
    return await add_entry(
        tenant.store,
        title=body.title,
        content=body.content,
        added_by=user["id"],
        company_id=body.company_id,
    )


@router.get("/{entry_id}", response_model=KnowledgeEntryResponse)
async def get_entry(entry_id: int, db: AsyncSession = Depends(get_db), user: dict = Depends(get_current_user)):
    return await _load_entry(db, entry_id)


@router.put("/{entry_id}", response_model=KnowledgeEntryResponse)
async def update_entry(
    entry_id: int,
    body: KnowledgeEntryUpdate,
    tenant: TenantContext = Depends(get_tenant),
    user: dict = Depends(get_current_user),
):
    async with tenant.store.write_session() as session:
        entry = await _load_entry(session, entry_id)
        for field, value in body.model_dump(exclude_none=True).items():
            setattr(entry, field, value.strip() if isinstance(value, str) else value)
        await session.flush()
        await session.refresh(entry)
    return entry


@router.post("/{entry_id}/toggle", response_model=KnowledgeEntryResponse)
async def toggle_entry(
    entry_id: int,
    tenant: TenantContext = Depends(get_tenant),
    user: dict = Depends(get_current_user),
):
    """Flip the active flag. Inactive entries never reach the assistant."""
    async with tenant.store.write_session() as session:
        entry = await _load_entry(session, entry_id)
        entry.is_active = not entry.is_active
        await session.flush()
        await session.refresh(entry)
    return entry


@router.delete("/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_entry(
    entry_id: int,
    tenant: TenantContext = Depends(get_tenant),
    user: dict = Depends(get_current_user),
):
    async with tenant.store.write_session() as session:
        await session.delete(await _load_entry(session, entry_id))


@router.get("/{entry_id}/sections", response_model=list[SectionPreview])
async def preview_sections(
    entry_id: int,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Show how the entry is split for retrieval."""
    entry = await _load_entry(db, entry_id)
    sections = SectionSplitter().split_document(to_document(entry))
    return [SectionPreview(index=s.index, chars=s.length, text=s.text) for s in sections]
