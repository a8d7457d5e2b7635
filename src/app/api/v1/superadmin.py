"""Platform administration endpoints.

Guarded by the X-Superadmin-Token header instead of a tenant session.
Tenants are soft-deactivated, never deleted: a deactivated tenant keeps its
store and is flagged as expired on every request.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from src.app.api.deps import get_directory, require_superadmin
from src.app.schemas.tenant import TenantResponse
from src.app.services.tenant_directory import TenantDirectory, TenantRecord

router = APIRouter(prefix="/superadmin", tags=["superadmin"], dependencies=[Depends(require_superadmin)])


def _to_response(record: TenantRecord) -> TenantResponse:
    return TenantResponse(
        id=record.tenant_id,
        slug=record.slug,
        name=record.name,
        plan_id=record.plan_id,
        is_active=record.enabled,
        trial_ends_at=record.trial_ends_at,
        trial_days_left=record.trial_days_left(),
    )


@router.get("/tenants", response_model=list[TenantResponse])
async def list_tenants(directory: TenantDirectory = Depends(get_directory)):
    return [_to_response(record) for record in await directory.list_all()]


async def _set_enabled(directory: TenantDirectory, tenant_id: str, enabled: bool) -> TenantResponse:
    record = await directory.set_enabled(tenant_id, enabled)
    if record is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant not found")
    return _to_response(record)


@router.post("/tenants/{tenant_id}/activate", response_model=TenantResponse)
async def activate_tenant(tenant_id: str, directory: TenantDirectory = Depends(get_directory)):
    return await _set_enabled(directory, tenant_id, True)


@router.post("/tenants/{tenant_id}/deactivate", response_model=TenantResponse)
async def deactivate_tenant(tenant_id: str, directory: TenantDirectory = Depends(get_directory)):
    return await _set_enabled(directory, tenant_id, False)
