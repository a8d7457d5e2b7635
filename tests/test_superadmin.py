"""Platform administration tests (X-Superadmin-Token guarded)."""

from __future__ import annotations

import pytest

from src.app.config import get_settings


@pytest.fixture
def headers() -> dict:
    return {"X-Superadmin-Token": get_settings().SUPERADMIN_TOKEN}


async def test_token_required(client, tenant_alpha):
    assert (await client.get("/superadmin/tenants")).status_code == 403
    assert (await client.get("/superadmin/tenants", headers={"X-Superadmin-Token": "wrong"})).status_code == 403


async def test_list_tenants(client, headers, tenant_alpha, tenant_beta):
    response = await client.get("/superadmin/tenants", headers=headers)
    assert response.status_code == 200
    tenants = response.json()
    assert [t["slug"] for t in tenants] == ["alpha", "beta"]
    assert all(t["plan_id"] == "trial" and t["trial_days_left"] == 7 for t in tenants)


async def test_deactivate_and_reactivate(client, headers, alpha_client, tenant_alpha):
    tenant_id = tenant_alpha["tenant_id"]

    response = await client.post(f"/superadmin/tenants/{tenant_id}/deactivate", headers=headers)
    assert response.status_code == 200
    assert response.json()["is_active"] is False
    assert (await alpha_client.get("/api/v1/auth/me")).headers.get("X-Trial-Expired") == "true"

    response = await client.post(f"/superadmin/tenants/{tenant_id}/activate", headers=headers)
    assert response.json()["is_active"] is True
    assert "X-Trial-Expired" not in (await alpha_client.get("/api/v1/auth/me")).headers


async def test_unknown_tenant(client, headers, db):
    response = await client.post("/superadmin/tenants/ghost/deactivate", headers=headers)
    assert response.status_code == 404
