"""Unit tests for observability: request logging and Prometheus metrics.

Tests cover:
- X-Request-ID echo and generation
- track_llm_call counters for success and failure
- Retrieval and FAQ short-circuit metrics
"""

from __future__ import annotations

import pytest
from prometheus_client import REGISTRY

from src.app.core.monitoring import record_faq_short_circuit, record_retrieval, track_llm_call


def sample(name: str, **labels) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


# ── Request logging ─────────────────────────────────────────────────────────


async def test_request_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


async def test_request_id_is_generated(client):
    response = await client.get("/health")
    assert len(response.headers["X-Request-ID"]) == 36


# ── LLM metrics ─────────────────────────────────────────────────────────────


async def test_track_llm_call_counts_tokens():
    before = sample("llm_requests_total", model="fast", tenant_id="obs-tenant", status="success")
    tokens_before = sample("llm_tokens_used_total", model="fast", tenant_id="obs-tenant", token_type="prompt")

    async with track_llm_call("fast", "obs-tenant") as tracker:
        tracker.update({"prompt_tokens": 40, "completion_tokens": 8})

    assert sample("llm_requests_total", model="fast", tenant_id="obs-tenant", status="success") == before + 1
    assert (
        sample("llm_tokens_used_total", model="fast", tenant_id="obs-tenant", token_type="prompt")
        == tokens_before + 40
    )


async def test_track_llm_call_records_errors():
    before = sample("llm_requests_total", model="fast", tenant_id="obs-tenant", status="error")
    with pytest.raises(TimeoutError):
        async with track_llm_call("fast", "obs-tenant"):
            raise TimeoutError
    assert sample("llm_requests_total", model="fast", tenant_id="obs-tenant", status="error") == before + 1


# ── Retrieval metrics ───────────────────────────────────────────────────────


def test_record_retrieval_observes_context_size():
    before = sample("knowledge_context_chars_sum", purpose="obs-test")
    record_retrieval("obs-test", "x" * 250)
    assert sample("knowledge_context_chars_sum", purpose="obs-test") == before + 250


def test_faq_short_circuit_counter():
    before = sample("faq_short_circuit_total", tenant_id="obs-tenant")
    record_faq_short_circuit("obs-tenant")
    assert sample("faq_short_circuit_total", tenant_id="obs-tenant") == before + 1


async def test_http_requests_are_counted(client):
    before = sample("http_requests_total", method="GET", endpoint="/health", status_code="200", tenant_id="unknown")
    await client.get("/health")
    after = sample("http_requests_total", method="GET", endpoint="/health", status_code="200", tenant_id="unknown")
    assert after == before + 1
