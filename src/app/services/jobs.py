"""Fire-and-forget background jobs polled by id.

Long operations (scraping a URL into the knowledge base) outlive the HTTP
request that started them, and with it the request's tenant context. A job
is therefore submitted together with an immutable TenantContext snapshot.
The worker task starts from an empty contextvars.Context and re-enters that
snapshot explicitly, so nothing leaks in from the submitting request.

Results are kept in memory, keyed by a random hex id, and pruned after
JOB_TTL_SECONDS.
"""

from __future__ import annotations

import asyncio
import contextvars
import secrets
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal

import structlog

from src.app.core.tenant import TenantContext, get_current_tenant, tenant_scope

logger = structlog.get_logger(__name__)

JobStatus = Literal["running", "done", "error"]


@dataclass
class Job:
    job_id: str
    tenant_id: str
    kind: str
    status: JobStatus = "running"
    result: Any = None
    error: str | None = None
    created_at: float = field(default_factory=time.monotonic)
    finished_at: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "kind": self.kind,
            "status": self.status,
            "result": self.result,
            "error": self.error,
        }


class JobRegistry:
    """In-process registry of background jobs.

    Args:
        ttl_seconds: How long a job (running or finished) stays pollable.
    """

    def __init__(self, ttl_seconds: int = 600):
        self.ttl_seconds = ttl_seconds
        self._jobs: dict[str, Job] = {}
        self._tasks: set[asyncio.Task] = set()

    def submit(
        self,
        kind: str,
        func: Callable[[], Awaitable[Any]],
        context: TenantContext | None = None,
    ) -> Job:
        """Schedule ``func`` on the event loop inside the tenant scope.

        Args:
            kind: Short label for logs and polling ("kb_url", "kb_refresh").
            func: Zero-argument coroutine function doing the work.
            context: Tenant snapshot to run under. Defaults to the current
                request's tenant.
        """
        self.prune()
        snapshot = context or get_current_tenant()
        job = Job(job_id=secrets.token_hex(8), tenant_id=snapshot.tenant_id, kind=kind)
        self._jobs[job.job_id] = job

        task = asyncio.create_task(
            self._run(job, snapshot, func),
            context=contextvars.Context(),
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info("job.submitted", job_id=job.job_id, kind=kind, tenant_id=job.tenant_id)
        return job

    async def _run(self, job: Job, snapshot: TenantContext, func: Callable[[], Awaitable[Any]]) -> None:
        with tenant_scope(snapshot):
            try:
                job.result = await func()
                job.status = "done"
            except Exception as exc:
                job.status = "error"
                job.error = str(exc) or exc.__class__.__name__
                logger.warning(
                    "job.failed",
                    job_id=job.job_id,
                    kind=job.kind,
                    tenant_id=job.tenant_id,
                    error=job.error,
                )
            finally:
                job.finished_at = time.monotonic()

    def get(self, job_id: str, tenant_id: str) -> Job | None:
        """Look up a job; jobs of other tenants are invisible."""
        self.prune()
        job = self._jobs.get(job_id)
        if job is None or job.tenant_id != tenant_id:
            return None
        return job

    def prune(self) -> None:
        cutoff = time.monotonic() - self.ttl_seconds
        for job_id in [jid for jid, job in self._jobs.items() if job.created_at < cutoff]:
            del self._jobs[job_id]

    async def drain(self) -> None:
        """Wait for every running job (shutdown and tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
