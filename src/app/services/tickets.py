"""Ticket creation, listing, status updates and conversation helpers."""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.core.database import TenantStore
from src.app.models.tenant import Ticket, TicketMessage

logger = structlog.get_logger(__name__)

REFERENCE_PREFIX = "TK-"
CLOSED_STATUSES = ("resolved", "closed")

_PRIORITY_RANK = case(
    {"urgent": 1, "high": 2, "medium": 3},
    value=Ticket.priority,
    else_=4,
)


def next_reference(last: str | None) -> str:
    """``TK-0001`` after nothing, otherwise the last number plus one."""
    if not last:
        return f"{REFERENCE_PREFIX}0001"
    number = int(last.removeprefix(REFERENCE_PREFIX) or 0)
    return f"{REFERENCE_PREFIX}{number + 1:04d}"


async def _last_reference(session: AsyncSession) -> str | None:
    result = await session.execute(select(Ticket.reference).order_by(Ticket.id.desc()).limit(1))
    return result.scalar_one_or_none()


async def create_ticket(
    store: TenantStore,
    subject: str,
    description: str = "",
    *,
    status: str = "open",
    priority: str = "medium",
    category: str | None = None,
    client_name: str | None = None,
    client_email: str | None = None,
    created_by: int | None = None,
    company_id: int | None = None,
) -> Ticket:
    """Insert a ticket with the next sequential reference.

    Reading the last reference and inserting happen under the tenant write
    lock, so concurrent creations never share a reference.
    """
    async with store.write_session() as session:
        ticket = Ticket(
            reference=next_reference(await _last_reference(session)),
            subject=subject.strip(),
            description=description,
            status=status,
            priority=priority,
            category=category,
            client_name=client_name,
            client_email=client_email,
            created_by=created_by,
            company_id=company_id,
        )
        session.add(ticket)
        await session.flush()
    logger.info("ticket.created", ticket_id=ticket.id, reference=ticket.reference)
    return ticket


async def add_ticket_message(
    store: TenantStore,
    ticket_id: int,
    author_name: str,
    content: str,
    *,
    user_id: int | None = None,
    is_internal: bool = False,
) -> TicketMessage:
    async with store.write_session() as session:
        message = TicketMessage(
            ticket_id=ticket_id,
            user_id=user_id,
            author_name=author_name,
            content=content,
            is_internal=is_internal,
        )
        session.add(message)
        await session.flush()
    return message


async def ticket_messages(session: AsyncSession, ticket_id: int) -> list[TicketMessage]:
    result = await session.execute(
        select(TicketMessage).where(TicketMessage.ticket_id == ticket_id).order_by(TicketMessage.id)
    )
    return list(result.scalars().all())


async def list_tickets(
    session: AsyncSession,
    *,
    status: str | None = None,
    priority: str | None = None,
    search: str | None = None,
) -> list[Ticket]:
    """Tickets matching the filters, most urgent first, then most recently touched.

    ``search`` matches the subject, the reference or the client name.
    """
    query = select(Ticket)
    if status:
        query = query.where(Ticket.status == status)
    if priority:
        query = query.where(Ticket.priority == priority)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(
            or_(Ticket.subject.ilike(pattern), Ticket.reference.ilike(pattern), Ticket.client_name.ilike(pattern))
        )
    query = query.order_by(
        _PRIORITY_RANK,
        func.coalesce(Ticket.updated_at, Ticket.created_at).desc(),
        Ticket.id.desc(),
    )
    result = await session.execute(query)
    return list(result.scalars().all())


async def ticket_stats(session: AsyncSession) -> dict[str, int]:
    rows = (await session.execute(select(Ticket.status, func.count()).group_by(Ticket.status))).all()
    counts = {status: count for status, count in rows}
    return {
        "total": sum(counts.values()),
        "open": counts.get("open", 0),
        "in_progress": counts.get("in_progress", 0),
        "waiting": counts.get("waiting", 0),
        "resolved": sum(counts.get(s, 0) for s in CLOSED_STATUSES),
    }


def apply_ticket_update(ticket: Ticket, changes: dict) -> None:
    """Apply status, priority or category changes to ``ticket``.

    ``resolved_at`` is stamped when the ticket first reaches resolved or
    closed, and cleared when it is reopened.
    """
    for field, value in changes.items():
        setattr(ticket, field, value)
    if ticket.status in CLOSED_STATUSES:
        if ticket.resolved_at is None:
            ticket.resolved_at = datetime.now(timezone.utc)
    else:
        ticket.resolved_at = None


async def update_ticket(store: TenantStore, ticket_id: int, changes: dict) -> Ticket | None:
    async with store.write_session() as session:
        ticket = await session.get(Ticket, ticket_id)
        if ticket is None:
            return None
        previous = ticket.status
        apply_ticket_update(ticket, changes)
        await session.flush()
    logger.info("ticket.updated", ticket_id=ticket_id, status=ticket.status, previous_status=previous)
    return ticket
