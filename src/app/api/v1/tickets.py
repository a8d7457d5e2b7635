"""Support ticket endpoints for the support team (admin and support roles)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.api.deps import get_assistant, get_db, get_tenant, require_support, tenant_name
from src.app.core.tenant import TenantContext
from src.app.models.tenant import Ticket
from src.app.schemas.chat import (
    TICKET_STATUS_PATTERN,
    TicketCreate,
    TicketListResponse,
    TicketMessageCreate,
    TicketMessageResponse,
    TicketResponse,
    TicketUpdate,
)
from src.app.services.assistant import HelpdeskAssistant
from src.app.services.llm import LLMServiceError
from src.app.services.tickets import (
    add_ticket_message,
    create_ticket,
    list_tickets,
    ticket_messages,
    ticket_stats,
    update_ticket,
)

router = APIRouter(prefix="/tickets", tags=["tickets"], dependencies=[Depends(require_support)])


async def _load_ticket(db: AsyncSession, ticket_id: int) -> Ticket:
    ticket = await db.get(Ticket, ticket_id)
    if ticket is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")
    return ticket


@router.get("", response_model=TicketListResponse)
async def get_tickets(
    status_filter: str | None = Query(None, alias="status", pattern=TICKET_STATUS_PATTERN),
    priority: str | None = Query(None, pattern=r"^(low|medium|high|urgent)$"),
    search: str | None = Query(None, max_length=200),
    db: AsyncSession = Depends(get_db),
):
    """List tickets, most urgent first, with counts per status."""
    tickets = await list_tickets(db, status=status_filter, priority=priority, search=search)
    return TicketListResponse(
        tickets=[TicketResponse.model_validate(t) for t in tickets],
        stats=await ticket_stats(db),
    )


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def open_ticket(
    body: TicketCreate,
    tenant: TenantContext = Depends(get_tenant),
    user: dict = Depends(require_support),
):
    ticket = await create_ticket(
        tenant.store,
        subject=body.subject,
        description=body.description,
        priority=body.priority,
        category=body.category,
        client_name=body.client_name,
        client_email=body.client_email,
        created_by=user["id"],
        company_id=body.company_id,
    )
    return TicketResponse.model_validate(ticket)


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(ticket_id: int, db: AsyncSession = Depends(get_db), user: dict = Depends(require_support)):
    ticket = await _load_ticket(db, ticket_id)
    messages = await ticket_messages(db, ticket_id)
    response = TicketResponse.model_validate(ticket)
    response.messages = [TicketMessageResponse.model_validate(m) for m in messages]
    return response


@router.patch("/{ticket_id}", response_model=TicketResponse)
async def patch_ticket(
    ticket_id: int,
    body: TicketUpdate,
    tenant: TenantContext = Depends(get_tenant),
):
    """Change status, priority or category."""
    ticket = await update_ticket(tenant.store, ticket_id, body.model_dump(exclude_unset=True, exclude_none=True))
    if ticket is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Ticket not found")
    return TicketResponse.model_validate(ticket)


@router.post("/{ticket_id}/messages", response_model=TicketMessageResponse, status_code=status.HTTP_201_CREATED)
async def post_message(
    ticket_id: int,
    body: TicketMessageCreate,
    tenant: TenantContext = Depends(get_tenant),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_support),
):
    await _load_ticket(db, ticket_id)
    message = await add_ticket_message(
        tenant.store,
        ticket_id,
        user["full_name"],
        body.content,
        user_id=user["id"],
        is_internal=body.is_internal,
    )
    return message


@router.post("/{ticket_id}/suggest-reply")
async def suggest_reply(
    ticket_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_support),
    assistant: HelpdeskAssistant = Depends(get_assistant),
):
    """Draft a reply grounded in the knowledge base."""
    ticket = await _load_ticket(db, ticket_id)
    messages = await ticket_messages(db, ticket_id)
    try:
        suggestion = await assistant.suggest_ticket_reply(
            ticket, messages, company=tenant_name(request), user_id=user["id"]
        )
    except LLMServiceError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": exc.kind.value, "message": "AI suggestion unavailable"},
        ) from exc
    return {"suggestion": suggestion}
