"""Public livechat widget API.

Visitors are anonymous: a conversation is identified by its random visitor
token, and the tenant comes from the help center slug on the first call,
then from the chat tenant remembered in the visitor's session.

Conversation status:
- ai: visitor messages are answered by the assistant
- human: escalated to a ticket; visitor messages are appended to it
- closed: no further messages
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.app.api.deps import get_assistant, get_directory, get_tenant, resolve_public_tenant, tenant_name
from src.app.core.tenant import TenantContext, get_current_tenant, has_tenant_context, tenant_scope
from src.app.models.tenant import ChatMessage, ChatSession, Ticket
from src.app.schemas.chat import (
    ChatMessageRequest,
    ChatMessageResponse,
    ChatReplyResponse,
    ChatSessionRequest,
    ChatSessionResponse,
    ChatTokenRequest,
)
from src.app.services.assistant import HelpdeskAssistant
from src.app.services.prompts import chat_message
from src.app.services.tenant_directory import TenantDirectory
from src.app.services.tickets import add_ticket_message, apply_ticket_update, create_ticket

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])

ASSISTANT_NAME = "Assistant"
SYSTEM_NAME = "System"


async def _find_session(session: AsyncSession, token: str) -> ChatSession:
    result = await session.execute(select(ChatSession).where(ChatSession.visitor_token == token))
    chat = result.scalar_one_or_none()
    if chat is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return chat


async def _messages(session: AsyncSession, chat_id: int, after: int = 0) -> list[ChatMessage]:
    result = await session.execute(
        select(ChatMessage)
        .where(ChatMessage.session_id == chat_id, ChatMessage.id > after)
        .order_by(ChatMessage.id)
    )
    return list(result.scalars().all())


async def _post(ctx: TenantContext, chat_id: int, sender_type: str, sender_name: str | None, content: str) -> ChatMessage:
    async with ctx.store.write_session() as session:
        message = ChatMessage(session_id=chat_id, sender_type=sender_type, sender_name=sender_name, content=content)
        session.add(message)
        await session.flush()
    return message


@router.post("/session", response_model=ChatSessionResponse)
async def open_session(
    body: ChatSessionRequest,
    request: Request,
    directory: TenantDirectory = Depends(get_directory),
):
    """Resume a conversation by token, or start one with a welcome message."""
    if body.tenant_slug:
        ctx, record = await resolve_public_tenant(request, body.tenant_slug, directory)
        staff_tenant = request.session.get("tenant_id")
        if staff_tenant and staff_tenant != ctx.tenant_id:
            # Later widget calls resolve the staff session's own tenant.
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Signed in to another organization; sign out to chat with this help center",
            )
        company = record.name
    elif has_tenant_context():
        ctx, company = get_current_tenant(), tenant_name(request)
    else:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown help center")

    with tenant_scope(ctx):
        if body.token:
            async with ctx.store.session() as session:
                result = await session.execute(select(ChatSession).where(ChatSession.visitor_token == body.token))
                chat = result.scalar_one_or_none()
                if chat is not None:
                    messages = await _messages(session, chat.id)
                    return ChatSessionResponse(
                        token=chat.visitor_token,
                        status=chat.status,
                        messages=[ChatMessageResponse.model_validate(m) for m in messages],
                    )

        async with ctx.store.write_session() as session:
            chat = ChatSession(
                visitor_token=uuid.uuid4().hex,
                visitor_name=body.name,
                visitor_email=body.email,
                company_id=body.company_id,
            )
            session.add(chat)
            await session.flush()
        welcome = await _post(ctx, chat.id, "ai", ASSISTANT_NAME, chat_message("welcome", company=company))

    logger.info("chat.session_opened", tenant_id=ctx.tenant_id, chat_id=chat.id)
    return ChatSessionResponse(
        token=chat.visitor_token,
        status=chat.status,
        is_new=True,
        messages=[ChatMessageResponse.model_validate(welcome)],
    )


@router.post("/message", response_model=ChatReplyResponse)
async def send_message(
    body: ChatMessageRequest,
    request: Request,
    tenant: TenantContext = Depends(get_tenant),
    assistant: HelpdeskAssistant = Depends(get_assistant),
):
    """Store the visitor message and answer it according to the status."""
    async with tenant.store.session() as session:
        chat = await _find_session(session, body.token)
    if chat.status == "closed":
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Conversation is closed")

    visitor = chat.visitor_name or "Visitor"
    await _post(tenant, chat.id, "visitor", visitor, body.content)

    if chat.status == "human":
        if chat.ticket_id:
            await add_ticket_message(tenant.store, chat.ticket_id, visitor, body.content)
        return ChatReplyResponse(mode="human")

    async with tenant.store.session() as session:
        history = await _messages(session, chat.id)
    reply = await assistant.answer_livechat(
        body.content, history, company=tenant_name(request), company_id=chat.company_id
    )
    message = await _post(tenant, chat.id, "ai", ASSISTANT_NAME, reply.content)
    return ChatReplyResponse(
        mode="ai",
        message=ChatMessageResponse.model_validate(message),
        source=reply.source,
    )


@router.post("/escalate")
async def escalate(body: ChatTokenRequest, tenant: TenantContext = Depends(get_tenant)):
    """Hand the conversation to a human through a new ticket."""
    async with tenant.store.session() as session:
        chat = await _find_session(session, body.token)
        if chat.status == "human" and chat.ticket_id:
            ticket = await session.get(Ticket, chat.ticket_id)
            return {"ok": True, "ticket_ref": ticket.reference if ticket else None}
        history = await _messages(session, chat.id)

    transcript = "\n".join(f"[{m.sender_name or m.sender_type}]: {m.content}" for m in history)
    ticket = await create_ticket(
        tenant.store,
        subject=f"Livechat - {chat.visitor_name or 'Visitor'}",
        description=chat_message("ticket_description", history=transcript),
        status="in_progress",
        category="livechat",
        client_name=chat.visitor_name,
        client_email=chat.visitor_email,
        company_id=chat.company_id,
    )
    async with tenant.store.write_session() as session:
        stored = await session.get(ChatSession, chat.id)
        stored.status = "human"
        stored.ticket_id = ticket.id
    await _post(tenant, chat.id, "system", SYSTEM_NAME, chat_message("escalated", reference=ticket.reference))

    logger.info("chat.escalated", chat_id=chat.id, ticket=ticket.reference)
    return {"ok": True, "ticket_ref": ticket.reference}


@router.get("/messages/{token}")
async def poll_messages(
    token: str,
    after: int = Query(0, ge=0, description="Last message id already seen"),
    tenant: TenantContext = Depends(get_tenant),
):
    async with tenant.store.session() as session:
        chat = await _find_session(session, token)
        messages = await _messages(session, chat.id, after)
    return {
        "status": chat.status,
        "messages": [ChatMessageResponse.model_validate(m).model_dump(mode="json") for m in messages],
    }


@router.post("/close")
async def close_chat(body: ChatTokenRequest, tenant: TenantContext = Depends(get_tenant)):
    """Close the conversation and its escalation ticket, if any."""
    async with tenant.store.write_session() as session:
        chat = await _find_session(session, body.token)
        chat.status = "closed"
        ticket_id = chat.ticket_id
        if ticket_id:
            ticket = await session.get(Ticket, ticket_id)
            if ticket is not None:
                apply_ticket_update(ticket, {"status": "closed"})
    await _post(tenant, chat.id, "system", SYSTEM_NAME, chat_message("closed"))
    if ticket_id:
        await add_ticket_message(
            tenant.store, ticket_id, SYSTEM_NAME, "Conversation closed by the visitor.", is_internal=True
        )
    return {"ok": True}
