"""Pydantic schemas for the public livechat widget API and tickets."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field

TICKET_STATUS_PATTERN = r"^(open|in_progress|waiting|resolved|closed)$"


class ChatSessionRequest(BaseModel):
    """Open a conversation, or resume it when ``token`` is known."""

    tenant_slug: str | None = Field(default=None, description="Help center the widget is embedded in")
    token: str | None = None
    name: str | None = Field(default=None, max_length=200)
    email: EmailStr | None = None
    company_id: int | None = Field(default=None, description="Sub-organization whose knowledge answers")


class ChatMessageRequest(BaseModel):
    token: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, max_length=4000)


class ChatTokenRequest(BaseModel):
    token: str = Field(..., min_length=1)


class ChatMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    sender_type: str
    sender_name: str | None = None
    content: str
    created_at: datetime | None = None


class ChatSessionResponse(BaseModel):
    token: str
    status: str
    is_new: bool = False
    messages: list[ChatMessageResponse] = []


class ChatReplyResponse(BaseModel):
    mode: str
    message: ChatMessageResponse | None = None
    source: str | None = None


class TicketCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=300)
    description: str = ""
    priority: str = Field(default="medium", pattern=r"^(low|medium|high|urgent)$")
    category: str | None = None
    client_name: str | None = None
    client_email: EmailStr | None = None
    company_id: int | None = None


class TicketUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    status: str | None = Field(default=None, pattern=TICKET_STATUS_PATTERN)
    priority: str | None = Field(default=None, pattern=r"^(low|medium|high|urgent)$")
    category: str | None = None


class TicketMessageCreate(BaseModel):
    content: str = Field(..., min_length=1)
    is_internal: bool = False


class TicketMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    author_name: str
    content: str
    is_internal: bool
    created_at: datetime | None = None


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    reference: str
    subject: str
    description: str
    status: str
    priority: str
    category: str | None = None
    client_name: str | None = None
    client_email: str | None = None
    company_id: int | None = None
    created_at: datetime | None = None
    resolved_at: datetime | None = None
    messages: list[TicketMessageResponse] = []


class TicketListResponse(BaseModel):
    tickets: list[TicketResponse]
    stats: dict[str, int]
