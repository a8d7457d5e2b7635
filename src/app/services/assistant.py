"""AI helpdesk assistant: livechat answers, ticket reply suggestions and
help-center article drafts.

Livechat flow for one visitor question:
1. FAQ short-circuit: a confidently matching published article is returned
   as a canned reply, without calling the LLM
2. Knowledge retrieval within the livechat budget (the tenant's own name is
   ignored as a keyword, it appears everywhere)
3. FAQ context for the prompt
4. Conversation history, normalized to alternate user/assistant turns
5. LLM call on the "fast" tier; provider failures become a localized
   fallback message instead of an error

Knowledge and articles are read from the current tenant's store.
"""

from __future__ import annotations

import json
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

import structlog

from src.app.core.monitoring import record_faq_short_circuit, record_retrieval
from src.app.core.tenant import get_current_tenant
from src.app.models.tenant import AiUsageLog
from src.app.services.knowledge_base import active_documents, published_articles
from src.app.services.llm import LLMService, LLMServiceError, get_llm_service
from src.app.services.prompts import (
    ARTICLE_STRUCTURER_SYSTEM_PROMPT,
    ARTICLE_WRITER_SYSTEM_PROMPT,
    LIVECHAT_SYSTEM_PROMPT,
    TICKET_REPLY_SYSTEM_PROMPT,
    chat_message,
    prompt_for,
)
from src.knowledge import FaqMatcher, KnowledgeBaseConfig, KnowledgeRetriever

logger = structlog.get_logger(__name__)

LIVECHAT_HISTORY_LIMIT = 10
TICKET_HISTORY_LIMIT = 8
TICKET_MESSAGE_CHARS = 500
ARTICLE_RESOURCES_CHARS = 12000
ARTICLE_SOURCE_CHARS = 20000

_CODE_FENCE = re.compile(r"```(?:json)?\n?")

_ROLE_BY_SENDER = {"visitor": "user", "ai": "assistant", "agent": "assistant"}


class ChatLine(Protocol):
    sender_type: str
    content: str


@dataclass
class AssistantReply:
    content: str
    source: str  # faq | llm | fallback | greeting
    article_slug: str | None = None
    error_kind: str | None = None


def build_chat_history(messages: Sequence[ChatLine], limit: int = LIVECHAT_HISTORY_LIMIT) -> list[dict]:
    """Turn stored chat messages into LLM turns.

    Keeps the last ``limit`` messages, skips system notices, merges
    consecutive messages of the same role and trims assistant turns from
    both ends so the conversation starts and ends with the visitor.
    """
    turns: list[dict] = []
    for message in list(messages)[-limit:]:
        role = _ROLE_BY_SENDER.get(message.sender_type)
        if role is None or not message.content.strip():
            continue
        if turns and turns[-1]["role"] == role:
            turns[-1]["content"] += "\n" + message.content
        else:
            turns.append({"role": role, "content": message.content})

    while turns and turns[0]["role"] == "assistant":
        turns.pop(0)
    while turns and turns[-1]["role"] == "assistant":
        turns.pop()
    return turns


def parse_generated_articles(text: str) -> list[dict]:
    """Read the JSON list of drafted articles out of an LLM reply.

    Code fences are stripped. A reply that is not a JSON list becomes a
    single draft holding the raw text. Items without a title or content are
    skipped.
    """
    cleaned = _CODE_FENCE.sub("", text).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        data = None
    if not isinstance(data, list):
        logger.warning("assistant.article_json_unreadable", chars=len(text))
        return [{"title": "Generated article", "excerpt": "", "content": text.strip(), "category_suggestion": "general"}]

    drafts = []
    for item in data:
        if not isinstance(item, dict) or not item.get("title") or not item.get("content"):
            continue
        drafts.append({
            "title": str(item["title"]).strip(),
            "excerpt": str(item.get("excerpt") or "").strip(),
            "content": str(item["content"]).strip(),
            "category_suggestion": str(item.get("category_suggestion") or "general"),
        })
    return drafts


class HelpdeskAssistant:
    """Answer visitors and draft agent replies from the tenant's knowledge.

    Args:
        llm: LLM service. Defaults to the process-wide singleton.
        config: Retrieval thresholds and budgets.
    """

    def __init__(self, llm: LLMService | None = None, config: KnowledgeBaseConfig | None = None):
        self.llm = llm or get_llm_service()
        self.config = config or KnowledgeBaseConfig()
        self.retriever = KnowledgeRetriever(self.config)
        self.faq = FaqMatcher(self.config)

    async def answer_livechat(
        self,
        question: str,
        history: Sequence[ChatLine],
        *,
        company: str,
        language: str | None = None,
        company_id: int | None = None,
    ) -> AssistantReply:
        """Answer the visitor's latest ``question``.

        ``history`` holds the stored conversation including the question.
        ``company_id`` narrows the knowledge to one sub-organization.
        """
        tenant = get_current_tenant()
        async with tenant.store.session() as session:
            documents = await active_documents(session, company_id=company_id)
            articles = await published_articles(session, tenant.tenant_slug)

        match = self.faq.match(question, articles, extra_stop_words=company.split())
        if match is not None:
            record_faq_short_circuit(tenant.tenant_id)
            logger.info("assistant.faq_short_circuit", article=match.article.slug, score=match.score)
            return AssistantReply(content=match.reply, source="faq", article_slug=match.article.slug)

        turns = build_chat_history(history)
        if not turns:
            return AssistantReply(content=chat_message("greeting", language), source="greeting")

        knowledge = self.retriever.build_context(
            documents,
            question,
            self.config.livechat_budget_chars,
            extra_stop_words=company.split(),
        )
        record_retrieval("livechat", knowledge)
        faq_context = self.faq.build_context(question, articles, extra_stop_words=company.split())

        system = prompt_for(LIVECHAT_SYSTEM_PROMPT, language).format(
            company=company,
            knowledge=knowledge or chat_message("no_knowledge", language),
            faq=faq_context or chat_message("no_knowledge", language),
        )
        try:
            result = await self.llm.completion(
                [{"role": "system", "content": system}, *turns],
                model="fast",
                max_tokens=2500,
                metadata={"action": "livechat"},
            )
        except LLMServiceError as exc:
            logger.warning("assistant.llm_failed", kind=exc.kind.value)
            return AssistantReply(
                content=chat_message(exc.kind, language),
                source="fallback",
                error_kind=exc.kind.value,
            )

        await self._log_usage("livechat", result, details={"knowledge_chars": len(knowledge)})
        return AssistantReply(content=result["content"].strip(), source="llm")

    async def suggest_ticket_reply(
        self,
        ticket,
        messages: Sequence,
        *,
        company: str,
        language: str | None = None,
        user_id: int | None = None,
    ) -> str:
        """Draft a reply to the latest customer message of ``ticket``.

        Raises:
            LLMServiceError: The provider call failed.
        """
        tenant = get_current_tenant()
        async with tenant.store.session() as session:
            documents = await active_documents(session, company_id=ticket.company_id)

        public = [m for m in messages if not m.is_internal][-TICKET_HISTORY_LIMIT:]
        question = " ".join([ticket.subject, *(m.content for m in public[-1:])])
        knowledge = self.retriever.build_context(
            documents,
            question,
            self.config.ticket_reply_budget_chars,
            extra_stop_words=company.split(),
        )
        record_retrieval("ticket_reply", knowledge)

        lines = [f"TICKET: {ticket.reference} - {ticket.subject}", f"Description: {ticket.description[:2000]}"]
        if ticket.client_name:
            lines.append(f"Client: {ticket.client_name}")
        if public:
            lines.append("\nConversation (answer the last customer message):")
            lines.extend(f"[{m.author_name}]: {m.content[:TICKET_MESSAGE_CHARS]}" for m in public)

        system = prompt_for(TICKET_REPLY_SYSTEM_PROMPT, language).format(
            company=company,
            knowledge=knowledge or chat_message("no_knowledge", language),
        )
        result = await self.llm.completion(
            [{"role": "system", "content": system}, {"role": "user", "content": "\n".join(lines)}],
            model="fast",
            max_tokens=2000,
            metadata={"action": "ticket_reply"},
        )
        await self._log_usage("ticket_reply", result, user_id=user_id, details={"ticket": ticket.reference})
        return result["content"].strip()

    async def generate_article(
        self,
        title: str,
        resources: str,
        *,
        company: str,
        language: str | None = None,
        user_id: int | None = None,
    ) -> str:
        """Write a markdown help-center article titled ``title`` from raw notes.

        Raises:
            LLMServiceError: The provider call failed.
        """
        system = prompt_for(ARTICLE_WRITER_SYSTEM_PROMPT, language).format(company=company)
        request = f'Title: "{title}"\n\nResources:\n{resources[:ARTICLE_RESOURCES_CHARS]}'
        result = await self.llm.completion(
            [{"role": "system", "content": system}, {"role": "user", "content": request}],
            model="smart",
            max_tokens=3000,
            metadata={"action": "article_generate"},
        )
        await self._log_usage("article_generate", result, user_id=user_id, details={"title": title[:100]})
        return result["content"].strip()

    async def articles_from_content(
        self,
        content: str,
        *,
        company: str,
        language: str | None = None,
        user_id: int | None = None,
    ) -> list[dict]:
        """Split a source document into draft FAQ articles, one per main heading.

        Raises:
            LLMServiceError: The provider call failed.
        """
        system = prompt_for(ARTICLE_STRUCTURER_SYSTEM_PROMPT, language).format(company=company)
        result = await self.llm.completion(
            [{"role": "system", "content": system}, {"role": "user", "content": content[:ARTICLE_SOURCE_CHARS]}],
            model="smart",
            max_tokens=8000,
            temperature=0.1,
            metadata={"action": "article_structure"},
        )
        drafts = parse_generated_articles(result["content"])
        await self._log_usage("article_structure", result, user_id=user_id, details={"articles": len(drafts)})
        return drafts

    async def _log_usage(self, action: str, result: dict, user_id: int | None = None, details: dict | None = None) -> None:
        usage = result.get("usage") or {}
        async with get_current_tenant().store.write_session() as session:
            session.add(
                AiUsageLog(
                    action=action,
                    model=result.get("model"),
                    prompt_tokens=usage.get("prompt_tokens") or 0,
                    completion_tokens=usage.get("completion_tokens") or 0,
                    user_id=user_id,
                    details=json.dumps(details) if details else None,
                )
            )
