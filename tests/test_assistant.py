"""HelpdeskAssistant tests: history normalization and reply assembly."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from src.app.core.tenant import tenant_scope
from src.app.services.assistant import HelpdeskAssistant, build_chat_history, parse_generated_articles
from src.app.services.knowledge_base import add_entry
from src.app.services.llm import LLMErrorKind, LLMServiceError
from src.app.services.tickets import add_ticket_message, create_ticket, ticket_messages


@dataclass
class Line:
    sender_type: str
    content: str


# ── History ─────────────────────────────────────────────────────────────────


class TestBuildChatHistory:
    def test_merges_same_role_and_trims_assistant_ends(self):
        history = [
            Line("ai", "Welcome!"),
            Line("visitor", "Hi"),
            Line("visitor", "What are your fees?"),
            Line("ai", "49 EUR."),
            Line("system", "Conversation escalated"),
            Line("visitor", "And refunds?"),
            Line("agent", "Let me check."),
        ]
        assert build_chat_history(history) == [
            {"role": "user", "content": "Hi\nWhat are your fees?"},
            {"role": "assistant", "content": "49 EUR."},
            {"role": "user", "content": "And refunds?"},
        ]

    def test_keeps_only_the_last_messages(self):
        history = [Line("visitor" if i % 2 else "ai", f"m{i}") for i in range(30)]
        turns = build_chat_history(history, limit=4)
        assert [t["content"] for t in turns] == ["m27", "m28", "m29"]

    def test_blank_and_unknown_senders_are_skipped(self):
        history = [Line("visitor", "   "), Line("bot", "x"), Line("visitor", "Hello")]
        assert build_chat_history(history) == [{"role": "user", "content": "Hello"}]

    def test_only_assistant_messages(self):
        assert build_chat_history([Line("ai", "Welcome!")]) == []


# ── Livechat ────────────────────────────────────────────────────────────────


class TestAnswerLivechat:
    async def test_greeting_when_no_visitor_turn(self, alpha_context, mock_llm):
        assistant = HelpdeskAssistant(llm=mock_llm)
        with tenant_scope(alpha_context):
            reply = await assistant.answer_livechat("", [Line("ai", "Welcome!")], company="Alpha Support")
        assert reply.source == "greeting"
        mock_llm.completion.assert_not_awaited()

    async def test_llm_reply_in_configured_language(self, alpha_context, mock_llm):
        await add_entry(alpha_context.store, "Fees", "Activation costs 49 EUR.")
        assistant = HelpdeskAssistant(llm=mock_llm)
        with tenant_scope(alpha_context):
            reply = await assistant.answer_livechat(
                "Quels sont les frais ?",
                [Line("visitor", "Quels sont les frais ?")],
                company="Alpha Support",
                language="fr",
            )
        assert reply.source == "llm"
        assert reply.content == "The activation fee is 49 EUR."
        system = mock_llm.completion.await_args.args[0][0]["content"]
        assert "Alpha Support" in system
        assert "Activation costs 49 EUR." in system
        assert mock_llm.completion.await_args.kwargs["model"] == "fast"

    @pytest.mark.parametrize("kind", [LLMErrorKind.billing, LLMErrorKind.timeout, LLMErrorKind.unavailable])
    async def test_fallback_carries_error_kind(self, alpha_context, mock_llm, kind):
        mock_llm.completion.side_effect = LLMServiceError(kind, "boom")
        assistant = HelpdeskAssistant(llm=mock_llm)
        with tenant_scope(alpha_context):
            reply = await assistant.answer_livechat("Hello", [Line("visitor", "Hello")], company="Alpha Support")
        assert reply.source == "fallback"
        assert reply.error_kind == kind.value
        assert reply.content

    async def test_requires_tenant_scope(self, mock_llm):
        with pytest.raises(RuntimeError):
            await HelpdeskAssistant(llm=mock_llm).answer_livechat("Hello", [], company="Acme")


# ── Ticket replies ──────────────────────────────────────────────────────────


class TestSuggestTicketReply:
    async def test_prompt_contains_ticket_and_public_messages(self, alpha_context, mock_llm):
        store = alpha_context.store
        await add_entry(store, "Refunds", "Refunds are issued within 14 days.")
        ticket = await create_ticket(store, "Refund request", "Customer wants a refund", client_name="Vera")
        await add_ticket_message(store, ticket.id, "Vera", "When will I get my refund?")
        await add_ticket_message(store, ticket.id, "Alice", "escalate to billing", is_internal=True)

        async with store.session() as session:
            messages = await ticket_messages(session, ticket.id)

        with tenant_scope(alpha_context):
            suggestion = await HelpdeskAssistant(llm=mock_llm).suggest_ticket_reply(
                ticket, messages, company="Alpha Support", user_id=1
            )

        assert suggestion == "The activation fee is 49 EUR."
        system, user = mock_llm.completion.await_args.args[0]
        assert "Refunds are issued within 14 days." in system["content"]
        assert user["content"].startswith("TICKET: TK-0001 - Refund request")
        assert "[Vera]: When will I get my refund?" in user["content"]
        assert "escalate to billing" not in user["content"]

        usage = await store.fetch_all("SELECT action, user_id FROM ai_usage_log")
        assert usage == [{"action": "ticket_reply", "user_id": 1}]

    async def test_provider_failure_propagates(self, alpha_context, mock_llm):
        mock_llm.completion.side_effect = LLMServiceError(LLMErrorKind.auth, "bad key")
        ticket = await create_ticket(alpha_context.store, "Hello")
        with tenant_scope(alpha_context), pytest.raises(LLMServiceError):
            await HelpdeskAssistant(llm=mock_llm).suggest_ticket_reply(ticket, [], company="Alpha Support")


# ── Article drafts ──────────────────────────────────────────────────────────


class TestParseGeneratedArticles:
    def test_fenced_list(self):
        text = '```json\n[{"title": " Billing ", "content": "Invoices are monthly.", "excerpt": null}]\n```'
        assert parse_generated_articles(text) == [
            {"title": "Billing", "excerpt": "", "content": "Invoices are monthly.", "category_suggestion": "general"}
        ]

    def test_unreadable_reply_becomes_one_draft(self):
        [draft] = parse_generated_articles("## Billing\nInvoices are monthly.\n")
        assert draft["title"] == "Generated article"
        assert draft["content"] == "## Billing\nInvoices are monthly."

    def test_items_without_content_are_dropped(self):
        text = '[{"title": "Empty"}, "stray", {"title": "Refunds", "content": "14 days.", "category_suggestion": "billing"}]'
        assert [d["category_suggestion"] for d in parse_generated_articles(text)] == ["billing"]
