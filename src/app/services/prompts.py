"""System prompts and canned livechat messages, in French and English."""

from __future__ import annotations

from src.app.config import get_settings
from src.app.services.llm import LLMErrorKind

LIVECHAT_SYSTEM_PROMPT = {
    "fr": (
        "Tu es l'assistant du support client de {company}. Réponds en français, "
        "de façon concise et aimable, uniquement à partir de la base de connaissances "
        "et de la FAQ ci-dessous. Si l'information n'y figure pas, dis-le honnêtement "
        "et propose de transmettre la demande à un conseiller. Quand une réponse vient "
        "d'un article de la FAQ, ajoute son lien en markdown.\n\n"
        "=== BASE DE CONNAISSANCES ===\n{knowledge}\n\n"
        "=== FAQ ===\n{faq}"
    ),
    "en": (
        "You are the customer support assistant of {company}. Answer in English, "
        "concisely and kindly, using only the knowledge base and FAQ below. If the "
        "information is not there, say so honestly and offer to pass the request to "
        "a human agent. When an answer comes from an FAQ article, add its markdown link.\n\n"
        "=== KNOWLEDGE BASE ===\n{knowledge}\n\n"
        "=== FAQ ===\n{faq}"
    ),
}

TICKET_REPLY_SYSTEM_PROMPT = {
    "fr": (
        "Tu aides un conseiller du support de {company} à répondre à un ticket. "
        "Rédige une réponse prête à envoyer au client, en français, polie et précise, "
        "en t'appuyant sur la base de connaissances ci-dessous. N'invente aucune "
        "information absente de la base.\n\n"
        "=== BASE DE CONNAISSANCES ===\n{knowledge}"
    ),
    "en": (
        "You help a support agent of {company} answer a ticket. Write a reply ready "
        "to send to the customer, in English, polite and precise, based on the "
        "knowledge base below. Never invent information missing from it.\n\n"
        "=== KNOWLEDGE BASE ===\n{knowledge}"
    ),
}

ARTICLE_WRITER_SYSTEM_PROMPT = {
    "fr": (
        "Tu rédiges des articles pour le centre d'aide de {company}. Écris en français, "
        "en markdown, avec des sections ## claires, des paragraphes courts, des étapes "
        "numérotées quand c'est utile et les conseils importants en **gras**. Termine "
        "par une section « Besoin d'aide ? » qui invite à contacter le support. "
        "N'utilise que les informations fournies."
    ),
    "en": (
        "You write articles for the {company} help center. Write in English, in "
        "markdown, with clear ## sections, short paragraphs, numbered steps when "
        "useful and important tips in **bold**. End with a \"Still need help?\" "
        "section inviting the reader to contact support. Use only the information given."
    ),
}

ARTICLE_STRUCTURER_SYSTEM_PROMPT = {
    "fr": (
        "Tu découpes un document de {company} en articles de FAQ. Chaque titre principal "
        "du document donne exactement un article, ses sous-parties restent dans cet "
        "article. Recopie le texte source mot pour mot dans la même langue, en ajoutant "
        "seulement la mise en forme markdown. Le titre reprend celui de la section, "
        "l'extrait la résume en une phrase. Réponds uniquement avec du JSON : "
        '[{{"title": "...", "excerpt": "...", "content": "...", "category_suggestion": "slug"}}]'
    ),
    "en": (
        "You split a {company} document into FAQ articles. Each top-level heading of "
        "the document gives exactly one article, and its sub-sections stay inside that "
        "article. Copy the source text verbatim in its own language, adding only "
        "markdown formatting. The title reuses the section heading, the excerpt sums it "
        "up in one sentence. Reply with JSON only: "
        '[{{"title": "...", "excerpt": "...", "content": "...", "category_suggestion": "slug"}}]'
    ),
}

CHAT_MESSAGES = {
    "fr": {
        "welcome": "Bonjour ! Je suis l'assistant de {company}. Comment puis-je vous aider ?",
        "greeting": "Comment puis-je vous aider ?",
        "escalated": "Votre demande a été transmise à un conseiller (ticket {reference}). "
                     "Nous vous répondons dès que possible.",
        "closed": "Conversation terminée. Merci de nous avoir contactés !",
        "ticket_description": "Demande transmise depuis le livechat.\n\n--- Historique ---\n{history}",
        "no_knowledge": "(aucune information disponible)",
        LLMErrorKind.billing: "L'assistant est momentanément indisponible. Un conseiller peut prendre le relais.",
        LLMErrorKind.auth: "L'assistant est mal configuré. Un conseiller peut prendre le relais.",
        LLMErrorKind.model: "L'assistant est mal configuré. Un conseiller peut prendre le relais.",
        LLMErrorKind.rate_limit: "L'assistant est très sollicité. Réessayez dans un instant.",
        LLMErrorKind.timeout: "L'assistant met trop de temps à répondre. Réessayez dans un instant.",
        LLMErrorKind.unavailable: "L'assistant n'est pas activé. Un conseiller peut prendre le relais.",
        LLMErrorKind.unknown: "Une erreur est survenue. Un conseiller peut prendre le relais.",
    },
    "en": {
        "welcome": "Hello! I'm the {company} assistant. How can I help you?",
        "greeting": "How can I help you?",
        "escalated": "Your request was passed to an agent (ticket {reference}). "
                     "We will get back to you as soon as possible.",
        "closed": "Conversation closed. Thank you for contacting us!",
        "ticket_description": "Request escalated from the livechat.\n\n--- History ---\n{history}",
        "no_knowledge": "(no information available)",
        LLMErrorKind.billing: "The assistant is temporarily unavailable. An agent can take over.",
        LLMErrorKind.auth: "The assistant is misconfigured. An agent can take over.",
        LLMErrorKind.model: "The assistant is misconfigured. An agent can take over.",
        LLMErrorKind.rate_limit: "The assistant is busy. Please try again in a moment.",
        LLMErrorKind.timeout: "The assistant is taking too long to answer. Please try again in a moment.",
        LLMErrorKind.unavailable: "The assistant is not enabled. An agent can take over.",
        LLMErrorKind.unknown: "Something went wrong. An agent can take over.",
    },
}


def chat_message(key: str | LLMErrorKind, language: str | None = None, **values: str) -> str:
    """Localized canned message; unknown languages fall back to English."""
    language = language or get_settings().DEFAULT_LANGUAGE
    messages = CHAT_MESSAGES.get(language, CHAT_MESSAGES["en"])
    return messages[key].format(**values)


def prompt_for(templates: dict[str, str], language: str | None = None) -> str:
    language = language or get_settings().DEFAULT_LANGUAGE
    return templates.get(language, templates["en"])
