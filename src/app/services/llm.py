"""LLM provider abstraction via LiteLLM Router.

Provides a tenant-aware LLM service with:
- "fast" and "smart" model groups for Anthropic, OpenAI and Gemini, the
  configured provider first and the others as fallbacks
- Explicit timeout and retries on every call
- Prompt injection detection and sanitization of visitor input
- Provider errors classified into LLMErrorKind for readable fallbacks
- Tenant metadata and Prometheus metrics on every call
"""

from __future__ import annotations

import re
from enum import Enum

import structlog
from litellm import Router

from src.app.config import get_settings
from src.app.core.monitoring import track_llm_call
from src.app.core.tenant import get_current_tenant

logger = structlog.get_logger(__name__)

# ── Prompt Injection Detection ────────────────────────────────────────────────

# Visitor text reaches the livechat prompt verbatim, in French or English.
_INJECTION_PATTERNS: list[tuple[str, re.Pattern]] = [
    (
        "instruction_override",
        re.compile(
            r"ignore\s+(all\s+)?(the\s+)?previous\s+instructions|"
            r"(disregard|forget|override)\s+(all\s+)?(your\s+)?instructions|"
            r"ignore[rz]?\s+(toutes\s+)?(les\s+|tes\s+|vos\s+)?instructions|"
            r"oublie[rz]?\s+(toutes\s+)?(les\s+|tes\s+|vos\s+)?(consignes|instructions)",
            re.IGNORECASE,
        ),
    ),
    (
        "system_prompt_exfiltration",
        re.compile(
            r"(reveal|show|display|output|print|repeat)\s+(your\s+)?(system\s+prompt|instructions)|"
            r"system\s+prompt|"
            r"prompt\s+syst[eè]me|"
            r"repeat\s+everything\s+above|"
            r"(montre|affiche|r[ée]p[eè]te)[rz]?\s+(tes|vos)\s+(consignes|instructions)",
            re.IGNORECASE,
        ),
    ),
    (
        "role_hijacking",
        re.compile(
            r"you\s+are\s+now\s+(a|an|my)\s+|"
            r"pretend\s+(to\s+be|you\s+are)|"
            r"from\s+now\s+on\s+you\s+are|"
            r"tu\s+es\s+maintenant\s+|"
            r"fais\s+semblant\s+d",
            re.IGNORECASE,
        ),
    ),
    (
        "control_characters",
        re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]{3,}"),
    ),
]


def detect_prompt_injection(text: str) -> tuple[bool, str | None]:
    """Return (is_injection, pattern_name) for the first matching pattern."""
    for pattern_name, pattern in _INJECTION_PATTERNS:
        if pattern.search(text):
            logger.warning("prompt_injection_detected", pattern=pattern_name, text_preview=text[:100])
            return True, pattern_name
    return False, None


def sanitize_messages(messages: list[dict]) -> list[dict]:
    """Replace injection attempts in non-system messages with "[removed]".

    System messages carry the tenant's own knowledge context and are never
    modified.
    """
    sanitized = []
    for msg in messages:
        content = msg.get("content", "")
        if msg.get("role") == "system" or not content:
            sanitized.append(msg)
            continue

        is_injection, pattern_name = detect_prompt_injection(content)
        if not is_injection:
            sanitized.append(msg)
            continue

        cleaned = content
        for _, pattern in _INJECTION_PATTERNS:
            cleaned = pattern.sub("[removed]", cleaned)
        logger.warning(
            "prompt_injection_sanitized",
            role=msg.get("role"),
            pattern=pattern_name,
            original_length=len(content),
            cleaned_length=len(cleaned),
        )
        sanitized.append({**msg, "content": cleaned})

    return sanitized


# ── Error classification ─────────────────────────────────────────────────────


class LLMErrorKind(str, Enum):
    billing = "billing"
    auth = "auth"
    model = "model"
    rate_limit = "rate_limit"
    timeout = "timeout"
    unavailable = "unavailable"
    unknown = "unknown"


class LLMServiceError(Exception):
    """Provider failure, classified so callers can show a readable message."""

    def __init__(self, kind: LLMErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


def classify_llm_error(exc: BaseException) -> LLMErrorKind:
    """Classify a provider exception by type and message content."""
    if isinstance(exc, TimeoutError):
        return LLMErrorKind.timeout
    message = str(exc).lower()
    if any(marker in message for marker in ("credit", "billing", "quota", "payment")):
        return LLMErrorKind.billing
    if any(marker in message for marker in ("api_key", "api key", "x-api-key", "authentication", "unauthorized")):
        return LLMErrorKind.auth
    if "model" in message and any(marker in message for marker in ("not_found", "not found", "does not exist")):
        return LLMErrorKind.model
    if any(marker in message for marker in ("rate_limit", "rate limit", "429", "overloaded")):
        return LLMErrorKind.rate_limit
    if "timeout" in message or "timed out" in message:
        return LLMErrorKind.timeout
    return LLMErrorKind.unknown


# ── LLM Service ──────────────────────────────────────────────────────────────

# (fast, smart) model per provider
PROVIDER_MODELS: dict[str, tuple[str, str]] = {
    "anthropic": ("anthropic/claude-3-5-haiku-latest", "anthropic/claude-sonnet-4-20250514"),
    "openai": ("openai/gpt-4o-mini", "openai/gpt-4o"),
    "gemini": ("gemini/gemini-2.0-flash", "gemini/gemini-2.5-pro"),
}


class LLMService:
    """LLM provider abstraction with LiteLLM Router.

    Two model groups, "fast" (livechat, reply suggestions) and "smart".
    The provider named by LLM_PROVIDER (or the first keyed one) serves both
    groups; every other keyed provider is a "fast-<name>"/"smart-<name>"
    group tried in order when the primary call fails.
    """

    def __init__(self) -> None:
        settings = get_settings()
        keys = {
            "anthropic": settings.ANTHROPIC_API_KEY,
            "openai": settings.OPENAI_API_KEY,
            "gemini": settings.GEMINI_API_KEY,
        }
        providers = [
            name
            for name in sorted(keys, key=lambda name: name != settings.LLM_PROVIDER)
            if keys[name]
        ]

        if not providers:
            logger.warning("No LLM API keys configured -- LLM service will be unavailable")
            self.primary_provider = None
            self.router = None
            return

        # The primary provider owns the "fast"/"smart" groups; the others are
        # separate groups reached only through fallbacks.
        model_list = []
        fallbacks: dict[str, list[str]] = {"fast": [], "smart": []}
        for index, provider in enumerate(providers):
            for tier, model in zip(("fast", "smart"), PROVIDER_MODELS[provider]):
                group = tier if index == 0 else f"{tier}-{provider}"
                model_list.append({
                    "model_name": group,
                    "litellm_params": {"model": model, "api_key": keys[provider]},
                })
                if index > 0:
                    fallbacks[tier].append(group)

        self.primary_provider = providers[0]
        self.router = Router(
            model_list=model_list,
            fallbacks=[{tier: groups} for tier, groups in fallbacks.items() if groups],
            num_retries=settings.LLM_MAX_RETRIES,
            timeout=settings.LLM_TIMEOUT,
            allowed_fails=3,
            cooldown_time=30,
        )
        logger.info("llm.router_configured", primary=self.primary_provider, fallbacks=providers[1:])

    @property
    def available(self) -> bool:
        return self.router is not None

    async def completion(
        self,
        messages: list[dict],
        model: str = "fast",
        max_tokens: int = 2500,
        temperature: float = 0.3,
        metadata: dict | None = None,
    ) -> dict:
        """Execute a completion call through the LiteLLM Router.

        Args:
            messages: List of message dicts with 'role' and 'content'.
            model: Model group name ("fast" or "smart").
            max_tokens: Maximum tokens in the response.
            temperature: Sampling temperature (0-2).
            metadata: Additional metadata to include in the call.

        Returns:
            Dict with content, model, usage, and tenant_id.

        Raises:
            LLMServiceError: No provider configured, or the provider call
                failed (classified by LLMErrorKind).
        """
        if not self.router:
            raise LLMServiceError(LLMErrorKind.unavailable, "No LLM API keys configured")

        try:
            tenant = get_current_tenant()
            tenant_metadata = {
                "tenant_id": tenant.tenant_id,
                "tenant_slug": tenant.tenant_slug,
            }
        except RuntimeError:
            tenant_metadata = {}

        call_metadata = {**tenant_metadata, **(metadata or {})}
        safe_messages = sanitize_messages(messages)

        async with track_llm_call(model, tenant_metadata.get("tenant_id", "none")) as tracker:
            try:
                response = await self.router.acompletion(
                    model=model,
                    messages=safe_messages,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    metadata=call_metadata,
                )
            except Exception as exc:
                kind = classify_llm_error(exc)
                logger.warning("llm.call_failed", kind=kind.value, error=str(exc)[:300])
                raise LLMServiceError(kind, str(exc)) from exc

            usage = {}
            if getattr(response, "usage", None):
                usage = {
                    "prompt_tokens": response.usage.prompt_tokens,
                    "completion_tokens": response.usage.completion_tokens,
                    "total_tokens": response.usage.total_tokens,
                }
                tracker.update(usage)

        return {
            "content": response.choices[0].message.content or "",
            "model": response.model,
            "usage": usage,
            "tenant_id": tenant_metadata.get("tenant_id", ""),
        }


# ── Singleton ─────────────────────────────────────────────────────────────────

_llm_service: LLMService | None = None


def get_llm_service() -> LLMService:
    """Get or create the LLM service singleton."""
    global _llm_service
    if _llm_service is None:
        _llm_service = LLMService()
    return _llm_service
