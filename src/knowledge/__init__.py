"""Knowledge retrieval engine for grounding livechat answers.

Splits free-text knowledge entries into sections, scores them against a
question by weighted keyword overlap and assembles a bounded context string.
Also matches questions against published help-center articles for the FAQ
short-circuit. Pure string processing, no storage or network access.
"""

from src.knowledge.config import KnowledgeBaseConfig
from src.knowledge.faq import FaqMatcher
from src.knowledge.keywords import extract_keywords, normalize_text
from src.knowledge.models import (
    FaqArticle,
    FaqMatch,
    KnowledgeDocument,
    KnowledgeSection,
    ScoredChunk,
)
from src.knowledge.retrieval import KnowledgeRetriever, score_chunk
from src.knowledge.splitting import SectionSplitter, split_into_sections

__all__ = [
    "FaqArticle",
    "FaqMatch",
    "FaqMatcher",
    "KnowledgeBaseConfig",
    "KnowledgeDocument",
    "KnowledgeRetriever",
    "KnowledgeSection",
    "ScoredChunk",
    "SectionSplitter",
    "extract_keywords",
    "normalize_text",
    "score_chunk",
    "split_into_sections",
]
