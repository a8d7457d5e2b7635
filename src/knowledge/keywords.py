"""Keyword extraction and normalized matching for knowledge retrieval.

Questions arrive in French or English, with or without accents, so both the
question and the knowledge text go through the same normalization before
any comparison: lowercase, accents stripped, punctuation replaced by spaces.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable
from functools import lru_cache

_NON_WORD = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")

# Function words for both supported languages, stored already normalized.
ENGLISH_STOP_WORDS: frozenset[str] = frozenset(
    """
    a about above after again against all also am an and any are as at be because been
    before being below between both but by can cannot could did do does doing down during
    each few for from further had has have having he her here hers herself him himself his
    how i if in into is it its itself just let me more most my myself no nor not now of off
    on once only or other our ours ourselves out over own same she should so some such than
    that the their theirs them themselves then there these they this those through to too
    under until up very was we were what when where which while who whom why will with
    would you your yours yourself yourselves
    """.split()
)

FRENCH_STOP_WORDS: frozenset[str] = frozenset(
    """
    ai aie alors au aucun aussi autre aux avec avez avoir avons bien car ce ceci cela celle
    celles celui ces cet cette chaque chez comme comment combien dans de des donc dont du
    elle elles en encore entre est et etaient etait etes etre eu faire fait faut il ils je
    la laquelle le lequel les leur leurs lui ma mais me meme mes moi mon ne ni nos notre
    nous on ont ou par pas peu peut peuvent peux plus pour pourquoi puis quand que quel
    quelle quelles quels qui quoi sa sans se sera ses si sien son sont sous suis sur ta te
    tes toi ton tous tout toute toutes tres tu un une vos votre vous
    """.split()
)

# Conversational filler that shows up in almost every livechat question.
DOMAIN_NOISE_WORDS: frozenset[str] = frozenset(
    """
    bonjour bonsoir salut merci svp please hello thanks thank question questions info infos
    information informations besoin savoir need know want tell
    """.split()
)

DEFAULT_STOP_WORDS: frozenset[str] = ENGLISH_STOP_WORDS | FRENCH_STOP_WORDS | DOMAIN_NOISE_WORDS


def strip_accents(text: str) -> str:
    """Remove diacritics by decomposing to NFD and dropping combining marks."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_text(text: str) -> str:
    """Lowercase, strip accents, replace punctuation by spaces, collapse whitespace."""
    text = strip_accents(text.lower())
    text = _NON_WORD.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def extract_keywords(
    question: str,
    *,
    min_length: int = 3,
    max_keywords: int = 20,
    extra_stop_words: Iterable[str] = (),
) -> list[str]:
    """Extract discriminating keywords from a user question.

    Tokens shorter than ``min_length`` and stop words (French, English,
    conversational noise and ``extra_stop_words``) are dropped. Remaining
    tokens are deduplicated in order of first occurrence and capped.

    Args:
        question: Free-text question from the visitor or agent.
        min_length: Shortest token kept.
        max_keywords: Maximum number of keywords returned.
        extra_stop_words: Additional noise terms such as brand names. They
            are normalized the same way as the question.

    Returns:
        Ordered list of unique keywords, possibly empty.
    """
    stop_words = DEFAULT_STOP_WORDS
    extra = {token for word in extra_stop_words for token in normalize_text(word).split()}
    if extra:
        stop_words = stop_words | extra

    keywords: list[str] = []
    seen: set[str] = set()
    for token in normalize_text(question).split():
        if len(token) < min_length or token in stop_words or token in seen:
            continue
        seen.add(token)
        keywords.append(token)
        if len(keywords) >= max_keywords:
            break
    return keywords


@lru_cache(maxsize=512)
def keyword_pattern(keyword: str) -> re.Pattern[str]:
    """Word-start pattern for a normalized keyword ("fee" matches "fees")."""
    return re.compile(r"\b" + re.escape(keyword))


def contains_keyword(normalized_text: str, keyword: str) -> bool:
    """Whether ``keyword`` starts a word of already-normalized text."""
    return keyword_pattern(keyword).search(normalized_text) is not None
