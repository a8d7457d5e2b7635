"""Tests for keyword extraction and normalized matching."""

from __future__ import annotations

from src.knowledge.keywords import (
    contains_keyword,
    extract_keywords,
    normalize_text,
    strip_accents,
)


class TestNormalization:
    """Accent, case and punctuation folding shared by questions and knowledge."""

    def test_strip_accents(self):
        assert strip_accents("Frais d'activation élevés à Noël") == "Frais d'activation eleves a Noel"

    def test_normalize_text_folds_case_accents_and_punctuation(self):
        assert normalize_text("  Quels SONT les frais/d'activation ?!  ") == "quels sont les frais d activation"

    def test_underscores_are_separators(self):
        assert normalize_text("snake_case_word") == "snake case word"


class TestExtractKeywords:
    """Stop words, short tokens and duplicates are dropped."""

    def test_english_question(self):
        assert extract_keywords("What are the activation fees?") == ["activation", "fees"]

    def test_french_question_without_accents_in_output(self):
        keywords = extract_keywords("Bonjour, quels sont les frais de résiliation ?")
        assert keywords == ["frais", "resiliation"]

    def test_order_of_first_occurrence_and_dedup(self):
        assert extract_keywords("fees refund fees REFUND delay") == ["fees", "refund", "delay"]

    def test_min_length(self):
        assert extract_keywords("tax vat fee", min_length=4) == []

    def test_max_keywords_cap(self):
        question = " ".join(f"word{i}" for i in range(30))
        assert len(extract_keywords(question, max_keywords=5)) == 5

    def test_extra_stop_words_are_normalized(self):
        keywords = extract_keywords("Acme Café pricing", extra_stop_words=["ACME café"])
        assert keywords == ["pricing"]

    def test_only_noise_gives_empty_list(self):
        assert extract_keywords("Hello, thanks! Merci beaucoup?") == ["beaucoup"]
        assert extract_keywords("bonjour merci") == []
        assert extract_keywords("") == []


class TestContainsKeyword:
    """Keywords match at the start of a word."""

    def test_prefix_of_word_matches(self):
        assert contains_keyword("monthly fees apply", "fee")

    def test_inside_word_does_not_match(self):
        assert not contains_keyword("coffee shop", "fee")

    def test_regex_characters_are_escaped(self):
        assert not contains_keyword("c plus plus", "c++")
