from __future__ import annotations

from .models import FeatureSet


TRACKED_KEYWORDS = (
    # clarity
    "clearly",
    "simple",
    "complex",
    "complicated",
    # engagement
    "exciting",
    "innovative",
    "revolutionary",
    "breakthrough",
    "passion",
    "vision",
    # market fit
    "market",
    "customer",
    "target audience",
    "demand",
    "problem",
    "solution",
    "market size",
    "opportunity",
    # uniqueness
    "unique",
    "patent",
    "proprietary",
    "first",
    "only",
    "competitive advantage",
    # financial viability
    "revenue",
    "profit",
    "funding",
    "investment",
    "business model",
    "monetization",
    "roi",
    "return",
    "$",
    "million",
    "billion",
    # team strength
    "team",
    "founder",
    "experience",
    "expertise",
    "background",
    "qualification",
    "advisor",
    "mentor",
)


def count_words(text: str) -> int:
    return len(text.split())


def count_sentences(text: str) -> int:
    # Segments between literal periods, so "a. b" is two and "a" is one.
    return len(text.split("."))


def extract_features(text: str) -> FeatureSet:
    """Compute the lexical signals the heuristic scorer works from.

    Keyword checks are plain substring containment on the lowercased text,
    so "return" also matches "returning". Callers reject empty text first.
    """
    word_count = count_words(text)
    sentence_count = count_sentences(text)
    lowercase_text = text.lower()

    return FeatureSet(
        word_count=word_count,
        sentence_count=sentence_count,
        avg_words_per_sentence=word_count / sentence_count,
        lowercase_text=lowercase_text,
        keyword_hits={keyword: keyword in lowercase_text for keyword in TRACKED_KEYWORDS},
    )
