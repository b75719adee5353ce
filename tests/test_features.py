from pitchframe.backend.features import (
    TRACKED_KEYWORDS,
    count_sentences,
    count_words,
    extract_features,
)
from pitchframe.backend.scoring import SCORING_RULES


def test_word_count_splits_on_whitespace():
    assert count_words("one  two\tthree\nfour") == 4


def test_sentence_count_counts_period_segments():
    assert count_sentences("no period here") == 1
    assert count_sentences("a. b") == 2
    assert count_sentences("Hello world.") == 2


def test_average_words_per_sentence():
    features = extract_features("one two three. four five six")
    assert features.word_count == 6
    assert features.sentence_count == 2
    assert features.avg_words_per_sentence == 3


def test_keywords_match_as_substrings_case_insensitively():
    features = extract_features("RETURNING customers love our Uniquely simple app")
    assert features.has("return")
    assert features.has("customer")
    assert features.has("unique")
    assert features.has("simple")
    assert not features.has("patent")


def test_multi_word_keywords():
    features = extract_features("Our Target Audience is clear")
    assert features.has("target audience")
    assert features.has_all("target audience", "clear")
    assert not features.has_all("target audience", "patent")


def test_every_rule_keyword_is_tracked():
    used = set()
    for rule in SCORING_RULES:
        used.update(rule.any_of)
        used.update(rule.all_of)
    assert used <= set(TRACKED_KEYWORDS)
