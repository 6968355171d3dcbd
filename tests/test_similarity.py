import pytest

from delta_brief.config import NoveltyThresholds
from delta_brief.similarity import compare_all, score


LEGAL = "Legal gating: model risk assessment required"


def test_exact_repeat_scores_one():
    result = score(LEGAL, LEGAL)
    assert result.score == 1.0
    assert result.reason == "exact"


def test_empty_inputs_are_an_exact_match():
    result = score("", "")
    assert result.score == 1.0
    assert result.reason == "exact"


def test_stopwords_and_suffixes_collapse_to_exact():
    result = score("The quick brown fox jumps", "Quick brown fox jumping")
    assert result.reason == "exact"
    assert result.score == 1.0


def test_close_rewording_is_high_similarity():
    result = score(LEGAL, "Legal gating: model risk assessment required before pilot")
    assert result.reason == "high_similarity"
    assert result.score >= 0.5


def test_different_angle_passes():
    result = score(LEGAL, "Pilot timeline forces narrower MVP scope")
    assert result.reason is None
    report = compare_all(["Pilot timeline forces narrower MVP scope"], [LEGAL])
    assert report.passed is True
    assert report.pairs == ()


def test_partial_overlap_below_threshold_has_no_reason():
    # Only "model risk" is shared: 1 of 10 distinct bigrams.
    result = score(LEGAL, "Legal requires model risk review before pilot")
    assert result.reason is None
    assert result.score == pytest.approx(0.1)


def test_long_phrases_use_the_higher_threshold():
    a = "alpha beta gamma delta epsilon zeta eta theta"
    b = "alpha beta gamma delta epsilon zeta iota kappa"
    # 5 shared bigrams out of 9 distinct: above 0.50, below 0.60.
    result = score(a, b)
    assert result.score == pytest.approx(5 / 9)
    assert result.reason is None

    loose = NoveltyThresholds(short_threshold=0.5, long_threshold=0.5, short_phrase_tokens=6)
    assert score(a, b, loose).reason == "high_similarity"


def test_single_token_against_longer_phrase_is_zero():
    result = score("Budget", "Budget review cadence")
    assert result.score == 0.0
    assert result.reason is None


def test_two_different_single_tokens_count_as_identical_bigram_sets():
    # Neither side has a bigram, so Jaccard is defined as 1.0.
    result = score("Budget", "Hiring")
    assert result.score == 1.0
    assert result.reason == "high_similarity"


@pytest.mark.parametrize(
    "a,b",
    [
        (LEGAL, "Legal requires model risk review before pilot"),
        ("Map union concerns into rollout", "Rollout plan maps union concerns"),
        ("", "Something else entirely"),
        ("The quick brown fox jumps", "Quick brown fox jumping"),
    ],
)
def test_score_is_symmetric(a, b):
    assert score(a, b) == score(b, a)


def test_compare_all_collects_every_flagged_pair_in_order():
    candidates = [LEGAL, "Pilot timeline forces narrower MVP scope"]
    references = ["Pilot timeline forces narrower MVP scope", LEGAL]
    report = compare_all(candidates, references)

    assert report.passed is False
    assert report.max_score == 1.0
    assert [(p.candidate, p.reference) for p in report.pairs] == [
        (LEGAL, LEGAL),
        ("Pilot timeline forces narrower MVP scope", "Pilot timeline forces narrower MVP scope"),
    ]
    assert all(p.reason == "exact" for p in report.pairs)


def test_compare_all_tracks_max_score_without_collisions():
    report = compare_all([LEGAL], ["Legal requires model risk review before pilot"])
    assert report.passed is True
    assert report.max_score == pytest.approx(0.1)


def test_compare_all_with_no_references_passes():
    report = compare_all([LEGAL], [])
    assert report.passed is True
    assert report.max_score == 0.0
