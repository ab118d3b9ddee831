import pytest

import model_selector as ms


def _cand(name, provider="openai", enabled=True, **attributes):
    return ms.Candidate(
        name=name, provider_id=provider, attributes=attributes, enabled=enabled
    )


# ---------- matcher ----------
def test_negated_condition_fails_when_attribute_is_true():
    result = ms.match_attributes(
        {"local": True, "functions": False}, ms.parse_query("!local")
    )

    assert result.exact_match is False
    assert result.matches is False
    assert result.missing_attributes == ("local",)


def test_negated_condition_on_missing_attribute_is_satisfied():
    result = ms.match_attributes({}, ms.parse_query("!reasoning"))

    assert result.exact_match is True
    assert result.matched_attributes == ("reasoning",)


def test_missing_attribute_fails_plain_condition():
    result = ms.match_attributes({}, ms.parse_query("reasoning"))

    assert result.score == 0
    assert result.max_score == 1
    assert result.matches is False


def test_weighted_score_and_normalization():
    result = ms.match_attributes(
        {"functions": True, "local": False}, ms.parse_query("functions:10, local:1")
    )

    assert result.score == 10
    assert result.max_score == 11
    assert result.matches is True
    assert result.exact_match is False
    assert ms.normalize_score(result) == pytest.approx(0.909, abs=1e-3)


def test_normalize_zero_max_score():
    result = ms.MatchResult(matches=False, score=0, max_score=0, exact_match=True)

    assert ms.normalize_score(result) == 0


@pytest.mark.parametrize(
    "query, expected",
    [
        ("speed >= 7", True),
        ("speed > 7", True),
        ("speed < 7", False),
        ("speed <= 8", True),
        ("speed = 8", True),
        ("speed != 8", False),
        ("provider = openai", True),
        ("provider != openai", False),
        ("tier = 1", False),
    ],
)
def test_operator_evaluation(query, expected):
    attrs = {"speed": 8, "provider": "openai", "tier": "1"}

    result = ms.match_attributes(attrs, ms.parse_query(query))

    assert result.exact_match is expected


def test_ordering_requires_numbers_on_both_sides():
    attrs = {"speed": "fast", "local": True}

    assert not ms.match_attributes(attrs, ms.parse_query("speed > 1")).matches
    assert not ms.match_attributes(attrs, ms.parse_query("local >= 1")).matches
    # negation flips the non-numeric false into a pass
    assert ms.match_attributes(attrs, ms.parse_query("!speed > 1")).exact_match


def test_booleans_are_not_numbers():
    attrs = {"local": True, "count": 1}

    assert not ms.match_attributes(attrs, ms.parse_query("local = 1")).matches
    assert not ms.match_attributes(attrs, ms.parse_query("count = true")).matches
    assert ms.match_attributes(attrs, ms.parse_query("count = 1.0")).matches


def test_matched_and_missing_attributes_keep_query_order():
    result = ms.match_attributes(
        {"fast": True, "cheap": True}, ms.parse_query("local, fast, vision, cheap")
    )

    assert result.matched_attributes == ("fast", "cheap")
    assert result.missing_attributes == ("local", "vision")


# ---------- ranker ----------
def test_rank_orders_by_normalized_score():
    candidates = [
        _cand("slow", speed=3, functions=True),
        _cand("fast", speed=9, functions=True),
        _cand("fast-nofn", speed=9),
    ]

    ranked = ms.rank("speed >= 7, functions", None, candidates)

    assert [r.name for r in ranked] == ["fast", "fast-nofn", "slow"]
    assert ranked[0].score == 1.0
    assert ranked[0].exact_match is True
    assert ranked[1].score == pytest.approx(2 / 3)


def test_rank_is_stable_for_ties():
    candidates = [_cand("b", local=True), _cand("a", local=True), _cand("c")]

    ranked = ms.rank("local", {}, candidates)

    assert [r.name for r in ranked] == ["b", "a", "c"]


def test_rank_truncates_to_count():
    candidates = [_cand(f"m{i}", local=True) for i in range(5)]

    assert len(ms.rank("local", {}, candidates, count=2)) == 2
    assert len(ms.rank("local", {}, candidates)) == 5


def test_rank_skips_disabled_candidates():
    candidates = [_cand("off", enabled=False, local=True), _cand("on")]

    ranked = ms.rank("local", {}, candidates)

    assert [r.name for r in ranked] == ["on"]


def test_rank_without_enabled_candidates_fails():
    with pytest.raises(ms.NoCandidates):
        ms.rank("local", {}, [_cand("off", enabled=False)])


def test_rank_propagates_query_errors():
    with pytest.raises(ms.EmptyQuery):
        ms.rank("", {}, [_cand("a")])
    with pytest.raises(ms.InvalidCondition):
        ms.rank("123invalid", {}, [_cand("a")])


def test_rank_uses_aliases():
    candidates = [_cand("slow", speed=2), _cand("quick", speed=8)]

    ranked = ms.rank("fast", {"fast": "speed >= 7"}, candidates)

    assert ranked[0].name == "quick"


def test_ranking_op_reuses_pool():
    pool = [_cand("a", cheap=True), _cand("b", local=True)]
    ranking = ms.Ranking(pool, aliases={"offline": "local"}, max_candidates=1)

    assert [r.name for r in ranking("offline")] == ["b"]
    assert ranking.best("cheap").name == "a"
