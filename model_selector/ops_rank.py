from collections.abc import Iterable, Mapping

from .core import (
    AttributeValue,
    Candidate,
    MatchResult,
    ParsedQuery,
    QueryCondition,
    RankedCandidate,
)
from .errors import NoCandidates
from .query import parse_query


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _same(a, b) -> bool:
    # strict: True is not 1, "1" is not 1
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if _is_number(a) and _is_number(b):
        return a == b
    return type(a) is type(b) and a == b


def _compare(op: str, actual: AttributeValue, expected: AttributeValue) -> bool:
    match op:
        case "=":
            return _same(actual, expected)
        case "!=":
            return not _same(actual, expected)
        case ">" | ">=" | "<" | "<=":
            if not (_is_number(actual) and _is_number(expected)):
                return False
            if op == ">":
                return actual > expected
            if op == ">=":
                return actual >= expected
            if op == "<":
                return actual < expected
            return actual <= expected
        case _:
            return False


def evaluate_condition(
    condition: QueryCondition, attributes: Mapping[str, AttributeValue]
) -> bool:
    actual = attributes.get(condition.attribute)
    if actual is None:
        # absent attribute satisfies only a negated condition
        return condition.negated
    result = _compare(condition.operator, actual, condition.value)
    return not result if condition.negated else result


def match_attributes(
    attributes: Mapping[str, AttributeValue], query: ParsedQuery
) -> MatchResult:
    matched: list[str] = []
    missing: list[str] = []
    score = 0
    max_score = 0
    for cond in query.conditions:
        max_score += cond.weight
        if evaluate_condition(cond, attributes):
            score += cond.weight
            matched.append(cond.attribute)
        else:
            missing.append(cond.attribute)
    return MatchResult(
        matches=score > 0,
        score=score,
        max_score=max_score,
        exact_match=score == max_score,
        matched_attributes=tuple(matched),
        missing_attributes=tuple(missing),
    )


def normalize_score(result: MatchResult) -> float:
    if result.max_score == 0:
        return 0.0
    return result.score / result.max_score


def rank_parsed(
    query: ParsedQuery, candidates: Iterable[Candidate], count: int | None = None
) -> list[RankedCandidate]:
    enabled = [c for c in candidates if c.enabled]
    if not enabled:
        raise NoCandidates()

    scored = []
    for cand in enabled:
        result = match_attributes(cand.attributes, query)
        scored.append(
            RankedCandidate(candidate=cand, match=result, score=normalize_score(result))
        )
    # sorted() is stable: equal scores keep enumeration order
    ranked = sorted(scored, key=lambda r: r.score, reverse=True)
    if count is not None:
        ranked = ranked[: max(0, count)]
    return ranked


def rank(
    query: str,
    aliases: Mapping[str, str] | None,
    candidates: Iterable[Candidate],
    count: int | None = None,
) -> list[RankedCandidate]:
    return rank_parsed(parse_query(query, aliases), candidates, count)


class Ranking:
    """Reusable ranking step bound to a candidate pool and alias map."""

    def __init__(self, candidates, aliases=None, max_candidates=None):
        self.candidates = list(candidates)
        self.aliases = dict(aliases or {})
        self.k = max_candidates
        self.name = "Ranking"

    def __call__(self, query: str, count: int | None = None) -> list[RankedCandidate]:
        return rank(
            query, self.aliases, self.candidates, count if count is not None else self.k
        )

    def best(self, query: str) -> RankedCandidate:
        return self(query, count=1)[0]
