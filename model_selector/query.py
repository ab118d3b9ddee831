"""Query language: comma-separated conditions describing the wanted model.

    local                   boolean attribute, local = true
    !local                  negated
    cost <= 5               comparison (=, !=, >, >=, <, <=)
    provider = "openai"     quoted string value
    functions:10            explicit weight (default: position based)
    !(speed >= 7)           negated group, produced by alias expansion
"""

import re
from collections.abc import Mapping

from .core import AttributeValue, ParsedQuery, QueryCondition
from .errors import EmptyQuery, InvalidCondition

_WEIGHT = re.compile(r"^(.+):(\d+)$", re.DOTALL)
_COMPARISON = re.compile(
    r"^([a-z_][a-z0-9_]*)\s*(>=|<=|!=|>|<|=)\s*(.+)$", re.IGNORECASE | re.DOTALL
)
_IDENT = re.compile(r"^[a-z_][a-z0-9_]*$", re.IGNORECASE)
_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")
_RADIX = re.compile(r"^0([xX][0-9a-fA-F]+|[oO][0-7]+|[bB][01]+)$")
_INFINITY = re.compile(r"^[+-]?Infinity$")


def split_tokens(query: str) -> list[str]:
    return [t.strip() for t in query.split(",")]


def split_weight(token: str) -> tuple[str, int | None]:
    m = _WEIGHT.match(token)
    if m:
        return m.group(1).strip(), int(m.group(2))
    return token, None


def parse_value(raw: str) -> AttributeValue:
    if raw == "true":
        return True
    if raw == "false":
        return False
    if _NUMBER.match(raw):
        if re.search(r"[.eE]", raw):
            return float(raw)
        return int(raw)
    if _RADIX.match(raw):
        return int(raw, 0)
    if _INFINITY.match(raw):
        return float(raw.replace("Infinity", "inf"))
    if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in ("'", '"'):
        return raw[1:-1]
    return raw


def parse_condition(token: str, position: int, total: int) -> QueryCondition:
    """Parse one token; `total - position` is the weight unless one is given."""
    trimmed = token.strip()
    body, weight = split_weight(trimmed)
    if weight is None:
        weight = total - position

    negated = False
    if body.startswith("!"):
        negated = True
        body = body[1:].strip()
        # alias expansion wraps negated aliases as !(...)
        if body.startswith("(") and body.endswith(")"):
            body = body[1:-1].strip()
            if body.startswith("!"):
                negated = False
                body = body[1:].strip()

    m = _COMPARISON.match(body)
    if m:
        return QueryCondition(
            attribute=m.group(1),
            operator=m.group(2),
            value=parse_value(m.group(3).strip()),
            negated=negated,
            weight=weight,
        )

    if _IDENT.match(body):
        return QueryCondition(
            attribute=body, operator="=", value=True, negated=negated, weight=weight
        )

    raise InvalidCondition(trimmed)


def expand_aliases(query: str, aliases: Mapping[str, str] | None = None) -> str:
    """Substitute alias names with their query fragments, one level deep.

    The token's weight suffix is carried onto every expanded condition that
    does not set its own weight. A negated alias negates each of its
    conditions, so `!fast` is satisfied only where every condition of `fast`
    fails.
    """
    if not aliases:
        return query

    out: list[str] = []
    for token in split_tokens(query):
        body, weight = split_weight(token)
        negated = body.startswith("!")
        name = body[1:].strip() if negated else body
        replacement = aliases.get(name)
        if not replacement:
            out.append(token)
            continue

        for part in split_tokens(replacement):
            if not part:
                continue
            sub_body, sub_weight = split_weight(part)
            if sub_weight is None:
                sub_weight = weight
            expanded = f"!({sub_body})" if negated else sub_body
            if sub_weight is not None:
                expanded = f"{expanded}:{sub_weight}"
            out.append(expanded)
    return ", ".join(out)


def parse_query(query: str, aliases: Mapping[str, str] | None = None) -> ParsedQuery:
    expanded = expand_aliases(query, aliases)
    tokens = [t for t in split_tokens(expanded) if t]
    if not tokens:
        raise EmptyQuery()
    total = len(tokens)
    return ParsedQuery(
        conditions=tuple(
            parse_condition(tok, i, total) for i, tok in enumerate(tokens)
        )
    )
