import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

AttributeValue = bool | int | float | str
Operator = Literal["=", "!=", ">", ">=", "<", "<="]


@dataclass(frozen=True)
class QueryCondition:
    attribute: str
    operator: Operator
    value: AttributeValue
    negated: bool = False
    weight: int = 1


@dataclass(frozen=True)
class ParsedQuery:
    conditions: tuple[QueryCondition, ...]

    def __len__(self) -> int:
        return len(self.conditions)

    def __iter__(self):
        return iter(self.conditions)


@dataclass(frozen=True)
class MatchResult:
    matches: bool
    score: int
    max_score: int
    exact_match: bool
    matched_attributes: tuple[str, ...] = ()
    missing_attributes: tuple[str, ...] = ()


@dataclass(frozen=True)
class Candidate:
    """One invocable backend: a named model with its attribute map.

    `handle` is whatever the provider layer binds to the candidate (an agno
    agent, a client, a plain callable); nothing here interprets it.
    """

    name: str
    provider_id: str
    attributes: Mapping[str, AttributeValue] = field(default_factory=dict)
    model_id: str | None = None
    enabled: bool = True
    settings: Mapping[str, Any] = field(default_factory=dict)
    handle: Any = None


@dataclass(frozen=True)
class RankedCandidate:
    candidate: Candidate
    match: MatchResult
    score: float

    @property
    def name(self) -> str:
        return self.candidate.name

    @property
    def provider_id(self) -> str:
        return self.candidate.provider_id

    @property
    def exact_match(self) -> bool:
        return self.match.exact_match


@dataclass(frozen=True)
class AttemptInfo:
    candidate_name: str
    provider_id: str
    success: bool
    duration_ms: float
    error: BaseException | None = None


@dataclass
class TraceEvent:
    op: str
    payload: dict[str, Any]
    t: float = field(default_factory=time.time)


@dataclass
class Execution:
    """Mutable bookkeeping for one logical call or one stream."""

    attempts: list[AttemptInfo] = field(default_factory=list)
    failures: list[tuple[str, BaseException]] = field(default_factory=list)
    trace: list[TraceEvent] = field(default_factory=list)

    def log(self, op, **payload):
        self.trace.append(TraceEvent(op, payload))

    def explain_trace(self):
        from rich import print

        for ev in self.trace:
            print(f"[bold]{ev.op}[/bold]", ev.payload)


@dataclass(frozen=True)
class ExecutionResult:
    result: Any
    candidate: RankedCandidate
    attempts: tuple[AttemptInfo, ...]
    fallbacks_used: int
    trace: tuple[TraceEvent, ...] = ()

    @property
    def candidate_used(self) -> str:
        return self.candidate.name


@dataclass(frozen=True)
class StreamChunk:
    value: Any
    candidate_name: str
