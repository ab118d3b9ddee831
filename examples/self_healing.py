"""
Fallback chain without network: each fake provider fails in its own way.

  gpt-4o       -> rate limited, skipped without retry
  gpt-4o-mini  -> flaky connection, retried then abandoned
  claude       -> answers
"""
import asyncio

from rich import print

import model_selector as ms
from model_selector.utils import summarize_attempts

POOL = [
    ms.Candidate("gpt-4o", "openai", {"functions": True, "speed": 6}),
    ms.Candidate("gpt-4o-mini", "openai", {"functions": True, "speed": 9}),
    ms.Candidate("claude", "anthropic", {"functions": True, "speed": 7}),
]

FAILURES = {
    "gpt-4o": lambda: RuntimeError("429 Too Many Requests"),
    "gpt-4o-mini": lambda: ConnectionError("ECONNRESET"),
}


async def call_model(candidate: ms.Candidate) -> str:
    await asyncio.sleep(0)
    if candidate.name in FAILURES:
        raise FAILURES[candidate.name]()
    return f"[{candidate.name}] quantum computers use qubits"


def run(query: str = "functions") -> ms.ExecutionResult:
    ranked = ms.rank(query, {}, POOL)
    hooks = ms.Hooks(on_fallback=lambda frm, to, err: print(f"[yellow]{frm} -> {to}[/yellow]: {err}"))
    return asyncio.run(
        ms.execute(ranked, call_model, fallback_count=3, max_retries=1, retry_delay=10, hooks=hooks)
    )


if __name__ == "__main__":
    out = run()
    print(out.result)
    print(summarize_attempts(out.attempts))
    for ev in out.trace:
        print(ev.op, ev.payload)
