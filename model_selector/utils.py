import time
from contextlib import contextmanager


@contextmanager
def timer():
    start = time.perf_counter()
    yield lambda: time.perf_counter() - start


def elapsed_ms(elapsed) -> float:
    return round(elapsed() * 1000.0, 3)


def summarize_attempts(attempts):
    """Roll an attempt log up per candidate: tries, failures, total ms."""
    per_candidate = {}
    for a in attempts:
        row = per_candidate.setdefault(
            a.candidate_name, {"attempts": 0, "failures": 0, "duration_ms": 0.0}
        )
        row["attempts"] += 1
        row["failures"] += 0 if a.success else 1
        row["duration_ms"] += a.duration_ms
    winner = next((a.candidate_name for a in reversed(attempts) if a.success), None)
    return {"per_candidate": per_candidate, "succeeded": winner}
