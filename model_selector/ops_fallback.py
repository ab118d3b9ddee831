import asyncio
import inspect
import time
import weakref
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from .core import (
    AttemptInfo,
    Candidate,
    Execution,
    ExecutionResult,
    MatchResult,
    RankedCandidate,
    StreamChunk,
)
from .errors import (
    DEFAULT_RULES,
    AllCandidatesFailedError,
    AttemptTimeoutError,
    NoCandidatesAvailable,
    classify,
)
from .utils import elapsed_ms, timer

DEFAULT_FALLBACK_COUNT = 3
DEFAULT_MAX_RETRIES = 2
DEFAULT_RETRY_DELAY_MS = 1000
DEFAULT_TIMEOUT_MS = 60_000

_END = object()


@dataclass
class Hooks:
    """Observability callbacks. Exceptions raised by a hook propagate."""

    on_attempt: Callable[[str, str, int], Any] | None = None
    on_fallback: Callable[[str, str, BaseException], Any] | None = None
    on_success: Callable[[str, list[AttemptInfo]], Any] | None = None
    on_switch: Callable[[str, bool], Any] | None = None

    def emit(self, name: str, *args):
        hook = getattr(self, name)
        if hook is not None:
            hook(*args)


# ---------- helpers ----------
async def _sleep(ms: float):
    await asyncio.sleep(ms / 1000.0)


async def _resolve(value):
    if inspect.isawaitable(value):
        return await value
    return value


async def _invoke(operation, candidate: Candidate):
    return await _resolve(operation(candidate))


async def _with_timeout(aw, timeout_ms: float | None):
    if not timeout_ms:
        return await aw
    try:
        async with asyncio.timeout(timeout_ms / 1000.0) as scope:
            return await aw
    except TimeoutError:
        if scope.expired():
            raise AttemptTimeoutError(timeout_ms) from None
        raise


async def _iterate(items):
    for item in items:
        yield item


def _as_async_iterator(source):
    if hasattr(source, "__aiter__"):
        return aiter(source)
    if isinstance(source, Iterable):
        return _iterate(source)
    raise TypeError(
        f"Streaming operation must return an async iterable, got {type(source).__name__}"
    )


async def _next(iterator):
    try:
        return await anext(iterator)
    except StopAsyncIteration:
        return _END


async def _aclose(iterator):
    close = getattr(iterator, "aclose", None)
    if close is not None:
        await close()


def _as_ranked(c) -> RankedCandidate:
    if isinstance(c, RankedCandidate):
        return c
    if isinstance(c, Candidate):
        return RankedCandidate(
            candidate=c,
            match=MatchResult(matches=False, score=0, max_score=0, exact_match=True),
            score=0.0,
        )
    raise TypeError(f"Expected RankedCandidate or Candidate, got {type(c).__name__}")


def _describe(error: BaseException) -> str:
    return f"{type(error).__name__}: {error}"


# ---------- engine ----------
class FallbackExecutor:
    """
    Drive one logical call across ranked candidates:
      - per-candidate retries with exponential backoff
      - per-attempt timeout
      - fallback to the next candidate when the failure allows it
    Candidates are tried strictly in order, never concurrently.
    """

    def __init__(
        self,
        fallback_count: int = DEFAULT_FALLBACK_COUNT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY_MS,
        timeout_ms: float | None = DEFAULT_TIMEOUT_MS,
        hooks: Hooks | None = None,
        rules=DEFAULT_RULES,
        name: str = "FallbackExecutor",
    ):
        self.fallback_count = fallback_count
        self.max_retries = max(0, max_retries)
        self.retry_delay = retry_delay
        self.timeout_ms = timeout_ms
        self.hooks = hooks or Hooks()
        self.rules = rules
        self.name = name

    def select(self, candidates) -> list[RankedCandidate]:
        to_try = [_as_ranked(c) for c in candidates][: max(0, self.fallback_count)]
        if not to_try:
            raise NoCandidatesAvailable()
        return to_try

    def backoff_ms(self, attempt: int) -> float:
        return self.retry_delay * (2**attempt)

    # ---------- single-shot ----------
    async def run(self, candidates, operation) -> ExecutionResult:
        to_try = self.select(candidates)
        run = Execution()

        for i, cand in enumerate(to_try):
            if i > 0 and run.failures:
                self._announce_fallback(run, cand)
            try:
                result = await self._call_with_retry(run, cand, operation)
            except Exception as e:
                run.failures.append((cand.name, e))
                self._check_fallback(run, cand, e)
                continue

            return self._succeed(run, cand, result, i)

        run.log(self.name, ok=False, exhausted=True, failed=len(run.failures))
        raise AllCandidatesFailedError(run.failures, run.attempts)

    async def _call_with_retry(self, run: Execution, cand: RankedCandidate, operation):
        last_exc = None
        for attempt in range(self.max_retries + 1):
            self.hooks.emit("on_attempt", cand.name, cand.provider_id, attempt + 1)
            run.log(self.name, candidate=cand.name, attempt=attempt + 1)
            with timer() as t:
                try:
                    result = await _with_timeout(
                        _invoke(operation, cand.candidate), self.timeout_ms
                    )
                except Exception as e:
                    last_exc = e
                    run.attempts.append(
                        AttemptInfo(cand.name, cand.provider_id, False, elapsed_ms(t), e)
                    )
                    if not await self._should_retry(run, cand, e, attempt):
                        break
                    continue
            run.attempts.append(
                AttemptInfo(cand.name, cand.provider_id, True, elapsed_ms(t))
            )
            return result
        raise last_exc

    # ---------- streaming ----------
    def stream(self, candidates, operation, finalize=None) -> "FallbackStream":
        return FallbackStream(self, candidates, operation, finalize=finalize)

    async def _open_stream(self, run: Execution, cand: RankedCandidate, operation):
        """Retry the setup + first chunk stage; return (iterator, first, started)."""
        last_exc = None
        for attempt in range(self.max_retries + 1):
            self.hooks.emit("on_attempt", cand.name, cand.provider_id, attempt + 1)
            run.log(self.name, candidate=cand.name, attempt=attempt + 1, stream=True)
            started = time.perf_counter()
            iterator = None
            try:
                source = await _with_timeout(
                    _invoke(operation, cand.candidate), self.timeout_ms
                )
                iterator = _as_async_iterator(source)
                first = await _with_timeout(_next(iterator), self.timeout_ms)
                return iterator, first, started
            except Exception as e:
                last_exc = e
                if iterator is not None:
                    await _aclose(iterator)
                run.attempts.append(
                    AttemptInfo(
                        cand.name,
                        cand.provider_id,
                        False,
                        round((time.perf_counter() - started) * 1000.0, 3),
                        e,
                    )
                )
                if not await self._should_retry(run, cand, e, attempt):
                    break
        raise last_exc

    # ---------- shared policy ----------
    async def _should_retry(self, run, cand, error, attempt) -> bool:
        classified = classify(error, self.rules)
        run.log(
            self.name,
            candidate=cand.name,
            attempt=attempt + 1,
            error=_describe(error),
            category=classified.category.value,
        )
        if not classified.should_retry or attempt >= self.max_retries:
            return False
        delay = self.backoff_ms(attempt)
        run.log(self.name, candidate=cand.name, backoff_ms=delay)
        await _sleep(delay)
        return True

    def _check_fallback(self, run: Execution, cand: RankedCandidate, error):
        """Raise `error` when its category forbids trying other candidates."""
        classified = classify(error, self.rules)
        if classified.should_fallback:
            return
        run.log(
            self.name,
            abort=cand.name,
            category=classified.category.value,
            error=_describe(error),
        )
        error.add_note(
            f"aborted on '{cand.name}' ({classified.category.value}) "
            f"after {len(run.attempts)} attempt(s); other candidates not tried"
        )
        raise error

    def _announce_fallback(self, run: Execution, cand: RankedCandidate):
        prev_name, prev_err = run.failures[-1]
        run.log(self.name, fallback=cand.name, previous=prev_name)
        self.hooks.emit("on_fallback", prev_name, cand.name, prev_err)

    def _succeed(self, run, cand, result, index) -> ExecutionResult:
        self.hooks.emit("on_success", cand.name, list(run.attempts))
        run.log(
            self.name,
            ok=True,
            candidate=cand.name,
            fallbacks=index,
            attempts=len(run.attempts),
        )
        return ExecutionResult(
            result=result,
            candidate=cand,
            attempts=tuple(run.attempts),
            fallbacks_used=index,
            trace=tuple(run.trace),
        )


class FallbackStream:
    """
    Single-pass stream of `StreamChunk`s plus a separately awaitable result.

    A candidate failing mid-stream is not resumed: the whole operation restarts
    on the next candidate, and chunks already yielded stay with the consumer.
    `result` settles once: with the final `ExecutionResult`, with the error that
    ended the stream, or cancelled when the consumer closes the stream early.

    Use `async with stream:` (or call `aclose()`) when you may stop iterating
    early. A consumer that only `break`s leaves cleanup to the event loop's
    async-generator finalizer, which cancels `result` once the abandoned
    iterator is collected.
    """

    def __init__(self, executor: FallbackExecutor, candidates, operation, finalize=None):
        self.executor = executor
        self.candidates = executor.select(candidates)
        self.operation = operation
        self.finalize = finalize or list
        self.execution = Execution()
        self._future: asyncio.Future | None = None
        self._gen: weakref.ref | None = None

    @property
    def result(self) -> asyncio.Future:
        if self._future is None:
            self._future = asyncio.get_running_loop().create_future()
        return self._future

    @property
    def attempts(self) -> list[AttemptInfo]:
        return self.execution.attempts

    def __aiter__(self):
        if self._gen is not None:
            raise RuntimeError("FallbackStream can only be iterated once")
        gen = self._produce()
        # weak, so an abandoned iteration is finalized and settles `result`
        self._gen = weakref.ref(gen)
        return gen

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        gen = self._gen() if self._gen is not None else None
        if gen is not None:
            await gen.aclose()
        if not self.result.done():
            self.result.cancel()

    async def collect(self) -> ExecutionResult:
        """Drain the stream and return the final result."""
        async for _ in self:
            pass
        return await self.result

    def _settle(self, value=None, error=None):
        fut = self.result
        if fut.done():
            return
        if error is not None:
            fut.set_exception(error)
        else:
            fut.set_result(value)

    async def _produce(self):
        ex, run = self.executor, self.execution
        iterator = None
        try:
            for i, cand in enumerate(self.candidates):
                ex.hooks.emit("on_switch", cand.name, i > 0)
                if i > 0 and run.failures:
                    ex._announce_fallback(run, cand)

                try:
                    iterator, item, started = await ex._open_stream(
                        run, cand, self.operation
                    )
                except Exception as e:
                    run.failures.append((cand.name, e))
                    ex._check_fallback(run, cand, e)
                    continue

                values = []
                try:
                    while item is not _END:
                        values.append(item)
                        yield StreamChunk(item, cand.name)
                        item = await _with_timeout(_next(iterator), ex.timeout_ms)
                except Exception as e:
                    # partial output is discarded; restart on the next candidate
                    await _aclose(iterator)
                    iterator = None
                    run.attempts.append(
                        AttemptInfo(
                            cand.name,
                            cand.provider_id,
                            False,
                            round((time.perf_counter() - started) * 1000.0, 3),
                            e,
                        )
                    )
                    run.log(
                        ex.name,
                        candidate=cand.name,
                        mid_stream=True,
                        chunks=len(values),
                        error=_describe(e),
                    )
                    run.failures.append((cand.name, e))
                    ex._check_fallback(run, cand, e)
                    continue

                iterator = None
                run.attempts.append(
                    AttemptInfo(
                        cand.name,
                        cand.provider_id,
                        True,
                        round((time.perf_counter() - started) * 1000.0, 3),
                    )
                )
                self._settle(ex._succeed(run, cand, self.finalize(values), i))
                return

            run.log(ex.name, ok=False, exhausted=True, failed=len(run.failures))
            raise AllCandidatesFailedError(run.failures, run.attempts)
        except Exception as e:
            self._settle(error=e)
            raise
        finally:
            if iterator is not None:
                await _aclose(iterator)
            if not self.result.done():
                self.result.cancel()


async def execute(candidates, operation, **options) -> ExecutionResult:
    return await FallbackExecutor(**options).run(candidates, operation)


def execute_streaming(candidates, operation, finalize=None, **options) -> FallbackStream:
    return FallbackExecutor(**options).stream(candidates, operation, finalize=finalize)
