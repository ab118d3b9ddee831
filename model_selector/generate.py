from dataclasses import replace

from .config import Config, candidates_from_config, load_config
from .core import ExecutionResult, RankedCandidate
from .errors import NoCandidatesAvailable
from .ops_fallback import DEFAULT_FALLBACK_COUNT, FallbackExecutor, FallbackStream
from .ops_rank import rank
from .providers import (
    AgentFactory,
    EmbedderFactory,
    run_agent,
    run_agent_object,
    run_embedder,
    stream_agent,
    supports_embeddings,
)


def select_models(
    query: str,
    count: int | None = None,
    config: Config | None = None,
    config_path=None,
) -> list[RankedCandidate]:
    """Rank every enabled configured model against `query`, best first."""
    config = config or load_config(config_path)
    return rank(query, config.aliases, candidates_from_config(config), count)


def select_model(query: str, config: Config | None = None, config_path=None) -> RankedCandidate:
    return select_models(query, count=1, config=config, config_path=config_path)[0]


def select_embedding_models(
    query: str,
    count: int | None = None,
    config: Config | None = None,
    config_path=None,
) -> list[RankedCandidate]:
    """Like `select_models`, keeping only models whose provider can embed."""
    ranked = [
        r
        for r in select_models(query, config=config, config_path=config_path)
        if supports_embeddings(r.provider_id)
    ]
    if not ranked:
        raise NoCandidatesAvailable("No embedding-capable models available")
    return ranked if count is None else ranked[:count]


def _executor(options) -> tuple[int, FallbackExecutor]:
    return options.get("fallback_count", DEFAULT_FALLBACK_COUNT), FallbackExecutor(**options)


def _prepare(query, config, config_path, options):
    fallback_count, executor = _executor(options)
    ranked = select_models(query, count=fallback_count, config=config, config_path=config_path)
    return ranked, executor


async def generate(
    query: str,
    prompt: str,
    *,
    config: Config | None = None,
    config_path=None,
    agents: AgentFactory | None = None,
    **options,
) -> ExecutionResult:
    """
    Answer `prompt` with the best model for `query`, falling back on failure.

    >>> out = await generate("fast, cheap", "Explain quantum computing")
    >>> out.result, out.candidate_used, out.fallbacks_used
    """
    ranked, executor = _prepare(query, config, config_path, options)
    agents = agents or AgentFactory()

    async def op(candidate):
        return await run_agent(agents(candidate), prompt)

    return await executor.run(ranked, op)


async def generate_object(
    query: str,
    prompt: str,
    schema,
    *,
    config: Config | None = None,
    config_path=None,
    agents: AgentFactory | None = None,
    **options,
) -> ExecutionResult:
    """
    Structured output: `result` is an instance of `schema` (a pydantic model or
    any type pydantic can validate). Output that does not fit the schema counts
    as a failed attempt and moves on like any unknown error.

    Default agents are agno agents built with `output_schema=schema`.
    """
    ranked, executor = _prepare(query, config, config_path, options)
    agents = agents or AgentFactory(output_schema=schema)

    async def op(candidate):
        return await run_agent_object(agents(candidate), prompt, schema)

    return await executor.run(ranked, op)


def stream(
    query: str,
    prompt: str,
    *,
    config: Config | None = None,
    config_path=None,
    agents: AgentFactory | None = None,
    **options,
) -> FallbackStream:
    """Stream text chunks; `await s.result` gives the full text of the winning run."""
    ranked, executor = _prepare(query, config, config_path, options)
    agents = agents or AgentFactory()
    return executor.stream(
        ranked, lambda candidate: stream_agent(agents(candidate), prompt), finalize="".join
    )


async def embed_many(
    query: str,
    texts: list[str],
    *,
    config: Config | None = None,
    config_path=None,
    embedders: EmbedderFactory | None = None,
    **options,
) -> ExecutionResult:
    """Embed `texts` with one model; `result` holds one vector per text, in order."""
    fallback_count, executor = _executor(options)
    ranked = select_embedding_models(query, fallback_count, config, config_path)
    embedders = embedders or EmbedderFactory()
    texts = list(texts)

    async def op(candidate):
        return await run_embedder(embedders(candidate), texts)

    return await executor.run(ranked, op)


async def embed(
    query: str,
    text: str,
    *,
    config: Config | None = None,
    config_path=None,
    embedders: EmbedderFactory | None = None,
    **options,
) -> ExecutionResult:
    """Embed one text; `result` is its vector."""
    out = await embed_many(
        query, [text], config=config, config_path=config_path, embedders=embedders, **options
    )
    return replace(out, result=out.result[0])
