"""Bind candidates to agno agents and embedders.

Each provider id maps to the agno model class serving it (and, for some
providers, to an agno embedder). Agents are built lazily on first use and
cached per candidate name, so a fallback chain only imports the provider SDKs
it actually reaches.
"""

import asyncio
import importlib
import inspect
from dataclasses import dataclass
from typing import Any

from pydantic import TypeAdapter, ValidationError

from .core import Candidate
from .errors import ObjectParseError, ProviderError


@dataclass(frozen=True)
class ProviderSpec:
    module: str
    cls: str
    api_key_arg: str | None = "api_key"
    base_url_arg: str | None = "base_url"


PROVIDERS: dict[str, ProviderSpec] = {
    "openai": ProviderSpec("agno.models.openai", "OpenAIChat"),
    "anthropic": ProviderSpec("agno.models.anthropic", "Claude", base_url_arg=None),
    "google": ProviderSpec("agno.models.google", "Gemini", base_url_arg=None),
    "groq": ProviderSpec("agno.models.groq", "Groq"),
    "mistral": ProviderSpec("agno.models.mistral", "MistralChat", base_url_arg="endpoint"),
    "ollama": ProviderSpec("agno.models.ollama", "Ollama", api_key_arg=None, base_url_arg="host"),
    "openrouter": ProviderSpec("agno.models.openrouter", "OpenRouter"),
    "deepseek": ProviderSpec("agno.models.deepseek", "DeepSeek"),
    "xai": ProviderSpec("agno.models.xai", "xAI"),
}

# providers whose agno embedder can serve embed() / embed_many()
EMBEDDERS: dict[str, ProviderSpec] = {
    "openai": ProviderSpec("agno.knowledge.embedder.openai", "OpenAIEmbedder"),
    "google": ProviderSpec("agno.knowledge.embedder.google", "GeminiEmbedder", base_url_arg=None),
    "mistral": ProviderSpec(
        "agno.knowledge.embedder.mistral", "MistralEmbedder", base_url_arg="endpoint"
    ),
    "ollama": ProviderSpec(
        "agno.knowledge.embedder.ollama", "OllamaEmbedder", api_key_arg=None, base_url_arg="host"
    ),
}


def supported_providers() -> list[str]:
    return sorted(PROVIDERS)


def is_provider_supported(provider_id: str) -> bool:
    return provider_id in PROVIDERS


def _import(module: str, attr: str):
    try:
        return getattr(importlib.import_module(module), attr)
    except (ImportError, AttributeError) as e:
        raise ProviderError(
            f"Cannot load {module}.{attr}; install agno and the provider SDK "
            f"(pip install 'model-selector[agno]'): {e}"
        ) from e


def build_model(candidate: Candidate):
    spec = PROVIDERS.get(candidate.provider_id)
    if spec is None:
        raise ProviderError(
            f"Unknown provider '{candidate.provider_id}' for model '{candidate.name}'. "
            f"Supported: {', '.join(supported_providers())}"
        )
    return _instantiate(spec, candidate)


def _instantiate(spec: ProviderSpec, candidate: Candidate):
    model_cls = _import(spec.module, spec.cls)
    kwargs: dict[str, Any] = {"id": candidate.model_id or candidate.name}
    settings = candidate.settings or {}
    if spec.api_key_arg and settings.get("api_key"):
        kwargs[spec.api_key_arg] = settings["api_key"]
    if spec.base_url_arg and settings.get("base_url"):
        kwargs[spec.base_url_arg] = settings["base_url"]
    return model_cls(**kwargs)


class AgentFactory:
    """
    Lookup-and-cache of one agent per candidate.

    `agent_factory(candidate)` overrides how agents are built (custom clients,
    tests); otherwise an agno `Agent` wraps the provider's model.
    """

    use_handle = True

    def __init__(self, agent_factory=None, **agent_kwargs):
        self.agent_factory = agent_factory
        self.agent_kwargs = agent_kwargs
        self._agents: dict[str, Any] = {}

    def __call__(self, candidate: Candidate):
        if self.use_handle and candidate.handle is not None:
            return candidate.handle
        agent = self._agents.get(candidate.name)
        if agent is None:
            agent = self._build(candidate)
            self._agents[candidate.name] = agent
        return agent

    def _build(self, candidate: Candidate):
        if self.agent_factory is not None:
            return self.agent_factory(candidate)
        agent_cls = _import("agno.agent", "Agent")
        return agent_cls(model=build_model(candidate), **self.agent_kwargs)

    def clear(self):
        self._agents.clear()


def _content(out) -> str | None:
    if out is None or isinstance(out, str):
        return out
    if hasattr(out, "content"):
        content = getattr(out, "content")
        return None if content is None else str(content)
    return str(out)


async def _call(agent, prompt: str):
    if hasattr(agent, "arun"):
        out = agent.arun(prompt)
    elif hasattr(agent, "run"):
        out = agent.run(prompt)
    elif callable(agent):
        out = agent(prompt)
    else:
        raise TypeError("Agent must be callable or expose .arun()/.run()")
    if inspect.isawaitable(out):
        out = await out
    return out


async def run_agent(agent, prompt: str) -> str:
    return _content(await _call(agent, prompt)) or ""


def parse_object(schema, content):
    """Validate `content` (JSON text, dict or instance) against `schema`."""
    adapter = TypeAdapter(schema)
    try:
        if isinstance(content, (str, bytes)):
            return adapter.validate_json(content)
        return adapter.validate_python(content)
    except ValidationError as e:
        # not chained: classify() would read pydantic's text as INVALID_REQUEST
        raise ObjectParseError(getattr(schema, "__name__", repr(schema)), e.errors()) from None


async def run_agent_object(agent, prompt: str, schema):
    out = await _call(agent, prompt)
    return parse_object(schema, getattr(out, "content", out))


async def stream_agent(agent, prompt: str):
    """Yield text deltas from an agent run."""
    if not hasattr(agent, "arun"):
        yield await run_agent(agent, prompt)
        return
    events = agent.arun(prompt, stream=True)
    if inspect.isawaitable(events):
        events = await events
    async for ev in events:
        text = _content(ev)
        if text:
            yield text


# ---------- embeddings ----------
def supports_embeddings(provider_id: str) -> bool:
    return provider_id in EMBEDDERS


def build_embedder(candidate: Candidate):
    spec = EMBEDDERS.get(candidate.provider_id)
    if spec is None:
        raise ProviderError(
            f"Provider '{candidate.provider_id}' has no embedding models (model '{candidate.name}')"
        )
    return _instantiate(spec, candidate)


class EmbedderFactory(AgentFactory):
    """Same caching as `AgentFactory`, building agno embedders instead of agents."""

    use_handle = False

    def _build(self, candidate: Candidate):
        if self.agent_factory is not None:
            return self.agent_factory(candidate)
        return build_embedder(candidate)


async def _embed_one(embedder, text: str) -> list[float]:
    if hasattr(embedder, "async_get_embedding"):
        return list(await embedder.async_get_embedding(text))
    if hasattr(embedder, "get_embedding"):
        return list(await asyncio.to_thread(embedder.get_embedding, text))
    raise TypeError("Embedder must expose .get_embedding() or .async_get_embedding()")


async def run_embedder(embedder, texts: list[str]) -> list[list[float]]:
    vectors = [await _embed_one(embedder, t) for t in texts]
    if any(not v for v in vectors):
        raise ProviderError("Embedder returned an empty vector")
    return vectors
