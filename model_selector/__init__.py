from .config import (
    Config,
    ModelConfig,
    candidates_from_config,
    enabled_candidates,
    load_config,
)
from .core import (
    AttemptInfo,
    Candidate,
    Execution,
    ExecutionResult,
    MatchResult,
    ParsedQuery,
    QueryCondition,
    RankedCandidate,
    StreamChunk,
    TraceEvent,
)
from .errors import (
    DEFAULT_RULES,
    AllCandidatesFailedError,
    AttemptTimeoutError,
    ClassificationRule,
    ClassifiedError,
    ConfigError,
    EmptyQuery,
    ErrorCategory,
    InvalidCondition,
    ModelSelectorError,
    NoCandidates,
    NoCandidatesAvailable,
    ObjectParseError,
    ProviderError,
    QueryError,
    classify,
)
from .generate import (
    embed,
    embed_many,
    generate,
    generate_object,
    select_embedding_models,
    select_model,
    select_models,
    stream,
)
from .ops_fallback import (
    FallbackExecutor,
    FallbackStream,
    Hooks,
    execute,
    execute_streaming,
)
from .ops_rank import Ranking, match_attributes, normalize_score, rank, rank_parsed
from .providers import (
    AgentFactory,
    EmbedderFactory,
    is_provider_supported,
    supported_providers,
    supports_embeddings,
)
from .query import expand_aliases, parse_condition, parse_query

__version__ = "0.1.0"
