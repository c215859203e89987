"""Configuration models for the cross-document engine."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field


class InvokerConfig(BaseModel):
    """Configures admission, spacing and rate-limit retries for external calls."""

    max_in_flight: int = Field(default=2, ge=1)
    min_interval_ms: float = Field(default=100.0, ge=0.0)
    max_attempts: int = Field(default=3, ge=1)
    base_delay_ms: float = Field(default=1000.0, ge=0.0)
    max_delay_ms: float = Field(default=5000.0, ge=0.0)
    jitter_ms: float = Field(default=1000.0, ge=0.0)
    attempt_timeout_s: float | None = Field(default=30.0, gt=0.0)


class SearchConfig(BaseModel):
    """Configures multi-source fan-out."""

    default_limit: int = Field(default=10, ge=1)
    default_min_relevance: float = Field(default=0.3, ge=0.0, le=1.0)
    per_source_padding: int = Field(default=2, ge=0)


class RelationshipConfig(BaseModel):
    """Configures pairwise relationship discovery.

    `max_candidate_sources` bounds the quadratic pair loop. The right value
    depends on the registry and text-access latencies of the deployment.
    """

    max_candidate_sources: int = Field(default=10, ge=2)
    preview_chars: int = Field(default=2000, ge=1)
    similar_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    supplements_threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    stats_min_similarity: float = Field(default=0.2, ge=0.0, le=1.0)
    stats_max_relationships: int = Field(default=100, ge=1)


class ComparisonConfig(BaseModel):
    """Configures model-assisted two-document comparison."""

    max_chunks: int = Field(default=50, ge=1)
    char_budget: int = Field(default=2000, ge=100)
    probe_query: str = "content summary main points"


class SynthesisConfig(BaseModel):
    """Configures unified answers across sources."""

    oversample_factor: int = Field(default=2, ge=1)
    fallback_confidence_cap: float = Field(default=0.8, ge=0.0, le=1.0)
    default_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    max_tokens: int = Field(default=1000, ge=1)


class RouterConfig(BaseModel):
    """Configures provider selection by query complexity."""

    local_model: str = "llama3.2"
    cloud_small_model: str = "mistral-small-latest"
    cloud_large_model: str = "mistral-medium-latest"
    simple_max_words: int = Field(default=10, ge=1)
    medium_max_words: int = Field(default=25, ge=1)
    probe_timeout_s: float = Field(default=5.0, gt=0.0)


class ProviderEndpoint(BaseModel):
    """OpenAI-compatible endpoint for one language-model provider."""

    name: str
    base_url: str
    api_key: str | None = None
    request_timeout_s: float = Field(default=120.0, gt=0.0)


class EngineSettings(BaseModel):
    """Top-level settings; `from_env` mirrors how deployments configure keys."""

    log_level: str = "INFO"
    local: ProviderEndpoint = Field(
        default_factory=lambda: ProviderEndpoint(
            name="ollama", base_url="http://localhost:11434/v1", api_key="ollama"
        )
    )
    cloud: ProviderEndpoint = Field(
        default_factory=lambda: ProviderEndpoint(
            name="mistral", base_url="https://api.mistral.ai/v1"
        )
    )
    invoker: InvokerConfig = Field(default_factory=InvokerConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    relationships: RelationshipConfig = Field(default_factory=RelationshipConfig)
    comparison: ComparisonConfig = Field(default_factory=ComparisonConfig)
    synthesis: SynthesisConfig = Field(default_factory=SynthesisConfig)
    router: RouterConfig = Field(default_factory=RouterConfig)

    @classmethod
    def from_env(cls) -> "EngineSettings":
        router = RouterConfig(
            local_model=os.getenv("CROSSDOC_LOCAL_MODEL", "llama3.2"),
            cloud_small_model=os.getenv("CROSSDOC_CLOUD_SMALL_MODEL", "mistral-small-latest"),
            cloud_large_model=os.getenv("CROSSDOC_CLOUD_LARGE_MODEL", "mistral-medium-latest"),
        )
        local = ProviderEndpoint(
            name="ollama",
            base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434") + "/v1",
            api_key="ollama",
        )
        cloud = ProviderEndpoint(
            name="mistral",
            base_url=os.getenv("MISTRAL_BASE_URL", "https://api.mistral.ai/v1"),
            api_key=os.getenv("MISTRAL_API_KEY"),
        )
        invoker = InvokerConfig(
            max_in_flight=int(os.getenv("CROSSDOC_MAX_IN_FLIGHT", "2")),
            max_attempts=int(os.getenv("CROSSDOC_MAX_ATTEMPTS", "3")),
        )
        relationships = RelationshipConfig(
            max_candidate_sources=int(os.getenv("CROSSDOC_MAX_CANDIDATE_SOURCES", "10")),
        )
        comparison = ComparisonConfig(
            max_chunks=int(os.getenv("CROSSDOC_COMPARE_MAX_CHUNKS", "50")),
        )
        return cls(
            log_level=os.getenv("CROSSDOC_LOG_LEVEL", "INFO"),
            local=local,
            cloud=cloud,
            invoker=invoker,
            relationships=relationships,
            comparison=comparison,
            router=router,
        )
