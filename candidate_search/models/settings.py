"""
Service settings models, populated from the environment (.env supported)
"""
import os
from enum import Enum
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from candidate_search.utils.exceptions import ConfigurationError

load_dotenv()


class Provider(str, Enum):
    """Model-serving backends"""
    OPENAI = "openai"
    OLLAMA = "ollama"


class SearchMode(str, Enum):
    """How the vector store ranks candidates"""
    ATLAS = "atlas"   # $vectorSearch on an Atlas vector index
    EXACT = "exact"   # cosine scan over embedded documents


class EmbeddingSettings(BaseModel):
    """Embedding service configuration"""
    model_config = ConfigDict(protected_namespaces=())

    provider: Provider = Field(default=Provider.OPENAI, description="Embedding backend")
    model_name: str = Field(default="text-embedding-3-small", description="Embedding model name")
    api_key: Optional[str] = Field(default=None, description="OpenAI API key", repr=False)
    base_url: str = Field(default="http://localhost:11434", description="Ollama base URL")
    timeout: float = Field(default=30, gt=0, le=300, description="Request timeout in seconds")


class SynthesisSettings(BaseModel):
    """Justification (text generation) service configuration"""
    model_config = ConfigDict(protected_namespaces=())

    provider: Provider = Field(default=Provider.OPENAI, description="Generation backend")
    model_name: str = Field(default="gpt-4o-mini", description="Chat model name")
    api_key: Optional[str] = Field(default=None, description="OpenAI API key", repr=False)
    base_url: str = Field(default="http://localhost:11434", description="Ollama base URL")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: int = Field(default=150, ge=1, le=4096, description="Maximum tokens per justification")
    timeout: float = Field(default=30, gt=0, le=300, description="Request timeout in seconds")


class RetrievalSettings(BaseModel):
    """Two-pass retrieval policy"""
    primary_threshold: float = Field(default=0.3, ge=-1.0, le=1.0, description="Similarity threshold for the primary pass")
    fallback_threshold: float = Field(default=0.0, ge=-1.0, le=1.0, description="Similarity threshold for the fallback pass")
    limit: int = Field(default=5, ge=1, le=100, description="Maximum candidates per search")

    @model_validator(mode="after")
    def validate_thresholds(self):
        if self.fallback_threshold > self.primary_threshold:
            raise ValueError("fallback_threshold must not exceed primary_threshold")
        return self


class VectorStoreSettings(BaseModel):
    """MongoDB candidate store configuration"""
    mongo_details: str = Field(default="mongodb://localhost:27017", description="MongoDB connection string", repr=False)
    db_name: str = Field(default="candidate_search_db", description="Database name")
    collection: str = Field(default="candidates", description="Candidate collection name")
    search_mode: SearchMode = Field(default=SearchMode.ATLAS, description="Similarity search strategy")
    index_name: str = Field(default="candidate_embeddings", description="Atlas vector search index name")
    server_selection_timeout_ms: int = Field(default=5000, ge=100, description="MongoDB server selection timeout")


class Settings(BaseModel):
    """All service settings"""
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    synthesis: SynthesisSettings = Field(default_factory=SynthesisSettings)
    retrieval: RetrievalSettings = Field(default_factory=RetrievalSettings)
    store: VectorStoreSettings = Field(default_factory=VectorStoreSettings)


# env var -> (section, field)
ENV_KEYS = {
    "EMBEDDING_PROVIDER": ("embedding", "provider"),
    "EMBEDDING_MODEL": ("embedding", "model_name"),
    "EMBEDDING_TIMEOUT": ("embedding", "timeout"),
    "LLM_PROVIDER": ("synthesis", "provider"),
    "LLM_MODEL": ("synthesis", "model_name"),
    "LLM_TEMPERATURE": ("synthesis", "temperature"),
    "LLM_MAX_TOKENS": ("synthesis", "max_tokens"),
    "LLM_TIMEOUT": ("synthesis", "timeout"),
    "MATCH_THRESHOLD": ("retrieval", "primary_threshold"),
    "FALLBACK_THRESHOLD": ("retrieval", "fallback_threshold"),
    "MATCH_COUNT": ("retrieval", "limit"),
    "MONGO_DETAILS": ("store", "mongo_details"),
    "DB_NAME": ("store", "db_name"),
    "CANDIDATES_COLLECTION": ("store", "collection"),
    "VECTOR_SEARCH_MODE": ("store", "search_mode"),
    "VECTOR_INDEX_NAME": ("store", "index_name"),
}


def load_settings(environ=None) -> Settings:
    """Build Settings from environment variables.

    Unset variables keep the model defaults. OPENAI_API_KEY and
    OLLAMA_BASE_URL are shared by the embedding and synthesis sections.
    """
    environ = os.environ if environ is None else environ
    sections = {"embedding": {}, "synthesis": {}, "retrieval": {}, "store": {}}

    for env_key, (section, field) in ENV_KEYS.items():
        value = environ.get(env_key)
        if value not in (None, ""):
            sections[section][field] = value

    for section in ("embedding", "synthesis"):
        if environ.get("OPENAI_API_KEY"):
            sections[section]["api_key"] = environ["OPENAI_API_KEY"]
        if environ.get("OLLAMA_BASE_URL"):
            sections[section]["base_url"] = environ["OLLAMA_BASE_URL"]

    try:
        return Settings(**sections)
    except ValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(part) for part in first.get("loc", ()))
        config_key = next(
            (k for k, (s, f) in ENV_KEYS.items() if loc == f"{s}.{f}"),
            loc or None,
        )
        raise ConfigurationError(
            f"Invalid configuration for {config_key}: {first.get('msg')}",
            config_key=config_key,
            cause=e,
        ) from e
