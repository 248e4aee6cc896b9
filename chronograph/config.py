"""
Configuration for ChronoGraph.

Supports loading from:
1. Environment variables (highest priority)
2. YAML config file
3. Default values (fallback)
"""

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from chronograph.models.search import SearchConfig
from chronograph.utils.retry import DEFAULT_PROVIDER_TIMEOUT

OLLAMA_DEFAULT_HOST = "http://localhost:11434"


class LLMConfig(BaseModel):
    """LLM provider configuration."""

    provider: str = "ollama"  # ollama, openai
    model: str = "llama3.1:8b"
    base_url: str | None = None  # defaults to OLLAMA_DEFAULT_HOST for ollama
    api_key: str | None = None
    temperature: float = 0.0
    max_tokens: int = 2000
    timeout: float = 120.0


class EmbedderConfig(BaseModel):
    """Embedder configuration."""

    provider: str = "ollama"  # ollama, openai
    model: str = "nomic-embed-text"
    base_url: str | None = None  # defaults to OLLAMA_DEFAULT_HOST for ollama
    api_key: str | None = None
    timeout: float = 120.0
    # Optional: embedding dimension (fallback to auto-detect)
    dimension: int | None = None
    # Content-hash cache in front of the provider
    cache_enabled: bool = True
    cache_size: int = 10_000


class RerankerConfig(BaseModel):
    """Cross-encoder reranker configuration."""

    provider: str = "none"  # none, openai
    model: str = "gpt-4o-mini"
    base_url: str | None = None
    api_key: str | None = None
    timeout: float = 60.0


class IngestionConfig(BaseModel):
    """Episode ingestion configuration."""

    episode_window: int = Field(default=3, ge=0, description="Prior episodes passed as context")
    max_resolution_attempts: int = Field(default=2, ge=1)
    lock_timeout: float = Field(default=30.0, gt=0)
    provider_timeout: float = Field(default=DEFAULT_PROVIDER_TIMEOUT, gt=0)
    invalidation_candidate_limit: int = Field(default=20, ge=1)
    store_raw_episode_content: bool = True


class DedupConfig(BaseModel):
    """Entity and fact deduplication configuration."""

    top_k: int = Field(default=10, ge=1)
    similarity_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    use_identity_check: bool = True


class RetryConfig(BaseModel):
    """Backoff policy for transient provider errors."""

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=0.5, ge=0.0)
    max_delay: float = Field(default=8.0, ge=0.0)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    log_to_file: bool = False
    log_dir: str = "logs"
    file_rotation: str = "10 MB"
    file_retention: str = "7 days"
    compression: str = "zip"
    serialize: bool = True


class SQLiteConfig(BaseModel):
    """Embedded SQLite graph store configuration."""

    db_path: str = "data/chronograph.db"
    busy_timeout: float = 30.0


class Neo4jConfig(BaseModel):
    """Neo4j graph database configuration."""

    uri: str = "bolt://localhost:7687"
    username: str = "neo4j"
    password: str = "password"
    database: str = "neo4j"


class Config(BaseModel):
    """Main configuration."""

    llm: LLMConfig = Field(default_factory=LLMConfig)
    embedder: EmbedderConfig = Field(default_factory=EmbedderConfig)
    reranker: RerankerConfig = Field(default_factory=RerankerConfig)
    ingestion: IngestionConfig = Field(default_factory=IngestionConfig)
    dedup: DedupConfig = Field(default_factory=DedupConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    sqlite: SQLiteConfig = Field(default_factory=SQLiteConfig)
    neo4j: Neo4jConfig = Field(default_factory=Neo4jConfig)

    # Graph store backend
    graph_backend: str = "sqlite"

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "Config":
        """
        Load configuration from environment variables.

        Priority: .env file -> system environment variables -> defaults

        Args:
            env_file: Optional path to .env file (default: .env in working directory)

        Returns:
            Config instance

        Environment variables:
            CHRONO_LLM_PROVIDER: LLM provider (ollama, openai)
            CHRONO_LLM_MODEL: LLM model name
            CHRONO_LLM_BASE_URL: LLM base URL
            CHRONO_LLM_API_KEY: LLM API key (for OpenAI)
            CHRONO_EMBEDDER_PROVIDER: Embedder provider
            CHRONO_EMBEDDER_MODEL: Embedder model name
            CHRONO_EMBEDDER_API_KEY: Embedder API key (for OpenAI)
            CHRONO_EMBEDDER_DIMENSION: Embedding dimension (optional)
            CHRONO_RERANKER_PROVIDER: Reranker provider (none, openai)
            CHRONO_GRAPH_BACKEND: Graph backend (sqlite, neo4j)
            CHRONO_SQLITE_PATH: SQLite database file
            CHRONO_NEO4J_URI: Neo4j URI
            CHRONO_NEO4J_USERNAME: Neo4j username
            CHRONO_NEO4J_PASSWORD: Neo4j password
            CHRONO_EPISODE_WINDOW: Prior episodes used as extraction context
            CHRONO_DEDUP_THRESHOLD: Entity similarity threshold
        """
        if env_file:
            load_dotenv(env_file)
        elif Path(".env").exists():
            load_dotenv()

        def get_env(key: str, default: Any = None) -> Any:
            """Get environment variable with type conversion."""
            value = os.getenv(key)
            if value is None or value == "":
                return default
            if isinstance(default, bool):
                return str(value).lower() in ("true", "1", "yes")
            if isinstance(default, int):
                return int(value)
            if isinstance(default, float):
                return float(value)
            return value

        dimension = get_env("CHRONO_EMBEDDER_DIMENSION")

        return cls(
            llm=LLMConfig(
                provider=get_env("CHRONO_LLM_PROVIDER", "ollama"),
                model=get_env("CHRONO_LLM_MODEL", "llama3.1:8b"),
                base_url=get_env("CHRONO_LLM_BASE_URL"),
                api_key=get_env("CHRONO_LLM_API_KEY"),
                temperature=get_env("CHRONO_LLM_TEMPERATURE", 0.0),
                max_tokens=get_env("CHRONO_LLM_MAX_TOKENS", 2000),
                timeout=get_env("CHRONO_LLM_TIMEOUT", 120.0),
            ),
            embedder=EmbedderConfig(
                provider=get_env("CHRONO_EMBEDDER_PROVIDER", "ollama"),
                model=get_env("CHRONO_EMBEDDER_MODEL", "nomic-embed-text"),
                base_url=get_env("CHRONO_EMBEDDER_BASE_URL"),
                api_key=get_env("CHRONO_EMBEDDER_API_KEY"),
                timeout=get_env("CHRONO_EMBEDDER_TIMEOUT", 120.0),
                dimension=int(dimension) if dimension else None,
                cache_enabled=get_env("CHRONO_EMBEDDER_CACHE", True),
            ),
            reranker=RerankerConfig(
                provider=get_env("CHRONO_RERANKER_PROVIDER", "none"),
                model=get_env("CHRONO_RERANKER_MODEL", "gpt-4o-mini"),
                base_url=get_env("CHRONO_RERANKER_BASE_URL"),
                api_key=get_env("CHRONO_RERANKER_API_KEY"),
            ),
            ingestion=IngestionConfig(
                episode_window=get_env("CHRONO_EPISODE_WINDOW", 3),
                lock_timeout=get_env("CHRONO_LOCK_TIMEOUT", 30.0),
                provider_timeout=get_env("CHRONO_PROVIDER_TIMEOUT", DEFAULT_PROVIDER_TIMEOUT),
            ),
            dedup=DedupConfig(
                similarity_threshold=get_env("CHRONO_DEDUP_THRESHOLD", 0.85),
            ),
            graph_backend=get_env("CHRONO_GRAPH_BACKEND", "sqlite"),
            sqlite=SQLiteConfig(
                db_path=get_env("CHRONO_SQLITE_PATH", "data/chronograph.db"),
            ),
            neo4j=Neo4jConfig(
                uri=get_env("CHRONO_NEO4J_URI", "bolt://localhost:7687"),
                username=get_env("CHRONO_NEO4J_USERNAME", "neo4j"),
                password=get_env("CHRONO_NEO4J_PASSWORD", "password"),
                database=get_env("CHRONO_NEO4J_DATABASE", "neo4j"),
            ),
            logging=LoggingConfig(
                level=get_env("CHRONO_LOG_LEVEL", "INFO"),
                log_to_file=get_env("CHRONO_LOG_TO_FILE", False),
                log_dir=get_env("CHRONO_LOG_DIR", "logs"),
            ),
        )

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> "Config":
        """
        Load configuration from YAML file.

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            Config instance

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            yaml.YAMLError: If YAML is invalid
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(yaml_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def from_env_or_yaml(
        cls, yaml_path: str | Path | None = None, env_file: str | Path | None = None
    ) -> "Config":
        """
        Load configuration with priority: env vars > YAML > defaults.

        Args:
            yaml_path: Optional path to YAML config
            env_file: Optional path to .env file

        Returns:
            Config instance
        """
        if yaml_path and Path(yaml_path).exists():
            with open(yaml_path) as f:
                config_dict = yaml.safe_load(f) or {}
        else:
            config_dict = {}

        env_config = cls.from_env(env_file=env_file)

        final_dict = {**config_dict}

        # Env sections that differ from defaults win over YAML
        default = cls()
        for section in ("llm", "embedder", "reranker", "ingestion", "dedup", "sqlite", "neo4j", "logging"):
            env_section = getattr(env_config, section)
            if env_section != getattr(default, section):
                final_dict[section] = env_section.model_dump()

        if env_config.graph_backend != default.graph_backend:
            final_dict["graph_backend"] = env_config.graph_backend

        return cls(**final_dict) if final_dict else env_config


# Default config instance
default_config = Config()
