"""
Configuration Management for Huddle

Loads configuration from ~/.huddle/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

logger = logging.getLogger("huddle.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".huddle"
CONFIG_PATH = CONFIG_DIR / "config.json"


@dataclass
class EmbeddingConfig:
    """Embedding model configuration"""
    model: str = "text-embedding-3-large"
    dimensions: int = 1536


@dataclass
class LLMConfig:
    """LLM provider configuration. Each provider has a fast and an advanced model."""
    provider: str = "openai"
    openai_api_key: str = ""
    openai_model: str = "gpt-5-mini"
    openai_advanced_model: str = "gpt-5"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-haiku-4-5-20251001"
    anthropic_advanced_model: str = "claude-sonnet-4-20250514"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash"
    google_advanced_model: str = "gemini-2.5-pro"


@dataclass
class StoreConfig:
    """Vector store backend"""
    backend: str = "memory"  # "memory" or "postgres"
    database_url: str = ""


@dataclass
class RetrieverConfig:
    """Retrieval thresholds and limits. Each one is tuned independently."""
    max_variations: int = 3
    qa_search_floor: float = 0.75
    instant_threshold: float = 0.85
    doc_search_floor: float = 0.4
    audience_top_k: int = 2
    shared_top_k: int = 1
    keyword_boost_weight: float = 0.2
    max_chunks: int = 5
    fallback_threshold: float = 0.4
    effort_confidence_threshold: float = 0.6
    effort_chunk_count: int = 3
    followups_enabled: bool = False


@dataclass
class RateLimitConfig:
    """Per-client request cap on the expensive endpoints"""
    limit: int = 10
    window_seconds: float = 60.0


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000


@dataclass
class ContactConfig:
    """Contact details quoted in fallback answers"""
    organization: str = "TSA"
    phone: str = "(512) 555-0199"
    info_email: str = "info@texassportsacademy.com"
    billing_email: str = "billing@texassportsacademy.com"


@dataclass
class HuddleConfig:
    """Main Huddle configuration"""
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    retriever: RetrieverConfig = field(default_factory=RetrieverConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    contact: ContactConfig = field(default_factory=ContactConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_section(cls, data: dict, name: str):
    """Build a section dataclass from its dict, ignoring unknown keys"""
    section = data.get(name, {}) or {}
    defaults = cls()
    kwargs = {}
    for key in defaults.__dataclass_fields__:
        if key in section:
            kwargs[key] = section[key]
    return cls(**kwargs)


def load_config() -> HuddleConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.huddle/config.json)
    3. Default values
    """
    config = HuddleConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.embedding = _parse_section(EmbeddingConfig, data, "embedding")
            config.llm = _parse_section(LLMConfig, data, "llm")
            config.store = _parse_section(StoreConfig, data, "store")
            config.retriever = _parse_section(RetrieverConfig, data, "retriever")
            config.rate_limit = _parse_section(RateLimitConfig, data, "rate_limit")
            config.server = _parse_section(ServerConfig, data, "server")
            config.contact = _parse_section(ContactConfig, data, "contact")
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file: %s", e)

    # Environment variable overrides
    if os.getenv("EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("EMBEDDING_MODEL")

    if os.getenv("HUDDLE_STORE_BACKEND"):
        config.store.backend = os.getenv("HUDDLE_STORE_BACKEND")
    if os.getenv("DATABASE_URL"):
        config.store.database_url = os.getenv("DATABASE_URL")

    if os.getenv("HUDDLE_PORT"):
        config.server.port = int(os.getenv("HUDDLE_PORT"))
    if os.getenv("HUDDLE_RATE_LIMIT"):
        config.rate_limit.limit = int(os.getenv("HUDDLE_RATE_LIMIT"))
    if os.getenv("HUDDLE_INSTANT_THRESHOLD"):
        config.retriever.instant_threshold = float(os.getenv("HUDDLE_INSTANT_THRESHOLD"))
    if os.getenv("HUDDLE_FALLBACK_THRESHOLD"):
        config.retriever.fallback_threshold = float(os.getenv("HUDDLE_FALLBACK_THRESHOLD"))

    # LLM env var overrides (track env-sourced keys)
    _env_llm_map = {
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "OPENAI_ADVANCED_MODEL": "openai_advanced_model",
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "HUDDLE_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    return config


def save_config(config: HuddleConfig) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    llm_section = dict(vars(config.llm))
    for key in ("openai_api_key", "anthropic_api_key", "google_api_key"):
        if key in env_sourced:
            llm_section[key] = ""

    data = {
        "embedding": dict(vars(config.embedding)),
        "llm": llm_section,
        "store": dict(vars(config.store)),
        "retriever": dict(vars(config.retriever)),
        "rate_limit": dict(vars(config.rate_limit)),
        "server": dict(vars(config.server)),
        "contact": dict(vars(config.contact)),
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)
