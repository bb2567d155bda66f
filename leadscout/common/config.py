"""
Configuration Management for LeadScout

Loads configuration from ~/.leadscout/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List

logger = logging.getLogger("leadscout.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".leadscout"
CONFIG_PATH = Path(os.getenv("LEADSCOUT_CONFIG", str(CONFIG_DIR / "config.json")))
LOGS_DIR = CONFIG_DIR / "logs"

DEFAULT_INDUSTRY_TERMS = [
    "manufactur", "textile", "software", "agriculture", "automotive",
    "pharmaceutical", "export", "trading",
]
DEFAULT_REGION_TERMS = [
    "india", "usa", "china", "germany", "japan", "uk", "canada",
]


@dataclass
class LLMConfig:
    """Language-model provider configuration"""
    provider: str = "openai"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash"
    timeout_seconds: float = 30.0


@dataclass
class EmbeddingConfig:
    """Embedding model configuration"""
    mode: str = "openai"  # "openai" or "femb" (fastembed, on-device)
    model: str = "text-embedding-3-small"
    dimension: int = 1536
    openai_api_key: str = ""


@dataclass
class RetryConfig:
    """Backoff for embedding and LLM calls"""
    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 10.0
    jitter_ratio: float = 0.3


@dataclass
class SessionConfig:
    """Conversation session lifetime and input limits"""
    ttl_seconds: float = 3600.0
    sweep_interval_seconds: float = 300.0
    idle_after_seconds: float = 300.0
    active_min_answers: int = 3
    max_question_chars: int = 500
    max_answer_chars: int = 2000


@dataclass
class SearchConfig:
    """Vector search strategy selection and tuning"""
    strategy: str = "optimized"  # "index", "optimized" or "naive"
    use_index: bool = False
    index_name: str = "vector_search_index"
    naive_window_multiplier: int = 10
    naive_window_cap: int = 1000
    working_set_size: int = 1000
    working_set_multiplier: int = 50
    early_termination_enabled: bool = True
    early_termination_threshold: float = 0.8
    early_termination_multiplier: int = 3
    index_candidate_multiplier: int = 10
    index_min_candidates: int = 100
    default_limit: int = 50
    default_min_score: float = 0.1
    slow_query_ms: float = 5000.0
    corpus_path: str = ""


@dataclass
class RankingConfig:
    """Score blending and lead formatting"""
    similarity_weight: float = 0.7
    relevance_weight: float = 0.3
    field_weights: Dict[str, float] = field(default_factory=lambda: {
        "product": 0.4, "industry": 0.3, "region": 0.2, "keywords": 0.1,
    })
    high_similarity: float = 0.5
    moderate_similarity: float = 0.3
    min_combined_score: float = 0.3
    max_leads: int = 15
    llm_top_n: int = 20


@dataclass
class ExtractionConfig:
    """Dictionaries for the heuristic criteria extractor"""
    industry_terms: List[str] = field(default_factory=lambda: list(DEFAULT_INDUSTRY_TERMS))
    region_terms: List[str] = field(default_factory=lambda: list(DEFAULT_REGION_TERMS))
    max_keywords: int = 5


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"


@dataclass
class LeadScoutConfig:
    """Main LeadScout configuration"""
    llm: LLMConfig = field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    ranking: RankingConfig = field(default_factory=RankingConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


_SECTIONS = {
    "llm": LLMConfig,
    "embedding": EmbeddingConfig,
    "retry": RetryConfig,
    "session": SessionConfig,
    "search": SearchConfig,
    "ranking": RankingConfig,
    "extraction": ExtractionConfig,
    "server": ServerConfig,
}

_API_KEY_FIELDS = {"anthropic_api_key", "openai_api_key", "google_api_key"}


def _parse_section(cls, section_data: Dict[str, Any]):
    """Build a section dataclass, ignoring unknown keys."""
    known = cls.__dataclass_fields__
    return cls(**{k: v for k, v in section_data.items() if k in known})


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config() -> LeadScoutConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.leadscout/config.json or $LEADSCOUT_CONFIG)
    3. Default values
    """
    config = LeadScoutConfig()

    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            for name, cls in _SECTIONS.items():
                section = data.get(name)
                if isinstance(section, dict):
                    setattr(config, name, _parse_section(cls, section))
        except (json.JSONDecodeError, IOError, TypeError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    # LLM env var overrides (track env-sourced keys so they are not persisted)
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "GOOGLE_MODEL": "google_model",
        "LEADSCOUT_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    if os.getenv("OPENAI_API_KEY"):
        config.embedding.openai_api_key = os.getenv("OPENAI_API_KEY")
    if os.getenv("EMBEDDING_MODE"):
        config.embedding.mode = os.getenv("EMBEDDING_MODE")
    if os.getenv("EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("EMBEDDING_MODEL")

    if os.getenv("LEADSCOUT_SEARCH_STRATEGY"):
        config.search.strategy = os.getenv("LEADSCOUT_SEARCH_STRATEGY")
    if os.getenv("MONGODB_ATLAS_VECTOR_SEARCH"):
        config.search.use_index = _env_flag(os.getenv("MONGODB_ATLAS_VECTOR_SEARCH"))
    if os.getenv("VECTOR_SEARCH_INDEX_NAME"):
        config.search.index_name = os.getenv("VECTOR_SEARCH_INDEX_NAME")
    if os.getenv("ENABLE_EARLY_TERMINATION"):
        config.search.early_termination_enabled = os.getenv("ENABLE_EARLY_TERMINATION").lower() != "false"
    if os.getenv("SLOW_QUERY_THRESHOLD"):
        config.search.slow_query_ms = float(os.getenv("SLOW_QUERY_THRESHOLD"))
    if os.getenv("LEADSCOUT_CORPUS_PATH"):
        config.search.corpus_path = os.getenv("LEADSCOUT_CORPUS_PATH")

    if os.getenv("LEADSCOUT_SESSION_TTL"):
        config.session.ttl_seconds = float(os.getenv("LEADSCOUT_SESSION_TTL"))
    if os.getenv("LEADSCOUT_PORT"):
        config.server.port = int(os.getenv("LEADSCOUT_PORT"))
    if os.getenv("LOG_LEVEL"):
        config.server.log_level = os.getenv("LOG_LEVEL").upper()

    return config


def save_config(config: LeadScoutConfig) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())
    data = {name: asdict(getattr(config, name)) for name in _SECTIONS}

    for key in _API_KEY_FIELDS & env_sourced:
        data["llm"][key] = ""
    if "openai_api_key" in env_sourced:
        data["embedding"]["openai_api_key"] = ""

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)


def ensure_directories() -> None:
    """Ensure required directories exist"""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)


def check_search_config(config: LeadScoutConfig) -> Dict[str, Any]:
    """Report search settings that are likely to hurt latency or recall."""
    search = config.search
    issues = []
    recommendations = []

    if not search.use_index:
        recommendations.append(
            "Enable an ANN index (MONGODB_ATLAS_VECTOR_SEARCH=true) for large corpora"
        )
    if search.strategy not in ("index", "optimized", "naive"):
        issues.append(f"Unknown search strategy: {search.strategy}")
    if not 0.0 < search.early_termination_threshold <= 1.0:
        issues.append("early_termination_threshold must be in (0, 1]")
    if search.working_set_size < search.default_limit:
        issues.append("working_set_size is smaller than default_limit")
    if not search.early_termination_enabled:
        recommendations.append("Early termination is off; large scans will read the full working set")

    return {
        "config": asdict(search),
        "issues": issues,
        "recommendations": recommendations,
        "is_optimal": not issues and not recommendations,
    }
