"""
Configuration for BoltGraph.

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


class AnalyzerConfig(BaseModel):
    """Analyzer capability configuration."""

    provider: str = "ollama"  # ollama, openai, hashing
    model: str = "nomic-embed-text"
    base_url: str = "http://localhost:11434"
    api_key: str | None = None
    timeout: float = 30.0
    max_retries: int = 3
    backoff_base: float = 0.5
    backoff_max: float = 8.0
    max_concurrency: int = 8
    # Content type -> provider overrides, e.g. {"technical": "hashing"}
    routes: dict[str, str] = Field(default_factory=dict)


class ViewConfig(BaseModel):
    """View generator configuration."""

    dimension: int = 384


class CombinerConfig(BaseModel):
    """Combination policy configuration."""

    strategy: str = "weighted_average"  # weighted_average, concatenation, adaptive
    structural_weight: float = 0.3
    semantic_weight: float = 0.5
    pragmatic_weight: float = 0.2
    application_type: str = "search"
    # Tunable heuristic deltas for the adaptive strategy, ordered
    # (structural, semantic, pragmatic). Renormalised after applying.
    content_type_deltas: dict[str, tuple[float, float, float]] = Field(
        default_factory=lambda: {
            "narrative": (-0.05, 0.05, 0.0),
            "technical": (0.1, 0.0, -0.1),
            "reference": (0.15, -0.05, -0.1),
            "list": (0.2, -0.1, -0.1),
            "conversational": (-0.1, 0.0, 0.1),
        }
    )
    application_type_deltas: dict[str, tuple[float, float, float]] = Field(
        default_factory=lambda: {
            "search": (0.0, 0.1, -0.1),
            "summarization": (-0.05, 0.1, -0.05),
            "classification": (0.05, 0.0, -0.05),
            "navigation": (0.15, -0.1, -0.05),
        }
    )


class HierarchyConfig(BaseModel):
    """Hierarchy construction configuration."""

    sibling_threshold: float = 0.6
    min_concept_mentions: int = 2
    max_concepts: int = 20
    min_term_length: int = 3


class ChangeDetectionConfig(BaseModel):
    """Change detection configuration."""

    semantic_check: bool = True
    material_threshold: float = 0.1
    match_ratio: float = 0.5


class PropagationConfig(BaseModel):
    """Impact propagation configuration."""

    cascade_threshold: float = 0.15
    max_hops: int = 5


class UpdateConfig(BaseModel):
    """Update coordination configuration."""

    on_conflict: str = "queue"  # queue, fail


class ValidationConfig(BaseModel):
    """Revision validation configuration."""

    unit_norm_epsilon: float = 1e-6
    regression_floor: float = 0.95


class StorageConfig(BaseModel):
    """Storage backend configuration."""

    backend: str = "memory"  # memory, sqlite
    sqlite_path: str = "data/boltgraph.db"
    compression_level: int = 6


class CacheConfig(BaseModel):
    """Hot-node cache configuration."""

    max_nodes: int = 10000


class IndexConfig(BaseModel):
    """Search index configuration."""

    backend: str = "memory"  # memory, qdrant
    qdrant_url: str = "http://localhost:6333"
    collection_name: str = "boltgraph_nodes"
    use_grpc: bool = False
    timeout: int = 30


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    log_to_file: bool = True
    log_dir: str = "logs"
    file_rotation: str = "10 MB"
    file_retention: str = "7 days"
    compression: str | None = "zip"
    serialize: bool = True


class Config(BaseModel):
    """Main configuration."""

    analyzer: AnalyzerConfig = Field(default_factory=AnalyzerConfig)
    views: ViewConfig = Field(default_factory=ViewConfig)
    combiner: CombinerConfig = Field(default_factory=CombinerConfig)
    hierarchy: HierarchyConfig = Field(default_factory=HierarchyConfig)
    change_detection: ChangeDetectionConfig = Field(default_factory=ChangeDetectionConfig)
    propagation: PropagationConfig = Field(default_factory=PropagationConfig)
    update: UpdateConfig = Field(default_factory=UpdateConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def env_overrides(cls, env_file: str | Path | None = None) -> dict[str, dict[str, Any]]:
        """
        Collect the settings that BOLT_* environment variables actually set.

        A .env file is loaded first when given or present in the working
        directory. Unset and empty variables are skipped, so the result
        only holds explicit overrides, nested by config section.
        """
        if env_file:
            load_dotenv(env_file)
        elif Path(".env").exists():
            load_dotenv()

        defaults = cls()
        overrides: dict[str, dict[str, Any]] = {}
        for key, (section, field) in ENV_VARS.items():
            value = os.getenv(key)
            if not value:
                continue
            current = getattr(getattr(defaults, section), field)
            overrides.setdefault(section, {})[field] = _coerce(value, current)
        return overrides

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> "Config":
        """Load configuration from BOLT_* environment variables over defaults."""
        return cls(**cls.env_overrides(env_file))

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> "Config":
        """
        Load configuration from YAML file.

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            yaml.YAMLError: If YAML is invalid
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")
        return cls(**_read_yaml(yaml_path))

    @classmethod
    def from_env_or_yaml(
        cls, yaml_path: str | Path | None = None, env_file: str | Path | None = None
    ) -> "Config":
        """
        Load configuration with priority: env vars > YAML > defaults.

        Overrides apply per field, so a single BOLT_* variable leaves the
        rest of its YAML section in place. A missing YAML file is ignored.
        """
        data: dict[str, Any] = {}
        if yaml_path and Path(yaml_path).exists():
            data = _read_yaml(Path(yaml_path))

        for section, values in cls.env_overrides(env_file).items():
            data[section] = {**(data.get(section) or {}), **values}
        return cls(**data)


# Environment variable -> (config section, field)
ENV_VARS: dict[str, tuple[str, str]] = {
    "BOLT_ANALYZER_PROVIDER": ("analyzer", "provider"),
    "BOLT_ANALYZER_MODEL": ("analyzer", "model"),
    "BOLT_ANALYZER_BASE_URL": ("analyzer", "base_url"),
    "BOLT_ANALYZER_API_KEY": ("analyzer", "api_key"),
    "BOLT_ANALYZER_TIMEOUT": ("analyzer", "timeout"),
    "BOLT_ANALYZER_MAX_RETRIES": ("analyzer", "max_retries"),
    "BOLT_ANALYZER_BACKOFF_BASE": ("analyzer", "backoff_base"),
    "BOLT_ANALYZER_BACKOFF_MAX": ("analyzer", "backoff_max"),
    "BOLT_ANALYZER_MAX_CONCURRENCY": ("analyzer", "max_concurrency"),
    "BOLT_VIEW_DIMENSION": ("views", "dimension"),
    "BOLT_COMBINER_STRATEGY": ("combiner", "strategy"),
    "BOLT_COMBINER_STRUCTURAL_WEIGHT": ("combiner", "structural_weight"),
    "BOLT_COMBINER_SEMANTIC_WEIGHT": ("combiner", "semantic_weight"),
    "BOLT_COMBINER_PRAGMATIC_WEIGHT": ("combiner", "pragmatic_weight"),
    "BOLT_COMBINER_APPLICATION_TYPE": ("combiner", "application_type"),
    "BOLT_SIBLING_THRESHOLD": ("hierarchy", "sibling_threshold"),
    "BOLT_MIN_CONCEPT_MENTIONS": ("hierarchy", "min_concept_mentions"),
    "BOLT_MAX_CONCEPTS": ("hierarchy", "max_concepts"),
    "BOLT_MIN_TERM_LENGTH": ("hierarchy", "min_term_length"),
    "BOLT_SEMANTIC_CHECK": ("change_detection", "semantic_check"),
    "BOLT_MATERIAL_THRESHOLD": ("change_detection", "material_threshold"),
    "BOLT_MATCH_RATIO": ("change_detection", "match_ratio"),
    "BOLT_CASCADE_THRESHOLD": ("propagation", "cascade_threshold"),
    "BOLT_MAX_HOPS": ("propagation", "max_hops"),
    "BOLT_UPDATE_ON_CONFLICT": ("update", "on_conflict"),
    "BOLT_UNIT_NORM_EPSILON": ("validation", "unit_norm_epsilon"),
    "BOLT_REGRESSION_FLOOR": ("validation", "regression_floor"),
    "BOLT_STORAGE_BACKEND": ("storage", "backend"),
    "BOLT_SQLITE_PATH": ("storage", "sqlite_path"),
    "BOLT_COMPRESSION_LEVEL": ("storage", "compression_level"),
    "BOLT_CACHE_MAX_NODES": ("cache", "max_nodes"),
    "BOLT_INDEX_BACKEND": ("index", "backend"),
    "BOLT_QDRANT_URL": ("index", "qdrant_url"),
    "BOLT_QDRANT_COLLECTION": ("index", "collection_name"),
    "BOLT_QDRANT_USE_GRPC": ("index", "use_grpc"),
    "BOLT_QDRANT_TIMEOUT": ("index", "timeout"),
    "BOLT_LOG_LEVEL": ("logging", "level"),
    "BOLT_LOG_TO_FILE": ("logging", "log_to_file"),
    "BOLT_LOG_DIR": ("logging", "log_dir"),
    "BOLT_LOG_FILE_ROTATION": ("logging", "file_rotation"),
    "BOLT_LOG_FILE_RETENTION": ("logging", "file_retention"),
    "BOLT_LOG_COMPRESSION": ("logging", "compression"),
    "BOLT_LOG_SERIALIZE": ("logging", "serialize"),
}


def _coerce(value: str, current: Any) -> Any:
    """Convert an environment string to the type of the field's default."""
    # bool before int: bool is an int subclass
    if isinstance(current, bool):
        return value.lower() in ("true", "1", "yes")
    if isinstance(current, int):
        return int(value)
    if isinstance(current, float):
        return float(value)
    return value


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}
