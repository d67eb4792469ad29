"""
Configuration management for Meow.

Implements multi-level configuration loading with precedence:
1. Environment variables (highest priority)
2. Project config (./.meow/config.yaml)
3. User config (~/.meow/config.yaml)
4. System config (/etc/meow/config.yaml)
"""

from pathlib import Path
from typing import Literal, Optional, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict, YamlConfigSettingsSource, PydanticBaseSettingsSource

from meow.memory.models import MemoryConfig


class Config(BaseSettings):
    """Complete configuration schema for Meow with flat structure."""

    model_config = SettingsConfigDict(
        # Load from .env files in order of precedence (lowest to highest)
        env_file=[
            ".env.defaults",
            ".env",
            str(Path.home() / ".meow" / ".env"),
        ],
        # Load from YAML files in order of precedence (lowest to highest)
        yaml_file=[
            "/etc/meow/config.yaml",
            str(Path.home() / ".meow" / "config.yaml"),
            ".meow/config.yaml",
        ],
        env_prefix="MEOW_",
        env_nested_delimiter="__",
        case_sensitive=False,
        # Provider keys such as OPENAI_API_KEY live in the same .env files
        extra="ignore",
        env_file_encoding="utf-8",
    )

    # =================================================================
    # Storage
    # =================================================================
    data_dir: str = Field(default="./data", description="Root directory for memory, soul and skills")
    user_id: str = Field(default="default", description="Memory identity (one store per user)")

    # =================================================================
    # Model selection
    # =================================================================
    model_name: Optional[str] = Field(default=None, description="Explicit model id or label; wins over the preset")
    model_preset: Literal["fast", "smart", "pro"] = Field(
        default="smart", description="Quality tier used when no explicit model is configured"
    )
    assistant_name: str = Field(default="Meow", description="Name used in prompts and daily log summaries")

    # =================================================================
    # Agent loop
    # =================================================================
    context_window: int = Field(default=128_000, ge=1024, description="Model context window in tokens")
    flush_threshold: float = Field(
        default=0.75, gt=0.0, le=1.0, description="Fraction of the context window that triggers a memory flush"
    )
    max_steps: int = Field(default=10, ge=1, description="Maximum reasoning/tool steps per run")

    # =================================================================
    # Memory (flat, see get_memory_config)
    # =================================================================
    memory_max_bytes: int = Field(default=4096, ge=0, description="Byte budget for MEMORY.md in the prompt")
    memory_daily_tail_count: int = Field(default=10, ge=0, description="Daily log entries loaded in the prompt")
    memory_vector_weight: float = Field(default=0.7, ge=0.0, description="Hybrid search vector weight")
    memory_keyword_weight: float = Field(default=0.3, ge=0.0, description="Hybrid search keyword weight")
    memory_min_score: float = Field(default=0.35, ge=0.0, description="Minimum merged search score")
    memory_max_results: int = Field(default=10, ge=1, description="Maximum search results")
    memory_chunk_size: int = Field(default=1200, ge=80, description="Chunk size in characters")
    memory_chunk_overlap: int = Field(default=200, ge=0, description="Chunk overlap in characters")
    memory_embedding_provider: Literal["openai", "none"] = Field(
        default="none", description="Embedding provider for vector search"
    )
    memory_embedding_model: str = Field(default="text-embedding-3-small", description="Embedding model name")
    memory_embedding_concurrency: int = Field(
        default=1, ge=1, description="Concurrent embedding calls per reindex"
    )
    memory_log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="WARNING", description="Level for the memory layer's structured logs"
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings sources to include YAML support."""
        yaml_settings = YamlConfigSettingsSource(settings_cls)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            yaml_settings,
            file_secret_settings,
        )

    def get_memory_config(self) -> MemoryConfig:
        """Get the immutable memory tuning parameters."""
        return MemoryConfig(
            memory_max_bytes=self.memory_max_bytes,
            daily_tail_count=self.memory_daily_tail_count,
            vector_weight=self.memory_vector_weight,
            keyword_weight=self.memory_keyword_weight,
            min_score=self.memory_min_score,
            max_results=self.memory_max_results,
            chunk_size=self.memory_chunk_size,
            chunk_overlap=self.memory_chunk_overlap,
            embedding_provider=self.memory_embedding_provider,
            embedding_model=self.memory_embedding_model,
            embedding_concurrency=self.memory_embedding_concurrency,
        )


def load_config() -> Config:
    """
    Load configuration from all sources with proper precedence.

    Precedence (highest to lowest):
    1. Environment variables (MEOW_*)
    2. Project config (./.meow/config.yaml)
    3. User config (~/.meow/config.yaml)
    4. System config (/etc/meow/config.yaml)
    5. User .env (~/.meow/.env)
    6. Project .env (./.env)
    7. Project defaults (./.env.defaults)
    8. Default values

    Examples:
        >>> config = load_config()
        >>> config.model_preset
        'smart'

        # export MEOW_MEMORY_EMBEDDING_PROVIDER=openai
        >>> load_config().get_memory_config().embedding_provider
        'openai'
    """
    return Config()
