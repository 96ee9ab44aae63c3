"""Configuration schema for cynicalclaw."""

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ProviderConfig(BaseModel):
    """Credentials and endpoint for a single LLM provider."""

    api_key: str = ""
    api_base: Optional[str] = None


class ProvidersConfig(BaseModel):
    """Configuration for all LLM providers."""

    groq: ProviderConfig = Field(default_factory=ProviderConfig)
    openai: ProviderConfig = Field(default_factory=ProviderConfig)
    anthropic: ProviderConfig = Field(default_factory=ProviderConfig)
    ollama: ProviderConfig = Field(
        default_factory=lambda: ProviderConfig(api_base="http://localhost:11434")
    )

    request_timeout: float = 60.0
    stream_timeout: float = 120.0


class AgentConfig(BaseModel):
    """Agent loop and tool gate settings."""

    max_iterations: int = 5
    confidence_threshold: float = 0.6


class MemoryConfig(BaseModel):
    """Memory store, compression and embedding settings."""

    db_path: Path = Field(default_factory=lambda: Path.home() / ".cynicalclaw" / "cynicalclaw.db")

    compression_threshold: int = 100
    transcript_char_budget: int = 4000

    # Periodic sweep
    periodic_enabled: bool = True
    periodic_interval_hours: float = 6.0
    periodic_older_than_days: int = 7
    periodic_min_messages: int = 20

    # Embeddings (Ollama-compatible endpoint)
    embedding_dimension: int = 384
    embedding_model: str = "nomic-embed-text"
    embedding_url: str = "http://localhost:11434"
    embedding_timeout: float = 10.0


class Config(BaseSettings):
    """Root configuration, read from CYNICALCLAW_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="CYNICALCLAW_",
        env_nested_delimiter="__",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
