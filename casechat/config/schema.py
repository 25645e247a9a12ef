"""Configuration schema using Pydantic."""

from pathlib import Path
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings


class OptimizerConfig(BaseModel):
    """History compaction settings."""
    enabled: bool = True
    preserved_window_size: int = Field(default=2, ge=1)  # Recent user turns kept verbatim
    max_prompt_chars: int = 50_000
    max_summary_chars: int = 300


class SummarizerConfig(BaseModel):
    """Model used to write tool-call summaries."""
    model: str = "openai/gpt-4o-mini"
    temperature: float = 0.3
    max_tokens: int = 300


class CacheConfig(BaseModel):
    """Summary cache settings."""
    capacity: int = Field(default=1000, gt=0)
    file: str | None = None  # Optional JSON snapshot used by the CLI


class MiddlewareConfig(BaseModel):
    """Model-call middleware settings."""
    enable_message_optimization: bool = True
    optimization_threshold: int = 10  # Minimum messages before optimizing
    enable_tool_scanning: bool = True
    timeout_seconds: float = 30.0


class StorageConfig(BaseModel):
    """Where chats and tool-call records live."""
    data_dir: str = "~/.casechat"
    record_tool_calls: bool = True


class ProviderConfig(BaseModel):
    """LLM provider configuration."""
    api_key: str = ""
    api_base: str | None = None


class ProvidersConfig(BaseModel):
    """Configuration for LLM providers."""
    anthropic: ProviderConfig = Field(default_factory=ProviderConfig)
    openai: ProviderConfig = Field(default_factory=ProviderConfig)
    gemini: ProviderConfig = Field(default_factory=ProviderConfig)


class Config(BaseSettings):
    """Root configuration for casechat."""
    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)
    summarizer: SummarizerConfig = Field(default_factory=SummarizerConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    middleware: MiddlewareConfig = Field(default_factory=MiddlewareConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)

    @property
    def data_path(self) -> Path:
        """Get expanded data directory."""
        return Path(self.storage.data_dir).expanduser()

    @property
    def chats_path(self) -> Path:
        return self.data_path / "chats"

    @property
    def tool_calls_path(self) -> Path:
        return self.data_path / "tool_calls"

    def get_api_key(self) -> str | None:
        """Get API key in priority order: Anthropic > OpenAI > Gemini."""
        return (
            self.providers.anthropic.api_key or
            self.providers.openai.api_key or
            self.providers.gemini.api_key or
            None
        )

    def get_api_base(self) -> str | None:
        """Get API base URL if a provider has a custom base configured."""
        for provider in [self.providers.anthropic, self.providers.openai, self.providers.gemini]:
            if provider.api_base:
                return provider.api_base
        return None

    class Config:
        env_prefix = "CASECHAT_"
        env_nested_delimiter = "__"
