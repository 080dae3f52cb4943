"""Configuration models for lexicard."""

from pydantic import BaseModel, Field, HttpUrl, model_validator
from pathlib import Path
from typing import Literal, Optional
import yaml
import os
import stat


# Values shipped in sample configs that must never reach the backend
PLACEHOLDER_API_KEYS = {"", "YOUR_API_KEY_HERE", "YOUR_DEFAULT_API_KEY_HERE", "changeme"}


class LLMConfig(BaseModel):
    """Configuration for the text-generation backend."""

    endpoint: HttpUrl = Field(
        default="https://openrouter.ai/api/v1",
        description="Backend base URL (OpenAI-compatible, e.g. OpenRouter, or Ollama)"
    )

    api_key: str = Field(
        default="",
        description="Bearer credential for the backend"
    )

    model: str = Field(
        default="meta-llama/llama-3.3-8b-instruct:free",
        description="Model identifier"
    )

    provider: Literal["auto", "openai", "ollama"] = Field(
        default="auto",
        description="Wire format; 'auto' checks the endpoint for Ollama"
    )

    timeout: float = Field(
        default=60.0,
        gt=0.0,
        description="Per-attempt read timeout in seconds"
    )

    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=2.0,
        description="Sampling temperature"
    )

    model_config = {"frozen": True}

    def credentials_problem(self) -> Optional[str]:
        """
        Describe why the credentials cannot be used, if they cannot.

        Ollama runs locally without authentication, so only the model is
        required there.

        Returns:
            Human-readable problem description, or None if usable
        """
        if not self.model.strip():
            return "No model identifier configured."
        if self.provider != "ollama" and self.api_key.strip() in PLACEHOLDER_API_KEYS:
            return "API key is missing or still set to a placeholder value."
        return None


class RetryConfig(BaseModel):
    """Exponential backoff policy for a single backend call."""

    max_retries: int = Field(
        default=3,
        ge=0,
        le=10,
        description="Retries after the first attempt"
    )

    base_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Delay before the first retry, in seconds"
    )

    max_delay: float = Field(
        default=10.0,
        ge=0.0,
        description="Upper bound for any single backoff delay, in seconds"
    )

    backoff_multiplier: float = Field(
        default=2.0,
        ge=1.0,
        description="Growth factor applied per attempt"
    )

    model_config = {"frozen": True}

    def delay_for(self, attempt: int) -> float:
        """
        Backoff delay after the given zero-based failed attempt.

        Example:
            >>> RetryConfig().delay_for(2)
            4.0
        """
        return min(self.base_delay * (self.backoff_multiplier ** attempt), self.max_delay)


class BatchConfig(BaseModel):
    """Batching and request-rate shaping between batches."""

    batch_size: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Source items per enrichment request"
    )

    batch_delay: float = Field(
        default=2.0,
        ge=0.0,
        description="Delay between batches in seconds"
    )

    progressive_delay: bool = Field(
        default=True,
        description="Grow the delay with the batch index"
    )

    max_batch_delay: float = Field(
        default=10.0,
        ge=0.0,
        description="Ceiling for the inter-batch delay in seconds"
    )

    model_config = {"frozen": True}

    def delay_after(self, batch_index: int) -> float:
        """Throttling delay to insert after the batch at batch_index."""
        if not self.progressive_delay:
            return min(self.batch_delay, self.max_batch_delay)
        return min(self.batch_delay * (batch_index + 1), self.max_batch_delay)


class LanguageConfig(BaseModel):
    """Languages handled by the enrichment prompts."""

    source_script: Literal["hebrew", "cyrillic", "latin"] = Field(
        default="hebrew",
        description="Script the backend expects source words in"
    )

    source_language: str = Field(
        default="Hebrew",
        description="Name of the language being learned"
    )

    target_language: str = Field(
        default="Russian",
        description="Name of the language translations are produced in"
    )

    model_config = {"frozen": True}


class StorageConfig(BaseModel):
    """Location of the persisted word collection."""

    collection_path: str = Field(
        default="~/.local/share/lexicard/words.json",
        description="JSON file holding the word collection"
    )

    model_config = {"frozen": True}

    @property
    def path(self) -> Path:
        return Path(self.collection_path).expanduser()


class Config(BaseModel):
    """Root configuration for lexicard."""

    llm: LLMConfig = Field(default_factory=LLMConfig, description="Backend settings")
    retry: RetryConfig = Field(default_factory=RetryConfig, description="Per-call retry policy")
    batch: BatchConfig = Field(default_factory=BatchConfig, description="Batching settings")
    languages: LanguageConfig = Field(default_factory=LanguageConfig, description="Language settings")
    storage: StorageConfig = Field(default_factory=StorageConfig, description="Storage settings")

    @model_validator(mode="after")
    def check_delays(self) -> "Config":
        if self.retry.base_delay > self.retry.max_delay:
            raise ValueError("retry.base_delay must not exceed retry.max_delay")
        return self

    @classmethod
    def load(cls, path: Path) -> "Config":
        """
        Load configuration from YAML file.

        Validates file permissions before loading.
        Raises PermissionError if file is group/world readable.

        Args:
            path: Path to config.yaml file

        Returns:
            Validated Config instance

        Raises:
            PermissionError: If file permissions are too open
            FileNotFoundError: If config file doesn't exist
            ValueError: If YAML is invalid or validation fails
        """
        if not path.exists():
            raise FileNotFoundError(
                f"Configuration file not found at {path}\n\n"
                f"Please create the file with the following format:\n\n"
                f"llm:\n"
                f"  endpoint: https://openrouter.ai/api/v1\n"
                f"  api_key: YOUR_API_KEY_HERE\n"
                f"  model: meta-llama/llama-3.3-8b-instruct:free\n\n"
                f"batch:\n"
                f"  batch_size: 5\n"
            )

        # Config holds the API key, so it must be 600
        mode = os.stat(path).st_mode
        if mode & (stat.S_IRWXG | stat.S_IRWXO):
            raise PermissionError(
                f"Config file has overly permissive permissions: {oct(mode)}\n"
                f"Run: chmod 600 {path}"
            )

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    model_config = {"frozen": True}
