"""Configuration management for Inkgate.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the INKGATE_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (INKGATE_* prefix)
2. .env file in the project root
3. Default values defined in InkgateConfig

Example .env file:
    INKGATE_PROVIDER=openai
    INKGATE_OPENAI_API_KEY=sk-...
    INKGATE_MAX_ATTEMPTS=12
    INKGATE_WALL_CLOCK_BUDGET_S=120

Retry Policy
------------
The retry knobs (attempt ceiling, wall-clock budget, backoff bounds, prompt
escalation thresholds) are never read from module state by the orchestrator.
Instead, :meth:`InkgateConfig.retry_policy` freezes them into a
:class:`RetryPolicy` value which is handed to the orchestrator and the prompt
composer at construction time.

Usage Example
-------------
    from inkgate.core.config import InkgateConfig

    cfg = InkgateConfig()
    policy = cfg.retry_policy()
    print(policy.max_attempts)

See Also
--------
- RetryPolicy: Immutable retry/escalation settings
- inkgate.core.orchestrator: Consumer of RetryPolicy
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RetryPolicy(BaseModel):
    """Immutable retry and escalation settings for one orchestrator.

    Attributes:
        max_attempts: Upper bound on attempts per session.
        wall_clock_budget_s: Session time ceiling, checked before each attempt.
        backoff_base_s: Delay after a failure on attempt 1; doubles per ordinal.
        backoff_max_s: Cap applied to every computed backoff delay.
        max_prompt_length: Composed prompts longer than this are truncated.
        reinforcement_tier_cap: Highest generic reinforcement tier reachable.
        strict_mode_ordinal: First ordinal that carries the strict-mode addendum.
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=12, ge=1, le=50)
    wall_clock_budget_s: float = Field(default=120.0, gt=0)
    backoff_base_s: float = Field(default=1.0, ge=0)
    backoff_max_s: float = Field(default=8.0, ge=0)
    max_prompt_length: int = Field(default=4000, ge=200)
    reinforcement_tier_cap: int = Field(default=3, ge=1, le=3)
    strict_mode_ordinal: int = Field(default=5, ge=2)

    @model_validator(mode="after")
    def _check_backoff_bounds(self) -> "RetryPolicy":
        if self.backoff_max_s < self.backoff_base_s:
            raise ValueError("backoff_max_s must be >= backoff_base_s")
        return self

    def backoff_delay(self, ordinal: int) -> float:
        """Return the backoff delay after a failed attempt.

        The delay doubles with each ordinal and is capped at
        ``backoff_max_s``. It is computed fresh for every failure.

        Args:
            ordinal: 1-based ordinal of the attempt that just failed.

        Returns:
            Delay in seconds.
        """
        delay = self.backoff_base_s * (2 ** max(ordinal - 1, 0))
        return min(delay, self.backoff_max_s)


class InkgateConfig(BaseSettings):
    """Main configuration for Inkgate.

    This class uses Pydantic Settings to manage all application configuration.
    Values are loaded from environment variables with the INKGATE_ prefix,
    with fallback to defaults defined here.

    Attributes
    ----------
    Retry Settings:
        max_attempts : int
            Maximum attempts per page session (1-50)
        wall_clock_budget_s : float
            Maximum real time a session may spend before starting a new attempt
        backoff_base_s : float
            First backoff delay; doubles on each subsequent ordinal
        backoff_max_s : float
            Cap for the backoff delay
        max_prompt_length : int
            Composed prompts are truncated deterministically beyond this length
        reinforcement_tier_cap : int
            Maximum generic reinforcement tier (1-3)
        strict_mode_ordinal : int
            Ordinal from which the strict-mode addendum is appended

    Provider Settings:
        provider : Literal["openai", "diffusers"]
            Which image provider backs the orchestrator
        openai_api_key : str | None
            API key for the OpenAI Images API
        openai_image_model : str
            OpenAI image model identifier
        openai_timeout_s : float
            Per-request timeout for the OpenAI client
        identity_model : str
            Vision model that checks character identity (openai provider only)
        diffusers_model_id : str
            HuggingFace model ID for the local diffusers provider
        device : str
            Device for local inference (cuda, mps, or cpu)
        torch_dtype : Literal["bfloat16", "float16", "float32"]
            Torch dtype for local inference

    Server Settings:
        server_host : str
            Bind address for uvicorn
        server_port : int
            Server port (1024-65535)
        max_concurrent_pages : int
            Worker pool size for multi-page book runs
        max_retained_jobs : int
            Finished book jobs kept in memory before the oldest are dropped
        log_level : str
            Root logging level for the CLI entry point

    Notes
    -----
    - Configuration is immutable after initialization in practice; the
      orchestrator only ever sees the frozen RetryPolicy.
    - To modify config, set environment variables and restart the application.

    Examples
    --------
        >>> cfg = InkgateConfig(max_attempts=20, wall_clock_budget_s=180)
        >>> cfg.retry_policy().max_attempts
        20
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="INKGATE_",
        case_sensitive=False,
        extra="ignore",
    )

    # Retry settings
    max_attempts: int = Field(
        default=12,
        description="Maximum attempts per page session",
        ge=1,
        le=50,
    )
    wall_clock_budget_s: float = Field(
        default=120.0,
        description="Session wall-clock budget in seconds",
        gt=0,
    )
    backoff_base_s: float = Field(
        default=1.0,
        description="Initial backoff delay in seconds (doubles per attempt)",
        ge=0,
    )
    backoff_max_s: float = Field(
        default=8.0,
        description="Maximum backoff delay in seconds",
        ge=0,
    )
    max_prompt_length: int = Field(
        default=4000,
        description="Maximum composed prompt length in characters",
        ge=200,
    )
    reinforcement_tier_cap: int = Field(default=3, ge=1, le=3)
    strict_mode_ordinal: int = Field(
        default=5,
        description="First attempt ordinal that appends the strict-mode addendum",
        ge=2,
    )

    # Provider settings
    provider: Literal["openai", "diffusers"] = Field(
        default="openai",
        description="Image provider backing the orchestrator",
    )
    openai_api_key: str | None = Field(default=None, description="OpenAI API key")
    openai_image_model: str = Field(default="gpt-image-1")
    openai_timeout_s: float = Field(default=90.0, gt=0)
    identity_model: str = Field(
        default="gpt-4o",
        description="OpenAI vision model for the character identity check",
    )
    diffusers_model_id: str = Field(
        default="Tongyi-MAI/Z-Image-Turbo",
        description="HuggingFace model ID for the local diffusers provider",
    )
    device: str = Field(default="cuda", description="Device for local inference")
    torch_dtype: Literal["bfloat16", "float16", "float32"] = Field(default="bfloat16")
    num_inference_steps: int = Field(default=9, ge=1, le=100)
    guidance_scale: float = Field(default=0.0, ge=0.0)

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address (0.0.0.0 for local network)",
    )
    server_port: int = Field(default=7860, description="Server port", ge=1024, le=65535)
    max_concurrent_pages: int = Field(
        default=3,
        description="Worker pool size for book runs",
        ge=1,
        le=16,
    )
    max_retained_jobs: int = Field(
        default=100,
        description="Book jobs kept in memory for polling",
        ge=1,
    )
    log_level: str = Field(default="INFO")

    def retry_policy(self) -> RetryPolicy:
        """Freeze the retry knobs into an immutable :class:`RetryPolicy`.

        Returns:
            RetryPolicy built from the current settings.

        Raises:
            pydantic.ValidationError: If the backoff bounds are inconsistent.
        """
        return RetryPolicy(
            max_attempts=self.max_attempts,
            wall_clock_budget_s=self.wall_clock_budget_s,
            backoff_base_s=self.backoff_base_s,
            backoff_max_s=self.backoff_max_s,
            max_prompt_length=self.max_prompt_length,
            reinforcement_tier_cap=self.reinforcement_tier_cap,
            strict_mode_ordinal=self.strict_mode_ordinal,
        )


# Global configuration instance for the application entry points.
# Library code receives configuration explicitly and never reads this.
config = InkgateConfig()
