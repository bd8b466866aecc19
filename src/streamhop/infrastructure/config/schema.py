"""Pydantic configuration models with validation."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]
Method = Literal["auto", "fetch", "render"]


def _split_csv(value: Any) -> Any:
    """Accept ``"a,b"`` as well as a YAML list."""
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


class ResolutionConfig(BaseModel):
    """Time budgets and defaults of one resolution (YAML section: resolution)."""

    overall_timeout_seconds: float = Field(
        default=90.0,
        gt=0,
        description="Wall-clock budget for one request across all strategies.",
    )
    fetch_hop_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Per-hop timeout of the HTTP-only strategy.",
    )
    render_hop_timeout_seconds: float = Field(
        default=50.0,
        gt=0,
        description="Per-hop timeout of the render strategy.",
    )
    default_server: str = Field(
        default="vidsrc.xyz",
        description="Server used when a request names none.",
    )
    default_method: Method = Field(
        default="auto",
        description="Strategy hint used when a request names none.",
    )


class RenderConfig(BaseModel):
    """Rendering engine settings (YAML section: render)."""

    headless: bool = Field(default=True, description="Run Chromium headless.")
    max_concurrent: int = Field(
        default=2,
        ge=1,
        description="Render slots (concurrent browser contexts).",
    )
    queue_timeout_seconds: float = Field(
        default=10.0,
        ge=0,
        description="Wait for a free slot before answering Busy. 0 = reject at once.",
    )
    navigation_timeout_seconds: float = Field(default=15.0, gt=0)
    selector_timeout_seconds: float = Field(default=8.0, ge=0)
    reading_seconds: float = Field(
        default=2.0,
        ge=0,
        le=10,
        description="Simulated reading time per hop before pressing play.",
    )
    network_wait_seconds: float = Field(
        default=4.0,
        ge=0,
        description="Extra wait for late player requests when the DOM has no match.",
    )
    block_resources: bool = Field(
        default=True,
        description="Abort image/font/stylesheet requests.",
    )
    tab_switch: bool = Field(
        default=False,
        description="Simulate a brief tab switch per hop.",
    )
    proxies: list[str] = Field(
        default_factory=list,
        description="Upstream proxies (scheme://[user:pass@]host:port), rotated per attempt.",
    )
    proxy_cooldown_seconds: float = Field(default=300.0, ge=0)

    @field_validator("proxies", mode="before")
    @classmethod
    def _validate_proxies(cls, v: Any) -> Any:
        return _split_csv(v)


class ChallengeConfig(BaseModel):
    """Interactive challenge waiting (YAML section: challenge)."""

    poll_interval_seconds: float = Field(default=1.0, gt=0)
    timeout_seconds: float = Field(default=30.0, gt=0)
    min_content_chars: int = Field(
        default=3000,
        ge=0,
        description="A page counts as cleared only above this many characters.",
    )


class ServerOverride(BaseModel):
    """URL template override for a known server (YAML section: servers.<name>)."""

    movie_template: Optional[str] = None
    episode_template: Optional[str] = None


class AppConfig(BaseModel):
    """
    Canonical application configuration (validated, final).

    Note:
    - YAML is expected to be sectioned (http/resolution/render/challenge/logging/servers).
    - Environment variables are handled by EnvOverrides(BaseSettings) to allow strict
      precedence control (defaults < YAML < ENV < CLI) in load.py.
    """

    app_name: str = Field(default="streamhop", description="Application name.")
    environment: Environment = Field(
        default="dev",
        description="Runtime environment (affects defaults like log format).",
    )

    # HTTP (YAML section: http.*)
    http_timeout_seconds: float = Field(
        default=15.0,
        validation_alias=AliasChoices(
            "http_timeout_seconds",
            AliasPath("http", "timeout_seconds"),
        ),
        description="Default timeout of the shared HTTP client.",
    )
    http_user_agent: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "http_user_agent",
            AliasPath("http", "user_agent"),
        ),
        description="User-Agent of the fetch strategy. Unset = desktop Chrome.",
    )
    http_max_retries: int = Field(
        default=2,
        validation_alias=AliasChoices(
            "http_max_retries",
            AliasPath("http", "max_retries"),
        ),
        description="Retries on 429/502/504 and connection errors.",
    )
    http_rate_per_host: float = Field(
        default=4.0,
        validation_alias=AliasChoices(
            "http_rate_per_host",
            AliasPath("http", "rate_per_host"),
        ),
        description="Requests per second per hop host (token bucket). 0 = unthrottled.",
    )
    http_burst_per_host: int = Field(
        default=4,
        validation_alias=AliasChoices(
            "http_burst_per_host",
            AliasPath("http", "burst_per_host"),
        ),
    )
    http_max_body_bytes: int = Field(
        default=2_000_000,
        validation_alias=AliasChoices(
            "http_max_body_bytes",
            AliasPath("http", "max_body_bytes"),
        ),
        description="Hop bodies are read up to this size.",
    )

    resolution: ResolutionConfig = Field(default_factory=ResolutionConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)
    challenge: ChallengeConfig = Field(default_factory=ChallengeConfig)
    servers: dict[str, ServerOverride] = Field(default_factory=dict)

    # Logging (YAML section: logging.*)
    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=AliasChoices(
            "log_level",
            AliasPath("logging", "level"),
        ),
        description="Log level.",
    )
    log_format: Optional[LogFormat] = Field(
        default=None,
        validation_alias=AliasChoices(
            "log_format",
            AliasPath("logging", "format"),
        ),
        description=(
            "Log renderer format (console/json). If unset, derived from environment."
        ),
    )

    @field_validator("http_timeout_seconds")
    @classmethod
    def _validate_http_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("http_timeout_seconds must be > 0")
        return v

    @field_validator("http_max_retries", "http_max_body_bytes", "http_burst_per_host")
    @classmethod
    def _validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @model_validator(mode="after")
    def _derive_defaults(self) -> "AppConfig":
        # Default log format: console in dev/test, json in prod.
        if self.log_format is None:
            self.log_format = "json" if self.environment == "prod" else "console"
        resolution = self.resolution
        if resolution.fetch_hop_timeout_seconds > resolution.overall_timeout_seconds:
            raise ValueError("fetch_hop_timeout_seconds exceeds overall_timeout_seconds")
        if resolution.render_hop_timeout_seconds > resolution.overall_timeout_seconds:
            raise ValueError("render_hop_timeout_seconds exceeds overall_timeout_seconds")
        # A rendered hop must fit navigation plus a full challenge wait.
        needed = self.render.navigation_timeout_seconds + self.challenge.timeout_seconds
        if resolution.render_hop_timeout_seconds < needed:
            raise ValueError(
                f"render_hop_timeout_seconds must be >= navigation + challenge wait ({needed:g}s)"
            )
        return self

    def to_sectioned_dict(self) -> dict[str, Any]:
        """
        Dump configuration in the sectioned shape used by config.yaml/docs.
        """
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "http": {
                "timeout_seconds": self.http_timeout_seconds,
                "user_agent": self.http_user_agent,
                "max_retries": self.http_max_retries,
                "rate_per_host": self.http_rate_per_host,
                "burst_per_host": self.http_burst_per_host,
                "max_body_bytes": self.http_max_body_bytes,
            },
            "resolution": self.resolution.model_dump(),
            "render": self.render.model_dump(),
            "challenge": self.challenge.model_dump(),
            "logging": {"level": self.log_level, "format": self.log_format},
            "servers": {
                name: override.model_dump(exclude_none=True)
                for name, override in self.servers.items()
            },
        }


class EnvOverrides(BaseSettings):
    """
    Environment-variable overrides (all optional).

    load.py creates EnvOverrides() to read STREAMHOP_* variables, keeps the
    set values, maps them onto sections, merges them over YAML/defaults,
    then validates AppConfig.

    Supported env var examples (flat, explicit):
    - STREAMHOP_LOG_LEVEL
    - STREAMHOP_HTTP_TIMEOUT_SECONDS
    - STREAMHOP_RENDER_MAX_CONCURRENT
    - STREAMHOP_RENDER_PROXIES (comma separated)
    - STREAMHOP_RESOLUTION_OVERALL_TIMEOUT_SECONDS
    """

    model_config = SettingsConfigDict(
        env_prefix="STREAMHOP_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None

    http_timeout_seconds: Optional[float] = None
    http_user_agent: Optional[str] = None
    http_max_retries: Optional[int] = None
    http_rate_per_host: Optional[float] = None

    resolution_overall_timeout_seconds: Optional[float] = None
    resolution_fetch_hop_timeout_seconds: Optional[float] = None
    resolution_render_hop_timeout_seconds: Optional[float] = None
    resolution_default_server: Optional[str] = None
    resolution_default_method: Optional[Method] = None

    render_headless: Optional[bool] = None
    render_max_concurrent: Optional[int] = None
    render_queue_timeout_seconds: Optional[float] = None
    render_reading_seconds: Optional[float] = None
    render_proxies: Optional[str] = None

    challenge_timeout_seconds: Optional[float] = None

    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None

    def to_update_dict(self) -> dict[str, Any]:
        """
        Return only values that were actually provided (non-None), for merging.
        """
        return self.model_dump(exclude_none=True)
