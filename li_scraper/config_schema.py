from __future__ import annotations

import re
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_HOST_RE = re.compile(r"^[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


def _validate_env_var_name(value: str) -> str:
    name = (value or "").strip()
    if not _ENV_NAME_RE.fullmatch(name):
        raise ValueError("must be a valid environment variable name")
    return name


PositiveInt = Annotated[int, Field(ge=1)]
NonNegativeInt = Annotated[int, Field(ge=0)]
NonNegativeFloat = Annotated[float, Field(ge=0.0)]

ExportFormat = Literal["excel", "csv", "json", "all"]


class BrowserConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    headless: bool = True
    timeout_ms: PositiveInt = 30000
    navigation_idle_ms: NonNegativeInt = 10000
    user_agent: str | None = None
    anti_detection: bool = True
    screenshot_dir: str = "output/screenshots"
    screenshot_on_block: bool = False
    proxy_server: str | None = None


class RateLimitConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    base_delay_seconds: NonNegativeFloat = 2.0
    max_delay_seconds: NonNegativeFloat = 10.0
    max_requests_per_window: PositiveInt = 30
    window_seconds: float = Field(60.0, gt=0.0)
    jitter_seconds: NonNegativeFloat = 1.0

    @model_validator(mode="after")
    def _max_must_cover_base(self) -> "RateLimitConfig":
        if self.max_delay_seconds < self.base_delay_seconds:
            raise ValueError("max_delay_seconds must be >= base_delay_seconds")
        return self


class RetryPolicyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_retries: PositiveInt = 3
    backoff_base_seconds: NonNegativeFloat = 2.0
    backoff_max_seconds: NonNegativeFloat = 60.0

    @model_validator(mode="after")
    def _max_must_cover_base(self) -> "RetryPolicyConfig":
        if self.backoff_max_seconds < self.backoff_base_seconds:
            raise ValueError("backoff_max_seconds must be >= backoff_base_seconds")
        return self


class ScrapeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    site_host: str = "linkedin.com"
    max_posts: PositiveInt | None = None
    alternative_max_posts: PositiveInt = 10
    scroll_max_rounds: PositiveInt = 40
    expand_truncated: bool = True
    adaptive_selectors: bool = False

    @field_validator("site_host")
    @classmethod
    def _host_must_be_valid(cls, v: str) -> str:
        host = (v or "").strip().lower()
        if host.startswith("www."):
            host = host[4:]
        if not _HOST_RE.fullmatch(host):
            raise ValueError("must be a bare host name such as linkedin.com")
        return host


class AuthConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    email_env: str = "LI_EMAIL"
    password_env: str = "LI_PASSWORD"
    captcha_wait_seconds: NonNegativeFloat = 300.0
    verification_wait_seconds: NonNegativeFloat = 120.0
    poll_seconds: float = Field(5.0, gt=0.0)

    @field_validator("email_env", "password_env")
    @classmethod
    def _env_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)


class FallbackConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    enabled: bool = True
    api_key_env: str = "OPENAI_API_KEY"
    model: str = "gpt-5-mini"
    max_output_tokens: PositiveInt = 4000
    max_attempts: PositiveInt = 3

    @field_validator("api_key_env")
    @classmethod
    def _api_key_env_must_be_valid(cls, v: str) -> str:
        return _validate_env_var_name(v)


class ExportConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    format: ExportFormat = "all"
    include_media: bool = True
    include_engagement: bool = True


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    retry: RetryPolicyConfig = Field(default_factory=RetryPolicyConfig)
    scrape: ScrapeConfig = Field(default_factory=ScrapeConfig)
    auth: AuthConfig = Field(default_factory=AuthConfig)
    fallback: FallbackConfig = Field(default_factory=FallbackConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
