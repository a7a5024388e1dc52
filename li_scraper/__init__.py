from __future__ import annotations

from .config import config_sha256, load_config, resolve_runtime_secrets
from .config_schema import AppConfig
from .errors import ConfigError, InvalidInputError, SessionSetupError
from .orchestrator import ProfileScraper, validate_profile_url
from .session import ScrapeResult

__all__ = [
    "AppConfig",
    "ConfigError",
    "InvalidInputError",
    "ProfileScraper",
    "ScrapeResult",
    "SessionSetupError",
    "config_sha256",
    "load_config",
    "resolve_runtime_secrets",
    "validate_profile_url",
]
