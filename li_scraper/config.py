from __future__ import annotations

import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import yaml
from pydantic import ValidationError

from .config_schema import AppConfig
from .errors import ConfigError


@dataclass(frozen=True)
class Credentials:
    email: str
    password: str


@dataclass(frozen=True)
class RuntimeSecrets:
    credentials: Credentials | None
    ai_api_key: str | None


def load_config(path: str | Path) -> AppConfig:
    """
    Load a YAML config file and validate it into a typed AppConfig.

    Raises ConfigError with a readable validation message on failure.
    """
    p = Path(path)

    if not p.exists():
        raise ConfigError(f"Config file not found: {p}")

    try:
        raw_text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Failed to read config file: {p}") from e

    try:
        data = yaml.safe_load(raw_text)
    except Exception as e:  # PyYAML can raise multiple exception types
        raise ConfigError(f"Failed to parse YAML in {p}: {e}") from e

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML in {p} must be a mapping/object")

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_format_pydantic_errors(e, p)) from e


def resolve_runtime_secrets(
    config: AppConfig, *, environ: Mapping[str, str] | None = None
) -> RuntimeSecrets:
    """
    Read login credentials and the AI service key from the environment.

    Credentials are optional: both variables set means authenticated mode,
    neither set means anonymous mode, and exactly one set is a ConfigError.
    The AI key is required only when the fallback stage is enabled.
    """
    env = os.environ if environ is None else environ

    email = (env.get(config.auth.email_env) or "").strip()
    password = (env.get(config.auth.password_env) or "").strip()

    credentials: Credentials | None = None
    if email and password:
        credentials = Credentials(email=email, password=password)
    elif email or password:
        missing = config.auth.password_env if email else config.auth.email_env
        raise ConfigError(f"Incomplete credentials: {missing} is not set")

    api_key = (env.get(config.fallback.api_key_env) or "").strip() or None
    if config.fallback.enabled and api_key is None:
        raise ConfigError(
            f"Missing required environment variables: {config.fallback.api_key_env} "
            "(set fallback.enabled: false to run without the AI fallback)"
        )

    return RuntimeSecrets(credentials=credentials, ai_api_key=api_key)


def config_sha256(config: AppConfig) -> str:
    """
    Compute a stable SHA-256 hash of the config values for reproducibility.
    """
    payload = json.dumps(
        config.model_dump(mode="json"),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def _format_pydantic_errors(err: ValidationError, path: Path) -> str:
    lines: list[str] = [f"Invalid configuration in {path}:"]
    for item in err.errors():
        loc = ".".join(str(part) for part in item.get("loc", [])) or "<root>"
        msg = item.get("msg", "invalid value")
        lines.append(f"- {loc}: {msg}")
    return "\n".join(lines)
