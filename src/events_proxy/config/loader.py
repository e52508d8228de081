"""YAML + environment variable config loader."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, cast

import yaml
from pydantic import ValidationError

from events_proxy.config.defaults import load_defaults, merge_configs
from events_proxy.config.models import DestinationType, ProxyConfig

# Matches ${VAR} or ${VAR:-default}
_ENV_PATTERN = re.compile(r"\$\{([^}:]+)(?::-((?:[^}\\]|\\.)*))?}")

# Environment-style keys (lower-cased) -> SnowflakeConfig fields
_SNOWFLAKE_KEYS = {
    "snowflake_account": "account",
    "snowflake_user": "user",
    "snowflake_password": "password",
    "snowflake_database": "database",
    "snowflake_schema": "schema_name",
    "snowflake_warehouse": "warehouse",
    "snowflake_role": "role",
    "snowflake_access_url": "access_url",
    "snowflake_stage": "stage",
    "snowflake_pipe": "pipe",
    "snowflake_private_key": "private_key",
    "snowflake_region": "region",
    "snowflake_provider": "provider",
    "snowflake_task": "task",
    "snowflake_task_schedule": "task_schedule_hours",
}

_S3_KEYS = {
    "s3_bucket": "bucket",
    "s3_region": "region",
    "s3_access_key_id": "access_key_id",
    "s3_secret_access_key": "secret_access_key",
}

_TABLE_KEYS = {
    "event_table": "event_table",
    "user_table": "user_table",
    "group_table": "group_table",
}


def _resolve_env_str(value: str) -> str:
    """Replace all ${VAR} / ${VAR:-default} references in a string."""

    def _replace(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default = match.group(2)
        env_val = os.environ.get(var_name)
        if env_val is not None:
            return env_val
        if default is not None:
            return default.replace("\\}", "}")
        msg = f"Environment variable '{var_name}' is not set and no default provided"
        raise ValueError(msg)

    return _ENV_PATTERN.sub(_replace, value)


def resolve_env_vars(data: Any) -> Any:
    """Recursively resolve ${VAR} and ${VAR:-default} in parsed YAML data."""
    if isinstance(data, str):
        return _resolve_env_str(data)
    if isinstance(data, dict):
        return {k: resolve_env_vars(v) for k, v in data.items()}
    if isinstance(data, list):
        return [resolve_env_vars(item) for item in data]
    return data


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict."""
    p = Path(path)
    if not p.exists():
        msg = f"Config file not found: {p}"
        raise FileNotFoundError(msg)
    try:
        with p.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        msg = f"Failed to parse YAML in {p}"
        if hasattr(exc, "problem_mark") and exc.problem_mark is not None:
            mark = exc.problem_mark
            msg += f" at line {mark.line + 1}, column {mark.column + 1}"
        msg += f": {exc}"
        raise ValueError(msg) from exc
    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping at top level in {p}, got {type(data).__name__}"
        raise TypeError(msg)
    return cast(dict[str, Any], resolve_env_vars(data))


def load_proxy_config(path: str | Path | None = None) -> ProxyConfig:
    """Load proxy config from built-in defaults, optionally merged with overrides."""
    base = load_defaults()
    if path is not None:
        base = merge_configs(base, load_yaml(path))
    try:
        return ProxyConfig.model_validate(base)
    except ValidationError as exc:
        source = path or "built-in defaults"
        msg = f"Invalid proxy config ({source}):\n{exc}"
        raise ValueError(msg) from exc


def _pick(env: Mapping[str, str], keys: Mapping[str, str]) -> dict[str, str]:
    return {field: env[key] for key, field in keys.items() if env.get(key)}


def config_from_env(environ: Mapping[str, str] | None = None) -> ProxyConfig:
    """Build a ProxyConfig from environment-style keys (case-insensitive).

    A destination is enabled when its primary key is present:
    ``snowflake_account`` for Snowflake, ``s3_bucket`` for S3.
    ``MAX_RETRIES`` bounds contention retries for every destination.
    """
    source = os.environ if environ is None else environ
    env = {k.lower(): v for k, v in source.items()}

    overrides: dict[str, Any] = {}
    tables = _pick(env, _TABLE_KEYS)
    if tables:
        overrides["tables"] = tables

    retry: dict[str, Any] = {}
    if env.get("max_retries"):
        retry["max_attempts"] = env["max_retries"]

    destinations: list[dict[str, Any]] = []
    if env.get("snowflake_account"):
        destinations.append(
            {
                "destination_id": "snowflake",
                "destination_type": DestinationType.SNOWFLAKE.value,
                "retry": retry,
                "snowflake": _pick(env, _SNOWFLAKE_KEYS),
            }
        )
    if env.get("s3_bucket"):
        destinations.append(
            {
                "destination_id": "s3",
                "destination_type": DestinationType.S3.value,
                "retry": retry,
                "s3": _pick(env, _S3_KEYS),
            }
        )
    overrides["destinations"] = destinations

    base = merge_configs(load_defaults(), overrides)
    try:
        return ProxyConfig.model_validate(base)
    except ValidationError as exc:
        msg = f"Invalid proxy config (environment):\n{exc}"
        raise ValueError(msg) from exc
