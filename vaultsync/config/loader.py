from __future__ import annotations

import json
import os
from collections.abc import Mapping
from dataclasses import replace
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.card_profile import STRING_ATTRS
from ..models.config_models import (
    DatabaseConfig,
    EndpointConfig,
    MappingVariant,
    SourceConfig,
    SyncRules,
    SyncSettings,
)

"""Config loader.

Responsibilities:
- Load YAML config (default config/sync.yml)
- Validate against config_schema.json (shipped next to this module)
- Apply environment overrides (VAULT_* variables, the old registrar's contract)
- Build the immutable SyncSettings / SyncRules values
"""

SCHEMA_PATH = Path(__file__).parent / "config_schema.json"
DEFAULT_CONFIG_PATH = Path("config/sync.yml")

# env var -> EndpointConfig field
ENDPOINT_ENV = {
    "VAULT_API_BASE": "url",
    "VAULT_SOAP_VERSION": "soap_version",
    "VAULT_SOAP_NAMESPACE": "namespace",
    "VAULT_SOAP_ACTION": "create_action",
    "VAULT_UPDATE_SOAP_ACTION": "update_action",
}


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: when the schema file is missing or invalid, or the config
            data violates it (missing keys, wrong types, unknown properties).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")
    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _length_table(raw: Mapping[str, Any] | None, base: dict[str, int]) -> dict[str, int]:
    table = dict(base)
    for key, value in (raw or {}).items():
        if key not in STRING_ATTRS:
            raise ConfigError(f"unknown profile field in length table: {key}")
        table[key] = int(value)
    return table


def _build_rules(raw: Mapping[str, Any]) -> SyncRules:
    base = SyncRules()
    rules = replace(
        base,
        max_lengths=_length_table(raw.get("max_lengths"), base.max_lengths),
        retry_max_lengths=_length_table(raw.get("retry_max_lengths"), base.retry_max_lengths),
        retry_default_max=raw.get("retry_default_max", base.retry_default_max),
        default_access_level=raw.get("default_access_level", base.default_access_level),
        default_face_access_level=raw.get("default_face_access_level", base.default_face_access_level),
        default_lift_access_level=raw.get("default_lift_access_level", base.default_lift_access_level),
    )
    if raw.get("default_company"):
        rules = rules.with_default_company(MappingVariant.CREATE, raw["default_company"])
    return rules


def _apply_endpoint_env(raw: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    merged = dict(raw)
    for var, key in ENDPOINT_ENV.items():
        value = environ.get(var)
        if value is not None and value.strip():
            merged[key] = value.strip()
    return merged


def load_config(path: Path = DEFAULT_CONFIG_PATH, environ: Mapping[str, str] | None = None) -> SyncSettings:
    """Load, validate and resolve the sync configuration.

    Environment variables win over the YAML file so that operators can point a
    deployed config at another Vault without editing it.
    """
    if environ is None:
        environ = os.environ
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e

    _validate_config_schema(data)

    endpoint_raw = _apply_endpoint_env(data.get("endpoint") or {}, environ)
    if not endpoint_raw.get("url"):
        raise ConfigError("endpoint url not configured (endpoint.url or VAULT_API_BASE)")
    soap_version = str(endpoint_raw.get("soap_version", "1.1")).strip()
    if soap_version not in ("1.1", "1.2"):
        raise ConfigError(f"unsupported soap_version: {soap_version}")
    endpoint = EndpointConfig(
        url=endpoint_raw["url"],
        soap_version=soap_version,
        namespace=endpoint_raw.get("namespace", EndpointConfig.namespace),
        create_action=endpoint_raw.get("create_action", EndpointConfig.create_action),
        update_action=endpoint_raw.get("update_action", EndpointConfig.update_action),
        timeout_seconds=float(endpoint_raw.get("timeout_seconds", EndpointConfig.timeout_seconds)),
    )

    src_raw = data.get("sources") or {}
    sources = SourceConfig(
        patterns=tuple(src_raw.get("patterns", SourceConfig.patterns)),
        jobs_root=Path(src_raw.get("jobs_root", SourceConfig.jobs_root)),
    )

    db_raw = data.get("database") or {}
    database = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
        table=db_raw.get("table", DatabaseConfig.table),
    )

    return SyncSettings(
        endpoint=endpoint,
        rules=_build_rules(data.get("rules") or {}),
        sources=sources,
        database=database,
        max_workers=data.get("max_workers", 1),
    )
