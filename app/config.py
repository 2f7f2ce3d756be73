from __future__ import annotations

import json
import os
from copy import deepcopy
from pathlib import Path
from typing import Any

import boto3
import yaml
from botocore.exceptions import ClientError
from dotenv import load_dotenv

from core.enums import LeadField

DEFAULT_CONFIG: dict[str, Any] = {
    "whatsapp": {
        "verify_token": None,
        "access_token": None,
        "phone_number_id": None,
        "api_base_url": "https://graph.facebook.com",
        "api_version": "v22.0",
        "webhook_path": "/webhook",
        "timeout_sec": 10,
    },
    "bitable": {
        "enabled": False,
        "app_id": None,
        "app_secret": None,
        "app_token": None,
        "table_id": None,
        "api_base_url": "https://open.larksuite.com",
        "timeout_sec": 10,
        "token_refresh_margin_sec": 60,
        "field_map": dict(LeadField.DEFAULT_COLUMN_MAP),
    },
    "flow_engine": {
        "url": None,
        "shared_secret": None,
        "timeout_sec": 8,
        "fallback_reply": "Gracias. Un asesor te contactará pronto.",
    },
    "intake": {
        "backend": "memory",
        "sqlite_path": "data/intake/sessions.db",
        "dynamodb": {
            "region": None,
            "table_prefix": "wa-intake",
            "tables": {
                "sessions": None,
                "event_dedupe": None,
            },
        },
        "session_ttl_minutes": 30,
        "dedupe_window_minutes": 5,
        "reset_keywords": ["menu", "reset", "reiniciar", "hola", "inicio", "buenas"],
        "min_text_length": 2,
        "min_phone_digits": 8,
        "max_conflict_retries": 3,
        # Empty keeps the built-in flow from intake.flow.DEFAULT_STEPS.
        "steps": [],
    },
    "leads_api": {
        "api_key": None,
    },
    "logging": {
        "level": "INFO",
    },
}

_ENV_MAPPING: dict[str, tuple[str, ...]] = {
    "VERIFY_TOKEN": ("whatsapp", "verify_token"),
    "WHATSAPP_TOKEN": ("whatsapp", "access_token"),
    "WHATSAPP_PHONE_NUMBER_ID": ("whatsapp", "phone_number_id"),
    "WHATSAPP_API_VERSION": ("whatsapp", "api_version"),
    "WEBHOOK_PATH": ("whatsapp", "webhook_path"),
    "LARK_APP_ID": ("bitable", "app_id"),
    "LARK_APP_SECRET": ("bitable", "app_secret"),
    "LARK_APP_TOKEN": ("bitable", "app_token"),
    "LARK_TABLE_ID": ("bitable", "table_id"),
    "LARK_API_BASE_URL": ("bitable", "api_base_url"),
    "APPS_SCRIPT_URL": ("flow_engine", "url"),
    "APPS_SCRIPT_SECRET": ("flow_engine", "shared_secret"),
    "LEADS_API_KEY": ("leads_api", "api_key"),
    "INTAKE_BACKEND": ("intake", "backend"),
    "INTAKE_SQLITE_PATH": ("intake", "sqlite_path"),
    "DDB_REGION": ("intake", "dynamodb", "region"),
    "DDB_TABLE_PREFIX": ("intake", "dynamodb", "table_prefix"),
    "DDB_SESSIONS_TABLE": ("intake", "dynamodb", "tables", "sessions"),
    "DDB_EVENT_TABLE": ("intake", "dynamodb", "tables", "event_dedupe"),
    "LOG_LEVEL": ("logging", "level"),
}

_SECRET_MAPPING: dict[str, tuple[str, ...]] = {
    "verify_token": ("whatsapp", "verify_token"),
    "whatsapp_token": ("whatsapp", "access_token"),
    "lark_app_id": ("bitable", "app_id"),
    "lark_app_secret": ("bitable", "app_secret"),
    "apps_script_secret": ("flow_engine", "shared_secret"),
    "leads_api_key": ("leads_api", "api_key"),
}

_cached_app_secret_values: dict[str, Any] | None = None


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(config_path: str | None = None) -> dict[str, Any]:
    if not config_path:
        return deepcopy(DEFAULT_CONFIG)

    path = Path(config_path)
    if not path.exists():
        return deepcopy(DEFAULT_CONFIG)

    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return deepcopy(DEFAULT_CONFIG)

    if path.suffix.lower() == ".json":
        data = json.loads(text)
    else:
        data = yaml.safe_load(text)
    if not isinstance(data, dict):
        data = {}
    return deep_merge(deepcopy(DEFAULT_CONFIG), data)


def load_runtime_config(config_path: str | None = None) -> dict[str, Any]:
    """File config, then Secrets Manager values, then environment variables."""
    env_file = Path(os.getenv("ENV_FILE", ".env"))
    if env_file.exists():
        load_dotenv(env_file, override=False)
    config = load_config(config_path)
    apply_secret_overrides(config)
    apply_env_overrides(config)
    return config


def apply_env_overrides(config: dict[str, Any]) -> None:
    for env_name, path in _ENV_MAPPING.items():
        value = os.getenv(env_name)
        if value is not None and value != "":
            _set_path(config, path, value)

    bitable_conf = config.setdefault("bitable", {})
    if "BITABLE_ENABLED" in os.environ:
        bitable_conf["enabled"] = _is_true(os.getenv("BITABLE_ENABLED", ""))
    elif os.getenv("LARK_APP_ID") and os.getenv("LARK_TABLE_ID"):
        bitable_conf["enabled"] = True

    if os.getenv("AWS_LAMBDA_FUNCTION_NAME") and not os.getenv("INTAKE_SQLITE_PATH"):
        # /var/task is read-only inside Lambda.
        intake_conf = config.setdefault("intake", {})
        sqlite_path = str(intake_conf.get("sqlite_path", "") or "")
        if sqlite_path and not sqlite_path.startswith("/tmp/"):
            intake_conf["sqlite_path"] = f"/tmp/{Path(sqlite_path).name}"


def apply_secret_overrides(config: dict[str, Any]) -> None:
    secret_values = _load_app_secret_values()
    for secret_key, path in _SECRET_MAPPING.items():
        value = str(secret_values.get(secret_key, "") or "").strip()
        if value:
            _set_path(config, path, value)


def _load_app_secret_values() -> dict[str, Any]:
    global _cached_app_secret_values
    if _cached_app_secret_values is not None:
        return _cached_app_secret_values
    secret_id = str(os.getenv("APP_SECRETS_ARN", "") or "").strip() or str(
        os.getenv("APP_SECRETS_NAME", "") or ""
    ).strip()
    if not secret_id:
        _cached_app_secret_values = {}
        return _cached_app_secret_values
    client = boto3.client("secretsmanager")
    try:
        response = client.get_secret_value(SecretId=secret_id)
    except ClientError as exc:
        raise RuntimeError(f"failed to read app secret from Secrets Manager: {exc}") from exc
    raw = response.get("SecretString")
    if not isinstance(raw, str) or not raw.strip():
        _cached_app_secret_values = {}
        return _cached_app_secret_values
    try:
        parsed = json.loads(raw)
    except Exception as exc:
        raise RuntimeError(f"invalid app secret JSON payload: {exc}") from exc
    _cached_app_secret_values = parsed if isinstance(parsed, dict) else {}
    return _cached_app_secret_values


def _set_path(config: dict[str, Any], path: tuple[str, ...], value: Any) -> None:
    target = config
    for key in path[:-1]:
        nested = target.get(key)
        if not isinstance(nested, dict):
            nested = {}
            target[key] = nested
        target = nested
    target[path[-1]] = value


def _is_true(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}
