from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import platformdirs
import tomllib
import tomli_w

APP_NAME = "bookctl"
MONGO_URI_ENV_VAR = "BOOKCTL_MONGO_URI"
DEFAULT_MONGO_URI = "mongodb://localhost:27017"
DEFAULT_DATABASE = "plp_bookstore"
DEFAULT_COLLECTION = "books"
DEFAULT_SERVER_TIMEOUT_MS = 5000

_DATABASE_FORBIDDEN_CHARS = set('/\\. "$')


class ConfigError(ValueError):
    """Raised when config values are invalid."""


@dataclass(slots=True)
class AppConfig:
    mongo_uri: str | None = None
    database: str = DEFAULT_DATABASE
    collection: str = DEFAULT_COLLECTION
    server_timeout_ms: int = DEFAULT_SERVER_TIMEOUT_MS


def config_dir() -> Path:
    return Path(platformdirs.user_config_dir(APP_NAME))


def config_path() -> Path:
    return config_dir() / "config.toml"


def validate_mongo_uri(uri: str) -> str:
    normalized = uri.strip()
    parsed = urlparse(normalized)
    if parsed.scheme not in {"mongodb", "mongodb+srv"} or not parsed.netloc:
        raise ConfigError(f"Invalid MongoDB URI: {uri!r}")
    return normalized


def redact_mongo_uri(uri: str) -> str:
    parsed = urlparse(uri)
    userinfo, sep, hosts = parsed.netloc.rpartition("@")
    if not sep or ":" not in userinfo:
        return uri
    user = userinfo.split(":", 1)[0]
    return parsed._replace(netloc=f"{user}:***@{hosts}").geturl()


def validate_database_name(name: str) -> str:
    normalized = name.strip()
    if not normalized:
        raise ConfigError("Database name cannot be empty.")
    bad = sorted(_DATABASE_FORBIDDEN_CHARS.intersection(normalized))
    if bad:
        raise ConfigError(f"Database name {name!r} contains forbidden characters: {''.join(bad)!r}")
    return normalized


def validate_collection_name(name: str) -> str:
    normalized = name.strip()
    if not normalized:
        raise ConfigError("Collection name cannot be empty.")
    if "$" in normalized:
        raise ConfigError(f"Collection name {name!r} must not contain '$'.")
    if normalized.startswith("system."):
        raise ConfigError(f"Collection name {name!r} is reserved.")
    return normalized


def validate_timeout(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError("Config key 'server_timeout_ms' must be a positive integer.")
    return value


def _read_raw_config() -> dict[str, Any]:
    path = config_path()
    if not path.exists():
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Could not parse config file at {path}: {exc}") from exc


def _string_key(raw: dict[str, Any], key: str, default: str | None) -> str | None:
    value = raw.get(key, default)
    if value is not None and not isinstance(value, str):
        raise ConfigError(f"Config key {key!r} must be a string.")
    return value


def load_config() -> AppConfig:
    raw = _read_raw_config()
    mongo_uri = _string_key(raw, "mongo_uri", None)
    database = _string_key(raw, "database", DEFAULT_DATABASE)
    collection = _string_key(raw, "collection", DEFAULT_COLLECTION)

    if mongo_uri is not None:
        mongo_uri = validate_mongo_uri(mongo_uri)

    return AppConfig(
        mongo_uri=mongo_uri,
        database=validate_database_name(database or ""),
        collection=validate_collection_name(collection or ""),
        server_timeout_ms=validate_timeout(
            raw.get("server_timeout_ms", DEFAULT_SERVER_TIMEOUT_MS)
        ),
    )


def save_config(config: AppConfig) -> None:
    config_dir().mkdir(parents=True, exist_ok=True)
    payload: dict[str, Any] = {}
    if config.mongo_uri is not None:
        payload["mongo_uri"] = config.mongo_uri
    if config.database != DEFAULT_DATABASE:
        payload["database"] = config.database
    if config.collection != DEFAULT_COLLECTION:
        payload["collection"] = config.collection
    if config.server_timeout_ms != DEFAULT_SERVER_TIMEOUT_MS:
        payload["server_timeout_ms"] = config.server_timeout_ms
    config_path().write_text(tomli_w.dumps(payload), encoding="utf-8")


def set_mongo_uri(uri: str) -> AppConfig:
    cfg = load_config()
    cfg.mongo_uri = validate_mongo_uri(uri)
    save_config(cfg)
    return cfg


def set_database(name: str) -> AppConfig:
    cfg = load_config()
    cfg.database = validate_database_name(name)
    save_config(cfg)
    return cfg


def set_collection(name: str) -> AppConfig:
    cfg = load_config()
    cfg.collection = validate_collection_name(name)
    save_config(cfg)
    return cfg


def set_server_timeout(timeout_ms: int) -> AppConfig:
    cfg = load_config()
    cfg.server_timeout_ms = validate_timeout(timeout_ms)
    save_config(cfg)
    return cfg


def reset_config() -> AppConfig:
    cfg = AppConfig()
    save_config(cfg)
    return cfg


def resolve_mongo_uri(uri_override: str | None, cfg: AppConfig) -> str:
    if uri_override:
        return validate_mongo_uri(uri_override)
    env_uri = os.getenv(MONGO_URI_ENV_VAR)
    if env_uri and env_uri.strip():
        return validate_mongo_uri(env_uri)
    if cfg.mongo_uri:
        return cfg.mongo_uri
    return DEFAULT_MONGO_URI
