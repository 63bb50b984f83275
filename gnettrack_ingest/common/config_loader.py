"""Configuration loading and validation."""

from __future__ import annotations

import copy
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from gnettrack_ingest.common.errors import ConfigError
from gnettrack_ingest.common.fs import read_yaml
from gnettrack_ingest.common.schema import validate_ingest_config

DEFAULT_CONFIG_PATH = Path("config") / "gnettrack.yml"

DEFAULTS: dict[str, dict[str, Any]] = {
    "influxdb": {
        "url": "http://localhost:8086",
        "database": "gnettrack",
        "username": "",
        "password": "",
        "org": None,
        "token": None,
        "bucket": None,
        "timeout_seconds": 30.0,
        "create_database": True,
    },
    "processing": {
        "batch_size": 1000,
        "skip_invalid": True,
        "dry_run": False,
        "queue_depth": 4,
    },
    "retry": {
        "max_attempts": 5,
        "multiplier": 1.0,
        "max_wait": 30.0,
    },
    "logging": {
        "level": "INFO",
    },
}


@dataclass(frozen=True)
class InfluxConfig:
    url: str
    database: str
    username: str = ""
    password: str = ""
    org: str | None = None
    token: str | None = None
    bucket: str | None = None
    timeout_seconds: float = 30.0
    create_database: bool = True

    @property
    def uses_token_auth(self) -> bool:
        return bool(self.token) and bool(self.org)


@dataclass(frozen=True)
class ProcessingConfig:
    batch_size: int = 1000
    skip_invalid: bool = True
    dry_run: bool = False
    queue_depth: int = 4


@dataclass(frozen=True)
class RetrySettings:
    max_attempts: int = 5
    multiplier: float = 1.0
    max_wait: float = 30.0


@dataclass(frozen=True)
class IngestConfig:
    influxdb: InfluxConfig
    processing: ProcessingConfig
    retry: RetrySettings
    log_level: str = "INFO"

    def with_overrides(
        self,
        *,
        batch_size: int | None = None,
        skip_invalid: bool | None = None,
        dry_run: bool | None = None,
        log_level: str | None = None,
    ) -> "IngestConfig":
        processing = self.processing
        if batch_size is not None:
            if batch_size <= 0:
                raise ConfigError("batch size must be a positive integer")
            processing = replace(processing, batch_size=batch_size)
        if skip_invalid is not None:
            processing = replace(processing, skip_invalid=skip_invalid)
        if dry_run is not None:
            processing = replace(processing, dry_run=dry_run)
        return replace(
            self,
            processing=processing,
            log_level=(log_level or self.log_level).upper(),
        )


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_mapping(path: Path, ctx: str) -> dict:
    payload = read_yaml(path)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ConfigError(f"{ctx} must contain a mapping: {path}")
    return payload


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def build_config(raw: dict, *, allow_unknown: bool = False) -> IngestConfig:
    cfg = validate_ingest_config(_deep_merge(copy.deepcopy(DEFAULTS), raw), allow_unknown=allow_unknown)
    influx = cfg["influxdb"]
    processing = cfg["processing"]
    retry = cfg["retry"]
    return IngestConfig(
        influxdb=InfluxConfig(
            url=str(influx["url"]).strip().rstrip("/"),
            database=str(influx["database"] or "").strip(),
            username=str(influx.get("username") or ""),
            password=str(influx.get("password") or ""),
            org=_optional_str(influx.get("org")),
            token=_optional_str(influx.get("token")),
            bucket=_optional_str(influx.get("bucket")),
            timeout_seconds=float(influx.get("timeout_seconds") or 30.0),
            create_database=bool(influx.get("create_database", True)),
        ),
        processing=ProcessingConfig(
            batch_size=int(processing["batch_size"]),
            skip_invalid=bool(processing["skip_invalid"]),
            dry_run=bool(processing["dry_run"]),
            queue_depth=int(processing["queue_depth"]),
        ),
        retry=RetrySettings(
            max_attempts=int(retry["max_attempts"]),
            multiplier=float(retry["multiplier"]),
            max_wait=float(retry["max_wait"]),
        ),
        log_level=str(cfg["logging"]["level"]).upper(),
    )


def load_config(
    path: Path | None = None,
    *,
    overlay_path: Path | None = None,
    allow_unknown: bool = False,
) -> IngestConfig:
    config_path = path or DEFAULT_CONFIG_PATH
    raw: dict = {}
    if config_path.exists():
        raw = _load_yaml_mapping(config_path, "config file")
    elif path is not None:
        raise ConfigError(f"Config file not found: {config_path}")

    if overlay_path is not None and overlay_path.exists():
        raw = _deep_merge(raw, _load_yaml_mapping(overlay_path, "overlay config"))

    return build_config(raw, allow_unknown=allow_unknown)
