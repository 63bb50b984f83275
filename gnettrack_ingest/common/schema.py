"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

from gnettrack_ingest.common.errors import ConfigError

SECTION_KEYS = {
    "influxdb": {
        "url",
        "database",
        "username",
        "password",
        "org",
        "token",
        "bucket",
        "timeout_seconds",
        "create_database",
    },
    "processing": {"batch_size", "skip_invalid", "dry_run", "queue_depth"},
    "retry": {"max_attempts", "multiplier", "max_wait"},
    "logging": {"level"},
}
LOG_LEVELS = {"DEBUG", "INFO", "WARN", "WARNING", "ERROR"}


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def _assert_positive_int(value: object, ctx: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"{ctx} must be a positive integer")


def _assert_bool(value: object, ctx: str) -> None:
    if not isinstance(value, bool):
        raise ConfigError(f"{ctx} must be true or false")


def validate_ingest_config(cfg: object, *, allow_unknown: bool = False) -> dict:
    if not isinstance(cfg, dict):
        raise ConfigError("config must be a mapping")
    _assert_no_unknown_keys(cfg, set(SECTION_KEYS), "config", allow_unknown)

    for section, known in SECTION_KEYS.items():
        value = cfg.get(section, {})
        if not isinstance(value, dict):
            raise ConfigError(f"{section} must be a mapping")
        _assert_no_unknown_keys(value, known, section, allow_unknown)

    influx = cfg["influxdb"]
    _assert_required_keys(influx, {"url", "database"}, "influxdb")
    if not str(influx["url"] or "").strip():
        raise ConfigError("influxdb.url must not be empty")
    if not str(influx["database"] or "").strip() and not str(influx.get("bucket") or "").strip():
        raise ConfigError("influxdb.database or influxdb.bucket must be set")
    _assert_bool(influx.get("create_database", True), "influxdb.create_database")

    processing = cfg["processing"]
    _assert_positive_int(processing.get("batch_size"), "processing.batch_size")
    _assert_positive_int(processing.get("queue_depth"), "processing.queue_depth")
    _assert_bool(processing.get("skip_invalid"), "processing.skip_invalid")
    _assert_bool(processing.get("dry_run"), "processing.dry_run")

    _assert_positive_int(cfg["retry"].get("max_attempts"), "retry.max_attempts")

    level = str(cfg["logging"].get("level", "INFO")).upper()
    if level not in LOG_LEVELS:
        raise ConfigError(f"logging.level must be one of {', '.join(sorted(LOG_LEVELS))}")

    return cfg
