"""CLI entrypoint for uploading drive-test logs to InfluxDB."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from gnettrack_ingest.common.config_loader import DEFAULT_CONFIG_PATH, load_config
from gnettrack_ingest.common.constants import EXIT_HARD_FAIL, EXIT_SUCCESS
from gnettrack_ingest.common.errors import PipelineError, TransportError
from gnettrack_ingest.common.ids import generate_run_id
from gnettrack_ingest.common.logging import build_logger, log_event
from gnettrack_ingest.pipeline.backend import build_client, build_target
from gnettrack_ingest.pipeline.reports import write_run_summary
from gnettrack_ingest.pipeline.run import run_file


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("input", nargs="?", default=None, help="G-NetTrack text log or KML export")
    parser.add_argument("--config", default=None, help=f"YAML config (default: {DEFAULT_CONFIG_PATH})")
    parser.add_argument("--overlay-config", default=None)
    parser.add_argument("--dry-run", action="store_true", default=None)
    parser.add_argument("--skip-invalid", dest="skip_invalid", action="store_true", default=None)
    parser.add_argument("--no-skip-invalid", dest="skip_invalid", action="store_false")
    parser.add_argument("--batch-size", type=int, default=None)
    parser.add_argument("--test-connection", action="store_true")
    parser.add_argument("--summary-path", default=None)
    parser.add_argument("--log-dir", default=None)
    parser.add_argument("--log-level", default=None, choices=["DEBUG", "INFO", "WARN", "ERROR"])
    parser.add_argument("--run-id", default=None)
    args = parser.parse_args(argv)
    if args.input is None and not args.test_connection:
        parser.error("an input file is required unless --test-connection is given")
    return args


def check_connection(config, logger, run_id: str) -> int:
    with build_client(config, max_attempts=1) as client:
        target = build_target(config.influxdb, client)
        try:
            result = target.ping()
        except TransportError as exc:
            log_event(
                logger,
                f"connection test failed for {config.influxdb.url}: {exc}",
                run_id=run_id,
                event="CONNECTION_TEST",
                status="error",
                error_code=exc.error_code,
            )
            return EXIT_HARD_FAIL
    log_event(
        logger,
        f"connected to {target.name} at {config.influxdb.url} (HTTP {result.status_code})",
        run_id=run_id,
        event="CONNECTION_TEST",
        status="ok",
    )
    return EXIT_SUCCESS


def run_command(args: argparse.Namespace) -> int:
    run_id = args.run_id or generate_run_id()
    config = load_config(
        Path(args.config) if args.config else None,
        overlay_path=Path(args.overlay_config) if args.overlay_config else None,
    ).with_overrides(
        batch_size=args.batch_size,
        skip_invalid=args.skip_invalid,
        dry_run=args.dry_run,
        log_level=args.log_level,
    )
    logger = build_logger(
        run_id,
        level=config.log_level,
        log_dir=Path(args.log_dir) if args.log_dir else None,
    )

    if args.test_connection:
        return check_connection(config, logger, run_id)

    summary = run_file(Path(args.input), config, run_id=run_id, logger=logger)
    if args.summary_path:
        write_run_summary(Path(args.summary_path), summary)
    return summary.exit_code


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    try:
        return run_command(args)
    except PipelineError as exc:
        print(f"{exc.error_code}: {exc}", file=sys.stderr)
        return EXIT_HARD_FAIL


if __name__ == "__main__":
    raise SystemExit(main())
