"""Command line entry point: serve the webhook API or run one dunning sweep."""

import argparse
import json
import os
import sys
from typing import Optional, Sequence

import uvicorn

from billing_engine.config import Config, ConfigurationError
from billing_engine.logging_config import configure_logging, get_logger
from billing_engine.services.container import BillingServices

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="billing-engine",
        description="Payment webhook reconciliation and dunning for Mercado Pago and Iugu subscriptions",
    )
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8080")))
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.getenv("LOG_LEVEL", "INFO"),
    )
    parser.add_argument("--log-format", choices=["json", "console"], default=os.getenv("LOG_FORMAT", "json"))
    parser.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "config/billing.yaml"),
        help="Path to billing.yaml (plans, providers, dunning thresholds)",
    )
    parser.add_argument("--reload", action="store_true", default=os.getenv("RELOAD", "false").lower() == "true")

    dunning = parser.add_argument_group("dunning")
    dunning.add_argument(
        "--no-dunning",
        action="store_true",
        help="Serve webhooks without the background dunning worker",
    )
    dunning.add_argument(
        "--dunning-interval",
        type=int,
        metavar="SECONDS",
        help="Seconds between dunning sweeps (overrides dunning.interval_seconds)",
    )
    dunning.add_argument(
        "--sweep-once",
        action="store_true",
        help="Run a single dunning sweep, print its report as JSON and exit",
    )
    return parser


def _export_settings(args: argparse.Namespace) -> None:
    # read by Config and create_app when uvicorn imports billing_engine.main
    os.environ["LOG_LEVEL"] = args.log_level
    os.environ["LOG_FORMAT"] = args.log_format
    os.environ["CONFIG_PATH"] = args.config
    if args.no_dunning:
        os.environ["DUNNING_ENABLED"] = "false"
    if args.dunning_interval is not None:
        os.environ["DUNNING_INTERVAL_SECONDS"] = str(args.dunning_interval)


def sweep_once(config_path: str) -> int:
    """Run one dunning sweep against a freshly built service graph."""
    try:
        services = BillingServices.from_config(Config(config_path))
    except ConfigurationError as e:
        logger.error("billing_config_invalid", config_path=config_path, error=str(e))
        return 2

    try:
        report = services.sweeper.run_once()
    finally:
        services.shutdown()

    print(json.dumps(report.model_dump()))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    if args.dunning_interval is not None and args.dunning_interval <= 0:
        build_parser().error("--dunning-interval must be positive")

    _export_settings(args)
    configure_logging(log_level=args.log_level, json_format=args.log_format == "json")

    if args.sweep_once:
        sys.exit(sweep_once(args.config))

    logger.info(
        "billing_engine_starting",
        host=args.host,
        port=args.port,
        config_path=args.config,
        dunning_enabled=not args.no_dunning,
    )
    try:
        uvicorn.run(
            "billing_engine.main:app",
            host=args.host,
            port=args.port,
            log_level=args.log_level.lower(),
            reload=args.reload,
            access_log=False,  # RequestLoggingMiddleware logs requests
        )
    except KeyboardInterrupt:
        logger.info("billing_engine_interrupted")


if __name__ == "__main__":
    main()
