"""SmartCare CLI entry point.

Usage:
    smartcare run --config gateway.yaml [--host 0.0.0.0] [--port 3000]
    smartcare init [--output gateway.yaml]
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from loguru import logger


def configure_logging(level: str = "INFO", file: str = "", rotation: str = "10 MB") -> None:
    """Route loguru to stderr and, optionally, to a rotating call log file."""
    logger.remove()
    logger.add(sys.stderr, level=level)
    if file:
        logger.add(file, level=level, rotation=rotation, enqueue=True)


def cmd_run(args: argparse.Namespace) -> None:
    """Run the SmartCare gateway."""
    from smartcare.config import load_config

    config_path = args.config
    if config_path and not Path(config_path).exists():
        logger.error(f"Config file not found: {config_path}")
        sys.exit(1)

    config = load_config(config_path or None)
    configure_logging(config.logging.level, config.logging.file, config.logging.rotation)

    host = args.host or config.server.host
    port = args.port or config.server.port
    logger.info(f"SmartCare gateway starting with config: {config_path or 'environment'}")
    logger.info(f"Listening on: {host}:{port}")
    logger.info(f"Public URL: {config.server.public_url or '(request host)'}")
    logger.info(f"Store backend: {config.store.backend}")

    if not config.ai.api_key:
        logger.warning("No OpenAI API key configured: realtime calls and extraction will fail")

    from smartcare.server import run_server

    run_server(config, host=host, port=port)


def cmd_init(args: argparse.Namespace) -> None:
    """Generate a starter configuration file."""
    output = Path(args.output)

    if output.exists() and not args.force:
        logger.error(f"File already exists: {output}. Use --force to overwrite.")
        sys.exit(1)

    from smartcare.config import DEFAULT_CONFIG_YAML

    output.write_text(DEFAULT_CONFIG_YAML)
    print(f"Configuration written to: {output}")
    print(f"\nEdit the file and run: smartcare run --config {output}")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="smartcare",
        description="SmartCare - voice and chat support gateway",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # `smartcare run`
    run_parser = subparsers.add_parser("run", help="Run the gateway server")
    run_parser.add_argument(
        "--config", "-c",
        default="",
        help="Path to the gateway YAML config file (default: read the environment)",
    )
    run_parser.add_argument("--host", default=None, help="Override the listen host")
    run_parser.add_argument("--port", type=int, default=None, help="Override the listen port")

    # `smartcare init`
    init_parser = subparsers.add_parser("init", help="Generate a starter config file")
    init_parser.add_argument(
        "--output", "-o",
        default="gateway.yaml",
        help="Output file path (default: gateway.yaml)",
    )
    init_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Overwrite existing file",
    )

    args = parser.parse_args(argv)

    if args.command == "run":
        cmd_run(args)
    elif args.command == "init":
        cmd_init(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
