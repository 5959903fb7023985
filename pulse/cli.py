import argparse
import os
import sys
from typing import List, Optional

import yaml
from pydantic import ValidationError

from pulse.constants import CONFIG_FILE_ENV, DEFAULT_CONFIG_FILE


def parse_listen(value: str):
    host, sep, port = value.rpartition(":")
    if not sep or not port.isdigit():
        raise argparse.ArgumentTypeError(f"expected HOST:PORT, got {value!r}")
    return host or "0.0.0.0", int(port)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pulse", description="Uptime and latency monitor for HTTP endpoints."
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="YAML configuration file "
        f"(default: ${CONFIG_FILE_ENV} or {DEFAULT_CONFIG_FILE})",
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("agent", help="probe the configured URLs")
    commands.add_parser("aggregator", help="fold probe results into statistics")
    presenter = commands.add_parser(
        "presenter", help="stream statistics over websocket"
    )
    presenter.add_argument(
        "--listen",
        type=parse_listen,
        metavar="HOST:PORT",
        help="address to listen on for the websocket API",
    )

    return parser


def run_aggregator(settings) -> int:
    from pulse.celery import celery_app

    argv = [
        "worker",
        f"--queues={settings.queue_name}",
        "--pool=solo",
        "--concurrency=1",
        f"--loglevel={settings.log_level}",
    ]
    if settings.log_file:
        argv.append(f"--logfile={settings.log_file}")

    celery_app.worker_main(argv)
    return 0


def run_presenter(settings, listen=None) -> int:
    import uvicorn

    host, port = listen or (settings.listen_host, settings.listen_port)
    uvicorn.run(
        "pulse.main:app", host=host, port=port, log_level=settings.log_level.lower()
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # pulse.settings loads the configuration when first imported
    if args.config:
        os.environ[CONFIG_FILE_ENV] = args.config

    try:
        from pulse.settings import settings, setup_logging
    except (ValidationError, yaml.YAMLError) as exc:
        print(f"Invalid configuration:\n{exc}", file=sys.stderr)
        return 2

    if args.command == "aggregator":
        return run_aggregator(settings)

    setup_logging(settings.log_level, settings.log_file)

    if args.command == "presenter":
        return run_presenter(settings, args.listen)

    if not settings.endpoints:
        print("No endpoints configured", file=sys.stderr)
        return 2

    from pulse.agent import run_agent

    return run_agent(settings)


if __name__ == "__main__":
    sys.exit(main())
