"""Command-line interface for twinbridge."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .app import TwinBridgeApp, build_router
from .config import BridgeConfig, load_config
from .core import CatalogError, InboundMessage, MappingError, OutboundMessage
from .logging import configure_logging
from .mapping import load_mapper_catalog
from .router import MessageRouter

LOGGER = logging.getLogger(__name__)

DEFAULT_LOCAL_TOPIC = "event/twinbridge"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="twinbridge",
        description="Bridge digital twin messages between a device and the cloud",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "-m",
        "--mapper-config",
        type=Path,
        default=None,
        help="Path to the message mapper JSON (overrides [mapper] config_path)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("start", help="Start the twinbridge service")

    subparsers.add_parser(
        "show-config", help="Print the resolved configuration and exit"
    )

    telemetry_parser = subparsers.add_parser(
        "map-telemetry", help="Map a Ditto message file to a cloud telemetry message"
    )
    telemetry_parser.add_argument("file", type=Path, help="Ditto message JSON file")
    telemetry_parser.add_argument(
        "--topic",
        default=DEFAULT_LOCAL_TOPIC,
        help=f"Local topic the message arrived on (default: {DEFAULT_LOCAL_TOPIC})",
    )

    command_parser = subparsers.add_parser(
        "map-command", help="Map a cloud command file to a Ditto message"
    )
    command_parser.add_argument("file", type=Path, help="Cloud command JSON file")

    return parser


def _offline_router(config: BridgeConfig) -> MessageRouter:
    catalog = load_mapper_catalog(config.mapper.config_path)
    return build_router(config, catalog)


def _print_outbound(outbound: Optional[OutboundMessage]) -> None:
    if outbound is None:
        print("Message dropped by mapping rule")
        return
    print(f"topic: {outbound.topic}")
    print(outbound.payload.decode("utf-8", errors="replace"))


def _map_file(config: BridgeConfig, path: Path, topic: str, *, command: bool) -> int:
    try:
        router = _offline_router(config)
    except CatalogError as exc:
        LOGGER.error("Cannot load message mapper config: %s", exc)
        return 1

    try:
        payload = path.read_bytes()
    except OSError as exc:
        LOGGER.error("Cannot read %s: %s", path, exc)
        return 1

    message = InboundMessage(topic, payload)
    try:
        if command:
            outbound = router.route_command(message)
        else:
            outbound = router.route_telemetry(message)
    except MappingError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    _print_outbound(outbound)
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    if args.mapper_config is not None:
        config.mapper.config_path = args.mapper_config
        config.raw.set("mapper", "config_path", str(args.mapper_config))

    if args.command == "start":
        TwinBridgeApp.start(config)
        return 0

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    if args.command in ("map-telemetry", "map-command"):
        configure_logging(config.logging.level)
        if args.command == "map-telemetry":
            return _map_file(config, args.file, args.topic, command=False)
        return _map_file(
            config, args.file, config.cloud.resolved_command_topic, command=True
        )

    LOGGER.error("Unknown command: %s", args.command)
    return 1


if __name__ == "__main__":
    sys.exit(main())
