"""Headless entrypoint: follow a graphics device server and log what to display."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import logging
from pathlib import Path
from typing import Iterable, Optional

from .configuration import AppConfig, load_config, load_default_config
from .state import (
    ConnectivityChanged,
    DeviceActiveChanged,
    ImageChanged,
    IndexLabelChanged,
    ViewerEvent,
)
from .viewer import PlotViewer

LOGGER = logging.getLogger(__name__)


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Follow plots on a remote graphics device server.")
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration YAML. Defaults to bundled config.yaml if omitted.",
    )
    parser.add_argument("--host", help="Server address as host:port (overrides the config).")
    parser.add_argument("--token", help="Access token sent with every request.")
    parser.add_argument(
        "--no-push",
        action="store_true",
        help="Never open the push channel; rely on polling only.",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    server = config.server
    if args.host:
        server = dataclasses.replace(server, host=args.host)
    if args.token:
        server = dataclasses.replace(server, token=args.token)
    if args.no_push:
        server = dataclasses.replace(server, use_push=False)
    return dataclasses.replace(config, server=server)


def log_viewer_event(event: ViewerEvent) -> None:
    if isinstance(event, ImageChanged):
        LOGGER.info("Display %s", event.url)
    elif isinstance(event, IndexLabelChanged):
        LOGGER.info("Plot %s", event.label)
    elif isinstance(event, ConnectivityChanged):
        LOGGER.info("Connection %s", "restored" if event.connected else "lost")
    elif isinstance(event, DeviceActiveChanged):
        LOGGER.info("Device %s", "active" if event.active else "idle")


async def async_main(args: argparse.Namespace) -> None:
    config = load_config(args.config) if args.config else load_default_config()
    config = apply_overrides(config, args)
    logging.basicConfig(level=getattr(logging, config.logging.level.upper(), logging.INFO))

    viewer = PlotViewer.from_config(config)
    viewer.subscribe(log_viewer_event)
    try:
        await viewer.start()
        LOGGER.info("Following %s", viewer.api.http_base)
        await asyncio.Event().wait()
    finally:
        await viewer.stop()


def main() -> None:
    args = parse_args()
    try:
        asyncio.run(async_main(args))
    except KeyboardInterrupt:
        LOGGER.info("Interrupted by user")


if __name__ == "__main__":
    main()
