"""Command-line entry point for the EmoteStream services."""

import argparse
import asyncio
import sys

from . import __version__

SERVICES = ("aggregator", "relay", "producer")


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the ``emotestream`` command."""
    parser = argparse.ArgumentParser(
        prog="emotestream",
        description="Emote spike detection and live fan-out for shared video streams",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Analyze raw reactions and serve the settings API on $PORT
  emotestream aggregator

  # Fan moments and video out to viewers over WebSocket
  emotestream relay

  # Stream $VIDEO_PATH into the video topic
  emotestream producer

Configuration is read from the environment and an optional .env file.
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("service", choices=SERVICES, help="Service to run")
    return parser


def run(argv: list[str] | None = None) -> None:
    """Run the selected service until it is interrupted.

    Service modules are imported lazily so that starting one service does not
    import the others.
    """
    args = build_parser().parse_args(argv)

    if args.service == "aggregator":
        from .aggregator.main import main
    elif args.service == "relay":
        from .relay.main import main
    else:
        from .producer.main import main

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    run()
