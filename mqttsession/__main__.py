"""Entry point for running mqtt-session as a module.

Usage:
    python -m mqttsession                         # Use env vars or defaults
    python -m mqttsession -c /path/to/config.yaml
    python -m mqttsession --publish "hello" --topic some/topic
    python -m mqttsession --simulate 10 --interval 2
    python -m mqttsession --help
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .app import publish_once, run_app
from .config import create_default_config, get_config, print_env_help
from .exceptions import MQTTSessionError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mqtt-session",
        description="Simple MQTT publish/subscribe session",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Environment variables (no config file needed):
  MQTT_SERVER=broker.local MQTT_PORT=1883 MQTT_TOPIC=home/test \\
  MQTT_USERNAME=user MQTT_PASSWORD=pass mqtt-session

  # Config file:
  mqtt-session -c /etc/mqtt-session/config.yaml
  mqtt-session --generate-config > config.yaml
        """,
    )

    parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to configuration file (optional if using env vars)",
    )
    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--generate-config",
        action="store_true",
        help="Print default configuration and exit",
    )
    parser.add_argument(
        "--env-help",
        action="store_true",
        help="Print environment variable help and exit",
    )
    parser.add_argument(
        "--publish",
        metavar="PAYLOAD",
        default=None,
        help="Publish a single message and exit",
    )
    parser.add_argument(
        "--topic",
        default=None,
        help="Topic for --publish (default: the configured topic)",
    )
    parser.add_argument(
        "--simulate",
        metavar="N",
        type=int,
        nargs="?",
        const=10,
        default=0,
        help="Publish N simulated messages after connecting (default N: 10)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=2.0,
        help="Seconds between simulated messages (default: 2)",
    )
    return parser


def _find_config(config_path: Optional[str]) -> Optional[str]:
    """Pick a config file when none was given and no env vars are set."""
    if config_path or os.environ.get("MQTT_SERVER") is not None:
        return config_path

    default_paths = [
        "/etc/mqtt-session/config.yaml",
        "/config/config.yaml",  # Docker default
        "config.yaml",
    ]
    for path in default_paths:
        if Path(path).exists():
            return path
    return None


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.generate_config:
        print(create_default_config())
        return 0

    if args.env_help:
        print(print_env_help())
        return 0

    config_path = _find_config(args.config)
    using_env = os.environ.get("MQTT_SERVER") is not None

    if not config_path and not using_env:
        print("Error: No configuration found.", file=sys.stderr)
        print("\nOptions:", file=sys.stderr)
        print("  1. Set MQTT_SERVER and the other MQTT_* environment variables", file=sys.stderr)
        print("  2. Create a config file: mqtt-session --generate-config > config.yaml", file=sys.stderr)
        print("  3. Specify config path: mqtt-session -c /path/to/config.yaml", file=sys.stderr)
        print("\nFor environment variable help: mqtt-session --env-help", file=sys.stderr)
        return 1

    try:
        config = get_config(config_path)

        if args.publish is not None:
            sent = asyncio.run(publish_once(config, args.publish, args.topic))
            return 0 if sent else 1

        asyncio.run(run_app(config, simulate=args.simulate, interval=args.interval))
        return 0
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 0
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except MQTTSessionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
