#!/usr/bin/env python3
"""
daimon CLI
==========

Command-line interface for a daimon node.

Usage:
    daimon run                          # Run the node (default config)
    daimon run --config node.toml       # Run with an explicit config
    daimon check --config node.toml     # Validate a config and show the node

    daimon send 127.0.0.1:7135 1 2.5 -3 # Push a vector into a node
    daimon query 127.0.0.1:7135         # Print a node's current state
    daimon query 127.0.0.1:7135 --json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from daimon.client import parse_address, request_output, send_output
from daimon.config import LOG_LEVELS, default_config_path, load_config
from daimon.daemon import NodeDaemon
from daimon.errors import DaimonError
from daimon.samples import format_samples, parse_sample, to_list


def setup_logging(level: str) -> None:
    logging.basicConfig(format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    logging.getLogger().setLevel(level)


def cmd_run(args: argparse.Namespace) -> int:
    """Run the node daemon in the foreground."""
    setup_logging(args.log_level or "INFO")
    config = load_config(args.config)
    if args.log_level is None:
        logging.getLogger().setLevel(config.log_level)
    if args.port is not None:
        config = config.model_copy(update={"port": args.port})

    daemon = NodeDaemon(config)
    try:
        daemon.run()
    except OSError as e:
        print(f"Cannot start node on {config.host}:{config.port}: {e}", file=sys.stderr)
        return 1
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Validate a config file and print the resolved node."""
    config = load_config(args.config)
    daemon = NodeDaemon(config)

    print(f"Listen:     {config.host}:{config.port}")
    print(f"Function:   {daemon.invoker.describe()}")
    print(f"Initial:    {len(config.initial)} samples")
    print(f"Downstream ({len(config.downstream)}):")
    for address in config.downstream:
        print(f"  - {address}")
    return 0


def cmd_send(args: argparse.Namespace) -> int:
    """Send one Output event to a node."""
    address = parse_address(args.address)
    try:
        values = [parse_sample(v) for v in args.values]
    except ValueError as e:
        print(f"Not a number: {e}", file=sys.stderr)
        return 2
    send_output(address, values, connect_timeout=args.timeout, io_timeout=args.timeout)
    print(f"Sent {len(values)} samples to {address}")
    return 0


def cmd_query(args: argparse.Namespace) -> int:
    """Print a node's current state."""
    address = parse_address(args.address)
    samples = request_output(address, connect_timeout=args.timeout, io_timeout=args.timeout)
    if args.json:
        print(json.dumps(to_list(samples)))
    else:
        print(" ".join(format_samples(samples)))
    return 0


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="daimon - chain vector transformations across machines",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # run
    p = subparsers.add_parser("run", help="Run the node daemon")
    p.add_argument("--config", "-c", type=Path, default=default_config_path(),
                   help="Config file (TOML or YAML)")
    p.add_argument("--port", "-p", type=int, default=None,
                   help="Override the configured port")
    p.add_argument("--log-level", choices=LOG_LEVELS, default=None,
                   help="Log level (defaults to the config's)")
    p.set_defaults(func=cmd_run)

    # check
    p = subparsers.add_parser("check", help="Validate a config file")
    p.add_argument("--config", "-c", type=Path, default=default_config_path(),
                   help="Config file (TOML or YAML)")
    p.set_defaults(func=cmd_check)

    # send
    p = subparsers.add_parser("send", help="Send a vector to a node")
    p.add_argument("address", help="Node address (host:port)")
    p.add_argument("values", nargs="*", help="Samples")
    p.add_argument("--timeout", type=float, default=5.0, help="Socket timeout (s)")
    p.set_defaults(func=cmd_send)

    # query
    p = subparsers.add_parser("query", help="Print a node's current state")
    p.add_argument("address", help="Node address (host:port)")
    p.add_argument("--json", action="store_true", help="Output as JSON")
    p.add_argument("--timeout", type=float, default=5.0, help="Socket timeout (s)")
    p.set_defaults(func=cmd_query)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return args.func(args)
    except DaimonError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
