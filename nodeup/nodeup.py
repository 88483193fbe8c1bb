#!/usr/bin/env python3
"""nodeup CLI entrypoint."""

import argparse

from nodeup.commands.server import register_server_command
from nodeup.logging_setup import setup_cli_logging


def main():
    parser = argparse.ArgumentParser(description="Provision cloud servers and hand them to Chef")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every poll attempt")
    subparsers = parser.add_subparsers(dest="command", required=True)

    register_server_command(subparsers)

    args = parser.parse_args()
    setup_cli_logging(verbose=args.verbose)
    args.func(args)


if __name__ == "__main__":
    main()
