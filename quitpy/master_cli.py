"""``QUIT`` console entry point: one subcommand per tool."""

from __future__ import annotations

import argparse
import logging
import sys

from quitpy.cli import CLI as Despot1CLI
from quitpy.core.validation import ConfigurationError, DataError, EngineStateError
from quitpy.signal_cli import SignalCLI


TOOLS = {'despot1': Despot1CLI, 'signal': SignalCLI}


def build_parser():
    parser = argparse.ArgumentParser(
        prog='QUIT',
        description='QUITpy command line interface',
        epilog='Run "QUIT <tool> -h" for the options of each tool.',
    )
    subparsers = parser.add_subparsers(dest='command', help='tool to run')

    commands = {}
    for name, factory in TOOLS.items():
        commands[name] = factory(subparsers)
        commands[name].add_subparser_args()
    return parser, commands


def main(argv=None) -> None:
    parser, commands = build_parser()

    argv = sys.argv[1:] if argv is None else list(argv)
    ns = parser.parse_args(argv) if argv else None
    if ns is None or not ns.command:
        parser.print_help()
        return

    cli = commands[ns.command]
    args = cli.validate_args(vars(ns))
    try:
        cli.run(args)
    except (ConfigurationError, DataError, EngineStateError) as e:
        logging.error(str(e))
        parser.exit(1, f"QUIT {ns.command}: {type(e).__name__}: {e}\n")


if __name__ == "__main__":
    main()
