"""Signal simulation CLI.

Adds `QUIT signal` to compute noiseless (or noisy) sequence signals from
parameter maps, e.g. to build test data for `QUIT despot1`.
"""

from __future__ import annotations

import argparse

from quitpy.core import runner


class SignalCLI:
    def __init__(self, subparsers) -> None:
        self.subparsers = subparsers

    def add_subparser_args(self) -> argparse:
        subparser = self.subparsers.add_parser(
            "signal",
            description="simulate sequence signals from parameter maps",
        )

        subparser.add_argument("--cfg_path", type=str, required=False, default=None,
                               help="Path to a configuration .ini (sequences, parameter maps, outputs)")
        models = subparser.add_mutually_exclusive_group()
        models.add_argument("--model", type=str, required=False, default=None,
                            choices=["1C", "2C", "3C"],
                            help="Tissue model: 1C (single), 2C (mcDESPOT 2-pool), 3C (3-pool)")
        models.add_argument("--1", dest="model", action="store_const", const="1C",
                            help="Same as --model 1C")
        models.add_argument("--2", dest="model", action="store_const", const="2C",
                            help="Same as --model 2C")
        models.add_argument("--3", dest="model", action="store_const", const="3C",
                            help="Same as --model 3C")
        subparser.add_argument("--param", type=str, action="append", default=None,
                               help="Parameter map as NAME=PATH (repeatable), e.g. --param T1=T1.nii.gz")
        subparser.add_argument("--TR", type=float, required=False, default=None,
                               help="Repetition time in seconds (single SPGR sequence)")
        subparser.add_argument("--FA", type=str, required=False, default=None,
                               help="Comma-separated flip angles in degrees (single SPGR sequence)")
        subparser.add_argument("-m", "--mask", type=str, required=False, default=None,
                               help="Only calculate inside the mask")
        subparser.add_argument("-o", "--out", type=str, required=False, default=None,
                               help="Prefix for output filenames")
        subparser.add_argument("--save_dir", type=str, required=False, default=None,
                               help="Output directory (default: current directory)")
        subparser.add_argument("-n", "--noise", type=float, required=False, default=None,
                               help="Add complex Gaussian noise with this standard deviation")
        subparser.add_argument("--seed", type=int, required=False, default=None,
                               help="Seed for the noise generator")
        subparser.add_argument("-x", "--complex", action="store_true",
                               help="Write complex signals instead of magnitude")
        subparser.add_argument("-T", "--threads", type=int, required=False, default=None,
                               help="Number of worker threads")
        subparser.add_argument(
            "--output_mode",
            type=str,
            required=False,
            default=None,
            choices=["quiet", "standard", "verbose", "debug"],
            help="Terminal output mode (overrides config): quiet | standard | verbose | debug",
        )

        return self.subparsers

    def validate_args(self, args):
        if not args.get('cfg_path'):
            if not args.get('param'):
                raise SystemExit("QUIT signal: give --cfg_path or at least one --param NAME=PATH.")
            if args.get('TR') is None or args.get('FA') is None:
                raise SystemExit("QUIT signal: --TR and --FA are required when no --cfg_path is given.")
        return args

    def run(self, args):
        return runner.run(args, tool='SIGNAL')
