"""Command-line interface for DESPOT1 T1 mapping.

Fits PD and T1 maps to variable flip-angle SPGR data, either from an INI
configuration file or from flags (or both, flags taking precedence).

Example:
    QUIT despot1 spgr.nii.gz --TR 0.005 --FA 3,18 --mask brain.nii.gz
    QUIT despot1 --cfg_path Template_DESPOT1.ini --algo w --its 8
"""

import argparse

from quitpy.core import runner


class CLI:
    def __init__(self, subparsers) -> None:
        """Initializes subparsers for input parameters

        :param subparsers: Parsers for each relevant module
        :type subparsers: argparse._SubParsersAction
        """
        self.subparsers = subparsers

    def validate_args(self, args):
        """Validation step for parsed user input arguments

        :param args: Parsed user inputs
        :type args: dictionary
        :return: Parsed and validated arguments
        :rtype: dictionary
        """
        import os

        from quitpy.configs.paths import resolve_config_path

        cfg_path = args.get('cfg_path', None)
        if cfg_path is not None:
            cfg_path = resolve_config_path(str(cfg_path))
            if not os.path.exists(cfg_path):
                raise FileNotFoundError(
                    f"Configuration file not found: {cfg_path}\n"
                    f"Please check the path and try again."
                )
            args['cfg_path'] = cfg_path

        if not args.get('cfg_path') and not args.get('spgr_files'):
            raise SystemExit(
                "QUIT despot1: give SPGR input file(s) or --cfg_path.\n"
                "Run 'QUIT despot1 -h' for the full list of options."
            )
        if not args.get('cfg_path') and (args.get('TR') is None or args.get('FA') is None):
            raise SystemExit(
                "QUIT despot1: --TR and --FA are required when no --cfg_path is given."
            )
        return args

    def run(self, args):
        """Run computation using parsed user inputs

        :param args: User inputs for relevant parameters
        :type args: dictionary
        """
        return runner.run(args, tool='DESPOT1')

    def add_subparser_args(self) -> argparse:
        """Defines the ``despot1`` subparser.

        :return: argparse object containing the subparsers
        :rtype: argparse
        """
        subparser = self.subparsers.add_parser(
            "despot1",
            description="Calculate T1 maps from SPGR data (DESPOT1)",
        )

        subparser.add_argument("spgr_files", nargs='*', type=str,
                               help="SPGR input: one 4D NIfTI or several 3D volumes (flip-angle order)")
        subparser.add_argument("--cfg_path", type=str, required=False, default=None,
                               help="The path to the configuration file")
        subparser.add_argument("--TR", type=float, required=False, default=None,
                               help="Repetition time in seconds")
        subparser.add_argument("--FA", type=str, required=False, default=None,
                               help="Comma-separated flip angles in degrees, e.g. 3,18")
        subparser.add_argument("-o", "--out", type=str, required=False, default=None,
                               help="Prefix for output filenames")
        subparser.add_argument("--save_dir", type=str, required=False, default=None,
                               help="Output directory (default: current directory)")
        subparser.add_argument("-m", "--mask", type=str, required=False, default=None,
                               help="Only process voxels within the mask")
        subparser.add_argument("-b", "--B1", type=str, required=False, default=None,
                               help="B1 map (ratio) file")
        subparser.add_argument("-a", "--algo", type=str, required=False, default=None,
                               choices=["l", "w", "n", "LLS", "WLLS", "NLLS"],
                               help="Fitting algorithm: l = linear, w = weighted linear, n = non-linear")
        subparser.add_argument("-i", "--its", type=int, required=False, default=None,
                               help="Max iterations for WLLS/NLLS (default 4)")
        subparser.add_argument("-r", "--resids", action="store_true",
                               help="Write per-flip-angle residuals in addition to the residual norm")
        subparser.add_argument("-T", "--threads", type=int, required=False, default=None,
                               help="Number of worker threads (default: hardware/scheduler derived)")
        subparser.add_argument(
            "--output_mode",
            type=str,
            required=False,
            default=None,
            choices=["quiet", "standard", "verbose", "debug"],
            help="Terminal output mode (overrides config): quiet | standard | verbose | debug",
        )

        return self.subparsers
