import configparser
import logging
import os

from quitpy.algorithms.despot1 import normalize_fit_type
from quitpy.configs.paths import resolve_config_path
from quitpy.core.validation import ConfigurationError
from quitpy.models.model import get_model
from quitpy.sequences.sequence import build_sequence


TOOLS = ('DESPOT1', 'SIGNAL')

_NONE_LIKE = {'', 'n/a', 'n\\a', 'na', 'none'}


def _none_if_blank(value):
    if value is None:
        return None
    v = str(value).strip()
    return None if v.lower() in _NONE_LIKE else v


def _split_paths(value) -> list:
    if value is None:
        return []
    return [p.strip() for p in str(value).replace('\n', ',').split(',') if p.strip()]


class configuration:
    def __init__(self, cfg_file) -> None:
        self.cfg_file = cfg_file
        self._validate_config(cfg_file)  # Validate before setup
        self._setup_config(cfg_file)

    @staticmethod
    def _normalize_output_mode(value: str | None) -> str:
        if value is None:
            return 'standard'
        v = str(value).strip().lower()
        if v in {'quiet', 'q'}:
            return 'quiet'
        if v in {'standard', 'std', 'default', ''}:
            return 'standard'
        if v in {'verbose', 'v'}:
            return 'verbose'
        if v in {'debug', 'dbg'}:
            return 'debug'
        raise ConfigurationError(
            "Invalid output_mode value.\n"
            "Valid options: quiet | standard | verbose | debug\n"
            f"Current value: '{value}'"
        )

    @staticmethod
    def _normalize_tool(value: str | None) -> str:
        if value is None:
            return 'DESPOT1'
        v = str(value).strip().upper()
        if v in {'DESPOT1', 'D1', ''}:
            return 'DESPOT1'
        if v in {'SIGNAL', 'SIG', 'QSIGNAL'}:
            return 'SIGNAL'
        raise ConfigurationError(
            "Invalid tool value.\n"
            f"Valid options: {' | '.join(TOOLS)}\n"
            f"Current value: '{value}'"
        )

    @staticmethod
    def _normalize_threads(value) -> int | None:
        v = _none_if_blank(value)
        if v is None or v.lower() == 'auto':
            return None
        try:
            n = int(v)
        except ValueError:
            raise ConfigurationError(
                "Invalid threads value.\n"
                "Valid options: auto | a positive integer\n"
                f"Current value: '{value}'"
            ) from None
        if n < 1:
            raise ConfigurationError(f"Invalid threads: {n}\nUse 'auto' or a positive integer.")
        return n

    @staticmethod
    def _normalize_bool(value, option: str) -> bool:
        if isinstance(value, bool):
            return value
        v = str(value).strip().lower()
        if v in {'1', 'true', 'yes', 'on', 'y'}:
            return True
        if v in {'0', 'false', 'no', 'off', 'n', ''}:
            return False
        raise ConfigurationError(
            f"Invalid {option} value.\n"
            "Valid options: true | false\n"
            f"Current value: '{value}'"
        )

    @property
    def output_mode(self) -> str:
        return str(getattr(self, '_output_mode', 'standard'))

    @staticmethod
    def sequence_sections(input_cfg_file) -> list:
        """Sections describing sequences, in file order: ``[SEQUENCE]``, ``[SEQUENCE_2]``, ..."""
        return [s for s in input_cfg_file.sections() if s.upper().startswith('SEQUENCE')]

    def _validate_config(self, input_cfg_file) -> None:
        """Validate configuration file for required sections/options and file paths."""
        tool = self._normalize_tool(input_cfg_file.get('GLOBAL', 'tool', fallback=None))

        if not self.sequence_sections(input_cfg_file):
            raise ConfigurationError(
                "Missing required section [SEQUENCE] in configuration file.\n"
                "Add a [SEQUENCE] section with 'type', 'TR' and 'flip_angles' (SPGR)."
            )

        if tool == 'DESPOT1':
            if not input_cfg_file.has_section('INPUT'):
                raise ConfigurationError(
                    "Missing required section [INPUT] in configuration file.\n"
                    "Check your .ini file and ensure all required sections are present."
                )
            spgr_paths = _split_paths(input_cfg_file.get('INPUT', 'spgr_file', fallback=None))
            if not spgr_paths:
                raise ConfigurationError(
                    "Missing required field 'spgr_file' in [INPUT] section.\n"
                    "This should specify the SPGR data (one 4D NIfTI, or comma-separated 3D volumes).\n"
                    "Add 'spgr_file = /path/to/spgr.nii.gz' to your configuration."
                )
            for p in spgr_paths:
                if not os.path.exists(p):
                    raise ConfigurationError(
                        f"File not found: {p}\n"
                        f"Specified in configuration as 'spgr_file'.\n"
                        f"Check that the path is correct and the file exists."
                    )
            if input_cfg_file.has_section('ALGORITHM'):
                normalize_fit_type(input_cfg_file.get('ALGORITHM', 'algorithm', fallback=None))
        else:
            if not input_cfg_file.has_section('PARAMETERS'):
                raise ConfigurationError(
                    "Missing required section [PARAMETERS] in configuration file.\n"
                    "Signal simulation needs at least one parameter map, e.g. 'T1 = /path/to/T1.nii.gz'."
                )
            model = get_model(input_cfg_file.get('MODEL', 'model', fallback='1C'))
            valid = {n.lower() for n in model.names}
            bound = 0
            for key, raw in input_cfg_file['PARAMETERS'].items():
                if key.lower() not in valid:
                    raise ConfigurationError(
                        f"Unknown parameter '{key}' in [PARAMETERS] for model {model.name}.\n"
                        f"Valid parameters: {', '.join(model.names)}"
                    )
                p = _none_if_blank(raw)
                if p is None:
                    continue
                if not os.path.exists(p):
                    raise ConfigurationError(
                        f"File not found: {p}\n"
                        f"Specified in configuration as parameter map '{key}'."
                    )
                bound += 1
            if bound == 0:
                raise ConfigurationError(
                    "No parameter maps given in [PARAMETERS].\n"
                    "At least one map is needed to define the output grid."
                )

        for key in ('mask_file', 'b1_file'):
            p = _none_if_blank(input_cfg_file.get('INPUT', key, fallback=None))
            if p is not None and not os.path.exists(p):
                raise ConfigurationError(
                    f"File not found: {p}\n"
                    f"Specified in configuration as '{key}'.\n"
                    f"Leave it blank (or 'none') to skip, or provide a valid path."
                )

    def _setup_config(self, input_cfg_file) -> None:
        self.tool = self._normalize_tool(input_cfg_file.get('GLOBAL', 'tool', fallback=None))

        # Input Parameters
        self.spgr_paths = _split_paths(input_cfg_file.get('INPUT', 'spgr_file', fallback=None))
        self.mask_path = _none_if_blank(input_cfg_file.get('INPUT', 'mask_file', fallback=None))
        self.b1_path = _none_if_blank(input_cfg_file.get('INPUT', 'b1_file', fallback=None))

        # Sequences (validated on construction)
        self.sequence_names = self.sequence_sections(input_cfg_file)
        self.sequences = [build_sequence(input_cfg_file[s]) for s in self.sequence_names]
        self.sequence = self.sequences[0]

        # Algorithm Parameters
        self.algorithm = normalize_fit_type(input_cfg_file.get('ALGORITHM', 'algorithm', fallback=None))
        try:
            self.iterations = int(input_cfg_file.get('ALGORITHM', 'iterations', fallback='4'))
        except ValueError:
            raise ConfigurationError(
                "Invalid iterations value: must be an integer.\n"
                f"Current value: '{input_cfg_file.get('ALGORITHM', 'iterations')}'"
            ) from None
        if self.iterations < 1:
            raise ConfigurationError(f"Invalid iterations: {self.iterations}\nMust be a positive integer.")

        # Signal simulation
        self.model = get_model(input_cfg_file.get('MODEL', 'model', fallback='1C'))
        self.parameter_paths = {}
        if input_cfg_file.has_section('PARAMETERS'):
            lookup = {n.lower(): n for n in self.model.names}
            for key, raw in input_cfg_file['PARAMETERS'].items():
                p = _none_if_blank(raw)
                if p is not None:
                    self.parameter_paths[lookup[key.lower()]] = p
        try:
            self.noise = float(input_cfg_file.get('SIGNAL', 'noise', fallback='0'))
        except ValueError:
            raise ConfigurationError(
                f"Invalid noise value: must be a number.\nCurrent value: '{input_cfg_file.get('SIGNAL', 'noise')}'"
            ) from None
        if self.noise < 0:
            raise ConfigurationError(f"Invalid noise: {self.noise}\nNoise sigma must be >= 0.")
        seed = _none_if_blank(input_cfg_file.get('SIGNAL', 'seed', fallback=None))
        try:
            self.seed = None if seed is None else int(seed)
        except ValueError:
            raise ConfigurationError(f"Invalid seed value: must be an integer.\nCurrent value: '{seed}'") from None
        self.complex_output = self._normalize_bool(
            input_cfg_file.get('SIGNAL', 'complex', fallback='false'), 'complex'
        )

        # Output Parameters
        self.prefix = str(input_cfg_file.get('OUTPUT', 'prefix', fallback='') or '').strip()
        self.all_residuals = self._normalize_bool(
            input_cfg_file.get('OUTPUT', 'all_residuals', fallback='false'), 'all_residuals'
        )
        self.save_dir = _none_if_blank(input_cfg_file.get('OUTPUT', 'save_dir', fallback=None)) or os.getcwd()
        self.signal_files = _split_paths(input_cfg_file.get('OUTPUT', 'signal_files', fallback=None))
        if self.signal_files and len(self.signal_files) != len(self.sequences):
            raise ConfigurationError(
                f"[OUTPUT] signal_files lists {len(self.signal_files)} file(s) but "
                f"{len(self.sequences)} sequence section(s) are defined.\n"
                f"Give one output name per sequence, or leave signal_files empty."
            )

        # Global Parameters
        self.threads = self._normalize_threads(input_cfg_file.get('GLOBAL', 'threads', fallback=None))
        self._output_mode = self._normalize_output_mode(input_cfg_file.get('GLOBAL', 'output_mode', fallback=None))

        logging.debug(f"Configuration parsed: tool={self.tool}, sequences={len(self.sequences)}")


def _set(cfg: configparser.ConfigParser, section: str, option: str, value) -> None:
    if value is None:
        return
    if not cfg.has_section(section):
        cfg.add_section(section)
    cfg.set(section, option, str(value))


def configuration_from_args(args: dict, tool: str = 'DESPOT1') -> configparser.ConfigParser:
    """Build the INI used for a run from parsed CLI arguments.

    When ``cfg_path`` is given the file is read first; explicit command-line
    values then override it. Options that were not given on the command line
    (``None``) leave the file untouched.
    """
    cfg = configparser.ConfigParser()
    cfg.optionxform = str  # keep parameter names (e.g. T1_m) as written

    cfg_path = args.get('cfg_path', None)
    if cfg_path:
        cfg_path = resolve_config_path(cfg_path)
        if not os.path.exists(cfg_path):
            raise ConfigurationError(
                f"Configuration file not found: {cfg_path}\n"
                f"Please check the path and try again."
            )
        cfg.read(cfg_path)
        _set(cfg, 'DEBUG', 'cfg_source', cfg_path)

    _set(cfg, 'GLOBAL', 'tool', tool)
    _set(cfg, 'GLOBAL', 'threads', args.get('threads', None))
    _set(cfg, 'GLOBAL', 'output_mode', args.get('output_mode', None))

    spgr = args.get('spgr_files', None)
    if spgr:
        _set(cfg, 'INPUT', 'spgr_file', ','.join(spgr))
    _set(cfg, 'INPUT', 'mask_file', args.get('mask', None))
    _set(cfg, 'INPUT', 'b1_file', args.get('B1', None))

    if args.get('TR', None) is not None or args.get('FA', None) is not None:
        _set(cfg, 'SEQUENCE', 'type', 'SPGR')
        _set(cfg, 'SEQUENCE', 'TR', args.get('TR', None))
        _set(cfg, 'SEQUENCE', 'flip_angles', args.get('FA', None))

    _set(cfg, 'ALGORITHM', 'algorithm', args.get('algo', None))
    _set(cfg, 'ALGORITHM', 'iterations', args.get('its', None))

    _set(cfg, 'OUTPUT', 'prefix', args.get('out', None))
    _set(cfg, 'OUTPUT', 'save_dir', args.get('save_dir', None))
    if args.get('resids', False):
        _set(cfg, 'OUTPUT', 'all_residuals', 'true')

    _set(cfg, 'MODEL', 'model', args.get('model', None))
    for item in args.get('param', None) or []:
        name, sep, path = str(item).partition('=')
        if not sep or not name.strip() or not path.strip():
            raise ConfigurationError(
                f"Invalid --param value: '{item}'\n"
                f"Use NAME=PATH, e.g. --param T1=/path/to/T1.nii.gz"
            )
        _set(cfg, 'PARAMETERS', name.strip(), path.strip())
    _set(cfg, 'SIGNAL', 'noise', args.get('noise', None))
    _set(cfg, 'SIGNAL', 'seed', args.get('seed', None))
    if args.get('complex', False):
        _set(cfg, 'SIGNAL', 'complex', 'true')

    return cfg
