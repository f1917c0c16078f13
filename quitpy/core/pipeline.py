"""File-level pipelines behind the ``QUIT`` command-line tools.

Each pipeline follows the same shape: parse/validate the configuration, set up
logging in the output directory, ``load()`` the images, ``calc()`` on the
voxelwise engine, ``save()`` the maps, then write the final config snapshot and
the run manifest.
"""

from __future__ import annotations

import configparser
import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np

from quitpy._version import __version__
from quitpy.algorithms.despot1 import DESPOT1
from quitpy.core import io
from quitpy.core.configuration import configuration
from quitpy.core.image import Image
from quitpy.core.logfmt import DETAIL, STATUS, configure_logging, log_banner
from quitpy.core.progress import set_progress_enabled
from quitpy.core.provenance import write_run_manifest
from quitpy.engine.apply import ApplyAlgorithm
from quitpy.engine.signals import SignalSimulator


class Pipeline:
    def __init__(self, cfg_file: configparser.ConfigParser) -> None:
        self.configuration = configuration(cfg_file)
        self.written: List[str] = []
        self.summary: Dict[str, object] = {}
        self.data_summary: Dict[str, object] = {}
        self._total_runtime_s: Optional[float] = None
        self._run_started_utc: Optional[str] = None
        self._run_finished_utc: Optional[str] = None
        self.configure_logging()

    def _resolve_save_dir(self) -> str:
        save_dir = Path(self.configuration.save_dir)
        if not save_dir.is_absolute():
            cfg_source = self.configuration.cfg_file.get('DEBUG', 'cfg_source', fallback=None)
            if cfg_source:
                save_dir = Path(str(cfg_source)).resolve().parent / save_dir
            else:
                save_dir = Path.cwd() / save_dir
        return str(save_dir)

    def configure_logging(self) -> None:
        self.save_dir = self._resolve_save_dir()
        os.makedirs(self.save_dir, exist_ok=True)
        self.prefix = self.configuration.prefix
        self.log_path = os.path.join(self.save_dir, f"{self.prefix}log.txt")

        configure_logging(self.configuration.output_mode, log_file=self.log_path)
        set_progress_enabled(False if self.configuration.output_mode == 'quiet' else None)
        logging.log(DETAIL, f"QUITpy {__version__}; outputs will be written to {self.save_dir}")

    def _write_final_config_snapshot(self) -> None:
        cfg = self.configuration.cfg_file
        for section in ['GLOBAL', 'OUTPUT']:
            if not cfg.has_section(section):
                cfg.add_section(section)
        cfg.set('GLOBAL', 'tool', self.configuration.tool)
        cfg.set('GLOBAL', 'output_mode', self.configuration.output_mode)
        cfg.set('GLOBAL', 'threads', str(self.configuration.threads or 'auto'))
        cfg.set('OUTPUT', 'save_dir', self.save_dir)
        cfg.set('OUTPUT', 'prefix', self.prefix)

        snapshot_path = os.path.join(self.save_dir, 'config_final.ini')
        with open(snapshot_path, 'w', encoding='utf-8') as f:
            cfg.write(f)
        logging.info(f"Config snapshot saved: {os.path.basename(snapshot_path)}")

    def load(self) -> None:
        raise NotImplementedError

    def calc(self) -> None:
        raise NotImplementedError

    def save(self) -> None:
        raise NotImplementedError

    def title(self) -> str:
        return self.configuration.tool

    def __call__(self) -> None:
        log_banner(f"Starting {self.title()}")
        self._run_started_utc = datetime.now(timezone.utc).isoformat(timespec='seconds')
        start_t = time.time()

        self.load()
        self.calc()
        self.save()
        self._write_final_config_snapshot()

        self._total_runtime_s = float(time.time() - start_t)
        self._run_finished_utc = datetime.now(timezone.utc).isoformat(timespec='seconds')
        write_run_manifest(self, quitpy_version=__version__)
        logging.log(STATUS, f"{self.title()} finished: {len(self.written)} map(s) written to {self.save_dir}")


class DESPOT1Pipeline(Pipeline):
    """Fit PD and T1 maps from SPGR data."""

    def title(self) -> str:
        return f"DESPOT1 ({self.configuration.algorithm})"

    def load(self) -> None:
        cfg = self.configuration
        logging.info(f"Reading SPGR data from: {', '.join(cfg.spgr_paths)}")
        self.spgr = io.load_spgr_input(cfg.spgr_paths)
        self.mask: Optional[Image] = None
        self.B1: Optional[Image] = None
        if cfg.mask_path:
            logging.info(f"Reading mask from: {cfg.mask_path}")
            self.mask = io.load_image(cfg.mask_path)
        if cfg.b1_path:
            logging.info(f"Reading B1 map from: {cfg.b1_path}")
            self.B1 = io.load_image(cfg.b1_path)

        logging.log(DETAIL, f"SPGR sequence: {cfg.sequence}")
        self.data_summary = {
            'spatial_shape': list(self.spgr.spatial_shape),
            'n_volumes': int(self.spgr.n_components),
            'voxel_spacing': list(self.spgr.spacing),
        }

    def calc(self) -> None:
        cfg = self.configuration
        algo = DESPOT1(cfg.algorithm, cfg.iterations)
        logging.info(f"Using {algo.fit_type} algorithm ({algo.iterations} iteration cap)")

        self.engine = ApplyAlgorithm(n_workers=cfg.threads)
        self.engine.set_algorithm(algo)
        self.engine.set_sequence(cfg.sequence)
        self.engine.set_data_input(0, self.spgr)
        if self.B1 is not None:
            self.engine.set_const_input(0, self.B1)
        if self.mask is not None:
            self.engine.set_mask(self.mask)
        self.engine.setup()
        self.engine.run()
        self.summary = dict(self.engine.summary)

    def save(self) -> None:
        logging.info(f"Saving results to: {self.save_dir}")
        outprefix = f"{self.prefix}D1_"
        for name, image in self.engine.outputs().items():
            self.written.append(io.write_result(image, outprefix, name, self.save_dir))
        self.written.extend(
            io.write_residuals(
                self.engine.residuals(),
                outprefix,
                all_residuals=self.configuration.all_residuals,
                save_dir=self.save_dir,
            )
        )
        for path in self.written:
            logging.log(DETAIL, f"  wrote {os.path.basename(path)}")


class SignalPipeline(Pipeline):
    """Simulate sequence signals from parameter maps."""

    def title(self) -> str:
        return f"signal simulation (model {self.configuration.model.name})"

    def load(self) -> None:
        cfg = self.configuration
        self.maps: Dict[str, Image] = {}
        for name, path in cfg.parameter_paths.items():
            logging.info(f"Reading {name} map from: {path}")
            self.maps[name] = io.load_image(path)
        self.mask = io.load_image(cfg.mask_path) if cfg.mask_path else None

        unbound = [n for n in cfg.model.names if n not in self.maps]
        if unbound:
            defaults = dict(zip(cfg.model.names, cfg.model.default_parameters()))
            logging.info(
                "Using default values for: " + ", ".join(f"{n}={defaults[n]:g}" for n in unbound)
            )
        first = next(iter(self.maps.values()))
        self.data_summary = {
            'spatial_shape': list(first.spatial_shape),
            'voxel_spacing': list(first.spacing),
        }

    def calc(self) -> None:
        cfg = self.configuration
        self.simulator = SignalSimulator(cfg.model, n_workers=cfg.threads)
        for name, image in self.maps.items():
            self.simulator.set_parameter(name, image)
        if self.mask is not None:
            self.simulator.set_mask(self.mask)
        self.simulator.setup()

        start = time.time()
        self.signals = self.simulator.simulate_all(cfg.sequences, noise_sigma=cfg.noise, seed=cfg.seed)
        self.summary = {
            'sequences': len(cfg.sequences),
            'noise_sigma': cfg.noise,
            'seed': cfg.seed,
            'elapsed_s': float(time.time() - start),
        }

    def _output_names(self) -> List[str]:
        cfg = self.configuration
        if cfg.signal_files:
            return [f"{self.prefix}{name}" for name in cfg.signal_files]
        if len(cfg.sequences) == 1:
            return [f"{self.prefix}signal"]
        return [f"{self.prefix}signal_{k + 1}" for k in range(len(cfg.sequences))]

    def save(self) -> None:
        logging.info(f"Saving results to: {self.save_dir}")
        for name, image in zip(self._output_names(), self.signals):
            if not self.configuration.complex_output:
                image = image.like(np.abs(image.data))
            stem = name[:-7] if name.endswith('.nii.gz') else name
            self.written.append(io.write_result(image, '', stem, self.save_dir))
            logging.log(DETAIL, f"  wrote {os.path.basename(self.written[-1])}")


PIPELINES = {
    'DESPOT1': DESPOT1Pipeline,
    'SIGNAL': SignalPipeline,
}
