from __future__ import annotations

import logging
import time

from quitpy.core.configuration import configuration_from_args


def run(cfg_dct, tool: str = 'DESPOT1'):
    """Entrypoint used by the CLI to run a QUIT pipeline from a config path and/or flags."""
    input_cfg_file = configuration_from_args(cfg_dct, tool=tool)

    from quitpy.core.pipeline import PIPELINES

    start = time.time()
    pipeline = PIPELINES[tool.upper()](input_cfg_file)
    pipeline()
    end = time.time()
    logging.info(f"Total Runtime: {round(end - start, 4)} sec")
    return pipeline
