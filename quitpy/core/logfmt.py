"""Console and run-log formatting for the QUIT tools.

Output modes map onto root-logger levels. Two extra levels sit around INFO:
``STATUS`` (milestones that still print in quiet mode) and ``DETAIL`` (shown in
verbose mode). The run log file never drops below INFO so quiet runs still
leave a full record.
"""

from __future__ import annotations

import logging
from typing import Optional


STATUS = 25
DETAIL = 15

logging.addLevelName(STATUS, "STATUS")
logging.addLevelName(DETAIL, "DETAIL")

MODE_LEVELS = {
    "quiet": STATUS,
    "standard": logging.INFO,
    "verbose": DETAIL,
    "debug": logging.DEBUG,
}


class QUITFormatter(logging.Formatter):
    """``QUIT: msg`` for INFO and ``QUIT [LEVEL]: msg`` for everything else."""

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if record.exc_info:
            msg = f"{msg}\n{self.formatException(record.exc_info)}"
        if record.levelno == logging.INFO:
            return f"QUIT: {msg}"
        return f"QUIT [{record.levelname}]: {msg}"


def configure_logging(output_mode: str = "standard", log_file: Optional[str] = None) -> None:
    level = MODE_LEVELS.get(str(output_mode), logging.INFO)
    formatter = QUITFormatter()

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(formatter)
    handlers: list[logging.Handler] = [console]

    if log_file is not None:
        run_log = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        run_log.setLevel(min(level, logging.INFO))
        run_log.setFormatter(formatter)
        handlers.append(run_log)

    logging.basicConfig(level=min(level, logging.INFO), handlers=handlers, force=True)


def log_banner(title: str, level: int = logging.INFO) -> None:
    rule = "# " + "-" * 79 + " #"
    logging.log(level, rule)
    logging.log(level, f"# {title.center(79)} #")
    logging.log(level, rule)
