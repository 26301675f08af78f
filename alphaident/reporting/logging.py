import logging
import os
import platform
import socket
import time
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

import alphatims
import numba
import numpy as np
import pandas as pd

import alphaident
from alphaident.utils import USE_NUMBA_CACHING

# Level 21 is just above INFO (20). Registered at import time so that
# .progress() is available before any handler is configured.
PROGRESS_LEVELV_NUM = 21
logging.PROGRESS = PROGRESS_LEVELV_NUM
logging.addLevelName(PROGRESS_LEVELV_NUM, "PROGRESS")


def progress(self, message, *args, **kws):
    if self.isEnabledFor(PROGRESS_LEVELV_NUM):
        self._log(PROGRESS_LEVELV_NUM, message, args, **kws)


logging.Logger.progress = progress

if TYPE_CHECKING:

    class _ExtendedLogger(logging.Logger):
        def progress(self, message: str, *args: Any, **kws: Any) -> None: ...

    logger: _ExtendedLogger = logging.getLogger()  # type: ignore[assignment]
else:
    logger = logging.getLogger()


class DefaultFormatter(logging.Formatter):
    template = "%(levelname)s: %(message)s"

    yellow = "\x1b[33;20m"
    red = "\x1b[31;20m"
    bold_red = "\x1b[31;1m"
    green = "\x1b[32;20m"
    reset = "\x1b[0m"

    def __init__(self, use_ansi: bool = True):
        """
        Default formatter adding elapsed time and optional ANSI colors.

        Parameters
        ----------

        use_ansi : bool, default True
            Whether to use ANSI escape codes to color the output.

        """
        super().__init__()
        self.start_time = time.time()

        colors = {
            logging.PROGRESS: self.green,
            logging.WARNING: self.yellow,
            logging.ERROR: self.red,
            logging.CRITICAL: self.bold_red,
        }

        self.formatter = {}
        for level in [
            logging.DEBUG,
            logging.INFO,
            logging.PROGRESS,
            logging.WARNING,
            logging.ERROR,
            logging.CRITICAL,
        ]:
            if use_ansi and level in colors:
                fmt = colors[level] + self.template + self.reset
            else:
                fmt = self.template
            self.formatter[level] = logging.Formatter(fmt)

    def format(self, record: logging.LogRecord):
        """Format the log record.

        Parameters
        ----------

        record : logging.LogRecord
            Log record to format.

        Returns
        -------
        str
            Formatted log record.
        """

        elapsed = timedelta(seconds=record.created - self.start_time)
        formatter = self.formatter.get(record.levelno, self.formatter[logging.INFO])
        return f"{elapsed} {formatter.format(record)}"


def init_logging(
    log_folder: str = None, log_level: int | str = logging.INFO, overwrite: bool = True
):
    """Initialize the default logger.
    Sets the formatter and the console and file handlers.

    Parameters
    ----------

    log_folder : str, default None
        Path to the folder where the log file will be saved. If None, the log file will not be saved.

    log_level : int | str, default logging.INFO
        Log level to use, either as logging constant or level name.

    overwrite : bool, default True
        Whether to overwrite the log file if it already exists.
    """
    if isinstance(log_level, str):
        log_level = logging.getLevelName(log_level.upper())

    root = logging.getLogger()
    root.handlers = []
    root.setLevel(log_level)

    ch = logging.StreamHandler()
    ch.setLevel(log_level)
    ch.setFormatter(DefaultFormatter(use_ansi=True))
    root.addHandler(ch)

    if log_folder is not None:
        log_name = os.path.join(log_folder, "log.txt")
        if os.path.exists(log_name) and overwrite:
            os.remove(log_name)
        fh = logging.FileHandler(log_name, encoding="utf-8")
        fh.setLevel(log_level)
        fh.setFormatter(DefaultFormatter(use_ansi=False))
        root.addHandler(fh)


def print_logo() -> None:
    """Print the alphaident logo and version."""
    logger.progress("        _      _          _    _         _   ")
    logger.progress("   __ _| |_ __| |_  __ _ (_)__| |___ _ _| |_ ")
    logger.progress("  / _` | | '_ \\ ' \\/ _` || / _` / -_) ' \\  _|")
    logger.progress("  \\__,_|_| .__/_||_\\__,_||_\\__,_\\___|_||_\\__|")
    logger.progress("         |_|                                 ")
    logger.progress("")
    logger.progress(f"version: {alphaident.__version__}")


def print_environment() -> None:
    """Log information about the python environment."""

    logger.info(f"hostname: {socket.gethostname()}")
    logger.progress(
        f"os: {platform.system()} {platform.release()} ({platform.machine()})"
    )
    logger.progress(
        f"python: {platform.python_version()} ({platform.python_implementation()})"
    )

    now = datetime.today().strftime("%Y-%m-%d %H:%M:%S")
    logger.info(f"date: {now}")

    logger.info("================ Environment ======================")
    logger.info(f"{'alphaident':<15} : {alphaident.__version__}")
    logger.info(f"{'alphatims':<15} : {alphatims.__version__}")
    logger.info(f"{'numpy':<15} : {np.__version__}")
    logger.info(f"{'pandas':<15} : {pd.__version__}")
    logger.info(f"{'numba':<15} : {numba.__version__}")
    logger.info("===================================================")

    if USE_NUMBA_CACHING:
        logger.info("Numba caching is activated.")
