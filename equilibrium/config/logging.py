"""Logging setup for the ``equilibrium`` package.

Module loggers (``logging.getLogger(__name__)``) sit under the package logger,
so configuring it once from the CLI covers the core and the adapters. Output
goes to stderr; stdout is reserved for the streamed answer.
"""

import json
import logging
import sys

LOGGER_NAME = "equilibrium"

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Model libraries log every load at INFO
NOISY_LOGGERS = ("sentence_transformers", "transformers", "huggingface_hub")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with the traceback when there is one."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.filename}:{record.lineno}",
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", json_format: bool = False) -> logging.Logger:
    """Install a single stderr handler on the package logger.

    Safe to call repeatedly; earlier handlers are replaced.
    """
    package_logger = logging.getLogger(LOGGER_NAME)
    package_logger.setLevel(level.upper())
    package_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(TEXT_FORMAT))
    package_logger.addHandler(handler)

    if package_logger.level > logging.DEBUG:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    return package_logger
