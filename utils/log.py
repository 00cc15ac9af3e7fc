# Copyright (C) 2026 grodz
#
# This file is part of Encore.
#
# Encore is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""Logging setup: one loguru sink with clean 4-char level names.

Maps levels to 4-character tags for aligned output:
- DEBUG    -> [DBUG] - Technical details for debugging
- INFO     -> [INFO] - Normal operation messages
- NOTICE   -> [NOTE] - Startup milestones shown even in minimal mode
- WARNING  -> [WARN] - Issues that don't stop operation
- ERROR    -> [FAIL] - Recoverable failures
- CRITICAL -> [CRIT] - Catastrophic failures

discord.py and mafic log through the stdlib logging module. InterceptHandler
forwards those records into loguru so everything shares one format.
"""

import inspect
import logging
import sys

from loguru import logger

LEVEL_NAMES = {
    "DEBUG": "DBUG",
    "INFO": "INFO",
    "NOTICE": "NOTE",
    "SUCCESS": "INFO",
    "WARNING": "WARN",
    "ERROR": "FAIL",
    "CRITICAL": "CRIT",
}

# logging.level setting -> minimum loguru level
VERBOSITY = {
    "minimal": "NOTICE",
    "verbose": "INFO",
    "debug": "DEBUG",
}

NOTICE_NO = 25  # between INFO (20) and WARNING (30)

LIBRARY_LOGGERS = ("discord", "mafic")


class InterceptHandler(logging.Handler):
    """Forward stdlib logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk back to the frame that issued the log call
        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _format(record) -> str:
    tag = LEVEL_NAMES.get(record["level"].name, record["level"].name[:4])
    name = record["name"]
    return f"[{{time:YYYY-MM-DD HH:mm:ss}}] [{tag}] {name}: {{message}}\n{{exception}}"


def resolve_level(verbosity: str | None) -> str:
    """Turn a logging.level setting into a loguru level name.

    Unknown values fall back to "verbose".
    """
    return VERBOSITY.get((verbosity or "").lower(), VERBOSITY["verbose"])


def setup_logging(verbosity: str | None = "verbose") -> str:
    """Install the stderr sink and route library loggers through loguru.

    Safe to call again after config load to change the level.

    Returns:
        The loguru level name now in effect
    """
    try:
        logger.level("NOTICE")
    except ValueError:
        logger.level("NOTICE", no=NOTICE_NO)

    level = resolve_level(verbosity)
    logger.remove()
    logger.add(sys.stderr, level=level, format=_format, backtrace=False, diagnose=False)

    # Library noise stays at WARNING unless debugging
    library_level = logging.DEBUG if level == "DEBUG" else logging.WARNING
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    return level
