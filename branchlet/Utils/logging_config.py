# branchlet/Utils/logging_config.py
# Description: loguru sink setup for the CLI
#
# Imports
import sys
from pathlib import Path
from typing import Optional, Union
#
# Third-Party Imports
from loguru import logger
#
# Local Imports
from .log_sanitizer import sanitize_string
#
#######################################################################################################################
#
# Functions:

CONSOLE_FORMAT = "<level>{level: <8}</level> | <cyan>{extra[module]}</cyan> - <level>{message}</level>"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[module]} | {name}:{function}:{line} - {message}"


def _scrub_record(record) -> None:
    record["message"] = sanitize_string(record["message"])
    record["extra"].setdefault("module", record["name"])


def configure_logging(level: str = "INFO", log_file: Optional[Union[str, Path]] = None,
                      rotation: str = "10 MB", retention: Union[int, str] = 3,
                      console: bool = True) -> None:
    """
    Configure logging for branchlet. Call once at startup.

    Replaces loguru's default handler with a stderr sink at ``level`` and,
    when ``log_file`` is given, a rotating file sink that always records
    DEBUG. Every record's message is scrubbed of tokens first.
    """
    logger.remove()  # Remove default handler
    logger.configure(patcher=_scrub_record)

    if console:
        logger.add(sys.stderr, level=level.upper(), format=CONSOLE_FORMAT, colorize=True)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_path),
            level="DEBUG",
            format=FILE_FORMAT,
            rotation=rotation,
            retention=retention,
            encoding="utf-8",
            enqueue=False,
        )

    logger.bind(module="logging_config").debug(f"Logging configured: console={level.upper()}, file={log_file}")

#
# End of logging_config.py
#######################################################################################################################
