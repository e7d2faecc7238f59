"""
Snapvote Logging
================

Package-wide logging built on the standard ``logging`` module with a
``rich`` console handler. Every module asks for its logger the same way:

    >>> from snapvote.logger import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info("Proposal queued")

All loggers live under the ``snapvote`` namespace, which is configured once
from the LOG_* settings in ``snapvote.constants``.
"""

import logging
import logging.handlers
import re
import sys
import threading
import time
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.highlighter import RegexHighlighter
from rich.logging import RichHandler
from rich.theme import Theme

from .constants import (
    LOG_BACKUP_COUNT,
    LOG_CONSOLE_HIGHLIGHTING,
    LOG_DATE_FORMAT,
    LOG_FILE_OUTPUT,
    LOG_FORMAT,
    LOG_LEVEL,
    LOG_MAX_FILE_SIZE,
)

PACKAGE_LOGGER = "snapvote"
LOG_FILE_PATH = Path(__file__).parent.parent / "logs" / "snapvote.log"

GOVERNANCE_THEME = Theme({
    "snapvote.address": "cyan",
    "snapvote.hash": "dim cyan",
    "snapvote.arrow": "bold yellow",
    "snapvote.state": "bold white",
    "snapvote.level_debug": "bold dim",
    "snapvote.level_info": "bold green",
    "snapvote.level_warning": "bold yellow",
    "snapvote.level_error": "bold red",
    "snapvote.level_critical": "bold red reverse",
    "snapvote.logger_name": "magenta",
    "snapvote.timestamp": "bold cyan",
})


class TerminalSafeFormatter(logging.Formatter):
    """
    Formatter that strips ANSI escapes and control characters.

    Proposal descriptions and vote reasons are caller-supplied text and end
    up in log lines verbatim.
    """

    _ansi_re = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b[@-Z\\-_]")
    _control_re = re.compile(r"[\x00-\x08\x0B-\x1F\x7F]")

    @classmethod
    def sanitize(cls, text: str) -> str:
        if not text:
            return text
        return cls._control_re.sub("", cls._ansi_re.sub("", text))

    def format(self, record: logging.LogRecord) -> str:
        return self.sanitize(super().format(record))


class GovernanceLogHighlighter(RegexHighlighter):
    """Colors addresses, ids, lifecycle states and the level prefix."""

    base_style = "snapvote."
    highlights = [
        r"(?P<arrow>→)",
        r"(?P<hash>\b0x[0-9a-fA-F]{64}\b)",
        r"(?P<address>\b0x[0-9a-fA-F]{40}\b)",
        r"(?P<state>\b(PENDING|ACTIVE|CANCELED|DEFEATED|SUCCEEDED|QUEUED|EXECUTED|WAITING|READY|DONE|CANCELLED)\b)",
        r"(?P<level_debug>\bDEBUG\b)",
        r"(?P<level_info>\bINFO\b)",
        r"(?P<level_warning>\bWARNING\b)",
        r"(?P<level_error>\bERROR\b)",
        r"(?P<level_critical>\bCRITICAL\b)",
        r"\-\s+\w+\s+-\s+(?P<logger_name>[\w.]+)(?=\s-\s)",
        r"(?P<timestamp>^(.*?)UTC)",
    ]


class LogManager:
    """
    Process-wide logging setup (singleton).

    ``configure`` installs handlers on the ``snapvote`` logger exactly once;
    later calls are no-ops.
    """

    _instance: Optional["LogManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "LogManager":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._configured = False
        return cls._instance

    @staticmethod
    def checked_format(log_format) -> str:
        """Return *log_format* if a sample record formats cleanly, else the default."""
        candidate = str(log_format) if log_format else str(LOG_FORMAT.default())
        record = logging.LogRecord("check", logging.INFO, "", 0, "msg", (), None)
        try:
            logging.Formatter(fmt=candidate).format(record)
        except (ValueError, KeyError, TypeError) as e:
            print(f"snapvote.logger - bad LOG_FORMAT ({e}), using default", file=sys.stderr)
            return str(LOG_FORMAT.default())
        return candidate

    def configure(
        self,
        log_level: Optional[str] = None,
        log_file: Optional[Path] = None,
        console_output: bool = True,
        file_output: Optional[bool] = None,
    ) -> None:
        """
        Attach console and (optionally) rotating-file handlers.

        Args:
            log_level: Level name; defaults to LOG_LEVEL.
            log_file: Destination for file output; defaults to ``logs/snapvote.log``.
            console_output: Emit to the terminal through rich.
            file_output: Also write to *log_file*; defaults to LOG_FILE_OUTPUT.
        """
        with self._lock:
            if self._configured:
                return

            level = getattr(logging, str(log_level or LOG_LEVEL).upper(), logging.INFO)
            root = logging.getLogger(PACKAGE_LOGGER)
            root.setLevel(level)
            root.handlers.clear()

            formatter = TerminalSafeFormatter(
                fmt=self.checked_format(LOG_FORMAT),
                datefmt=str(LOG_DATE_FORMAT or LOG_DATE_FORMAT.default()) + " UTC",
            )
            formatter.converter = time.gmtime

            if console_output:
                if LOG_CONSOLE_HIGHLIGHTING:
                    handler = RichHandler(
                        console=Console(theme=GOVERNANCE_THEME, highlight=False),
                        highlighter=GovernanceLogHighlighter(),
                        rich_tracebacks=True,
                        show_time=False,
                        show_level=False,
                        show_path=False,
                        markup=False,
                    )
                else:
                    handler = logging.StreamHandler(sys.stdout)
                handler.setLevel(level)
                handler.setFormatter(formatter)
                root.addHandler(handler)

            if file_output is None:
                file_output = bool(LOG_FILE_OUTPUT)
            if file_output:
                path = log_file or LOG_FILE_PATH
                path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.handlers.RotatingFileHandler(
                    filename=str(path),
                    maxBytes=LOG_MAX_FILE_SIZE,
                    backupCount=LOG_BACKUP_COUNT,
                    encoding="utf-8",
                )
                file_handler.setLevel(level)
                file_handler.setFormatter(formatter)
                root.addHandler(file_handler)

            self._configured = True

    @property
    def is_configured(self) -> bool:
        return self._configured

    def get_logger(self, name: str) -> logging.Logger:
        if not self._configured:
            self.configure()
        return logging.getLogger(name)


_manager = LogManager()


def get_logger(name: str) -> logging.Logger:
    """Logger for *name* (normally ``__name__``), configuring the package on first use."""
    return _manager.get_logger(name)


_manager.configure()
