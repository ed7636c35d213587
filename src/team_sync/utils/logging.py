"""Console logging for team-sync.

All diagnostics go to stderr so that command output on stdout stays clean:
- DEBUG lines only when verbose mode is enabled
- Warnings and errors always, with an optional suggestion line
- ANSI colors when stderr is a terminal
"""

import sys
import traceback
from enum import Enum
from typing import Any, TextIO


class LogLevel(Enum):
    """Log levels for console output."""
    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3


class Logger:
    """Stderr logger shared by the library and the CLI.

    Attributes:
        verbose: If True, DEBUG messages are printed
        quiet: If True, INFO messages are suppressed
        use_colors: If True, use ANSI color codes
    """

    def __init__(
        self,
        verbose: bool = False,
        quiet: bool = False,
        use_colors: bool = True,
        stream: TextIO | None = None,
    ) -> None:
        """Initialize logger.

        Args:
            verbose: Enable debug output
            quiet: Suppress info output (warnings and errors still shown)
            use_colors: Enable ANSI color codes
            stream: Output stream (defaults to sys.stderr at write time)
        """
        self.verbose = verbose
        self.quiet = quiet
        self._stream = stream
        self.use_colors = use_colors and self.stream.isatty()

    @property
    def stream(self) -> TextIO:
        # Resolved lazily so pytest's capsys sees the output
        return self._stream if self._stream is not None else sys.stderr

    def _colorize(self, text: str, color_code: str) -> str:
        if not self.use_colors:
            return text
        return f"\033[{color_code}m{text}\033[0m"

    @staticmethod
    def _details(kwargs: dict[str, Any]) -> str:
        if not kwargs:
            return ""
        return " (" + " ".join(f"{k}={v!r}" for k, v in kwargs.items()) + ")"

    def _write(self, text: str) -> None:
        print(text, file=self.stream)

    def debug(self, message: str, **kwargs: Any) -> None:
        """Log debug message (only if verbose enabled).

        Args:
            message: Message to log
            **kwargs: Additional key-value pairs to include
        """
        if not self.verbose:
            return
        self._write(self._colorize(f"DEBUG: {message}{self._details(kwargs)}", "36"))  # Cyan

    def info(self, message: str, **kwargs: Any) -> None:
        """Log info message (suppressed in quiet mode)."""
        if self.quiet:
            return
        self._write(self._colorize(f"{message}{self._details(kwargs)}", "37"))  # White

    def warning(self, message: str, **kwargs: Any) -> None:
        """Log warning message."""
        self._write(self._colorize(f"Warning: {message}{self._details(kwargs)}", "33"))  # Yellow

    def error(self, message: str, suggestion: str | None = None) -> None:
        """Log error message with optional suggestion.

        Args:
            message: Error message to log
            suggestion: Optional hint for fixing the error
        """
        self._write(self._colorize(f"Error: {message}", "31"))  # Red
        if suggestion:
            self._write(self._colorize(f"  -> {suggestion}", "33"))

    def exception(self, message: str, exc: BaseException) -> None:
        """Log exception, with traceback in verbose mode.

        Args:
            message: Context message
            exc: Exception to log
        """
        self.error(f"{message}: {exc}")
        if self.verbose:
            tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
            self._write(self._colorize(tb, "90"))  # Gray


# Global logger instance (replaced by init_logger)
_logger: Logger | None = None


def init_logger(verbose: bool = False, quiet: bool = False, use_colors: bool = True) -> Logger:
    """Initialize the global logger.

    Args:
        verbose: Enable debug output
        quiet: Suppress info output
        use_colors: Enable ANSI color codes

    Returns:
        Logger instance
    """
    global _logger
    _logger = Logger(verbose=verbose, quiet=quiet, use_colors=use_colors)
    return _logger


def get_logger() -> Logger:
    """Get the global logger, creating a quiet default on first use.

    Library code calls this without requiring the host to configure logging
    first; the default only reports warnings and errors.
    """
    global _logger
    if _logger is None:
        _logger = Logger(quiet=True)
    return _logger
