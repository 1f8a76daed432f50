from __future__ import annotations

import logging
import re
import sys
import threading
from typing import TextIO

from .cleaner import StackCleaner
from .config import CleanerConfig, ColorFormat
from .render import Renderer, effective_format

# ANSI escape codes for the exception headers (can be monkeypatched for styling)
ESC = "\x1b["
RESET = f"{ESC}0m"
BOLD = f"{ESC}1m"
DIM = f"{ESC}2m"
EXC = f"{ESC}91m"  # Bright red for the exception type

# Regex pattern to strip ANSI escape sequences
ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")

chainmsg = {
    "cause": " from previous",
    "context": " in except",
    "none": "",
}

_console_cleaner: StackCleaner | None = None


def console_cleaner() -> StackCleaner:
    """Shared cleaner used for terminal output."""
    global _console_cleaner
    if _console_cleaner is None:
        _console_cleaner = StackCleaner(
            CleanerConfig(
                color_format=ColorFormat.CONSOLE,
                include_file_data=True,
                warn_for_hidden_lines=True,
            )
        )
    return _console_cleaner


def extract_chain(exc: BaseException | None = None) -> list[tuple[BaseException, str]]:
    """Exceptions of a chain, oldest first, each with how it follows the previous one."""
    chain = []
    exc = exc or sys.exc_info()[1]
    while exc:
        kind = (
            "cause"
            if exc.__cause__
            else "context"
            if exc.__context__ and not exc.__suppress_context__
            else "none"
        )
        chain.append((exc, kind))
        exc = exc.__cause__ or None if exc.__suppress_context__ else exc.__context__
    return list(reversed(chain))


def exception_header(exc: BaseException, kind: str = "none") -> str:
    message = str(exc)
    header = f"{EXC}{BOLD}{type(exc).__name__}{RESET}{DIM}{chainmsg[kind]}{RESET}"
    return f"{header}: {message}" if message else header


def tty_traceback(
    exc: BaseException | None = None,
    *,
    file: TextIO | None = None,
    msg: str | None = None,
    cleaner: StackCleaner | None = None,
) -> None:
    """Print the cleaned stacks of an exception chain, oldest exception first.

    Args:
        exc: The exception to format. If None, uses the current exception.
        file: Output file. Defaults to sys.stderr.
        msg: Message printed before the chain (e.g. a log line).
        cleaner: StackCleaner to use, console colors by default.
    """
    if file is None:
        file = sys.stderr
    if cleaner is None:
        cleaner = console_cleaner()
    is_tty = file.isatty() if hasattr(file, "isatty") else False
    renderer = Renderer(cleaner.config, effective_format(cleaner.config, is_tty))

    lines = [msg.rstrip("\n")] if msg else []
    for e, kind in extract_chain(exc):
        lines.append(exception_header(e, kind))
        spans, _ = cleaner.spans(e)
        if spans is not None:
            lines.append(renderer.to_string(spans, terminate=False))
    output = "\n".join(lines) + "\n"

    if not is_tty:
        # Strip all ANSI escape sequences for non-TTY output
        output = ANSI_ESCAPE_RE.sub("", output)
    file.write(output)


# Store the original hooks for unload
_original_excepthook = None
_original_threading_excepthook = None
_original_stream_handler_emit = None


def load(capture_logging: bool = True) -> None:
    """Print uncaught exceptions as cleaned stacks.

    Replaces sys.excepthook and threading.excepthook, and optionally
    logging.StreamHandler.emit so that logging.exception() output is
    cleaned too. Call unload() to restore the original handlers.
    """
    global \
        _original_excepthook, \
        _original_threading_excepthook, \
        _original_stream_handler_emit

    if _original_excepthook is None:
        _original_excepthook = sys.excepthook

    if _original_threading_excepthook is None:
        _original_threading_excepthook = threading.excepthook

    if capture_logging and _original_stream_handler_emit is None:
        _original_stream_handler_emit = logging.StreamHandler.emit

    def _stackrite_excepthook(exc_type, exc_value, exc_tb):
        try:
            tty_traceback(exc=exc_value)
        except Exception:
            # Fall back to original excepthook on any error
            if _original_excepthook:
                _original_excepthook(exc_type, exc_value, exc_tb)
            else:
                sys.__excepthook__(exc_type, exc_value, exc_tb)

    def _stackrite_threading_excepthook(args):  # pragma: no cover (pytest intercepts)
        try:
            tty_traceback(exc=args.exc_value)
        except Exception:
            if _original_threading_excepthook:
                _original_threading_excepthook(args)
            else:
                sys.__excepthook__(args.exc_type, args.exc_value, args.exc_traceback)

    def _stackrite_stream_handler_emit(self, record: logging.LogRecord) -> None:
        """Emit a log record with a cleaned stack for its exception."""
        try:
            if not record.exc_info or record.exc_info[1] is None:
                return _original_stream_handler_emit(self, record)
            # Temporarily clear exc_info so format() doesn't include traceback
            exc_info = record.exc_info
            record.exc_info = None
            record.exc_text = None
            try:
                msg = self.format(record)
            finally:
                record.exc_info = exc_info

            # Temporarily restore original handler to avoid recursion
            original_emit = logging.StreamHandler.emit
            logging.StreamHandler.emit = _original_stream_handler_emit
            try:
                tty_traceback(exc=exc_info[1], file=self.stream, msg=msg)
            finally:
                logging.StreamHandler.emit = original_emit
        except RecursionError:
            raise
        except Exception:
            self.handleError(record)

    sys.excepthook = _stackrite_excepthook
    threading.excepthook = _stackrite_threading_excepthook
    if capture_logging:
        logging.StreamHandler.emit = _stackrite_stream_handler_emit  # type: ignore[attr-defined]


def unload() -> None:
    """Restore the handlers replaced by load()."""
    global \
        _original_excepthook, \
        _original_threading_excepthook, \
        _original_stream_handler_emit

    if _original_excepthook is not None:
        sys.excepthook = _original_excepthook
        _original_excepthook = None

    if _original_threading_excepthook is not None:
        threading.excepthook = _original_threading_excepthook
        _original_threading_excepthook = None

    if _original_stream_handler_emit is not None:
        logging.StreamHandler.emit = _original_stream_handler_emit
        _original_stream_handler_emit = None
