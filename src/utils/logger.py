import atexit
import logging

from rich.console import Console
from rich.logging import RichHandler

from utils import config


class CenteredFormatter(logging.Formatter):
    longest_name_length = 14  # Initial default width

    def __init__(self, fmt=None, datefmt=None, style="%", initial_width=14):
        super().__init__(fmt, datefmt, style)
        CenteredFormatter.longest_name_length = initial_width

    def format(self, record):
        CenteredFormatter.longest_name_length = max(
            CenteredFormatter.longest_name_length, len(record.name)
        )

        dynamic_width = CenteredFormatter.longest_name_length + 2
        record.name = f"{record.name.center(dynamic_width - 2)}"
        return super().format(record)


_console: Console | None = None
_file_handlers: list[tuple[logging.Logger, logging.Handler]] = []


def _log_console() -> Console | None:
    """
    Textual owns the terminal while the app runs, so logs go to a file
    when MARKET_LOG_FILE is set. Otherwise RichHandler writes to stderr.
    The file is opened on first use and stays open until close_log_file().
    """
    global _console
    if not config.LOG_FILE:
        return None
    if _console is None:
        _console = Console(file=open(config.LOG_FILE, "a", encoding="utf-8"), width=140)
    return _console


def close_log_file() -> None:
    """Detach the file-backed handlers and close the log file."""
    global _console
    for logger, handler in _file_handlers:
        logger.removeHandler(handler)
    _file_handlers.clear()
    if _console is not None:
        _console.file.close()
        _console = None


atexit.register(close_log_file)


def get_logger(name=None) -> logging.Logger:
    """
    Creates and returns a logger configured with RichHandler for rich output.
    """
    if name is None:
        name = "market"
    logger = logging.getLogger(name)
    log_level = logging.DEBUG if config.DEBUG else logging.INFO
    logger.setLevel(log_level)

    if not logger.handlers:
        format_pattern = "[%(name)s]  %(message)s"
        formatter = CenteredFormatter(format_pattern)
        console = _log_console()

        handler = RichHandler(
            console=console,
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
        handler.setFormatter(formatter)
        handler.setLevel(log_level)
        logger.addHandler(handler)
        if console is not None:
            _file_handlers.append((logger, handler))

        logger.propagate = False
        logger.debug(f"Logger for '{name}' initialized with RichHandler.")

    return logger
