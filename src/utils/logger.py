import logging
import os

from rich.logging import RichHandler
from textual.logging import TextualHandler

LOG_LEVEL_ENV = "STOREFRONT_LOG_LEVEL"
FORMAT_PATTERN = "[%(name)s]  %(message)s"

# names handed out by get_logger, so the app can re-route them all at once
_known_loggers: set[str] = set()
_textual_mode = False


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
        # format a copy, other handlers may see the same record
        record = logging.makeLogRecord(record.__dict__)
        record.name = f"{record.name.center(dynamic_width - 2)}"
        return super().format(record)


def _resolve_level() -> int:
    level_name = os.getenv(LOG_LEVEL_ENV, "").strip().upper()
    if level_name:
        level = logging.getLevelName(level_name)
        if isinstance(level, int):
            return level
    return logging.DEBUG if os.getenv("DEBUG") else logging.INFO


def _make_handler() -> logging.Handler:
    if _textual_mode:
        handler: logging.Handler = TextualHandler()
    else:
        handler = RichHandler(
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
    handler.setFormatter(CenteredFormatter(FORMAT_PATTERN))
    return handler


def get_logger(name=None) -> logging.Logger:
    """
    Creates and returns a logger configured with RichHandler for rich output.

    Level comes from STOREFRONT_LOG_LEVEL, else DEBUG if the DEBUG env var is
    set, else INFO. Once the Textual app is running (see `route_to_textual`)
    new loggers write to Textual's devtools console instead.
    """
    if name is None:
        name = "storefront"
    logger = logging.getLogger(name)
    log_level = _resolve_level()
    logger.setLevel(log_level)

    if not logger.handlers:
        handler = _make_handler()
        handler.setLevel(log_level)
        logger.addHandler(handler)

        logger.propagate = False
        logger.debug(f"Logger for '{name}' initialized.")

    _known_loggers.add(name)
    return logger


def route_to_textual() -> None:
    """
    Swap the console handler of every known logger for a TextualHandler.

    Called on app mount: writing to stderr while Textual owns the terminal
    garbles the screen.
    """
    global _textual_mode
    _textual_mode = True
    for name in _known_loggers:
        logger = logging.getLogger(name)
        level = logger.level
        for handler in list(logger.handlers):
            if isinstance(handler, RichHandler):
                logger.removeHandler(handler)
        if not any(isinstance(h, TextualHandler) for h in logger.handlers):
            handler = _make_handler()
            handler.setLevel(level)
            logger.addHandler(handler)
