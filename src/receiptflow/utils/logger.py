import logging
import os

LOG_FORMAT = "[{asctime}|{filename}:{funcName}:{lineno:d}]{levelname}  {message}"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
}


def setup_logger(level: str | None = None) -> logging.Logger:
    """Attach a console handler to the root logger, at ``LOG_LEVEL`` unless a level is given."""
    logger = logging.getLogger()
    logging_level = _LEVELS.get((level or os.environ.get("LOG_LEVEL", "info")).lower(), logging.INFO)

    formatter = logging.Formatter(LOG_FORMAT, style="{", datefmt="%H:%M:%S")
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    # Replace handlers installed by an earlier call
    for handler in list(logger.handlers):
        if getattr(handler, "_receiptflow", False):
            logger.removeHandler(handler)
    console_handler._receiptflow = True  # type: ignore[attr-defined]

    logger.addHandler(console_handler)
    logger.setLevel(logging_level)
    return logger
