import json
import logging
import os
import sys


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter for structured debug output.

    Produces one JSON object per log record with fields: ts, level, logger, msg.
    Exception info is included as an "exc" field when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _make_formatter(log_format: str, with_name: bool) -> logging.Formatter:
    if log_format == "json":
        return JsonFormatter(datefmt="%Y-%m-%d %H:%M:%S")
    fmt = (
        "[%(asctime)s] [%(levelname)s] %(name)s %(message)s"
        if with_name
        else "[%(asctime)s] [%(levelname)s] %(message)s"
    )
    return logging.Formatter(fmt, datefmt="%Y-%m-%d %H:%M:%S")


def setup_logging(
    verbose: bool = False,
    level: str | None = None,
    log_file: str | None = None,
    log_format: str = "text",
) -> None:
    """
    Configure logging for the command-line tool.

    Log records always go to stderr so stdout stays clean for reports
    (``sync --json`` output in particular).

    Args:
        verbose: If True, overrides every other level source with DEBUG.
        level: Level name from the config file (DEBUG, INFO, ...).
        log_file: Optional file that receives a copy of every record.
        log_format: "text" (default) or "json" for structured output.

    Environment variables:
        LOG_LEVEL: Logging level, used when neither ``verbose`` nor
                   ``level`` is given. Default: INFO.
    """
    if verbose:
        log_level = logging.DEBUG
    else:
        level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
        log_level = getattr(logging, level_name, logging.INFO)

    handlers: list[logging.Handler] = []
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(_make_formatter(log_format, False))
    handlers.append(stderr_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setFormatter(_make_formatter(log_format, True))
        handlers.append(file_handler)

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True,
    )

    # Silence third-party libs unless DEBUG
    if log_level != logging.DEBUG:
        logging.getLogger("urllib3").setLevel(logging.WARNING)
        logging.getLogger("requests").setLevel(logging.WARNING)
