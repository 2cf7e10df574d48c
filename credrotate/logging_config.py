"""
Logging configuration for credential rotation runs
"""

import logging
import logging.config
from typing import Any, Dict, Iterable, Optional

import click

# Console markers per record kind, matched on the ``kind`` extra attribute
KIND_STYLES = {
    "banner": ("", "blue"),
    "step": ("► ", "cyan"),
    "success": ("✓ ", "green"),
    "detail": ("  ", None),
    "heading": ("", "yellow"),
}

LEVEL_STYLES = {
    logging.WARNING: ("⚠ ", "yellow"),
    logging.ERROR: ("✗ ", "red"),
    logging.CRITICAL: ("✗ ", "red"),
}


class SecretRedactionFilter(logging.Filter):
    """Filter that masks known secret values in log messages."""

    def __init__(self, secrets: Optional[Iterable[str]] = None, mask: str = "********", min_length: int = 4):
        super().__init__()
        # very short values would mask ordinary text
        self.secrets = [s for s in (secrets or []) if s and len(s) >= min_length]
        self.mask = mask

    def filter(self, record: logging.LogRecord) -> bool:
        """Rewrite the record message with secrets masked; never drops records."""
        if not self.secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in self.secrets:
            redacted = redacted.replace(secret, self.mask)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class ConsoleFormatter(logging.Formatter):
    """Human-oriented formatter with a marker and colour per record kind."""

    def __init__(self, use_color: bool = True):
        super().__init__("%(message)s")
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        kind = getattr(record, "kind", None)
        if record.levelno in LEVEL_STYLES:
            prefix, color = LEVEL_STYLES[record.levelno]
        else:
            prefix, color = KIND_STYLES.get(kind, ("", None))
        text = f"{prefix}{message}"
        if self.use_color and color:
            return click.style(text, fg=color)
        return text


def get_logging_config(
    level: str = "INFO",
    use_color: bool = True,
    secrets: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    """Get logging configuration for the CLI.

    DEBUG switches the console to the timestamped format so kubectl
    invocations can be followed.
    """
    formatter = "default" if level.upper() == "DEBUG" else "console"
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "secret_redaction": {
                "()": SecretRedactionFilter,
                "secrets": list(secrets or []),
            }
        },
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            },
            "console": {
                "()": ConsoleFormatter,
                "use_color": use_color,
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": formatter,
                "stream": "ext://sys.stdout",
                "filters": ["secret_redaction"],
            },
        },
        "loggers": {
            "credrotate": {
                "handlers": ["console"],
                "level": level,
                "propagate": False,
            },
        },
    }


def configure_logging(
    level: str = "INFO",
    use_color: bool = True,
    secrets: Optional[Iterable[str]] = None,
) -> None:
    """Apply :func:`get_logging_config` to the logging system."""
    logging.config.dictConfig(get_logging_config(level, use_color, secrets))
