"""Logging for cost-saver: stdlib logging rendered by rich."""

import logging
from collections.abc import MutableMapping
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

_STDLIB_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})

# Loggers of the AWS SDK, only shown with --trace
_SDK_LOGGERS = ("boto3", "botocore", "urllib3")


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter turning keyword arguments into a context suffix.

    The message and the context values are escaped before they reach the rich
    handler, so provider text containing brackets is printed as-is rather than
    parsed as markup.

    Example:
        logger = get_logger(__name__)
        logger.info("Stopped instance", instance="i-0abc", region="eu-west-1")
        # Output: Stopped instance [instance=i-0abc region=eu-west-1]
    """

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        """Move non-stdlib kwargs into the message.

        Args:
            msg: Log message
            kwargs: Keyword arguments given to the logging call

        Returns:
            Tuple of (message with context suffix, stdlib kwargs)
        """
        context = {**self.extra, **{k: v for k, v in kwargs.items() if k not in _STDLIB_KWARGS}}
        passthrough = {k: v for k, v in kwargs.items() if k in _STDLIB_KWARGS}

        msg = escape(str(msg))
        if context:
            pairs = " ".join(f"{k}={escape(str(v))}" for k, v in context.items())
            msg = f"{msg} [dim][[/dim]{pairs}[dim]][/dim]"

        return msg, passthrough

    def bind(self, **context: Any) -> "StructuredLoggerAdapter":
        """Return a logger that adds ``context`` to every message."""
        return StructuredLoggerAdapter(self.logger, {**self.extra, **context})


def setup_logging(verbose: bool = False, trace: bool = False) -> None:
    """Install a rich handler on the root logger.

    Args:
        verbose: Enable debug logging
        trace: Enable debug logging, including AWS SDK output and source paths
    """
    handler = RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=trace,
        markup=True,
        rich_tracebacks=True,
        tracebacks_show_locals=trace,
        log_time_format="[%Y-%m-%d %H:%M:%S]",
    )
    logging.basicConfig(
        level=logging.DEBUG if verbose or trace else logging.INFO,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )

    sdk_level = logging.DEBUG if trace else logging.WARNING
    for name in _SDK_LOGGERS:
        logging.getLogger(name).setLevel(sdk_level)


def get_logger(name: str = "") -> StructuredLoggerAdapter:
    """Get a structured logger.

    Args:
        name: Logger name, usually the calling module's __name__

    Returns:
        Adapter accepting context data as keyword arguments
    """
    return StructuredLoggerAdapter(logging.getLogger(name or "costsaver"), {})
