"""Structured logging setup.

structlog on top of the stdlib logging module, with JSON or console output.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from dex_trader.config import LogFormat, Settings, get_settings


def setup_logging(settings: Settings | None = None) -> None:
    """Configure structlog according to the log level and format settings."""
    settings = settings or get_settings()

    log_level = getattr(logging, settings.log_level)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.log_format == LogFormat.JSON:
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structured logger.

    Args:
        name: Logger name. Defaults to the calling module.

    Returns:
        A bound structlog logger.
    """
    return structlog.get_logger(name)


def log_opportunity(
    logger: structlog.stdlib.BoundLogger,
    *,
    symbol: str,
    address: str,
    price_change_24h: float,
    volume_24h: float,
    **kwargs: Any,
) -> None:
    """Log a qualifying candidate."""
    logger.info(
        "opportunity",
        symbol=symbol,
        address=address,
        price_change_24h=round(price_change_24h, 2),
        volume_24h=round(volume_24h, 2),
        **kwargs,
    )


def log_execution(
    logger: structlog.stdlib.BoundLogger,
    *,
    from_asset: str,
    to_asset: str,
    amount: float,
    success: bool,
    execution_ref: str | None = None,
    output_amount: float | None = None,
    **kwargs: Any,
) -> None:
    """Log a swap execution attempt."""
    level = "info" if success else "warning"
    getattr(logger, level)(
        "execution",
        from_asset=from_asset,
        to_asset=to_asset,
        amount=amount,
        success=success,
        execution_ref=execution_ref,
        output_amount=output_amount,
        **kwargs,
    )


def log_exit_signal(
    logger: structlog.stdlib.BoundLogger,
    *,
    token: str,
    reason: str,
    pnl_pct: float,
    **kwargs: Any,
) -> None:
    """Log a triggered exit rule."""
    logger.warning(
        "exit_signal",
        token=token,
        reason=reason,
        pnl_pct=round(pnl_pct, 2),
        **kwargs,
    )
