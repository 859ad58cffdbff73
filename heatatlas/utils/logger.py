"""
HeatAtlas Structured Logging Configuration
Centralized logging setup for the entire application.

structlog gives every module a key/value logger; loguru owns the sinks
(coloured console + rotating file in development, JSON in production).
Standard-library records (uvicorn, aiohttp, googleapiclient) are routed
into loguru so everything lands in the same place.
"""
import sys
import logging
from pathlib import Path

import structlog
from loguru import logger

PROJECT_ROOT = Path(__file__).parent.parent.parent


class InterceptHandler(logging.Handler):
    """Forward standard-library log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(environment: str = "development") -> None:
    """
    Configure structured logging for HeatAtlas.

    Args:
        environment: "development" or "production"
    """
    logger.remove()

    if environment == "development":
        logger.add(
            sys.stderr,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
                "<level>{message}</level>"
            ),
            level="DEBUG",
            colorize=True,
            backtrace=True,
            diagnose=True,
        )

        log_file = PROJECT_ROOT / "logs" / "heatatlas_dev.log"
        log_file.parent.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_file,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}",
            level="INFO",
            rotation="10 MB",
            retention="30 days",
            compression="gz",
        )

    else:
        logger.add(
            sys.stdout,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}",
            level="INFO",
            serialize=True,
        )

        error_log_file = PROJECT_ROOT / "logs" / "heatatlas_errors.log"
        error_log_file.parent.mkdir(parents=True, exist_ok=True)

        logger.add(
            error_log_file,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}",
            level="ERROR",
            rotation="50 MB",
            retention="90 days",
            compression="gz",
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=logging.INFO, force=True)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if environment == "production" else structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logger.info(f"Logging system initialized ({environment})")


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance for a specific module.

    Args:
        name: Typically __name__ of the calling module
    """
    return structlog.get_logger(name)
