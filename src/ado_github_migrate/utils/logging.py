"""Logging utilities for the ADO to GitHub Migration Tool."""

import sys
from pathlib import Path
from typing import Optional, Set
from urllib.parse import quote

from loguru import logger

_secrets: Set[str] = set()


def register_secret(secret: Optional[str]) -> None:
    """Mask a token in every message logged from now on.

    Args:
        secret: Token or password to redact (empty values are ignored)
    """
    if secret:
        _secrets.add(secret)


def clear_secrets() -> None:
    """Forget all registered secrets."""
    _secrets.clear()


def mask_secrets(message: str) -> str:
    """Replace registered secrets in a message with ``***``."""
    for secret in _secrets:
        message = message.replace(secret, '***').replace(quote(secret, safe=''), '***')
    return message


def _redact(record) -> None:
    record['message'] = mask_secrets(record['message'])


# Installed at import so redaction also covers handlers added by callers.
logger.configure(patcher=_redact)


def setup_logging(
    level: str = 'INFO',
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
) -> None:
    """Setup logging configuration using loguru.

    Args:
        level: Log level (DEBUG, INFO, SUCCESS, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        log_format: Optional custom log format
    """
    # Remove default handler
    logger.remove()

    if log_format is None:
        log_format = (
            '<green>{time:YYYY-MM-DD HH:mm:ss}</green> | '
            '<level>{level: <8}</level> | '
            '<level>{message}</level>'
        )

    logger.add(
        sys.stderr,
        format=log_format,
        level=level,
        colorize=True,
        backtrace=True,
        diagnose=False,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # File format (no colors)
        file_format = (
            '{time:YYYY-MM-DD HH:mm:ss} | '
            '{level: <8} | '
            '{name}:{function}:{line} | '
            '{message}'
        )

        logger.add(
            log_file,
            format=file_format,
            level=level,
            rotation='10 MB',
            retention='30 days',
            compression='gz',
            backtrace=True,
            diagnose=False,
        )

    logger.debug(f'Logging initialized with level: {level}')
    if log_file:
        logger.info(f'Log file: {log_file}')
