"""
Centralized Logging Configuration

Provides secure, production-ready logging with:
- Configurable log levels
- Automatic log rotation
- Secret masking to prevent credential and PII leaks
"""

import logging
import logging.handlers
import re
from pathlib import Path
from typing import Pattern

import config


class SecretMaskingFilter(logging.Filter):
    """
    Logging filter that masks sensitive data in log records.

    Prevents leaks by replacing sensitive values with [REDACTED_*].

    Masks:
    - Bot tokens and bearer tokens
    - Passwords
    - Push subscription keys (p256dh, auth)
    - Email addresses and phone numbers of customers
    """

    # Patterns for secret masking
    PATTERNS: list[tuple[Pattern, str]] = [
        # Telegram bot token (123456:ABC-...)
        (re.compile(r'\b\d{6,12}:[A-Za-z0-9_\-]{30,}\b'), '[REDACTED_BOT_TOKEN]'),

        # Tokens
        (re.compile(r'(token["\']?\s*[:=]\s*["\']?)([A-Za-z0-9_\-:]{20,})(["\']?)', re.IGNORECASE), r'\1[REDACTED_TOKEN]\3'),
        (re.compile(r'(Bearer\s+)([A-Za-z0-9_\-\.]+)', re.IGNORECASE), r'\1[REDACTED_BEARER_TOKEN]'),

        # Shared secret of the push function
        (re.compile(r'(secret["\']?\s*[:=]\s*["\']?)([^\s"\']{8,})(["\']?)', re.IGNORECASE), r'\1[REDACTED_SECRET]\3'),

        # Passwords
        (re.compile(r'(password["\']?\s*[:=]\s*["\']?)([^\s"\']+)(["\']?)', re.IGNORECASE), r'\1[REDACTED_PASSWORD]\3'),

        # Push subscription keys
        (re.compile(r'(p256dh["\']?\s*[:=]\s*["\']?)([A-Za-z0-9_\-=+/]{16,})(["\']?)', re.IGNORECASE), r'\1[REDACTED_PUSH_KEY]\3'),
        (re.compile(r'(\bauth["\']?\s*[:=]\s*["\']?)([A-Za-z0-9_\-=+/]{16,})(["\']?)', re.IGNORECASE), r'\1[REDACTED_PUSH_AUTH]\3'),

        # Email addresses (PII)
        (re.compile(r'\b([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})\b'), '[REDACTED_EMAIL]'),

        # Phone numbers (PH mobile 09xx / +639xx and generic formats)
        (re.compile(r'(?<!\d)(\+?63|0)9\d{2}[-.\s]?\d{3}[-.\s]?\d{4}(?!\d)'), '[REDACTED_PHONE]'),
        (re.compile(r'\b(\+?\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b'), '[REDACTED_PHONE]'),
    ]

    @classmethod
    def mask(cls, text: str) -> str:
        for pattern, replacement in cls.PATTERNS:
            text = pattern.sub(replacement, text)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        """Mask the message and its string arguments. Records are never dropped."""
        if record.msg:
            record.msg = self.mask(str(record.msg))
        if isinstance(record.args, tuple):
            record.args = tuple(self.mask(arg) if isinstance(arg, str) else arg for arg in record.args)
        return True


LOG_FORMAT = '%(asctime)s | %(name)-25s | %(levelname)-8s | %(message)s'
LOG_FILE = Path("logs") / "marketplace.log"


def _attach(root_logger: logging.Logger, handler: logging.Handler, level: int, mask_secrets: bool) -> None:
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    handler.setLevel(level)
    if mask_secrets:
        handler.addFilter(SecretMaskingFilter())
    root_logger.addHandler(handler)


def setup_logging():
    """
    Initialize centralized logging configuration.

    Call once at startup (run.py). Logs go to the console and to
    logs/marketplace.log, rotated at midnight and kept for
    config.LOG_RETENTION_DAYS days; secrets are masked unless
    config.LOG_MASK_SECRETS is off.
    """
    LOG_FILE.parent.mkdir(exist_ok=True)
    log_level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    # setup_logging() may run twice (reload, tests)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    _attach(root_logger,
            logging.handlers.TimedRotatingFileHandler(filename=LOG_FILE, when="midnight",
                                                      backupCount=config.LOG_RETENTION_DAYS, encoding="utf-8"),
            log_level, config.LOG_MASK_SECRETS)
    _attach(root_logger, logging.StreamHandler(), log_level, config.LOG_MASK_SECRETS)

    logging.info(f"Logging initialized: level={config.LOG_LEVEL}, retention={config.LOG_RETENTION_DAYS} days, "
                 f"masking={'on' if config.LOG_MASK_SECRETS else 'off'}")


def silence_sql_loggers():
    """Mute aiosqlite and SQLAlchemy loggers, which reset their levels on engine init."""
    for logger_name in ['aiosqlite', 'sqlalchemy', 'sqlalchemy.engine', 'sqlalchemy.pool', 'sqlalchemy.orm']:
        logger = logging.getLogger(logger_name)
        logger.setLevel(logging.CRITICAL)
        logger.propagate = False
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
        logger.addHandler(logging.NullHandler())
