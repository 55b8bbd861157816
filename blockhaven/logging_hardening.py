"""Logging setup and redaction.

Filters keep AWS credentials, bearer tokens and session cookies out of
application logs.
"""
import logging
import re

SECRET_PATTERNS = [
    (re.compile(r'\b(AKIA|ASIA)[0-9A-Z]{16}\b'), '[REDACTED_AWS_KEY]'),
    (re.compile(r'(aws_secret_access_key["\']?\s*[:=]\s*["\']?)[A-Za-z0-9/+=]{40}'), r'\1[REDACTED]'),
    (re.compile(r'(Bearer\s+)[A-Za-z0-9\-_\.=]+'), r'\1[REDACTED]'),
    # Signed session cookies / JWTs
    (re.compile(r'eyJ[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+\.[A-Za-z0-9\-_]+'), '[REDACTED_JWT]'),
]


def redact(text: str) -> str:
    for pattern, replacement in SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class SecretRedactionFilter(logging.Filter):
    """Filter that redacts secret-like patterns from log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)

        if record.args and isinstance(record.args, tuple):
            record.args = tuple(redact(arg) if isinstance(arg, str) else arg for arg in record.args)

        return True


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging and apply the SecretRedactionFilter everywhere."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    redact_filter = SecretRedactionFilter()

    root_logger = logging.getLogger()
    # Remove existing filters if any (to avoid duplicates)
    for f in root_logger.filters[:]:
        if isinstance(f, SecretRedactionFilter):
            root_logger.removeFilter(f)
    root_logger.addFilter(redact_filter)

    # Handlers see records propagated from child loggers, logger filters do not
    for handler in root_logger.handlers:
        for f in handler.filters[:]:
            if isinstance(f, SecretRedactionFilter):
                handler.removeFilter(f)
        handler.addFilter(redact_filter)

    logging.getLogger(__name__).info("Logging redaction filters active.")
