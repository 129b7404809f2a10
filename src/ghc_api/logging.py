"""Logging setup with credential redaction."""

import logging
import re
from typing import Any, ClassVar

TOKEN_PLACEHOLDER = "[REDACTED_TOKEN]"


class SecretRedactingFilter(logging.Filter):
    """Strip anything that looks like a credential from log records."""

    # Header patterns run first so the whole header value collapses to one marker
    SECRET_PATTERNS: ClassVar[list[tuple[re.Pattern[str], str]]] = [
        (re.compile(r"(Authorization['\"]?\s*[:=]\s*['\"]?)(?:token\s+|bearer\s+)?[^\s,'\"\]}]+", re.IGNORECASE),
         r"\1[REDACTED]"),
        (re.compile(r"Bearer\s+[a-zA-Z0-9_\-\.]+"), "Bearer [REDACTED]"),
        # ghp_ (classic PAT), gho_ (OAuth), ghu_/ghs_ (app tokens), ghr_ (refresh)
        (re.compile(r"gh[pousr]_[a-zA-Z0-9]{20,}"), TOKEN_PLACEHOLDER),
        (re.compile(r"github_pat_[a-zA-Z0-9_]+"), TOKEN_PLACEHOLDER),
        (re.compile(r"((?:oauth_|access_|device_)?token[=:]\s*)[^\s,&\]]+", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"(device_code[=:]\s*)[^\s,&\]]+", re.IGNORECASE), r"\1[REDACTED]"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact(str(record.msg))
        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: _redact_arg(v) for k, v in record.args.items()}
            else:
                record.args = tuple(_redact_arg(arg) for arg in record.args)
        return True


def _redact_arg(arg: Any) -> Any:
    if isinstance(arg, str):
        return redact(arg)
    if isinstance(arg, (dict, list, tuple)):
        return redact(repr(arg))
    return arg


def redact(text: str) -> str:
    """Return ``text`` with every recognised credential replaced."""
    for pattern, replacement in SecretRedactingFilter.SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def setup_logging(
    verbose: bool = False,
    json_format: bool = False,
) -> None:
    """Configure root logging for the CLI.

    Args:
        verbose: Enable debug level logging.
        json_format: Emit one JSON object per line.
    """
    level = logging.DEBUG if verbose else logging.WARNING

    if json_format:
        format_str = '{"time": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", "message": "%(message)s"}'
    else:
        format_str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    redaction_filter = SecretRedactingFilter()
    for handler in root_logger.handlers:
        handler.addFilter(redaction_filter)

    # httpx logs full request lines at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("keyring").setLevel(logging.WARNING)
