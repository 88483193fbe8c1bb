"""Centralized secret redaction for log output."""

import logging
import os
import re

logger = logging.getLogger(__name__)

# Env vars whose values should be redacted from all output
_SECRET_ENV_VARS = [
    "CLOUDRIFT_API_KEY",
    "GOOGLE_APPLICATION_CREDENTIALS",
    "NODEUP_SSH_PASSWORD",
]

_MIN_SECRET_LENGTH = 8  # skip short values to avoid false positives

# Values registered at runtime (e.g. --ssh-password); same length rule as env values
_registered: set[str] = set()


def _collect_secret_values() -> set[str]:
    values = set(_registered)
    for var in _SECRET_ENV_VARS:
        val = os.environ.get(var, "")
        if len(val) >= _MIN_SECRET_LENGTH:
            values.add(val)
    return values


def _build_patterns(values: set[str]) -> list[re.Pattern]:
    # Sort by length descending so longer values match first
    return [re.compile(re.escape(v)) for v in sorted(values, key=len, reverse=True)]


# Lazy-initialized module cache
_patterns: list[re.Pattern] | None = None


def _get_patterns() -> list[re.Pattern]:
    global _patterns
    if _patterns is None:
        _patterns = _build_patterns(_collect_secret_values())
    return _patterns


def register_secret(value, name="secret"):
    """Redact *value* from all subsequent output.

    Values shorter than the minimum secret length are not registered, since
    masking them would mangle unrelated text. Returns True if registered.
    """
    global _patterns
    if not value:
        return False
    if len(value) < _MIN_SECRET_LENGTH:
        logger.warning(f"Warning: {name} is shorter than {_MIN_SECRET_LENGTH} characters and will not be redacted from output.")
        return False
    _registered.add(value)
    _patterns = None
    return True


def redact_secrets(text: str) -> str:
    """Replace known secret values with '***'."""
    return _apply(text, _get_patterns())


def _apply(text: str, patterns: list[re.Pattern]) -> str:
    for p in patterns:
        text = p.sub("***", text)
    return text


class SecretRedactingFilter(logging.Filter):
    """Logging filter that replaces secret values in log records with '***'.

    Attached to the root handler so every logger benefits. Handles both
    f-string messages (msg is pre-formatted) and %-style messages (msg + args).
    """

    def filter(self, record: logging.LogRecord) -> bool:
        patterns = _get_patterns()
        if patterns:
            record.msg = _apply(str(record.msg), patterns)
            if record.args:
                if isinstance(record.args, dict):
                    record.args = {k: _apply(v, patterns) if isinstance(v, str) else v for k, v in record.args.items()}
                elif isinstance(record.args, tuple):
                    record.args = tuple(_apply(a, patterns) if isinstance(a, str) else a for a in record.args)
        return True
