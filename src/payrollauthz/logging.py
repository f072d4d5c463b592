"""Logging helpers for the authorization engine.

Provides:
- ``setup_logging(config)``: root handler driven by ``AuthzConfig``
- ``safe_preview`` / ``safe_log_value``: bounded one-line renderings of
  scopes, records and permission sets
- ``redact_secrets``: scrubs credentials out of free text (grant reasons,
  audit payloads)
- ``AuthzFormatter`` / ``AuthzLoggerAdapter``: records carry ``user_id`` and
  ``scope``
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional

from pydantic import BaseModel

from .config import AuthzConfig, LogLevel

# Credentials an administrator might paste into a grant reason.
_SECRET_RES = tuple(
    re.compile(pattern, re.IGNORECASE | re.DOTALL)
    for pattern in (
        r'(?:password|passwd|pwd|secret|token|key|api[_-]?key|auth[_-]?token)\s*[:=]\s*["\']?[^"\'\s]+',
        r'(?:bearer|basic)\s+[a-z0-9+/=]+',
        r'(?:sk-|pk-)[a-z0-9]{32,}',
        r'[a-f0-9]{32,}',
    )
)

_STANDARD_RECORD_KEYS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "user_id",
    "scope",
}


def _render(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, BaseModel):
        value = value.model_dump(mode="json")
    elif isinstance(value, (set, frozenset)):
        value = sorted(value, key=str)
    if isinstance(value, (dict, list, tuple)):
        try:
            return json.dumps(value, default=str, ensure_ascii=False)
        except (TypeError, ValueError):
            pass
    return str(value)


def safe_preview(value: Any, limit: int = 240) -> str:
    """One-line, length-bounded rendering of ``value`` for log output.

    Scope nodes render as ``TYPE:id``, pydantic records (assignments, grants,
    audit entries) as JSON, and permission sets as sorted JSON lists.
    Whitespace runs collapse to one space; output longer than ``limit`` ends
    with an ellipsis.
    """
    if value is None:
        return ""

    text = " ".join(_render(value).split())
    if len(text) <= limit:
        return text
    return text[: limit - 1] + "…"


def redact_secrets(text: str, replacement: str = "[REDACTED]") -> str:
    """Replace anything that looks like a credential with ``replacement``."""
    if not isinstance(text, str):
        return text
    for secret_re in _SECRET_RES:
        text = secret_re.sub(replacement, text)
    return text


def safe_log_value(value: Any, limit: int = 240, redact: bool = True) -> str:
    """``safe_preview`` followed by ``redact_secrets``."""
    text = safe_preview(value, limit=limit)
    return redact_secrets(text) if redact else text


class AuthzFormatter(logging.Formatter):
    """Renders records as JSON or as one plain line.

    ``user_id`` and ``scope`` extras are promoted to top-level fields; any
    other extras (``grant_id``, ``error_code`` ...) are previewed and redacted.
    """

    def __init__(
        self,
        include_subject: bool = True,
        json_format: bool = True,
        redact_secrets: bool = True,
        *args: Any,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        self.include_subject = include_subject
        self.json_format = json_format
        self.redact_secrets = redact_secrets

    def _fields(self, record: logging.LogRecord) -> dict[str, Any]:
        message = record.getMessage()
        if self.redact_secrets:
            message = redact_secrets(message)

        fields: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": message,
        }
        if self.include_subject:
            for name in ("user_id", "scope"):
                value = getattr(record, name, None)
                if value:
                    fields[name] = str(value)
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        fields.update(
            (key, safe_log_value(value, redact=self.redact_secrets))
            for key, value in vars(record).items()
            if key not in _STANDARD_RECORD_KEYS
        )
        return fields

    def format(self, record: logging.LogRecord) -> str:
        fields = self._fields(record)
        if self.json_format:
            return json.dumps(fields, default=str, ensure_ascii=False)

        subject = " ".join(
            f"{name}={fields[name]}" for name in ("user_id", "scope") if name in fields
        )
        head = f"[{fields['timestamp']}] {fields['level']} {fields['logger']}"
        line = f"{head} {subject}: {fields['message']}" if subject else f"{head}: {fields['message']}"
        if "exception" in fields:
            line = f"{line}\n{fields['exception']}"
        return line


class AuthzLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds user_id and scope to log records.

    Usage:
        logger = get_authz_logger(__name__, user_id="u-1")
        logger.info("Checking access", scope=ScopeNode.company("co-3"))
    """

    def __init__(
        self,
        logger: logging.Logger,
        user_id: Optional[str] = None,
        scope: Any = None,
    ):
        super().__init__(logger, {})
        self.user_id = user_id
        self.scope = scope

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        user_id = kwargs.pop("user_id", self.user_id)
        scope = kwargs.pop("scope", self.scope)

        extra = kwargs.get("extra", {})
        if user_id:
            extra["user_id"] = user_id
        if scope is not None:
            extra["scope"] = str(scope)
        kwargs["extra"] = extra

        return msg, kwargs


def setup_logging(
    config: Optional[AuthzConfig] = None,
    json_format: Optional[bool] = None,
    redact_secrets: bool = True,
) -> None:
    """Install one stderr handler on the root logger.

    Args:
        config: Engine settings; loaded from the environment when omitted.
        json_format: Force JSON (True) or plain (False) output instead of
            ``config.log_json``.
        redact_secrets: Scrub credentials from messages and extras.
    """
    if config is None:
        from .config import load_config_from_env
        config = load_config_from_env()

    level = logging.getLevelName(LogLevel(config.log_level).value)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(
        AuthzFormatter(
            include_subject=True,
            json_format=config.log_json if json_format is None else json_format,
            redact_secrets=redact_secrets,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    if config.service_name:
        logging.getLogger(config.service_name).setLevel(level)


def get_authz_logger(
    name: str,
    user_id: Optional[str] = None,
    scope: Any = None,
) -> AuthzLoggerAdapter:
    """Logger adapter bound to a subject and, optionally, a scope."""
    return AuthzLoggerAdapter(logging.getLogger(name), user_id=user_id, scope=scope)


__all__ = [
    "safe_preview",
    "redact_secrets",
    "safe_log_value",
    "AuthzFormatter",
    "AuthzLoggerAdapter",
    "setup_logging",
    "get_authz_logger",
]
