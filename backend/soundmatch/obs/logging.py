"""JSON log records with request context bound through contextvars."""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from soundmatch.settings import settings

_CONTEXT: ContextVar[Mapping[str, str]] = ContextVar("soundmatch_log_context", default={})

_LOGGER_NAME = "soundmatch"

# Field names containing any of these never reach log sinks
_REDACTED_KEYS = ("token", "secret", "authorization", "password", "latitude", "longitude", "birth")

# Info events under these prefixes bypass sampling
_UNSAMPLED_PREFIXES = ("recalculation.", "matches.", "scores.")

_MAX_TEXT = 256
_MAX_ITEMS = 10

_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def bind_context(**fields: Optional[str]) -> Token:
	"""Merge `fields` into the log context of the current task; returns a reset token."""
	merged = dict(_CONTEXT.get())
	merged.update({key: value for key, value in fields.items() if value})
	return _CONTEXT.set(merged)


def reset_context(token: Token) -> None:
	_CONTEXT.reset(token)


def current_request_id() -> Optional[str]:
	return _CONTEXT.get().get("request_id")


def _clip(value: Any) -> Any:
	if isinstance(value, str):
		return value if len(value) <= _MAX_TEXT else value[:_MAX_TEXT] + "..."
	if isinstance(value, Mapping):
		clipped = {str(k): _scrub(str(k), v) for k, v in list(value.items())[:_MAX_ITEMS]}
		if len(value) > _MAX_ITEMS:
			clipped["_truncated"] = len(value) - _MAX_ITEMS
		return clipped
	if isinstance(value, (list, tuple, set, frozenset)):
		items = list(value)
		clipped_items = [_clip(item) for item in items[:_MAX_ITEMS]]
		if len(items) > _MAX_ITEMS:
			clipped_items.append(f"+{len(items) - _MAX_ITEMS} more")
		return clipped_items
	return value


def _scrub(key: str, value: Any) -> Any:
	if any(part in key.lower() for part in _REDACTED_KEYS):
		return "[redacted]"
	return _clip(value)


class JSONLogFormatter(logging.Formatter):
	"""One JSON object per record: fixed envelope, bound context, then `extra=` fields."""

	def format(self, record: logging.LogRecord) -> str:  # noqa: A003
		payload: Dict[str, Any] = {
			"ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
			"level": record.levelname.lower(),
			"event": record.getMessage(),
			"logger": record.name,
			"service": settings.service_name,
			"env": settings.environment,
			"commit": settings.git_commit,
		}
		payload.update(_CONTEXT.get())
		if record.exc_info:
			payload["exc_info"] = self.formatException(record.exc_info)
		for key, value in vars(record).items():
			if key in _RECORD_ATTRS or key in payload:
				continue
			payload[key] = _scrub(key, value)
		return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
	"""Keep a random share of routine info records; everything else passes."""

	def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
		if record.levelno != logging.INFO:
			return True
		if isinstance(record.msg, str) and record.msg.startswith(_UNSAMPLED_PREFIXES):
			return True
		rate = max(0.0, min(1.0, settings.obs_log_sampling_rate_info))
		return rate >= 1.0 or random.random() < rate


def configure_logging() -> logging.Logger:
	root = logging.getLogger()
	root.handlers.clear()
	handler = logging.StreamHandler()
	handler.setFormatter(JSONLogFormatter())
	handler.addFilter(InfoSamplingFilter())
	root.addHandler(handler)
	root.setLevel(settings.obs_log_level)
	return logging.getLogger(_LOGGER_NAME)


def get_logger(name: Optional[str] = None) -> logging.Logger:
	return logging.getLogger(name or _LOGGER_NAME)
