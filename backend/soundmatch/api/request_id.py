"""Request id lookup for error payloads."""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from soundmatch.obs import logging as obs_logging

REQUEST_ID_ATTR = "request_id"


def get_request_id(request: Optional[Request] = None, default: str = "unknown") -> str:
    """Return the id bound by the observability middleware, else the request state, else `default`."""
    rid = obs_logging.current_request_id()
    if rid:
        return rid
    if request is not None:
        rid = getattr(request.state, REQUEST_ID_ATTR, None)
    return rid or default
