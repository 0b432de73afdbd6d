from __future__ import annotations

"""Shared JSON-over-HTTP helper for the live feed adapters."""

import logging
from typing import Any, Dict, Optional

import requests

from .errors import UpstreamFetchError
from .fanout import Throttle

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


def get_json(
    url: str,
    *,
    source: str,
    params: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = DEFAULT_TIMEOUT,
    throttle: Optional[Throttle] = None,
    session: Optional[requests.Session] = None,
) -> Any:
    """GET ``url`` and decode the JSON body.

    Any transport, status or decoding failure is raised as ``UpstreamFetchError``
    tagged with ``source``.
    """
    if throttle is not None:
        throttle.wait()
    http = session or requests
    logger.debug("%s GET %s %s", source, url, _redact(params))
    try:
        response = http.get(url, params=params, headers=headers, timeout=timeout)
        response.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise UpstreamFetchError(source, f"GET {url} failed: {e}") from e
    try:
        return response.json()
    except ValueError as e:
        raise UpstreamFetchError(source, f"Invalid JSON response from {url}: {e}") from e


def _redact(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if not params:
        return {}
    return {k: ("***" if "key" in k.lower() else v) for k, v in params.items()}
