"""Shared HTTP helpers used by the registry clients.

Registries are best-effort metadata sources: every query is a single attempt
bounded by ``Constants.REQUEST_TIMEOUT``. Failures are reported as a status of
0 so callers can turn them into one ``RepoNotFound`` instead of retrying.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional, Tuple

import requests

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)


def fetch_text(
    url: str,
    *,
    context: str,
    headers: Optional[Dict[str, str]] = None,
    **kwargs: Any
) -> Tuple[int, Dict[str, str], str]:
    """Perform one GET request with timeout and DEBUG traces.

    Args:
        url: Target URL
        context: Human-readable source tag for logs (e.g., "pypi").
        headers: Optional request headers
        **kwargs: Additional requests.get parameters

    Returns:
        Tuple of (status_code, headers_dict, body). status_code is 0 when the
        request could not be completed; body then holds the error description.
    """
    safe_target = safe_url(url)
    merged_headers = {"User-Agent": Constants.USER_AGENT}
    if headers:
        merged_headers.update(headers)
    with Timer() as t:
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="http_client",
                    action="GET",
                    target=safe_target,
                    context=context
                )
            )
        try:
            response = requests.get(
                url,
                timeout=Constants.REQUEST_TIMEOUT,
                headers=merged_headers,
                **kwargs
            )
        except requests.Timeout:
            logger.warning(
                "%s request timed out after %s seconds",
                context,
                Constants.REQUEST_TIMEOUT,
            )
            return 0, {}, f"timed out after {Constants.REQUEST_TIMEOUT} seconds"
        except requests.RequestException as exc:  # includes ConnectionError
            logger.warning("%s connection error: %s", context, exc)
            return 0, {}, str(exc)
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action="GET",
                    outcome="success" if response.status_code == 200 else "http_error",
                    status_code=response.status_code,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                    context=context
                )
            )
        return response.status_code, dict(response.headers), response.text


def get_json(
    url: str,
    *,
    context: str,
    headers: Optional[Dict[str, str]] = None,
    **kwargs: Any
) -> Tuple[int, Dict[str, str], Optional[Any]]:
    """Perform GET request and parse JSON response with DEBUG traces.

    Args:
        url: Target URL
        context: Human-readable source tag for logs.
        headers: Optional request headers
        **kwargs: Additional requests.get parameters

    Returns:
        Tuple of (status_code, headers_dict, parsed_json_or_none)
    """
    status_code, response_headers, text = fetch_text(
        url, context=context, headers=headers, **kwargs
    )

    if status_code == 200 and text:
        try:
            return status_code, response_headers, json.loads(text)
        except json.JSONDecodeError:
            if is_debug_enabled(logger):
                logger.debug(
                    "JSON decode error",
                    extra=extra_context(
                        event="parse",
                        component="http_client",
                        action="get_json",
                        outcome="json_decode_error",
                        status_code=status_code,
                        target=safe_url(url)
                    )
                )
            return status_code, response_headers, None

    return status_code, response_headers, None
