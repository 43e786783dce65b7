"""
Callable compute endpoint client (Firebase HTTPS callable protocol).

Wire shape:
- request:  POST `{base}/{name}` with JSON body `{"data": {...}}`
- response: `{"result": {...}}` on success, `{"error": {"status", "message"}}` on failure

Results are expected to carry `success: bool` plus an operation-specific payload.
Timeouts are per call; bulk operations pass the long timeouts from settings.
This client never retries.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from spotmap.config.settings import FunctionsSettings
from spotmap.core.http import post_json

logger = logging.getLogger(__name__)


class CallableError(Exception):
    """Transport failure, callable error envelope, or `success: false` result."""

    def __init__(self, name: str, message: str, *, status: str | None = None):
        super().__init__(f"{name}: {message}")
        self.name = name
        self.status = status


class CallableClient:
    """Invoke named callables relative to the configured functions base URL."""

    def __init__(self, settings: FunctionsSettings, *, id_token: str | None = None):
        base = settings.endpoint_base()
        if not base:
            raise ValueError("functions.base_url or functions.project_id must be configured")
        self._settings = settings
        self._base = base
        self._id_token = id_token

    @property
    def settings(self) -> FunctionsSettings:
        return self._settings

    def call(
        self,
        name: str,
        data: dict[str, Any] | None = None,
        *,
        timeout_seconds: float | None = None,
        require_success: bool = True,
    ) -> dict[str, Any]:
        """Call `name` and return its result mapping.

        Raises:
            CallableError: On transport errors, error envelopes, non-mapping results,
                or (when `require_success`) results whose `success` is not True.
        """
        timeout = float(timeout_seconds if timeout_seconds is not None else self._settings.default_timeout_seconds)
        headers = {"Authorization": f"Bearer {self._id_token}"} if self._id_token else None
        url = f"{self._base}/{name}"

        logger.info("Calling %s (timeout=%.0fs)", name, timeout)
        try:
            body = post_json(url, payload={"data": data or {}}, headers=headers, timeout_seconds=timeout)
        except httpx.HTTPStatusError as exc:
            raise CallableError(name, f"HTTP {exc.response.status_code}", status=str(exc.response.status_code)) from exc
        except httpx.HTTPError as exc:
            raise CallableError(name, f"transport error: {exc}") from exc
        except ValueError as exc:
            raise CallableError(name, "response was not valid JSON") from exc

        if not isinstance(body, dict):
            raise CallableError(name, "unexpected response envelope")
        if "error" in body:
            err = body.get("error") or {}
            raise CallableError(name, str(err.get("message") or "unknown error"), status=err.get("status"))

        result = body.get("result")
        if not isinstance(result, dict):
            raise CallableError(name, "result was not an object")
        if require_success and result.get("success") is not True:
            message = result.get("error") if isinstance(result.get("error"), str) else "Unknown error"
            raise CallableError(name, message)
        return result
