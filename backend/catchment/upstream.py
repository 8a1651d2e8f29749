from __future__ import annotations

import asyncio
from typing import Any

import httpx

from .config import CatchmentConfig

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}
USER_AGENT = "catchment-demographics/0.1"


class UpstreamAPIError(RuntimeError):
    def __init__(self, stage: str, message: str):
        super().__init__(f"[{stage}] {message}")
        self.stage = stage
        self.message = message


def _backoff_seconds(attempt: int) -> float:
    return min(8.0, 0.5 * (2**attempt))


def _short_error_text(text: str, limit: int = 240) -> str:
    one_line = " ".join(text.split())
    if len(one_line) <= limit:
        return one_line
    return one_line[:limit] + "..."


def _arcgis_error_message(payload: Any) -> str | None:
    # ArcGIS REST reports failures as HTTP 200 with an "error" object.
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if not isinstance(error, dict):
        return None
    code = error.get("code")
    message = error.get("message") or "Unknown error"
    details = error.get("details")
    if isinstance(details, list) and details:
        message = f"{message} ({'; '.join(str(item) for item in details)})"
    return f"ArcGIS error {code}: {message}" if code is not None else f"ArcGIS error: {message}"


async def request_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    data: dict[str, Any] | None,
    stage: str,
    config: CatchmentConfig,
) -> dict[str, Any]:
    """POST a form to an upstream service and return its JSON object body.

    Retries transport errors and retryable status codes with exponential
    backoff; 4xx responses, non-JSON bodies and ArcGIS error envelopes fail
    immediately with UpstreamAPIError.
    """
    last_error: Exception | None = None
    headers = {"User-Agent": USER_AGENT}
    for attempt in range(config.retries + 1):
        try:
            response = await client.post(url, data=data, timeout=config.timeout, headers=headers)
        except httpx.RequestError as exc:
            last_error = exc
            if attempt < config.retries:
                await asyncio.sleep(_backoff_seconds(attempt))
                continue
            raise UpstreamAPIError(stage, f"Network error after retries: {exc!s}") from exc

        status = response.status_code
        if status in RETRYABLE_STATUS_CODES:
            last_error = UpstreamAPIError(
                stage, f"HTTP {status}: {_short_error_text(response.text)}"
            )
            if attempt < config.retries:
                await asyncio.sleep(_backoff_seconds(attempt))
                continue
            raise last_error

        if 400 <= status < 500:
            raise UpstreamAPIError(stage, f"HTTP {status}: {_short_error_text(response.text)}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamAPIError(
                stage, f"Invalid JSON in upstream response (HTTP {status})"
            ) from exc

        if not isinstance(payload, dict):
            raise UpstreamAPIError(stage, "Upstream response JSON must be an object.")
        arcgis_error = _arcgis_error_message(payload)
        if arcgis_error:
            raise UpstreamAPIError(stage, arcgis_error)
        return payload

    if last_error is not None:
        raise UpstreamAPIError(stage, f"Failed request after retries: {last_error!s}")
    raise UpstreamAPIError(stage, "Failed request after retries.")
