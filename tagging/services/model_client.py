"""Shared HTTP plumbing for model API clients.

Each client owns one persistent httpx.AsyncClient. Transport failures are
converted into ModelServiceError where they happen, with the ErrorKind set
from the failure itself:

    - Timeouts:                 TIMEOUT
    - Connection/network errors: NETWORK
    - HTTP 429:                  THROTTLING
    - HTTP 502/503/504:          UNAVAILABLE
    - Other HTTP 5xx:            INTERNAL
    - HTTP 4xx:                  VALIDATION (never retried)

Malformed response bodies raise ModelResponseParseError.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

import httpx

from tagging.core.exceptions import (
    ErrorKind,
    ModelResponseParseError,
    ModelServiceError,
    error_kind_for_status,
)
from tagging.core.logging import get_logger, sanitize_error
from tagging.models.content import TagResult

logger = get_logger(__name__)


@dataclass(slots=True)
class ModelTaggingResult:
    """Tags from one model call plus its token usage."""

    tags: list[TagResult]
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(slots=True)
class VideoTaggingResult:
    """Per-frame tag lists plus token usage summed over all frame calls."""

    frame_tags: list[list[TagResult]] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0


class BaseModelClient:
    """Base class holding the HTTP client and error conversion."""

    service_name: str = "model"

    def __init__(
        self,
        base_url: str,
        model_id: str,
        *,
        api_key: str | None = None,
        mock: bool = False,
        connect_timeout: float = 10.0,
        read_timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: API base URL
            model_id: Model identifier sent to the API and used for cost lookup
            api_key: API key, required unless mock is enabled
            mock: Return synthetic output without calling the API
            connect_timeout: Seconds to establish a connection
            read_timeout: Seconds to wait for a response
            http_client: Preconfigured client (for tests)
        """
        self._base_url = base_url.rstrip("/")
        self._model_id = model_id
        self._api_key = api_key
        self._mock = mock
        self._timeout = httpx.Timeout(
            connect=connect_timeout,
            read=read_timeout,
            write=read_timeout,
            pool=connect_timeout,
        )
        self._http_client = http_client or httpx.AsyncClient(
            timeout=self._timeout,
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        )

        logger.info(
            f"{type(self).__name__} initialized with base_url={self._base_url}, "
            f"model={model_id}, mock={mock}"
        )

    @property
    def model_id(self) -> str:
        return self._model_id

    @property
    def mock(self) -> bool:
        return self._mock

    async def close(self) -> None:
        """Close the HTTP client connections."""
        await self._http_client.aclose()
        logger.debug(f"{type(self).__name__} HTTP connections closed")

    def _require_api_key(self) -> str:
        if not self._api_key:
            raise ModelServiceError(
                f"No API key configured for {self.service_name}",
                service_name=self.service_name,
                kind=ErrorKind.VALIDATION,
            )
        return self._api_key

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str],
    ) -> dict[str, Any]:
        """POST a JSON payload and return the decoded JSON body.

        Raises:
            ModelServiceError: On timeout, connection failure or HTTP error
            ModelResponseParseError: If the body is not a JSON object
        """
        start_time = time.monotonic()
        try:
            response = await self._http_client.post(url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise self._service_error(
                f"{self.service_name} request timed out: {e}", ErrorKind.TIMEOUT, e, start_time
            ) from e
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            raise self._service_error(
                f"{self.service_name} returned HTTP {status_code}",
                error_kind_for_status(status_code),
                e,
                start_time,
                status_code=status_code,
            ) from e
        except httpx.TransportError as e:
            raise self._service_error(
                f"Failed to connect to {self.service_name}: {e}", ErrorKind.NETWORK, e, start_time
            ) from e

        try:
            body = response.json()
        except ValueError as e:
            raise ModelResponseParseError(
                f"{self.service_name} returned a non-JSON body", raw_response=response.text
            ) from e
        if not isinstance(body, dict):
            raise ModelResponseParseError(
                f"{self.service_name} returned an unexpected body", raw_response=response.text
            )

        logger.debug(
            f"{self.service_name} responded in {(time.monotonic() - start_time) * 1000:.0f}ms",
            extra={"model": self._model_id, "status_code": response.status_code},
        )
        return body

    def _service_error(
        self,
        message: str,
        kind: ErrorKind,
        error: Exception,
        start_time: float,
        *,
        status_code: int | None = None,
    ) -> ModelServiceError:
        duration_ms = int((time.monotonic() - start_time) * 1000)
        exc = ModelServiceError(
            message,
            service_name=self.service_name,
            kind=kind,
            status_code=status_code,
            original_error=error,
        )
        logger.error(
            f"{self.service_name} call failed: {sanitize_error(error)}",
            extra={
                "error_details": exc.to_log_dict(),
                "duration_ms": duration_ms,
                "model": self._model_id,
            },
        )
        return exc
