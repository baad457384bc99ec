"""
HTTP plumbing shared by the inference engine clients.

Connection pooling, session lifecycle, JSON calls and Server-Sent Events
parsing for the engine's OpenAI-compatible API.
"""

import asyncio
import json
import logging
from typing import Any, AsyncGenerator, Dict, Optional

import aiohttp

from ..utils.logging import log_event
from .exceptions import (
    EngineConnectionError,
    EngineError,
    EngineResponseError,
    EngineTimeoutError,
    error_from_status,
)

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"


class BaseHTTPProvider:
    """
    Mixin class for clients that talk to the engine over HTTP.

    Owns one pooled aiohttp session. Call ``_initialize_session`` once at
    startup and ``_cleanup_session`` on shutdown; request paths only ever
    call ``_ensure_session``.
    """

    def __init__(self):
        self._session: Optional[aiohttp.ClientSession] = None
        self._connect_timeout_seconds: float = 10

    def _create_connector(
        self,
        max_connections: int = 100,
        max_connections_per_host: int = 30,
        keepalive_timeout: int = 30,
    ) -> aiohttp.TCPConnector:
        return aiohttp.TCPConnector(
            limit=max_connections,
            limit_per_host=max_connections_per_host,
            ttl_dns_cache=300,
            use_dns_cache=True,
            keepalive_timeout=keepalive_timeout,
            enable_cleanup_closed=True,
            force_close=False,
        )

    def _initialize_session(
        self,
        timeout_seconds: float,
        connect_timeout_seconds: float = 10,
        max_connections: int = 100,
        max_connections_per_host: int = 30,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Initialize HTTP session with connection pooling.

        Args:
            timeout_seconds: Default total request timeout
            connect_timeout_seconds: Connection timeout
            max_connections: Maximum total connections
            max_connections_per_host: Maximum connections per host
            headers: Optional default headers
        """
        if self._session is not None:
            return

        self._connect_timeout_seconds = connect_timeout_seconds
        self._session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(
                total=timeout_seconds, connect=connect_timeout_seconds
            ),
            connector=self._create_connector(max_connections, max_connections_per_host),
            connector_owner=True,
            headers=headers,
        )

    async def _cleanup_session(self) -> None:
        """Close the session and release pooled connections."""
        if self._session and not self._session.closed:
            await self._session.close()
            # Give connections time to close gracefully
            await asyncio.sleep(0.25)

        self._session = None

    def _ensure_session(self) -> aiohttp.ClientSession:
        """
        Return the active session.

        Raises:
            RuntimeError: If the session was never initialized or is closed
        """
        if self._session is None or self._session.closed:
            raise RuntimeError("HTTP session not initialized. Call initialize() first.")
        return self._session

    async def _post_json(
        self,
        url: str,
        payload: Dict[str, Any],
        model: str,
        timeout_seconds: float,
        error_log_event: str,
    ) -> Dict[str, Any]:
        """
        POST a JSON payload and decode the JSON response.

        Raises:
            EngineTimeoutError: If the call exceeds timeout_seconds
            EngineConnectionError: If the engine cannot be reached
            EngineError: For non-200 responses (see error_from_status)
            EngineResponseError: If the body is not a JSON object
        """
        session = self._ensure_session()

        try:
            async with session.post(
                url,
                json=payload,
                timeout=aiohttp.ClientTimeout(
                    total=timeout_seconds, connect=self._connect_timeout_seconds
                ),
            ) as response:
                if response.status != 200:
                    error_text = await response.text(errors="replace")
                    log_event(
                        error_log_event,
                        {
                            "status": response.status,
                            "error": error_text[:500],
                            "model": model,
                        },
                        level=logging.ERROR,
                    )
                    raise error_from_status(response.status, error_text, model)

                # ValueError covers JSONDecodeError and UnicodeDecodeError
                try:
                    data = await response.json(content_type=None)
                except (ValueError, aiohttp.ContentTypeError) as e:
                    raise EngineResponseError(
                        f"Engine returned invalid JSON: {e}", model=model
                    ) from e

        except asyncio.TimeoutError as e:
            log_event(
                f"{error_log_event}_timeout",
                {"url": url, "model": model, "timeout_seconds": timeout_seconds},
                level=logging.ERROR,
            )
            raise EngineTimeoutError(
                f"Engine call timed out after {timeout_seconds}s",
                timeout_seconds=timeout_seconds,
                model=model,
            ) from e
        except aiohttp.ClientError as e:
            log_event(
                f"{error_log_event}_connection_error",
                {"error": str(e), "url": url},
                level=logging.ERROR,
            )
            raise EngineConnectionError(
                f"Failed to reach engine: {e}", model=model, original_error=e
            ) from e

        if not isinstance(data, dict):
            raise EngineResponseError("Engine response is not a JSON object", model=model)
        return data

    async def _stream_sse(
        self,
        url: str,
        payload: Dict[str, Any],
        model: str,
        timeout_seconds: float,
        error_log_event: str,
    ) -> AsyncGenerator[Dict[str, Any], None]:
        """
        Stream an OpenAI-format SSE response as decoded ``data:`` payloads.

        Stops after the ``[DONE]`` marker. Closing the generator early exits
        the response context, which drops the upstream connection.

        Args:
            url: API endpoint URL
            payload: Request payload (already includes stream=True)
            model: Model alias for error logging
            timeout_seconds: Socket read timeout between events
            error_log_event: Log event name for errors

        Yields:
            Decoded JSON object of each data line

        Raises:
            EngineError: On non-200 status, timeout, connection loss, or a
                stream that ends without the ``[DONE]`` marker
        """
        session = self._ensure_session()
        done = False

        try:
            async with session.post(
                url,
                json=payload,
                timeout=aiohttp.ClientTimeout(
                    total=None,
                    connect=self._connect_timeout_seconds,
                    sock_read=timeout_seconds,
                ),
            ) as response:
                if response.status != 200:
                    error_text = await response.text(errors="replace")
                    log_event(
                        error_log_event,
                        {
                            "status": response.status,
                            "error": error_text[:500],
                            "model": model,
                        },
                        level=logging.ERROR,
                    )
                    raise error_from_status(response.status, error_text, model)

                async for line in response.content:
                    try:
                        line_str = line.decode("utf-8").strip()
                    except UnicodeDecodeError as e:
                        raise EngineResponseError(
                            f"Engine stream is not valid UTF-8: {e}", model=model
                        ) from e

                    # blank separators and ":" keep-alive comments
                    if not line_str or line_str.startswith(":"):
                        continue
                    if not line_str.startswith(SSE_DATA_PREFIX):
                        continue

                    data_str = line_str[len(SSE_DATA_PREFIX):].strip()
                    if data_str == SSE_DONE:
                        done = True
                        break

                    try:
                        data = json.loads(data_str)
                    except json.JSONDecodeError as e:
                        log_event(
                            f"{error_log_event}_parse_error",
                            {"error": str(e), "data": data_str[:100]},
                            level=logging.WARNING,
                        )
                        continue

                    yield data

        except asyncio.TimeoutError as e:
            log_event(
                f"{error_log_event}_timeout",
                {"url": url, "model": model, "timeout_seconds": timeout_seconds},
                level=logging.ERROR,
            )
            raise EngineTimeoutError(
                f"Engine stream stalled for {timeout_seconds}s",
                timeout_seconds=timeout_seconds,
                model=model,
            ) from e
        except aiohttp.ClientError as e:
            log_event(
                f"{error_log_event}_connection_error",
                {"error": str(e), "url": url},
                level=logging.ERROR,
            )
            raise EngineConnectionError(
                f"Lost connection to engine: {e}", model=model, original_error=e
            ) from e

        if not done:
            raise EngineError(
                "Engine stream ended without [DONE]",
                model=model,
                error_type="stream_truncated",
            )
