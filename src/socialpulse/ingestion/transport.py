"""HTTP fetch transports for the upstream feed.

Two mechanisms are provided behind one capability:
- HttpxTransport: the standard async HTTP client (primary)
- CurlTransport: the curl CLI in a subprocess, whose TLS/header fingerprint differs
  from httpx and is often not blocked when the primary is

FallbackTransport chains them, moving on only when a transport is denied.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
import orjson
import structlog

from socialpulse.config import DEFAULT_USER_AGENT
from socialpulse.core.constants import BLOCKED_STATUS_CODES, CURL_TIMEOUT_EXIT_CODE
from socialpulse.core.exceptions import (
    TransportError,
    UpstreamBlockedError,
    UpstreamExhaustedError,
)

logger = structlog.get_logger(__name__)

# Trailer appended to curl's output so the status code can be split from the body
_STATUS_MARKER = "\n__SOCIALPULSE_HTTP_STATUS__:"


def browser_headers(user_agent: str) -> dict[str, str]:
    """Headers that make a request look like it came from a desktop browser."""
    return {
        "User-Agent": user_agent,
        "Accept": "application/json, text/plain, */*",
        "Accept-Language": "en-US,en;q=0.9",
        "Referer": "https://stocktwits.com/",
        "Origin": "https://stocktwits.com",
    }


class FetchTransport(Protocol):
    """Capability for fetching a JSON document over HTTP."""

    name: str

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Fetch ``url`` and decode the JSON object body.

        Raises:
            UpstreamBlockedError: Access denied or the request timed out
            TransportError: Any other transport failure
        """
        ...

    async def close(self) -> None: ...


@dataclass
class HttpxTransport:
    """Primary transport: ``httpx.AsyncClient`` with browser-like headers."""

    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 10.0
    name: str = "httpx"

    _client: httpx.AsyncClient | None = field(default=None, init=False, repr=False)

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=browser_headers(self.user_agent),
                timeout=self.timeout,
                follow_redirects=True,
            )
        return self._client

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        client = self._get_client()
        try:
            response = await client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise UpstreamBlockedError(f"{self.name} timed out fetching {url}") from e
        except httpx.RequestError as e:
            raise TransportError(f"{self.name} request failed: {e}") from e

        if response.status_code in BLOCKED_STATUS_CODES:
            raise UpstreamBlockedError(
                f"{self.name} denied with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(f"{self.name} got HTTP {response.status_code}") from e

        return _decode_object(response.content, self.name)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None


@dataclass
class CurlTransport:
    """Fallback transport: the curl command-line client in a subprocess."""

    user_agent: str = DEFAULT_USER_AGENT
    timeout: float = 15.0
    binary: str = "curl"
    name: str = "curl"

    def build_command(self, url: str, params: dict[str, Any] | None = None) -> list[str]:
        """Argument vector for one GET request (no shell involved)."""
        if params:
            url = str(httpx.URL(url, params=params))
        cmd = [
            self.binary,
            "--silent",
            "--show-error",
            "--location",
            "--compressed",
            "--max-time",
            str(int(self.timeout)),
            "--write-out",
            _STATUS_MARKER + "%{http_code}",
        ]
        for key, value in browser_headers(self.user_agent).items():
            cmd.extend(["-H", f"{key}: {value}"])
        cmd.append(url)
        return cmd

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        cmd = self.build_command(url, params)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TransportError(f"{self.name} could not be started: {e}") from e

        try:
            # Grace period on top of curl's own --max-time
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout + 5)
        except TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise UpstreamBlockedError(f"{self.name} timed out fetching {url}") from e

        if proc.returncode == CURL_TIMEOUT_EXIT_CODE:
            raise UpstreamBlockedError(f"{self.name} timed out fetching {url}")
        if proc.returncode != 0:
            raise TransportError(
                f"{self.name} exited with {proc.returncode}: {stderr.decode(errors='replace').strip()}"
            )

        body, status_code = split_status_trailer(stdout)
        if status_code in BLOCKED_STATUS_CODES:
            raise UpstreamBlockedError(
                f"{self.name} denied with HTTP {status_code}", status_code=status_code
            )
        if status_code >= 400 or status_code == 0:
            raise TransportError(f"{self.name} got HTTP {status_code}")

        return _decode_object(body, self.name)

    async def close(self) -> None:
        return None


def split_status_trailer(output: bytes) -> tuple[bytes, int]:
    """Split curl stdout into (body, status code) using the ``--write-out`` trailer."""
    marker = _STATUS_MARKER.encode()
    body, sep, status = output.rpartition(marker)
    if not sep:
        return output, 0
    try:
        return body, int(status.strip() or b"0")
    except ValueError:
        return body, 0


def _decode_object(payload: bytes, transport: str) -> dict[str, Any]:
    try:
        data = orjson.loads(payload)
    except orjson.JSONDecodeError as e:
        raise TransportError(f"{transport} returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise TransportError(f"{transport} returned {type(data).__name__}, expected object")
    return data


@dataclass
class FallbackTransport:
    """Try each transport in order, falling through only on denial.

    Each transport is attempted at most once per call. Non-denial failures
    propagate immediately.
    """

    transports: list[FetchTransport]
    name: str = "fallback"

    async def get_json(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        if not self.transports:
            raise TransportError("no transports configured")

        last_error: UpstreamBlockedError | None = None
        for transport in self.transports:
            try:
                return await transport.get_json(url, params)
            except UpstreamBlockedError as e:
                logger.warning(
                    "transport_blocked",
                    transport=transport.name,
                    status_code=e.status_code,
                    url=url,
                )
                last_error = e

        raise UpstreamExhaustedError(
            f"All transports denied for {url}: {last_error.message if last_error else 'unknown'}"
        ) from last_error

    async def close(self) -> None:
        for transport in self.transports:
            await transport.close()
