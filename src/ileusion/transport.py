"""HTTP transport for ILEusion requests.

Every request is a single JSON POST. Errors never propagate out of
``HttpTransport.post``; they come back as response text starting with
``HTTP_ERROR_PREFIX`` so callers can classify them like any other reply.
"""

import base64
import json
import logging
import ssl
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import httpx

from .config import ServiceConfig

logger = logging.getLogger(__name__)

HTTP_ERROR_PREFIX = "ERROR - An HTTP error occurred: "
USER_AGENT = "ILEusion/1.0"
CONTENT_TYPE = "application/json;charset=UTF-8"


@dataclass
class TransportResponse:
    """Raw outcome of one POST."""
    text: str
    status_line: str = ""
    status_code: Optional[int] = None

    @property
    def is_error(self) -> bool:
        return self.text.startswith(HTTP_ERROR_PREFIX)


def encode_base64(value: str) -> str:
    """Base64 encode a string. Returns empty string if it cannot be encoded."""
    try:
        return base64.b64encode(value.encode("utf-8")).decode("ascii")
    except (UnicodeError, TypeError, AttributeError):
        return ""


def decode_base64(value: str) -> str:
    """Decode a base64 string. Returns empty string on bad input."""
    try:
        return base64.b64decode(value.encode("ascii"), validate=True).decode("utf-8")
    except (ValueError, UnicodeError, TypeError, AttributeError):
        return ""


def build_auth_header(user: str, password: str, encode: bool = True) -> str:
    """Build a Basic auth header value.

    Some ILEastic instances expect the ``user:password`` pair unencoded, so
    encoding can be turned off.
    """
    pair = f"{user}:{password}"
    if encode:
        return "Basic " + encode_base64(pair)
    return "Basic " + pair


def build_ssl_context(allow_invalid_certificates: bool = False) -> ssl.SSLContext:
    """SSL context pinned to TLS 1.2 or later, scoped to one client."""
    context = ssl.create_default_context()
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    if allow_invalid_certificates:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class HttpTransport:
    """Posts JSON documents to the service with one ``httpx.Client``.

    The TLS policy and timeout belong to this instance only, so two services
    with different certificate settings can run side by side.
    """

    def __init__(
        self,
        config: ServiceConfig,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.config = config
        self._client = httpx.Client(
            verify=build_ssl_context(config.allow_invalid_certificates),
            timeout=config.timeout_seconds,
            follow_redirects=True,
            transport=transport,
        )

    def headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "*/*",
            "Content-Type": CONTENT_TYPE,
            "User-Agent": USER_AGENT,
        }
        if self.config.use_http_credentials:
            headers["Authorization"] = build_auth_header(
                self.config.auth_user,
                self.config.auth_password,
                self.config.encode_auth_base64,
            )
        return headers

    def post(self, url: str, payload: Union[str, bytes, Dict[str, Any]]) -> TransportResponse:
        """POST ``payload`` to ``url`` and return the response text.

        ``payload`` may be an already-encoded JSON document or a dict. Only a
        200 reply yields a body; other success codes yield empty text.
        """
        if isinstance(payload, dict):
            payload = json.dumps(payload)
        if isinstance(payload, str):
            payload = payload.encode("utf-8")

        try:
            response = self._client.post(url, content=payload, headers=self.headers())
        except httpx.HTTPError as e:
            logger.error(f"HTTP request to {url} failed: {e}")
            return TransportResponse(text=HTTP_ERROR_PREFIX + (str(e) or type(e).__name__))
        except Exception as e:
            logger.error(f"Unexpected error posting to {url}: {e}")
            return TransportResponse(text=HTTP_ERROR_PREFIX + (str(e) or type(e).__name__))

        status_line = f"{response.status_code} {response.reason_phrase}".strip()
        logger.debug(f"POST {url} -> {status_line}")

        if response.is_error:
            return TransportResponse(
                text=f"{HTTP_ERROR_PREFIX}The remote server returned an error: ({status_line}).",
                status_line=status_line,
                status_code=response.status_code,
            )

        text = response.text if response.status_code == 200 else ""
        return TransportResponse(text=text, status_line=status_line, status_code=response.status_code)

    def close(self) -> None:
        self._client.close()
