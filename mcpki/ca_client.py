import logging
import ssl
from typing import Any, Dict, Optional

import httpx

from .config import BackendSettings, ConfigurationError

logger = logging.getLogger(__name__)


class CAClientError(Exception):
    """Base class for failures of a call to the CA backend."""


class BackendUnavailable(CAClientError):
    """The CA backend could not be reached (connection, TLS or timeout failure)."""


class BackendError(CAClientError):
    """The CA backend answered with a non-success status code."""

    def __init__(self, message: str, status_code: int, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def build_ssl_context(settings: BackendSettings) -> ssl.SSLContext:
    """
    Creates the TLS context used to talk to the CA backend.

    The trust store (a PEM bundle) anchors the backend's server certificate;
    the client certificate and key authenticate this gateway (mutual TLS).

    Raises:
        ConfigurationError: If the certificate, key or trust material cannot be loaded.
    """
    try:
        context = ssl.create_default_context(cafile=settings.truststore)
        context.load_cert_chain(
            certfile=settings.client_cert,
            keyfile=settings.client_key,
            password=settings.client_key_password,
        )
    except (OSError, ssl.SSLError) as e:
        raise ConfigurationError(f"Could not load TLS material: {e}")
    return context


class CAClient:
    """
    An asynchronous HTTP client for communicating with the CA REST backend.

    One instance is shared by all tool calls; the underlying connection pool is
    safe for concurrent use. No retries are attempted.
    """

    def __init__(
        self,
        settings: BackendSettings,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initializes the asynchronous HTTP client.

        Args:
            settings: The backend connection settings.
            client: A preconfigured client to use instead of building one.
        """
        self.base_url = settings.url
        if client is None:
            client = httpx.AsyncClient(
                verify=build_ssl_context(settings),
                timeout=settings.timeout,
                headers={"Accept": "application/json"},
            )
        self.client = client

    async def get(self, url: str) -> httpx.Response:
        """
        Sends a GET request to the CA backend.

        Args:
            url: The absolute request URL.

        Returns:
            The successful response.

        Raises:
            BackendUnavailable: If the backend could not be reached.
            BackendError: If the backend answered with a 4xx or 5xx status code.
        """
        return await self._send("GET", url)

    async def post(self, url: str, json: Dict[str, Any]) -> httpx.Response:
        """
        Sends a POST request with a JSON body to the CA backend.

        Args:
            url: The absolute request URL.
            json: The request body.

        Returns:
            The successful response.

        Raises:
            BackendUnavailable: If the backend could not be reached.
            BackendError: If the backend answered with a 4xx or 5xx status code.
        """
        return await self._send("POST", url, json=json)

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, url, **kwargs)
            response.raise_for_status()  # Raises an exception for 4xx or 5xx status codes
            return response
        except httpx.HTTPStatusError as e:
            # str(e) carries httpx's normalized URL, so report the URL as requested
            body = e.response.text
            status = f"{e.response.status_code} {e.response.reason_phrase}"
            error_message = f'{status} error on {method} request for "{url}"'
            if body:
                error_message = f"{error_message} - {body}"
            logger.debug(f"CAClient: {method} request failed: {error_message}")
            raise BackendError(error_message, e.response.status_code, body) from e
        except httpx.RequestError as e:
            error_message = f'I/O error on {method} request for "{url}": {e}'
            logger.debug(f"CAClient: {error_message}")
            raise BackendUnavailable(error_message) from e

    async def close(self):
        """
        Closes the HTTP client session.
        """
        await self.client.aclose()
