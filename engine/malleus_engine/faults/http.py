"""
HTTP client for an external bridge fault-injection service.

The service is expected to hold the request open for the disruption window
and answer 2xx once the bridges have been restored.
"""

import time
from typing import Any

import httpx

from malleus_engine.config import Settings
from malleus_engine.errors import ConfigurationError, InjectionError
from malleus_engine.interfaces import FaultInjector
from malleus_engine.logging import get_logger, redact_sensitive

logger = get_logger(__name__)

DISRUPTIONS_PATH = "/disruptions"


class HttpFaultInjector(FaultInjector):
    """
    Sync httpx client for the fault-injection service.

    Handles:
    - Bearer token authentication (never logged)
    - Request timeout sized to the disruption window
    - Mapping transport and HTTP errors to InjectionError
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout_s: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Initialize the injector client.

        Args:
            base_url: Service base URL
            token: Optional bearer token
            timeout_s: Grace period on top of the disruption window
            transport: Optional httpx transport (tests)
        """
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._timeout_s = timeout_s
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpFaultInjector":
        if settings.fault_injector_url is None:
            raise ConfigurationError("fault_injector_url is not configured")
        token = (
            settings.fault_injector_token.get_secret_value()
            if settings.fault_injector_token is not None
            else None
        )
        return cls(
            base_url=settings.fault_injector_url,
            token=token,
            timeout_s=settings.fault_injector_timeout_s,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def disrupt(self, node_ids: frozenset[str], duration_s: int) -> None:
        """
        Ask the service to fail ``node_ids`` for ``duration_s`` seconds.

        Raises:
            InjectionError: On transport errors or a non-2xx response.
        """
        url = f"{self._base_url}{DISRUPTIONS_PATH}"
        body: dict[str, Any] = {"bridges": sorted(node_ids), "duration_s": duration_s}
        headers = self._headers()
        logger.debug(
            "Fault injection request: POST %s headers=%s body=%s",
            url,
            redact_sensitive(headers),
            body,
        )

        start_time = time.perf_counter()
        try:
            with httpx.Client(
                timeout=httpx.Timeout(duration_s + self._timeout_s, connect=self._timeout_s),
                transport=self._transport,
            ) as client:
                response = client.post(url, json=body, headers=headers)
        except httpx.HTTPError as e:
            raise InjectionError(f"fault injection request failed: {e}") from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        logger.debug("Fault injection response: status=%d in %dms", response.status_code, latency_ms)

        if not response.is_success:
            raise InjectionError(
                f"fault injection rejected: HTTP {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )
