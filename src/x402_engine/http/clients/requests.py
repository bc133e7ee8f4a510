"""requests library wrapper with automatic x402 payment handling.

Provides HTTPAdapter and convenience functions for sync requests.Session.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import requests
from requests.adapters import HTTPAdapter

from ...schemas import MalformedPaymentError, PaymentError

if TYPE_CHECKING:
    from ...client import x402Client
    from ..x402_http_client import x402HTTPClient

logger = logging.getLogger(__name__)

# Marks the paid retry; stripped before the request leaves the adapter.
RETRY_HEADER = "X-x402-Payment-Retry"


# ============================================================================
# HTTP Adapter Implementation
# ============================================================================


class x402HTTPAdapter(HTTPAdapter):
    """HTTP adapter that handles 402 Payment Required responses.

    Subclasses requests.HTTPAdapter to intercept 402 responses,
    create payment payloads, and retry once with payment headers.
    """

    def __init__(
        self,
        client: x402Client | x402HTTPClient,
        **kwargs: Any,
    ) -> None:
        """Initialize payment adapter.

        Args:
            client: x402Client or x402HTTPClient for payments.
            **kwargs: Additional arguments for HTTPAdapter.
        """
        super().__init__(**kwargs)

        from ..x402_http_client import x402HTTPClient as HTTPClient

        if isinstance(client, HTTPClient):
            self._http_client = client
        else:
            self._http_client = HTTPClient(client)

        self._client = client

    def send(
        self,
        request: requests.PreparedRequest,
        **kwargs: Any,
    ) -> requests.Response:
        """Send request with automatic 402 payment handling.

        Returns:
            Response (original or retried with payment).

        Raises:
            UnsupportedSchemeError: No registered scheme matches the challenge.
            NoAcceptableRequirementError: Client policies rejected every option.
            PaymentRejectedError: The paid retry was answered with another 402.
            MalformedPaymentError: The 402 challenge could not be parsed.
        """
        if request.headers.pop(RETRY_HEADER, None) is not None:
            return super().send(request, **kwargs)

        response = super().send(request, **kwargs)

        if response.status_code != 402:
            return response

        try:
            payment_headers, payment_payload = self._http_client.handle_402_response(
                dict(response.headers), response.content
            )
        except PaymentError as e:
            e.response = response
            raise
        except ValueError as e:
            raise MalformedPaymentError(
                f"Invalid 402 challenge: {e}", response=response
            ) from e

        logger.debug(
            "Retrying %s %s with %s payment on %s",
            request.method,
            request.url,
            payment_payload.get_scheme(),
            payment_payload.get_network(),
        )

        retry_request = request.copy()
        retry_request.headers.update(payment_headers)
        retry_request.headers["Access-Control-Expose-Headers"] = (
            "PAYMENT-RESPONSE,X-PAYMENT-RESPONSE"
        )
        retry_request.headers[RETRY_HEADER] = "1"

        retry_response = self.send(retry_request, **kwargs)

        if retry_response.status_code == 402:
            raise self._http_client.payment_rejected(
                dict(retry_response.headers), retry_response.content, retry_response
            )

        return retry_response


def x402_http_adapter(
    client: x402Client | x402HTTPClient,
    **kwargs: Any,
) -> x402HTTPAdapter:
    """Create an HTTP adapter with 402 payment handling.

    Example:
        ```python
        session = requests.Session()
        adapter = x402_http_adapter(client)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        ```
    """
    return x402HTTPAdapter(client, **kwargs)


# ============================================================================
# Wrapper Functions
# ============================================================================


def wrapRequestsWithPayment(
    session: requests.Session,
    client: x402Client | x402HTTPClient,
    **adapter_kwargs: Any,
) -> requests.Session:
    """Wrap a requests Session with automatic 402 payment handling.

    Mounts a payment-aware adapter for both HTTP and HTTPS.

    Returns:
        The same session with payment adapter mounted.
    """
    adapter = x402HTTPAdapter(client, **adapter_kwargs)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def x402_requests(
    client: x402Client | x402HTTPClient,
    **adapter_kwargs: Any,
) -> requests.Session:
    """Create a requests Session with x402 payment handling."""
    session = requests.Session()
    return wrapRequestsWithPayment(session, client, **adapter_kwargs)
