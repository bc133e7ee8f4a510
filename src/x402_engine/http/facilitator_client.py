"""HTTP-based facilitator client for x402 protocol."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, TypeVar

import httpx
from pydantic import ValidationError

from ..schemas import (
    FacilitatorUnreachableError,
    PaymentPayload,
    PaymentRequirements,
    SettlementStatusResponse,
    SettleResponse,
    SupportedResponse,
    VerifyResponse,
)
from .constants import DEFAULT_FACILITATOR_URL

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", VerifyResponse, SettleResponse, SettlementStatusResponse)


# ============================================================================
# Auth Provider Protocol
# ============================================================================


@dataclass
class AuthHeaders:
    """Authentication headers for facilitator endpoints."""

    verify: dict[str, str] = field(default_factory=dict)
    settle: dict[str, str] = field(default_factory=dict)
    supported: dict[str, str] = field(default_factory=dict)
    status: dict[str, str] = field(default_factory=dict)


class AuthProvider(Protocol):
    """Generates authentication headers for facilitator requests."""

    def get_auth_headers(self) -> AuthHeaders:
        """Get authentication headers for each endpoint."""
        ...


class CreateHeadersAuthProvider:
    """AuthProvider that wraps a create_headers callable.

    Adapts a dict-style create_headers function returning
    ``{"verify": {...}, "settle": {...}, "supported": {...}}``.
    """

    def __init__(self, create_headers: Callable[[], dict[str, dict[str, str]]]) -> None:
        self._create_headers = create_headers

    def get_auth_headers(self) -> AuthHeaders:
        """Get authentication headers by calling the create_headers function."""
        result = self._create_headers()
        return AuthHeaders(
            verify=result.get("verify", {}),
            settle=result.get("settle", {}),
            supported=result.get("supported", result.get("list", {})),
            status=result.get("status", result.get("settle", {})),
        )


# ============================================================================
# Configuration
# ============================================================================


@dataclass
class FacilitatorConfig:
    """Configuration for HTTP facilitator client."""

    url: str = DEFAULT_FACILITATOR_URL
    timeout: float = 30.0
    http_client: Any = None  # Optional httpx.AsyncClient
    auth_provider: AuthProvider | None = None
    identifier: str | None = None


# ============================================================================
# HTTP Facilitator Client
# ============================================================================


class HTTPFacilitatorClient:
    """HTTP-based facilitator client.

    Communicates with a remote x402 facilitator service. Timeouts, transport
    errors and 5xx responses raise FacilitatorUnreachableError; a rejected
    payment comes back as a VerifyResponse/SettleResponse.
    """

    def __init__(self, config: FacilitatorConfig | dict[str, Any] | None = None) -> None:
        """Create HTTP facilitator client.

        Args:
            config: Optional configuration. Accepts either:
                - FacilitatorConfig dataclass (recommended)
                - Dict with 'url' and optional 'create_headers' / 'timeout'
                - None (uses defaults)
        """
        if isinstance(config, dict):
            url = config.get("url", DEFAULT_FACILITATOR_URL)
            create_headers = config.get("create_headers")
            auth_provider = CreateHeadersAuthProvider(create_headers) if create_headers else None

            self._url = url.rstrip("/")
            self._timeout = float(config.get("timeout", 30.0))
            self._auth_provider = auth_provider
            self._identifier = self._url
            self._http_client = None
            self._owns_client = True
        else:
            config = config or FacilitatorConfig()

            self._url = config.url.rstrip("/")
            self._timeout = config.timeout
            self._auth_provider = config.auth_provider
            self._identifier = config.identifier or self._url
            self._http_client = config.http_client
            self._owns_client = config.http_client is None

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        return self._http_client

    async def aclose(self) -> None:
        """Close HTTP client if we own it."""
        if self._owns_client and self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> HTTPFacilitatorClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    @property
    def url(self) -> str:
        """Get facilitator URL."""
        return self._url

    @property
    def identifier(self) -> str:
        """Get facilitator identifier."""
        return self._identifier

    # =========================================================================
    # FacilitatorClient Implementation
    # =========================================================================

    async def verify(
        self,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
    ) -> VerifyResponse:
        """Verify a payment with the facilitator.

        Raises:
            FacilitatorUnreachableError: On timeout, transport error or 5xx.
        """
        response = await self._post(
            "verify", self._request_body(payload, requirements), indeterminate=False
        )
        return self._parse(
            response,
            VerifyResponse,
            lambda reason: VerifyResponse(is_valid=False, invalid_reason=reason),
        )

    async def settle(
        self,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
    ) -> SettleResponse:
        """Settle a payment with the facilitator.

        Raises:
            FacilitatorUnreachableError: On timeout, transport error or 5xx.
                ``indeterminate`` is set unless the request provably never
                reached the facilitator.
        """
        response = await self._post(
            "settle", self._request_body(payload, requirements), indeterminate=True
        )
        return self._parse(
            response,
            SettleResponse,
            lambda reason: SettleResponse(
                success=False,
                error_reason=reason,
                network=requirements.network,
                payee=requirements.pay_to,
            ),
        )

    async def get_settlement_status(
        self,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
    ) -> SettlementStatusResponse | None:
        """Query whether a payment has been settled.

        Returns:
            The status, or None if the facilitator has no status endpoint.
        """
        response = await self._post(
            "settlement-status", self._request_body(payload, requirements), indeterminate=False
        )
        if response.status_code in (404, 405):
            return None
        return self._parse(response, SettlementStatusResponse, lambda reason: None)

    async def get_supported(self) -> SupportedResponse:
        """Get supported payment kinds and extensions.

        Raises:
            FacilitatorUnreachableError: On timeout, transport error or 5xx.
            ValueError: If the facilitator answers with an error.
        """
        headers = {"Content-Type": "application/json"}
        if self._auth_provider:
            headers.update(self._auth_provider.get_auth_headers().supported)

        try:
            response = await self._get_client().get(f"{self._url}/supported", headers=headers)
        except httpx.TimeoutException as e:
            raise FacilitatorUnreachableError(f"Facilitator supported timed out: {e}") from e
        except httpx.TransportError as e:
            raise FacilitatorUnreachableError(f"Facilitator unreachable: {e}") from e

        if response.status_code >= 500:
            raise FacilitatorUnreachableError(
                f"Facilitator supported failed ({response.status_code}): {response.text}"
            )
        if response.status_code != 200:
            raise ValueError(
                f"Facilitator get_supported failed ({response.status_code}): {response.text}"
            )

        return SupportedResponse.model_validate(response.json())

    # =========================================================================
    # Internal HTTP Methods
    # =========================================================================

    def _request_body(
        self, payload: PaymentPayload, requirements: PaymentRequirements
    ) -> dict[str, Any]:
        return {
            "x402Version": payload.x402_version,
            "paymentPayload": payload.to_wire(),
            "paymentRequirements": requirements.to_wire(),
        }

    def _auth_headers_for(self, endpoint: str) -> dict[str, str]:
        if not self._auth_provider:
            return {}
        auth = self._auth_provider.get_auth_headers()
        return {
            "verify": auth.verify,
            "settle": auth.settle,
            "settlement-status": auth.status,
        }.get(endpoint, {})

    async def _post(
        self,
        endpoint: str,
        body: dict[str, Any],
        indeterminate: bool,
    ) -> httpx.Response:
        """POST to a facilitator endpoint, mapping transport failures."""
        headers = {"Content-Type": "application/json"}
        headers.update(self._auth_headers_for(endpoint))

        try:
            response = await self._get_client().post(
                f"{self._url}/{endpoint}", headers=headers, json=body
            )
        except httpx.ConnectError as e:
            raise FacilitatorUnreachableError(
                f"Facilitator {endpoint} connection failed: {e}", indeterminate=False
            ) from e
        except httpx.TimeoutException as e:
            raise FacilitatorUnreachableError(
                f"Facilitator {endpoint} timed out: {e}", indeterminate=indeterminate
            ) from e
        except httpx.TransportError as e:
            raise FacilitatorUnreachableError(
                f"Facilitator {endpoint} transport error: {e}", indeterminate=indeterminate
            ) from e

        if response.status_code >= 500:
            raise FacilitatorUnreachableError(
                f"Facilitator {endpoint} failed ({response.status_code}): {response.text}",
                indeterminate=indeterminate,
            )

        return response

    @staticmethod
    def _parse(response: httpx.Response, model: type[ModelT], on_error: Callable[[str], Any]) -> Any:
        """Parse a facilitator answer; 4xx bodies may still carry a result."""
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError):
            if response.status_code == 200:
                raise FacilitatorUnreachableError(
                    f"Invalid facilitator response: {response.text}",
                    indeterminate=model is SettleResponse,
                )
            logger.warning("Facilitator returned %s: %s", response.status_code, response.text)
            return on_error(f"facilitator_error_{response.status_code}")
