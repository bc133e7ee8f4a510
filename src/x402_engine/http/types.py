"""HTTP-layer types: route configuration, request adapters and results."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Protocol, Union

from ..schemas import Network, PaymentPayload, PaymentRequirements, Price

# ============================================================================
# Request Adapter
# ============================================================================


class HTTPAdapter(Protocol):
    """Framework-agnostic view of an incoming HTTP request."""

    def get_header(self, name: str) -> str | None:
        ...

    def get_method(self) -> str:
        ...

    def get_path(self) -> str:
        ...

    def get_url(self) -> str:
        ...


@dataclass
class HTTPRequestContext:
    """Request data needed to process a payment."""

    adapter: HTTPAdapter
    path: str
    method: str


# ============================================================================
# Route Configuration
# ============================================================================

DynamicPayTo = Callable[[HTTPRequestContext], str]
DynamicPrice = Callable[[HTTPRequestContext], Price]


@dataclass
class PaymentOption:
    """One accepted way to pay for a route."""

    scheme: str
    pay_to: str | DynamicPayTo
    price: Price | DynamicPrice
    network: Network
    max_timeout_seconds: int | None = None
    extra: dict[str, Any] | None = None


@dataclass
class RouteConfig:
    """Payment configuration for a route pattern."""

    accepts: PaymentOption | list[PaymentOption]
    resource: str | None = None
    description: str | None = None
    mime_type: str | None = None


RoutesConfig = Union[RouteConfig, dict[str, Union[RouteConfig, dict[str, Any]]]]


@dataclass
class CompiledRoute:
    """Route pattern compiled to a method and path regex."""

    verb: str
    regex: re.Pattern[str]
    config: RouteConfig
    pattern: str = ""


@dataclass
class RouteValidationError:
    """A route payment option that cannot be served."""

    route_pattern: str
    scheme: str
    network: Network
    reason: Literal["missing_scheme", "missing_facilitator"]
    message: str


class RouteConfigurationError(Exception):
    """Raised by initialize() when routes reference unsupported payment options."""

    def __init__(self, errors: list[RouteValidationError]) -> None:
        self.errors = errors
        details = "\n".join(f"  - {e.message}" for e in errors)
        super().__init__(f"x402 route configuration errors:\n{details}")


# ============================================================================
# Processing Results
# ============================================================================

RESULT_NO_PAYMENT_REQUIRED = "no-payment-required"
RESULT_PAYMENT_VERIFIED = "payment-verified"
RESULT_PAYMENT_ERROR = "payment-error"


@dataclass
class HTTPResponseInstructions:
    """Response the framework adapter should send."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None


@dataclass
class HTTPProcessResult:
    """Result of processing an incoming request.

    ``type`` is one of RESULT_NO_PAYMENT_REQUIRED, RESULT_PAYMENT_VERIFIED
    or RESULT_PAYMENT_ERROR. Errors carry ready-made response instructions
    (402 for payment problems, 503 when the facilitator is unavailable).
    """

    type: str
    response: HTTPResponseInstructions | None = None
    payment_payload: PaymentPayload | None = None
    payment_requirements: PaymentRequirements | None = None


@dataclass
class ProcessSettleResult:
    """Result of settling after the handler ran.

    ``headers`` always carries the settlement receipt, including failures.
    """

    success: bool
    headers: dict[str, str] = field(default_factory=dict)
    error_reason: str | None = None
    transaction: str | None = None
    network: Network | None = None
    payer: str | None = None
    indeterminate: bool = False
