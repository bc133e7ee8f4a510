"""HTTP-enhanced resource server for x402 protocol."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any
from urllib.parse import unquote

from ..schemas import (
    REASON_MISSING_PAYMENT,
    REASON_NONCE_ALREADY_USED,
    REASON_UNMATCHED_REQUIREMENT,
    FacilitatorUnreachableError,
    MalformedPaymentError,
    PaymentError,
    PaymentPayload,
    PaymentRequired,
    PaymentRequirements,
    ResourceConfig,
    ResourceInfo,
    SettlementFailedError,
    SettleResponse,
)
from .constants import (
    HTTP_STATUS_PAYMENT_REQUIRED,
    HTTP_STATUS_SERVICE_UNAVAILABLE,
    PAYMENT_REQUIRED_HEADER,
    PAYMENT_RESPONSE_HEADER,
    PAYMENT_SIGNATURE_HEADER,
    X_PAYMENT_HEADER,
)
from .types import (
    RESULT_NO_PAYMENT_REQUIRED,
    RESULT_PAYMENT_ERROR,
    RESULT_PAYMENT_VERIFIED,
    CompiledRoute,
    HTTPAdapter,
    HTTPProcessResult,
    HTTPRequestContext,
    HTTPResponseInstructions,
    PaymentOption,
    ProcessSettleResult,
    RouteConfig,
    RouteConfigurationError,
    RoutesConfig,
    RouteValidationError,
)
from .utils import (
    decode_payment_signature_header,
    encode_payment_required_header,
    encode_payment_response_header,
)

if TYPE_CHECKING:
    from ..server import x402ResourceServer

logger = logging.getLogger(__name__)


# ============================================================================
# x402HTTPResourceServer
# ============================================================================


class x402HTTPResourceServer:
    """HTTP-enhanced x402 resource server.

    Provides framework-agnostic HTTP protocol handling for payment-protected
    resources. Use with framework-specific middleware (see x402_engine.fastapi).

    Per request to a priced route the flow is: challenge (402) when no or an
    unusable payment is attached, verification before the handler, and
    settlement after the handler succeeded. Routes without a price bypass
    all of it.
    """

    def __init__(
        self,
        server: x402ResourceServer,
        routes: RoutesConfig,
    ) -> None:
        """Create HTTP resource server.

        Args:
            server: Core x402ResourceServer instance.
            routes: Route configuration for payment-protected endpoints.
        """
        self._server = server
        self._compiled_routes: list[CompiledRoute] = []

        self._compile_routes(routes)

    @property
    def server(self) -> x402ResourceServer:
        return self._server

    def _compile_routes(self, routes: RoutesConfig) -> None:
        """Compile route patterns to regex for matching."""
        normalized: dict[str, RouteConfig] = {}

        if isinstance(routes, RouteConfig):
            normalized = {"*": routes}
        elif isinstance(routes, dict):
            if "accepts" in routes:
                # Single route config dict - apply to all paths
                normalized = {"*": self._parse_route_config(routes)}  # type: ignore[arg-type]
            else:
                for pattern, config in routes.items():
                    if isinstance(config, RouteConfig):
                        normalized[pattern] = config
                    elif isinstance(config, dict):
                        normalized[pattern] = self._parse_route_config(config)
                    else:
                        raise ValueError(f"Invalid route config for pattern {pattern}")

        for pattern, config in normalized.items():
            verb, regex = self._parse_route_pattern(pattern)
            self._compiled_routes.append(
                CompiledRoute(verb=verb, regex=regex, config=config, pattern=pattern)
            )

    def _parse_route_config(self, config: dict[str, Any]) -> RouteConfig:
        """Parse a raw dict into a RouteConfig."""
        accepts = config.get("accepts", [])

        if isinstance(accepts, (dict, PaymentOption)):
            accepts = [accepts]

        payment_options = []
        for acc in accepts:
            if isinstance(acc, PaymentOption):
                payment_options.append(acc)
            else:
                payment_options.append(
                    PaymentOption(
                        scheme=acc.get("scheme", ""),
                        pay_to=acc.get("payTo", acc.get("pay_to", "")),
                        price=acc.get("price", ""),
                        network=acc.get("network", ""),
                        max_timeout_seconds=acc.get(
                            "maxTimeoutSeconds", acc.get("max_timeout_seconds")
                        ),
                        extra=acc.get("extra"),
                    )
                )

        if not payment_options:
            raise ValueError("Route config must accept at least one payment option")

        return RouteConfig(
            accepts=payment_options,
            resource=config.get("resource"),
            description=config.get("description"),
            mime_type=config.get("mimeType", config.get("mime_type")),
        )

    # =========================================================================
    # Initialization
    # =========================================================================

    async def initialize(self) -> None:
        """Initialize the HTTP resource server.

        Initializes the underlying resource server (fetches facilitator
        support) and validates route configuration.

        Raises:
            RouteConfigurationError: If any route's payment options don't have
                corresponding registered schemes or facilitator support.
        """
        await self._server.initialize()

        errors = self._validate_route_configuration()
        if errors:
            raise RouteConfigurationError(errors)

    # =========================================================================
    # Request Processing
    # =========================================================================

    def requires_payment(self, context: HTTPRequestContext) -> bool:
        """Check if a request requires payment."""
        return self._get_route_config(context.path, context.method) is not None

    async def process_http_request(self, context: HTTPRequestContext) -> HTTPProcessResult:
        """Process HTTP request and return result.

        Main entry point for framework middleware.

        Returns:
            HTTPProcessResult indicating:
            - no-payment-required: Route doesn't require payment
            - payment-verified: Payment valid, proceed with request
            - payment-error: Return the attached 402 or 503 response
        """
        route_config = self._get_route_config(context.path, context.method)
        if route_config is None:
            return HTTPProcessResult(type=RESULT_NO_PAYMENT_REQUIRED)

        resource_info = ResourceInfo(
            url=route_config.resource or context.adapter.get_url(),
            description=route_config.description or "",
            mime_type=route_config.mime_type or "",
        )

        requirements = self._build_payment_requirements_from_options(
            route_config.accepts, context, resource_info
        )

        def challenge(error: str | None) -> HTTPProcessResult:
            payment_required = self._server.create_payment_required_response(
                requirements, resource_info, error
            )
            return HTTPProcessResult(
                type=RESULT_PAYMENT_ERROR,
                response=self._create_http_response(payment_required),
            )

        header = self._get_payment_header(context.adapter)
        if not header:
            return challenge(REASON_MISSING_PAYMENT)

        try:
            payment_payload = decode_payment_signature_header(header)
        except MalformedPaymentError as e:
            logger.warning("Malformed payment header on %s %s: %s", context.method, context.path, e)
            return challenge(e.reason)

        matching_reqs = self._server.find_matching_requirements(requirements, payment_payload)
        if matching_reqs is None:
            logger.warning(
                "No requirement matches payment for %s on %s",
                payment_payload.get_scheme(),
                payment_payload.get_network(),
            )
            return challenge(REASON_UNMATCHED_REQUIREMENT)

        try:
            verify_result = await self._server.verify_payment(payment_payload, matching_reqs)
        except FacilitatorUnreachableError as e:
            logger.error("Facilitator unavailable during verification: %s", e)
            return HTTPProcessResult(
                type=RESULT_PAYMENT_ERROR,
                response=self._create_unavailable_response(e),
            )
        except PaymentError as e:
            return challenge(e.reason)

        if not verify_result.is_valid:
            return challenge(verify_result.invalid_reason or "invalid_payment")

        if not self._server.claim_payment(payment_payload):
            logger.warning(
                "Payment from %s is already being served, refusing replay",
                verify_result.payer or "unknown payer",
            )
            return challenge(REASON_NONCE_ALREADY_USED)

        return HTTPProcessResult(
            type=RESULT_PAYMENT_VERIFIED,
            payment_payload=payment_payload,
            payment_requirements=matching_reqs,
        )

    # =========================================================================
    # Settlement
    # =========================================================================

    async def process_settlement(
        self,
        payment_payload: PaymentPayload,
        requirements: PaymentRequirements,
    ) -> ProcessSettleResult:
        """Settle after the protected resource has been served.

        Never raises for settlement problems: failures come back with
        success=False and a receipt header describing the failure.
        """
        try:
            settle_response = await self._server.settle_payment(payment_payload, requirements)
        except SettlementFailedError as e:
            return self._failed_settlement(requirements, e.reason, e.indeterminate)
        except PaymentError as e:
            return self._failed_settlement(requirements, e.reason, False)
        except Exception as e:
            logger.exception("Unexpected settlement error")
            self._server.release_payment(payment_payload)
            return self._failed_settlement(requirements, str(e) or type(e).__name__, True)

        headers = self._create_settlement_headers(settle_response)
        if not settle_response.success:
            return ProcessSettleResult(
                success=False,
                headers=headers,
                error_reason=settle_response.error_reason or "Settlement failed",
                network=settle_response.network,
                payer=settle_response.payer,
            )

        return ProcessSettleResult(
            success=True,
            headers=headers,
            transaction=settle_response.transaction,
            network=settle_response.network,
            payer=settle_response.payer,
        )

    def release_payment(self, payment_payload: PaymentPayload) -> None:
        """Give up a verified payment whose resource was not served."""
        self._server.release_payment(payment_payload)

    def _failed_settlement(
        self,
        requirements: PaymentRequirements,
        reason: str,
        indeterminate: bool,
    ) -> ProcessSettleResult:
        receipt = SettleResponse(
            success=False,
            error_reason=reason,
            network=requirements.network,
            payee=requirements.pay_to,
        )
        return ProcessSettleResult(
            success=False,
            headers=self._create_settlement_headers(receipt),
            error_reason=reason,
            network=requirements.network,
            indeterminate=indeterminate,
        )

    # =========================================================================
    # Internal Methods
    # =========================================================================

    def _get_route_config(self, path: str, method: str) -> RouteConfig | None:
        """Find matching route configuration."""
        normalized_path = self._normalize_path(path)
        upper_method = method.upper()

        for route in self._compiled_routes:
            if route.regex.match(normalized_path):
                if route.verb == "*" or route.verb == upper_method:
                    return route.config

        return None

    def _build_payment_requirements_from_options(
        self,
        options: PaymentOption | list[PaymentOption],
        context: HTTPRequestContext,
        resource: ResourceInfo,
    ) -> list[PaymentRequirements]:
        """Build payment requirements from payment options.

        Resolves dynamic payTo/price functions. Built fresh per request.
        """
        if isinstance(options, PaymentOption):
            options = [options]

        all_requirements = []

        for option in options:
            pay_to = option.pay_to(context) if callable(option.pay_to) else option.pay_to
            price = option.price(context) if callable(option.price) else option.price

            config = ResourceConfig(
                scheme=option.scheme,
                pay_to=pay_to,
                price=price,
                network=option.network,
                max_timeout_seconds=option.max_timeout_seconds,
                extra=option.extra,
            )

            all_requirements.extend(self._server.build_payment_requirements(config, resource))

        return all_requirements

    def _get_payment_header(self, adapter: HTTPAdapter) -> str | None:
        """Extract the payment header, preferring V2 over the legacy X-PAYMENT."""
        return adapter.get_header(PAYMENT_SIGNATURE_HEADER) or adapter.get_header(
            X_PAYMENT_HEADER
        )

    def _create_http_response(self, payment_required: PaymentRequired) -> HTTPResponseInstructions:
        """Create 402 response instructions with body and header."""
        return HTTPResponseInstructions(
            status=HTTP_STATUS_PAYMENT_REQUIRED,
            headers={
                "Content-Type": "application/json",
                PAYMENT_REQUIRED_HEADER: encode_payment_required_header(payment_required),
            },
            body=payment_required.to_wire(),
        )

    def _create_unavailable_response(
        self, error: FacilitatorUnreachableError
    ) -> HTTPResponseInstructions:
        """Create 503 response instructions for a transient facilitator failure."""
        return HTTPResponseInstructions(
            status=HTTP_STATUS_SERVICE_UNAVAILABLE,
            headers={
                "Content-Type": "application/json",
                "Retry-After": str(max(1, int(self._server.retry_policy.timeout))),
            },
            body={"error": error.reason, "message": str(error)},
        )

    def _create_settlement_headers(self, settle_response: SettleResponse) -> dict[str, str]:
        return {PAYMENT_RESPONSE_HEADER: encode_payment_response_header(settle_response)}

    def _validate_route_configuration(self) -> list[RouteValidationError]:
        """Validate all payment options have registered schemes."""
        errors: list[RouteValidationError] = []

        for route in self._compiled_routes:
            pattern = route.pattern or f"{route.verb} {route.regex.pattern}"

            options = route.config.accepts
            if isinstance(options, PaymentOption):
                options = [options]

            for option in options:
                if not self._server.has_registered_scheme(option.network, option.scheme):
                    errors.append(
                        RouteValidationError(
                            route_pattern=pattern,
                            scheme=option.scheme,
                            network=option.network,
                            reason="missing_scheme",
                            message=f'Route "{pattern}": No scheme for "{option.scheme}" on "{option.network}"',
                        )
                    )
                    continue

                if not self._server.get_supported_kind(option.network, option.scheme):
                    errors.append(
                        RouteValidationError(
                            route_pattern=pattern,
                            scheme=option.scheme,
                            network=option.network,
                            reason="missing_facilitator",
                            message=f'Route "{pattern}": Facilitator doesn\'t support "{option.scheme}" on "{option.network}"',
                        )
                    )

        return errors

    @staticmethod
    def _parse_route_pattern(pattern: str) -> tuple[str, re.Pattern[str]]:
        """Parse route pattern into verb and regex."""
        parts = pattern.split(None, 1)

        if len(parts) == 2:
            verb = parts[0].upper()
            path = parts[1]
        else:
            verb = "*"
            path = pattern

        regex_pattern = "^" + re.escape(path)
        regex_pattern = regex_pattern.replace(r"\*", ".*?")  # Wildcards
        regex_pattern = re.sub(r"\\\[([^\]]+)\\\]", r"[^/]+", regex_pattern)  # [param]
        regex_pattern += "$"

        return verb, re.compile(regex_pattern, re.IGNORECASE)

    @staticmethod
    def _normalize_path(path: str) -> str:
        """Normalize path for matching."""
        path = path.split("?")[0].split("#")[0]
        path = unquote(path)
        path = re.sub(r"/+", "/", path)
        path = path.rstrip("/")

        return path or "/"
