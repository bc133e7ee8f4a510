"""HTTP transport layer for x402: headers, resource server and clients."""

from .constants import (
    DEFAULT_FACILITATOR_URL,
    PAYMENT_REQUIRED_HEADER,
    PAYMENT_RESPONSE_HEADER,
    PAYMENT_SIGNATURE_HEADER,
    X_PAYMENT_HEADER,
    X_PAYMENT_RESPONSE_HEADER,
)
from .facilitator_client import (
    AuthHeaders,
    AuthProvider,
    CreateHeadersAuthProvider,
    FacilitatorConfig,
    HTTPFacilitatorClient,
)
from .types import (
    RESULT_NO_PAYMENT_REQUIRED,
    RESULT_PAYMENT_ERROR,
    RESULT_PAYMENT_VERIFIED,
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
    decode_payment_required_header,
    decode_payment_response_header,
    decode_payment_signature_header,
    encode_payment_required_header,
    encode_payment_response_header,
    encode_payment_signature_header,
)
from .x402_http_client import x402HTTPClient
from .x402_http_server import x402HTTPResourceServer

__all__ = [
    # Constants
    "DEFAULT_FACILITATOR_URL",
    "PAYMENT_SIGNATURE_HEADER",
    "PAYMENT_REQUIRED_HEADER",
    "PAYMENT_RESPONSE_HEADER",
    "X_PAYMENT_HEADER",
    "X_PAYMENT_RESPONSE_HEADER",
    # Facilitator client
    "AuthHeaders",
    "AuthProvider",
    "CreateHeadersAuthProvider",
    "FacilitatorConfig",
    "HTTPFacilitatorClient",
    # Types
    "HTTPAdapter",
    "HTTPRequestContext",
    "HTTPResponseInstructions",
    "HTTPProcessResult",
    "ProcessSettleResult",
    "PaymentOption",
    "RouteConfig",
    "RoutesConfig",
    "RouteValidationError",
    "RouteConfigurationError",
    "RESULT_NO_PAYMENT_REQUIRED",
    "RESULT_PAYMENT_VERIFIED",
    "RESULT_PAYMENT_ERROR",
    # Encoding
    "encode_payment_signature_header",
    "encode_payment_required_header",
    "encode_payment_response_header",
    "decode_payment_signature_header",
    "decode_payment_required_header",
    "decode_payment_response_header",
    # Client / server
    "x402HTTPClient",
    "x402HTTPResourceServer",
]
