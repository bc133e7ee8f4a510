"""HTTP header names and defaults for the x402 protocol."""

# V2 headers
PAYMENT_SIGNATURE_HEADER = "PAYMENT-SIGNATURE"
PAYMENT_REQUIRED_HEADER = "PAYMENT-REQUIRED"
PAYMENT_RESPONSE_HEADER = "PAYMENT-RESPONSE"

# V1 headers, still accepted
X_PAYMENT_HEADER = "X-PAYMENT"
X_PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"

DEFAULT_FACILITATOR_URL = "https://x402.org/facilitator"

HTTP_STATUS_PAYMENT_REQUIRED = 402
HTTP_STATUS_SERVICE_UNAVAILABLE = 503
