"""FastAPI integration for x402 payment-protected routes."""

from .middleware import FastAPIAdapter, payment_middleware

__all__ = ["FastAPIAdapter", "payment_middleware"]
