"""Server-side resource pricing configuration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from .base import Network
from .payments import AssetAmount

# Dollar price such as "$0.001", "0.01" or 1; converted by the scheme
Money = Union[str, int, float]
Price = Union[Money, AssetAmount]


@dataclass
class ResourceConfig:
    """Pricing for one payment option of a protected resource."""

    scheme: str
    pay_to: str
    price: Price
    network: Network
    max_timeout_seconds: int | None = None
    extra: dict[str, Any] | None = None
