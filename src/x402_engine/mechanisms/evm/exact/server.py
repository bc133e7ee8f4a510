"""Exact scheme server implementation for EVM."""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal
from typing import Any

from ....schemas import (
    AssetAmount,
    Network,
    PaymentPayload,
    PaymentRequirements,
    Price,
    SupportedKind,
)
from ..constants import NETWORK_CONFIGS, SCHEME_EXACT
from ..utils import authorization_key, get_asset_info, parse_amount, parse_money_to_decimal

# Type alias for money parser
MoneyParser = Callable[[Decimal, str], AssetAmount | None]


class ExactEvmScheme:
    """Server scheme for exact EVM payments.

    Converts dollar prices to the network's default stablecoin, assumed to
    be pegged 1:1 to USD, and fills in the token's EIP-712 domain.
    """

    def __init__(self):
        self.scheme = SCHEME_EXACT
        self._money_parsers: list[MoneyParser] = []

    def register_money_parser(self, parser: MoneyParser) -> ExactEvmScheme:
        """Register custom money parser in the parser chain.

        Parsers are tried in registration order and receive the decimal
        dollar amount. Returning None passes to the next parser; the
        default stablecoin conversion is always the final fallback.

        Args:
            parser: Custom function to convert amount to AssetAmount.

        Returns:
            Self for chaining.
        """
        self._money_parsers.append(parser)
        return self

    def parse_price(self, price: Price | dict[str, Any], network: Network) -> AssetAmount:
        """Parse price into asset amount.

        Args:
            price: "$0.001", 0.01, an AssetAmount, or an AssetAmount dict.
            network: Network identifier.

        Returns:
            AssetAmount with amount in the asset's smallest unit.

        Raises:
            ValueError: If the price is invalid or the network has no default asset.
        """
        if isinstance(price, dict) and "amount" in price:
            if not price.get("asset"):
                raise ValueError(f"Asset required for AssetAmount on {network}")
            return AssetAmount(
                amount=str(price["amount"]),
                asset=price["asset"],
                extra=price.get("extra"),
            )

        if isinstance(price, AssetAmount):
            if not price.asset:
                raise ValueError(f"Asset required for AssetAmount on {network}")
            return price

        decimal_amount = parse_money_to_decimal(price)

        for parser in self._money_parsers:
            result = parser(decimal_amount, str(network))
            if result is not None:
                return result

        return self._default_money_conversion(decimal_amount, str(network))

    def _default_money_conversion(self, amount: Decimal, network: str) -> AssetAmount:
        config = NETWORK_CONFIGS.get(network)
        if not config or "default_asset" not in config:
            raise ValueError(f"No default asset configured for network {network}")

        asset = config["default_asset"]
        return AssetAmount(
            amount=str(parse_amount(amount, asset["decimals"])),
            asset=asset["address"],
            extra={"name": asset["name"], "version": asset["version"]},
        )

    def enhance_payment_requirements(
        self,
        requirements: PaymentRequirements,
        supported_kind: SupportedKind | None,
    ) -> PaymentRequirements:
        """Ensure requirements carry the token's EIP-712 name and version."""
        extra = dict(requirements.extra or {})
        if "name" not in extra or "version" not in extra:
            info = get_asset_info(str(requirements.network), requirements.asset)
            if info["name"]:
                extra.setdefault("name", info["name"])
            if info["version"]:
                extra.setdefault("version", info["version"])

        if supported_kind is not None and supported_kind.extra:
            for key, value in supported_kind.extra.items():
                extra.setdefault(key, value)

        return requirements.model_copy(update={"extra": extra})

    def settlement_key(self, payload: PaymentPayload) -> tuple[str, str, str] | None:
        """Identify the authorization a payment spends, for in-flight claims."""
        return authorization_key(payload)
