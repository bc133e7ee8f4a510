"""Base model and shared aliases for x402 wire types."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

# CAIP-2 network identifier, e.g. "eip155:8453" or the family wildcard "eip155:*"
Network = str

X402_VERSION = 2


class BaseX402Model(BaseModel):
    """Base model with camelCase wire aliases.

    Fields are declared in snake_case and serialized in camelCase,
    matching the JSON objects exchanged over HTTP.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_wire(self) -> dict:
        """Dump to a JSON-safe dict with camelCase keys, omitting None fields."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
