"""Settlement outbox for payments whose settlement failed after delivery.

A resource is delivered before settlement completes. When settlement then
fails, or its outcome is unknown, the payment is parked here so it can be
re-queried and re-settled later. Facilitator settles are idempotent, so a
retry never charges twice.
"""

from __future__ import annotations

import hashlib
import threading
import time
from dataclasses import dataclass, field

from .schemas import PaymentPayload, PaymentRequirements, SettleResponse


@dataclass
class PendingSettlement:
    """A delivered payment awaiting a definitive settlement outcome."""

    key: str
    payload: PaymentPayload
    requirements: PaymentRequirements
    reason: str
    indeterminate: bool
    attempts: int = 0
    created_at: float = field(default_factory=time.time)


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation attempt."""

    entry: PendingSettlement
    resolved: bool
    receipt: SettleResponse | None = None
    error: str | None = None


def settlement_entry_key(payload: PaymentPayload) -> str:
    encoded = payload.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


class SettlementOutbox:
    """In-memory outbox of pending settlements, one entry per payload."""

    def __init__(self, max_attempts: int = 5) -> None:
        self.max_attempts = max_attempts
        self._entries: dict[str, PendingSettlement] = {}
        self._lock = threading.Lock()

    def add(
        self,
        payload: PaymentPayload,
        requirements: PaymentRequirements,
        reason: str,
        indeterminate: bool,
    ) -> PendingSettlement:
        """Record a failed settlement; repeated failures update the entry."""
        key = settlement_entry_key(payload)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = PendingSettlement(
                    key=key,
                    payload=payload,
                    requirements=requirements,
                    reason=reason,
                    indeterminate=indeterminate,
                )
                self._entries[key] = entry
            else:
                entry.reason = reason
                entry.indeterminate = indeterminate
            return entry

    def pending(self) -> list[PendingSettlement]:
        with self._lock:
            return list(self._entries.values())

    def resolve(self, entry: PendingSettlement) -> None:
        with self._lock:
            self._entries.pop(entry.key, None)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, payload: object) -> bool:
        if not isinstance(payload, PaymentPayload):
            return False
        return settlement_entry_key(payload) in self._entries
