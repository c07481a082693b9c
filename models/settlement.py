"""
Records produced by the on-chain settlement executor.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class ConnectionHandle:
    """A verified connection to an RPC endpoint."""

    endpoint: str
    chain_id: int
    client: Any = field(repr=False, compare=False)


@dataclass(frozen=True)
class PendingTransaction:
    """A signed transfer that has been accepted by the node but not yet mined."""

    tx_hash: str
    sender: str
    destination: str
    amount: Decimal
    value_wei: int
    nonce: int
    submitted_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class Receipt:
    """Finality marker for a confirmed transfer."""

    tx_hash: str
    block_number: int
    status: int
    gas_used: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1
