from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


CHAINS = ("ethereum", "solana", "bitcoin", "hyperliquid")

UNKNOWN_ADDRESS = "Unknown"


@dataclass(frozen=True)
class Transaction:
    """A large transfer/trade reported by one chain provider."""
    chain: str                  # one of CHAINS
    hash: str                   # tx hash / signature / trade id
    from_address: str
    to_address: str
    value: float                # native units (ETH/SOL/BTC) or USD for hyperliquid
    timestamp: int              # unix seconds
    block_number: Optional[int] = None
    # hyperliquid extras, display only
    size: Optional[float] = None
    price: Optional[float] = None
    side: Optional[str] = None  # "buy" | "sell"
    symbol: Optional[str] = None

    @property
    def dedupe_key(self) -> str:
        return f"{self.chain}:{self.hash}"


@dataclass(frozen=True)
class ChainWatch:
    """One entry of the monitor's provider fan-out."""
    chain: str
    source: Any                 # anything with fetch_large_transactions(min_value, limit)
    min_value: float
    limit: int = 10
