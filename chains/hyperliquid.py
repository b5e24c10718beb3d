from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

import requests

from core.models import UNKNOWN_ADDRESS, Transaction

logger = logging.getLogger(__name__)

ZERO_HASH = "0x" + "0" * 64

SIDES = {"B": "buy", "A": "sell"}


class HyperliquidClient:
    """
    Official info endpoint:
      POST https://api.hyperliquid.xyz/info  {"type": "recentTrades", "coin": "BTC"}
    Each trade: {coin, side ("B"|"A"), px, sz, time (ms), hash, tid, users: [buyer, seller]}
    """
    BASE = "https://api.hyperliquid.xyz"

    def __init__(self, base_url: str = BASE, coins: Iterable[str] = ("BTC", "ETH", "SOL"), timeout: float = 15):
        self.base = (base_url or self.BASE).rstrip("/")
        self.coins = [c.strip().upper() for c in coins if c and c.strip()]
        self.timeout = timeout
        self.session = requests.Session()

    def recent_trades(self, coin: str) -> List[Dict[str, Any]]:
        r = self.session.post(
            f"{self.base}/info",
            json={"type": "recentTrades", "coin": coin},
            timeout=self.timeout,
        )
        r.raise_for_status()
        data = r.json()
        if not isinstance(data, list):
            raise RuntimeError(f"Hyperliquid recentTrades({coin}) returned {type(data).__name__}")
        return data

    def fetch_large_transactions(self, min_value: float = 100_000, limit: int = 10) -> List[Transaction]:
        out: List[Transaction] = []
        failures = []
        for coin in self.coins:
            try:
                trades = self.recent_trades(coin)
            except (requests.RequestException, RuntimeError, ValueError) as e:
                logger.warning("hyperliquid: recentTrades %s failed: %s", coin, e)
                failures.append(coin)
                continue
            for tx in merge_fills(normalize_trade(t, coin) for t in trades):
                if tx.value >= min_value:
                    out.append(tx)

        if self.coins and len(failures) == len(self.coins):
            raise RuntimeError(f"Hyperliquid recentTrades failed for {', '.join(failures)}")

        out.sort(key=lambda t: t.value, reverse=True)
        return out[:limit]


def normalize_trade(trade: Dict[str, Any], coin: str = "") -> Optional[Transaction]:
    try:
        size = float(trade.get("sz") or 0)
        price = float(trade.get("px") or 0)
    except (TypeError, ValueError):
        return None
    value = size * price
    if value <= 0:
        return None

    symbol = trade.get("coin") or coin or "UNKNOWN"
    tx_hash = trade.get("hash") or ""
    if not tx_hash or tx_hash == ZERO_HASH:
        # hash is zeroed for many fills; tid is unique per trade
        tx_hash = f"{symbol}-{trade.get('tid')}"

    users = trade.get("users") or []
    from_addr = users[0] if len(users) > 0 else UNKNOWN_ADDRESS
    to_addr = users[1] if len(users) > 1 else UNKNOWN_ADDRESS

    ts_ms = int(trade.get("time") or 0)
    return Transaction(
        chain="hyperliquid",
        hash=tx_hash,
        from_address=from_addr,
        to_address=to_addr,
        value=round(value, 2),
        timestamp=ts_ms // 1000 if ts_ms else int(time.time()),
        size=size,
        price=price,
        side=SIDES.get(trade.get("side"), "unknown"),
        symbol=symbol,
    )


def merge_fills(fills: Iterable[Optional[Transaction]]) -> List[Transaction]:
    """
    One taker order filling against several makers shows up as several
    trades sharing a hash. Fold those into a single transaction with the
    summed size and notional and the volume-weighted price.
    """
    merged: Dict[str, Transaction] = {}
    for tx in fills:
        if tx is None:
            continue
        prev = merged.get(tx.hash)
        if prev is None:
            merged[tx.hash] = tx
            continue
        size = (prev.size or 0) + (tx.size or 0)
        value = round(prev.value + tx.value, 2)
        merged[tx.hash] = replace(prev, size=size, value=value, price=value / size if size else prev.price)
    return list(merged.values())
