"""
Per-chat wallet tracking lists and one-shot price alerts.

Both live in process memory only, like the rest of the bot state.
"""
from __future__ import annotations

import itertools
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

CHAIN_ALIASES = {
    "eth": "ethereum",
    "ethereum": "ethereum",
    "sol": "solana",
    "solana": "solana",
    "btc": "bitcoin",
    "bitcoin": "bitcoin",
}

ADDRESS_PATTERNS = {
    "ethereum": re.compile(r"^0x[0-9a-fA-F]{40}$"),
    "solana": re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$"),
    "bitcoin": re.compile(r"^(bc1[02-9ac-hj-np-z]{11,71}|[13][1-9A-HJ-NP-Za-km-z]{25,34})$"),
}

DIRECTIONS = {"above": "above", ">": "above", "below": "below", "<": "below"}


@dataclass(frozen=True)
class TrackedWallet:
    id: str
    chat_id: Any
    chain: str
    address: str
    label: str
    created_at: float


@dataclass(frozen=True)
class PriceAlert:
    id: str
    chat_id: Any
    symbol: str
    direction: str              # "above" | "below"
    target: float
    created_at: float

    def hit(self, price: float) -> bool:
        if self.direction == "above":
            return price >= self.target
        return price <= self.target


class WalletBook:
    def __init__(self, max_per_chat: int = 20):
        self.max_per_chat = max_per_chat
        self._wallets: Dict[Any, List[TrackedWallet]] = {}
        self._ids = itertools.count(1)

    def add(self, chat_id, chain: str, address: str, label: str = "") -> TrackedWallet:
        chain = CHAIN_ALIASES.get((chain or "").lower())
        if chain is None:
            raise ValueError("chain must be one of eth, sol, btc")
        address = (address or "").strip()
        if not ADDRESS_PATTERNS[chain].match(address):
            raise ValueError(f"not a valid {chain} address: {address}")

        wallets = self._wallets.setdefault(chat_id, [])
        key = address.lower() if chain == "ethereum" else address
        for w in wallets:
            existing = w.address.lower() if w.chain == "ethereum" else w.address
            if w.chain == chain and existing == key:
                raise ValueError(f"already tracking {address}")
        if len(wallets) >= self.max_per_chat:
            raise ValueError(f"at most {self.max_per_chat} wallets per chat")

        wallet = TrackedWallet(
            id=f"W{next(self._ids)}",
            chat_id=chat_id,
            chain=chain,
            address=address,
            label=label.strip() or f"{chain}-wallet-{len(wallets) + 1}",
            created_at=time.time(),
        )
        wallets.append(wallet)
        return wallet

    def remove(self, chat_id, wallet_id: str) -> Optional[TrackedWallet]:
        wallets = self._wallets.get(chat_id, [])
        for i, w in enumerate(wallets):
            if w.id.lower() == (wallet_id or "").lower():
                return wallets.pop(i)
        return None

    def list(self, chat_id) -> List[TrackedWallet]:
        return list(self._wallets.get(chat_id, []))

    def clear(self, chat_id) -> int:
        return len(self._wallets.pop(chat_id, []))


class PriceAlertBook:
    def __init__(self, max_per_chat: int = 20):
        self.max_per_chat = max_per_chat
        self._alerts: Dict[str, PriceAlert] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._alerts)

    def add(self, chat_id, symbol: str, direction: str, target: float) -> PriceAlert:
        direction = DIRECTIONS.get((direction or "").lower())
        if direction is None:
            raise ValueError("condition must be above or below")
        if not target > 0:
            raise ValueError("price must be greater than 0")
        if len(self.list(chat_id)) >= self.max_per_chat:
            raise ValueError(f"at most {self.max_per_chat} alerts per chat")

        alert = PriceAlert(
            id=f"A{next(self._ids)}",
            chat_id=chat_id,
            symbol=symbol.strip().upper(),
            direction=direction,
            target=float(target),
            created_at=time.time(),
        )
        self._alerts[alert.id] = alert
        return alert

    def remove(self, chat_id, alert_id: str) -> Optional[PriceAlert]:
        alert = self._alerts.get((alert_id or "").upper())
        if alert is None or alert.chat_id != chat_id:
            return None
        return self._alerts.pop(alert.id)

    def list(self, chat_id) -> List[PriceAlert]:
        return [a for a in self._alerts.values() if a.chat_id == chat_id]

    def clear(self, chat_id) -> int:
        mine = self.list(chat_id)
        for a in mine:
            del self._alerts[a.id]
        return len(mine)

    def check(self, get_price: Callable[[str], Optional[Dict[str, float]]]) -> List[Tuple[PriceAlert, float]]:
        """
        Look up each symbol once and pop every alert whose condition holds.
        Blocking; call it off the event loop.
        """
        by_symbol: Dict[str, List[PriceAlert]] = {}
        for a in list(self._alerts.values()):
            by_symbol.setdefault(a.symbol, []).append(a)

        fired: List[Tuple[PriceAlert, float]] = []
        for symbol, alerts in by_symbol.items():
            try:
                quote = get_price(symbol)
            except Exception as e:
                logger.warning("price alert check for %s failed: %s", symbol, e)
                continue
            if not quote:
                continue
            price = float(quote["usd"])
            for a in alerts:
                if a.hit(price):
                    self._alerts.pop(a.id, None)
                    fired.append((a, price))
        return fired
