from __future__ import annotations

import logging
import time
from typing import Dict, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)

# symbol -> coingecko id for the coins people actually ask about
SYMBOL_IDS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "HYPE": "hyperliquid",
    "USDC": "usd-coin",
    "USDT": "tether",
    "BNB": "binancecoin",
    "XRP": "ripple",
    "DOGE": "dogecoin",
    "WIF": "dogwifcoin",
    "BONK": "bonk",
    "JUP": "jupiter-exchange-solana",
}


class CoinGeckoClient:
    """
    Official endpoint (docs):
      - GET https://api.coingecko.com/api/v3/simple/price?ids=<id>&vs_currencies=usd&include_24hr_change=true
      - Public rate limit is low (~10-30 req/min), so results are cached for `ttl_seconds`
    """
    BASE = "https://api.coingecko.com/api/v3"

    def __init__(self, base_url: str = BASE, ttl_seconds: int = 60, timeout: float = 15, clock=time.monotonic):
        self.base = (base_url or self.BASE).rstrip("/")
        self.ttl = ttl_seconds
        self.timeout = timeout
        self._clock = clock
        # coin id -> (expires_at, quote)
        self._quotes: Dict[str, Tuple[float, Dict[str, float]]] = {}

        self.session = requests.Session()
        retries = Retry(
            total=2,
            backoff_factor=0.5,
            status_forcelist=[500, 502, 503, 504],
            allowed_methods=["GET"],
            raise_on_status=False,
        )
        self.session.mount("https://", HTTPAdapter(max_retries=retries))

    def _fresh_quote(self, cid: str) -> Optional[Dict[str, float]]:
        hit = self._quotes.get(cid)
        if hit is None:
            return None
        expires_at, quote = hit
        if self._clock() >= expires_at:
            del self._quotes[cid]
            return None
        return quote

    @staticmethod
    def coin_id(symbol: str) -> str:
        s = (symbol or "").strip()
        return SYMBOL_IDS.get(s.upper(), s.lower())

    def get_price(self, symbol: str) -> Optional[Dict[str, float]]:
        """
        Returns {"usd": price, "usd_24h_change": pct} or None when unknown / rate limited.
        """
        cid = self.coin_id(symbol)
        if not cid:
            return None

        cached = self._fresh_quote(cid)
        if cached is not None:
            return cached

        r = self.session.get(
            f"{self.base}/simple/price",
            params={"ids": cid, "vs_currencies": "usd", "include_24hr_change": "true"},
            timeout=self.timeout,
        )
        if r.status_code == 429:
            # Rate limited: fail soft
            logger.warning("coingecko rate limited for %s", cid)
            return None
        r.raise_for_status()
        data = (r.json() or {}).get(cid)
        if not data or "usd" not in data:
            return None

        out = {"usd": float(data["usd"]), "usd_24h_change": float(data.get("usd_24h_change") or 0.0)}
        self._quotes[cid] = (self._clock() + self.ttl, out)
        return out
