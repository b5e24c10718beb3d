from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import requests

from core.models import UNKNOWN_ADDRESS, Transaction

logger = logging.getLogger(__name__)

WEI_PER_ETH = 10**18


class EtherscanClient:
    """
    Large ETH transfers from the latest blocks, via Etherscan's JSON-RPC proxy:
      - module=proxy&action=eth_blockNumber
      - module=proxy&action=eth_getBlockByNumber&tag=<hex>&boolean=true
    """
    BASE = "https://api.etherscan.io/v2/api"

    def __init__(self, api_key: str, base_url: str = BASE, blocks: int = 3, timeout: float = 15):
        self.api_key = (api_key or "").strip()
        self.base = base_url or self.BASE
        self.blocks = max(1, int(blocks))
        self.timeout = timeout
        self.session = requests.Session()

    def _proxy(self, action: str, **params) -> Any:
        if not self.api_key:
            raise RuntimeError("ETHERSCAN_API_KEY is not set")

        query = {"chainid": 1, "module": "proxy", "action": action, "apikey": self.api_key}
        query.update(params)
        r = self.session.get(self.base, params=query, timeout=self.timeout)
        r.raise_for_status()
        data = r.json()
        # proxy calls answer JSON-RPC style; key/rate-limit errors come back as status=0
        if data.get("error") or data.get("status") == "0":
            raise RuntimeError(f"Etherscan {action} failed: {data.get('error') or data.get('result')}")
        return data.get("result")

    def latest_block_number(self) -> int:
        return int(self._proxy("eth_blockNumber"), 16)

    def get_block(self, number: int) -> Optional[Dict[str, Any]]:
        return self._proxy("eth_getBlockByNumber", tag=hex(number), boolean="true")

    def fetch_large_transactions(self, min_value: float = 100, limit: int = 10) -> List[Transaction]:
        min_wei = int(min_value * WEI_PER_ETH)
        latest = self.latest_block_number()

        out: List[Transaction] = []
        for offset in range(self.blocks):
            if len(out) >= limit:
                break
            number = latest - offset
            block = self.get_block(number)
            if not block:
                continue

            ts = int(block.get("timestamp") or "0x0", 16) or int(time.time())
            for tx in block.get("transactions") or []:
                if not isinstance(tx, dict):
                    continue
                wei = int(tx.get("value") or "0x0", 16)
                if wei < min_wei or wei == 0:
                    continue
                out.append(
                    Transaction(
                        chain="ethereum",
                        hash=tx["hash"],
                        from_address=tx.get("from") or UNKNOWN_ADDRESS,
                        to_address=tx.get("to") or UNKNOWN_ADDRESS,  # None for contract creation
                        value=wei / WEI_PER_ETH,
                        timestamp=ts,
                        block_number=number,
                    )
                )
                if len(out) >= limit:
                    break

        logger.debug("etherscan: %d transfers >= %s ETH in %d blocks", len(out), min_value, self.blocks)
        return out
