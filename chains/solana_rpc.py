from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import requests

from core.models import UNKNOWN_ADDRESS, Transaction

logger = logging.getLogger(__name__)

LAMPORTS_PER_SOL = 1_000_000_000

# getBlock on a slot that was skipped / not available
SKIPPED_SLOT_CODES = {-32004, -32007, -32009}


class SolanaRpcClient:
    """
    Large native SOL transfers in the most recent confirmed blocks.

    Uses plain JSON-RPC (getSlot + getBlock with jsonParsed) and keeps
    successful System Program `transfer` instructions.
    """
    DEFAULT_RPC = "https://api.mainnet-beta.solana.com"

    def __init__(self, rpc_url: str = DEFAULT_RPC, blocks: int = 2, timeout: float = 15):
        self.rpc_url = rpc_url or self.DEFAULT_RPC
        self.blocks = max(1, int(blocks))
        self.timeout = timeout
        self.session = requests.Session()
        self._id = 0

    def rpc(self, method: str, params: Optional[list] = None) -> Any:
        self._id += 1
        r = self.session.post(
            self.rpc_url,
            json={"jsonrpc": "2.0", "id": self._id, "method": method, "params": params or []},
            timeout=self.timeout,
        )
        r.raise_for_status()
        data = r.json()
        if data.get("error"):
            raise SolanaRpcError(method, data["error"])
        return data.get("result")

    def get_block(self, slot: int) -> Optional[Dict[str, Any]]:
        try:
            return self.rpc(
                "getBlock",
                [
                    slot,
                    {
                        "encoding": "jsonParsed",
                        "transactionDetails": "full",
                        "maxSupportedTransactionVersion": 0,
                        "rewards": False,
                        "commitment": "confirmed",
                    },
                ],
            )
        except SolanaRpcError as e:
            if e.code in SKIPPED_SLOT_CODES:
                return None
            raise

    def fetch_large_transactions(self, min_value: float = 500, limit: int = 10) -> List[Transaction]:
        min_lamports = int(min_value * LAMPORTS_PER_SOL)
        slot = int(self.rpc("getSlot", [{"commitment": "confirmed"}]))

        out: List[Transaction] = []
        for offset in range(self.blocks):
            if len(out) >= limit:
                break
            block = self.get_block(slot - offset)
            if not block:
                continue
            ts = int(block.get("blockTime") or time.time())
            for entry in block.get("transactions") or []:
                tx = _large_transfer(entry, min_lamports, ts, slot - offset)
                if tx:
                    out.append(tx)
                    if len(out) >= limit:
                        break

        logger.debug("solana: %d transfers >= %s SOL in %d blocks", len(out), min_value, self.blocks)
        return out


class SolanaRpcError(RuntimeError):
    def __init__(self, method: str, error: Dict[str, Any]):
        self.code = error.get("code") if isinstance(error, dict) else None
        msg = error.get("message") if isinstance(error, dict) else error
        super().__init__(f"{method}: {msg}")


def _large_transfer(entry: Dict[str, Any], min_lamports: int, ts: int, slot: int) -> Optional[Transaction]:
    meta = entry.get("meta") or {}
    if meta.get("err") is not None:
        return None

    tx = entry.get("transaction") or {}
    sigs = tx.get("signatures") or []
    if not sigs:
        return None

    best = None
    for ix in ((tx.get("message") or {}).get("instructions") or []):
        if ix.get("program") != "system":
            continue
        parsed = ix.get("parsed") or {}
        if not isinstance(parsed, dict) or parsed.get("type") != "transfer":
            continue
        info = parsed.get("info") or {}
        lamports = int(info.get("lamports") or 0)
        if lamports >= min_lamports and (best is None or lamports > best[0]):
            best = (lamports, info.get("source"), info.get("destination"))

    if not best:
        return None

    lamports, source, destination = best
    return Transaction(
        chain="solana",
        hash=sigs[0],
        from_address=source or UNKNOWN_ADDRESS,
        to_address=destination or UNKNOWN_ADDRESS,
        value=lamports / LAMPORTS_PER_SOL,
        timestamp=ts,
        block_number=slot,
    )
