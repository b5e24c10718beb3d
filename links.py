from __future__ import annotations


EXPLORERS = {
    # chain -> (base, tx path, address path)
    "ethereum": ("https://etherscan.io", "tx", "address"),
    "solana": ("https://solscan.io", "tx", "account"),
    "bitcoin": ("https://blockstream.info", "tx", "address"),
    "hyperliquid": ("https://explorer.hyperliquid.xyz", "tx", "address"),
}


def explorer_tx_link(chain: str, tx_hash: str) -> str:
    ex = EXPLORERS.get(chain)
    if not ex or not tx_hash:
        return ""
    base, tx_path, _ = ex
    return f"{base}/{tx_path}/{tx_hash}"


def explorer_address_link(chain: str, address: str) -> str:
    ex = EXPLORERS.get(chain)
    if not ex or not address:
        return ""
    base, _, addr_path = ex
    return f"{base}/{addr_path}/{address}"
