"""
Alert text for the whale monitor.

Everything here is pure: literal Transaction in, Markdown string out.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from core.models import UNKNOWN_ADDRESS, Transaction
from links import explorer_address_link, explorer_tx_link


NATIVE_UNITS = {
    "ethereum": "ETH",
    "solana": "SOL",
    "bitcoin": "BTC",
}

DISPLAY_NAMES = {
    "ethereum": "Ethereum",
    "solana": "Solana",
    "bitcoin": "Bitcoin",
    "hyperliquid": "Hyperliquid",
}


MARKDOWN_SPECIALS = ("_", "*", "`", "[")


def escape_markdown(text) -> str:
    """Escape provider-supplied text for Telegram's legacy Markdown mode."""
    out = str(text)
    for ch in MARKDOWN_SPECIALS:
        out = out.replace(ch, "\\" + ch)
    return out


def chain_display_name(chain: str) -> str:
    return DISPLAY_NAMES.get(chain, chain)


def shorten_address(address: Optional[str], prefix: int = 6, suffix: int = 4) -> str:
    if not address or address == UNKNOWN_ADDRESS:
        return UNKNOWN_ADDRESS
    if len(address) <= prefix + suffix:
        return address
    return f"{address[:prefix]}...{address[-suffix:]}"


def format_amount(value, decimals: int = 2) -> str:
    try:
        num = float(value)
    except (TypeError, ValueError):
        return "0"
    if num != num:  # NaN
        return "0"
    return f"{num:,.{decimals}f}"


def format_timestamp(ts: int) -> str:
    if not ts:
        return ""
    ts = int(ts)
    # tolerate milliseconds
    if ts > 10**12:
        ts //= 1000
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _address_line(chain: str, address: str) -> str:
    short = shorten_address(address)
    url = explorer_address_link(chain, address) if address and address != UNKNOWN_ADDRESS else ""
    if url:
        return f"[{short}]({url})"
    return escape_markdown(short)


def format_whale_alert(tx: Transaction) -> str:
    lines = [
        f"🚨 *New {chain_display_name(tx.chain)} whale transaction* 🚨",
        "---------------------",
    ]

    if tx.chain == "hyperliquid":
        headline = f"💰 *${format_amount(tx.value)}*"
        if tx.size and tx.price:
            headline += f" ({format_amount(tx.size)} @ ${format_amount(tx.price)})"
        lines.append(headline)
        if tx.symbol:
            action = "buy" if tx.side == "buy" else "sell" if tx.side == "sell" else (tx.side or "trade")
            lines.append(f"📊 {escape_markdown(tx.symbol)} {escape_markdown(action)}")
    else:
        unit = NATIVE_UNITS.get(tx.chain, "UNKNOWN")
        lines.append(f"💰 *{format_amount(tx.value)} {unit}*")

    lines.append(f"👤 From: {_address_line(tx.chain, tx.from_address)}")
    lines.append(f"👥 To: {_address_line(tx.chain, tx.to_address)}")

    tx_url = explorer_tx_link(tx.chain, tx.hash)
    if tx_url:
        lines.append(f"🔗 [View transaction]({tx_url})")

    when = format_timestamp(tx.timestamp)
    if when:
        lines.append(f"⏰ {when}")

    return "\n".join(lines)


def format_batch_summary(remaining: int) -> str:
    return (
        "📊 *Batch summary*\n"
        f"*{remaining} more* large transactions were not shown. "
        "Check the block explorers for the full list."
    )
