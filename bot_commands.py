"""
Telegram command handling for the webhook: /start, /help, /whale, /price,
/track, /alert and the whale_* inline-button callbacks.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from core.watchlists import PriceAlertBook, WalletBook
from formatting import chain_display_name, escape_markdown, format_amount, format_timestamp, shorten_address
from links import explorer_address_link

logger = logging.getLogger(__name__)

UNITS = {"ethereum": "ETH", "solana": "SOL", "bitcoin": "BTC", "hyperliquid": "USD"}

HELP_TEXT = (
    "🤖 *Whale Watch Bot*\n\n"
    "Commands:\n"
    "- /price <symbol> - spot price in USD\n"
    "- /alert <symbol> above|below <price> - one-shot price alert\n"
    "- /track add eth|sol|btc <address> <label> - wallet watch list\n"
    "- /track list | remove <id> | clear - manage the list\n"
    "- /whale - whale monitor menu\n"
    "- /whale start | stop | status - control the monitor\n"
    "- /help - show this message"
)

WHALE_KEYBOARD = {
    "inline_keyboard": [
        [
            {"text": "🚀 Start", "callback_data": "whale_start"},
            {"text": "🛑 Stop", "callback_data": "whale_stop"},
        ],
        [{"text": "📊 Status", "callback_data": "whale_status"}],
    ]
}


@dataclass
class BotReply:
    chat_id: Any
    text: str
    parse_mode: Optional[str] = "Markdown"
    reply_markup: Optional[Dict[str, Any]] = None
    callback_query_id: Optional[str] = None


class CommandHandler:
    def __init__(self, monitor, prices=None, wallets: Optional[WalletBook] = None, alerts: Optional[PriceAlertBook] = None):
        self.monitor = monitor
        self.prices = prices
        self.wallets = wallets if wallets is not None else WalletBook()
        self.alerts = alerts if alerts is not None else PriceAlertBook()

    async def handle_update(self, update: Dict[str, Any]) -> Optional[BotReply]:
        if not isinstance(update, dict):
            return None

        cb = update.get("callback_query")
        if isinstance(cb, dict):
            chat_id = ((cb.get("message") or {}).get("chat") or {}).get("id")
            action = (cb.get("data") or "").strip()
            if chat_id is None or not action.startswith("whale_"):
                return None
            text = self._whale_action(action[len("whale_"):])
            return BotReply(chat_id=chat_id, text=text, callback_query_id=cb.get("id"))

        msg = update.get("message") or update.get("channel_post")
        if not isinstance(msg, dict):
            return None
        chat_id = (msg.get("chat") or {}).get("id")
        text = (msg.get("text") or "").strip()
        if chat_id is None or not text:
            return None

        return await self.handle_text(chat_id, text)

    async def handle_text(self, chat_id: Any, text: str) -> BotReply:
        args = [a for a in text.split() if a]
        # "/whale@SomeBot status" -> "/whale"
        command = args[0].split("@", 1)[0].lower() if args else ""

        if command in ("/start", "/help"):
            return BotReply(chat_id, HELP_TEXT)

        if command == "/whale":
            if len(args) > 1:
                return BotReply(chat_id, self._whale_action(args[1].lower()))
            return BotReply(chat_id, self._whale_menu(), reply_markup=WHALE_KEYBOARD)

        if command == "/price":
            if len(args) < 2:
                return BotReply(chat_id, "Usage: /price <symbol>, e.g. /price SOL", parse_mode=None)
            return BotReply(chat_id, await self._price(args[1]))

        if command == "/track":
            return BotReply(chat_id, self._track(chat_id, args[1:]))

        if command == "/alert":
            return BotReply(chat_id, await self._alert(chat_id, args[1:]))

        return BotReply(chat_id, "I don't understand that. Use /help to see the available commands.", parse_mode=None)

    def _whale_action(self, action: str) -> str:
        if action == "start":
            if self.monitor.start():
                return "🚀 *Whale monitor started*\n\n" + self._thresholds()
            return "⚠️ Whale monitor is already running"
        if action == "stop":
            if self.monitor.stop():
                return "🛑 *Whale monitor stopped*"
            return "⚠️ Whale monitor is not running"
        if action == "status":
            return self._status_text()
        return "Unknown option. Use /whale start, /whale stop or /whale status."

    def _whale_menu(self) -> str:
        state = "🟢 running" if self.monitor.status().get("active") else "🔴 stopped"
        return (
            "🐋 *Whale monitor*\n\n"
            f"Current state: {state}\n\n"
            f"{self._thresholds()}\n\n"
            "🚨 Large transactions are pushed to the alert channel automatically."
        )

    def _thresholds(self) -> str:
        lines = ["💎 *Thresholds:*"]
        for chain, min_value in self.monitor.status().get("chains", {}).items():
            unit = UNITS.get(chain, "")
            if unit == "USD":
                lines.append(f"• {chain_display_name(chain)}: ≥ ${format_amount(min_value, 0)}")
            else:
                lines.append(f"• {chain_display_name(chain)}: ≥ {format_amount(min_value, 0)} {unit}")
        return "\n".join(lines)

    def _status_text(self) -> str:
        st = self.monitor.status()
        state = "🟢 running" if st.get("active") else "🔴 stopped"
        last_run = st.get("last_run")
        lines = [
            "📊 *Whale monitor status*",
            "",
            f"State: {state}",
            f"Mode: {st.get('mode')} every {st.get('interval')}",
            f"Last run: {format_timestamp(int(last_run.timestamp())) if last_run else 'never'}",
            f"Seen transactions: {st.get('seen', 0)}",
            "",
            self._thresholds(),
        ]
        return "\n".join(lines)

    async def _price(self, symbol: str) -> str:
        if self.prices is None:
            return "Price lookups are not configured."
        try:
            quote = await asyncio.to_thread(self.prices.get_price, symbol)
        except Exception as e:
            logger.error("price lookup for %s failed: %s", symbol, e)
            return f"⚠️ Could not fetch the price of {symbol.upper()} right now."
        if not quote:
            return f"No price found for {symbol.upper()}."

        change = quote.get("usd_24h_change", 0.0)
        arrow = "📈" if change >= 0 else "📉"
        decimals = 2 if quote["usd"] >= 1 else 6
        return (
            f"💲 *{escape_markdown(symbol.upper())}*: ${format_amount(quote['usd'], decimals)}\n"
            f"{arrow} 24h: {change:+.2f}%"
        )

    # ------------------------------------------------------------------
    # /track
    # ------------------------------------------------------------------

    def _track(self, chat_id: Any, args) -> str:
        sub = args[0].lower() if args else "help"

        if sub == "list":
            wallets = self.wallets.list(chat_id)
            if not wallets:
                return "You are not tracking any wallets yet."
            lines = ["👀 *Tracked wallets*", "---------------------"]
            for w in wallets:
                url = explorer_address_link(w.chain, w.address)
                lines.append(
                    f"`{w.id}` {escape_markdown(w.label)} ({chain_display_name(w.chain)})\n"
                    f"💼 [{shorten_address(w.address)}]({url})"
                )
            return "\n".join(lines)

        if sub in ("remove", "delete"):
            if len(args) < 2:
                return "Usage: /track remove <id>"
            removed = self.wallets.remove(chat_id, args[1])
            if removed is None:
                return f"No tracked wallet with id {escape_markdown(args[1])}."
            return f"🗑 Stopped tracking {escape_markdown(removed.label)}."

        if sub == "clear":
            n = self.wallets.clear(chat_id)
            return f"🗑 Removed {n} tracked wallet(s)." if n else "You are not tracking any wallets."

        # "/track add eth <addr>" and the short "/track eth <addr>"
        if sub == "add":
            args = args[1:]
        if len(args) >= 2 and args[0].lower() != "help":
            try:
                w = self.wallets.add(chat_id, args[0], args[1], " ".join(args[2:]))
            except ValueError as e:
                return f"⚠️ {escape_markdown(e)}"
            url = explorer_address_link(w.chain, w.address)
            return (
                "✅ *Wallet added to your watch list*\n"
                f"🔍 Id: `{w.id}`\n"
                f"📝 Label: {escape_markdown(w.label)}\n"
                f"💼 [{shorten_address(w.address)}]({url})"
            )

        return (
            "*Wallet tracking*\n\n"
            "/track add eth|sol|btc <address> <label>\n"
            "/track list\n"
            "/track remove <id>\n"
            "/track clear"
        )

    # ------------------------------------------------------------------
    # /alert
    # ------------------------------------------------------------------

    async def _alert(self, chat_id: Any, args) -> str:
        sub = args[0].lower() if args else "help"

        if sub == "list":
            alerts = self.alerts.list(chat_id)
            if not alerts:
                return "You have no price alerts."
            lines = ["🔔 *Price alerts*", "---------------------"]
            for a in alerts:
                sign = ">" if a.direction == "above" else "<"
                lines.append(f"`{a.id}` {escape_markdown(a.symbol)} {sign} ${format_amount(a.target)}")
            return "\n".join(lines)

        if sub in ("remove", "delete"):
            if len(args) < 2:
                return "Usage: /alert delete <id>"
            removed = self.alerts.remove(chat_id, args[1])
            if removed is None:
                return f"No price alert with id {escape_markdown(args[1])}."
            return f"🗑 Removed the {escape_markdown(removed.symbol)} price alert."

        if sub == "clear":
            n = self.alerts.clear(chat_id)
            return f"🗑 Removed {n} price alert(s)." if n else "You have no price alerts."

        if len(args) < 3 or sub == "help":
            return (
                "*Price alerts*\n\n"
                "/alert BTC above 100000\n"
                "/alert ETH below 2000\n"
                "/alert list\n"
                "/alert delete <id>\n"
                "/alert clear"
            )

        symbol, condition, raw_target = args[0], args[1], args[2]
        try:
            target = float(raw_target.replace(",", "").lstrip("$"))
        except ValueError:
            return f"⚠️ {escape_markdown(raw_target)} is not a price."

        if self.prices is None:
            return "Price lookups are not configured."
        try:
            quote = await asyncio.to_thread(self.prices.get_price, symbol)
        except Exception as e:
            logger.error("price lookup for %s failed: %s", symbol, e)
            return f"⚠️ Could not fetch the price of {escape_markdown(symbol.upper())} right now."
        if not quote:
            return f"No price found for {escape_markdown(symbol.upper())}."

        try:
            a = self.alerts.add(chat_id, symbol, condition, target)
        except ValueError as e:
            return f"⚠️ {escape_markdown(e)}"

        return (
            "✅ *Price alert set*\n"
            f"🔔 Id: `{a.id}`\n"
            f"💰 {escape_markdown(a.symbol)} {a.direction} ${format_amount(a.target)}\n"
            f"📈 Now: ${format_amount(quote['usd'])}"
        )


def price_alert_text(alert, price: float) -> str:
    verb = "rose above" if alert.direction == "above" else "fell below"
    return (
        f"🔔 *{escape_markdown(alert.symbol)}* {verb} ${format_amount(alert.target)}\n"
        f"💲 Now: ${format_amount(price)}"
    )
