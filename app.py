# app.py
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
import uvicorn

from bot_commands import CommandHandler, price_alert_text
from chains.bitcoin_blockstream import BlockstreamClient
from chains.ethereum_etherscan import EtherscanClient
from chains.hyperliquid import HyperliquidClient
from chains.solana_rpc import SolanaRpcClient
from config import Settings
from core.dedupe import SeenCache
from core.models import ChainWatch
from core.monitor import WhaleMonitor
from core.telegram_client import TelegramClient
from core.watchlists import PriceAlertBook
from enrich.coingecko import CoinGeckoClient

logger = logging.getLogger(__name__)

STARTUP_NOTICE = "🤖 *Whale Watch Bot started*\nMonitoring large transactions, alerts will be pushed here."
SHUTDOWN_NOTICE = "🤖 *Whale Watch Bot stopped*\nShutting down..."


# ============================================================
# LOGGING
# ============================================================

def setup_logging(level: str = "info") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    # External loggers are noisy at INFO
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


# ============================================================
# WIRING
# ============================================================

def build_watches(settings: Settings) -> List[ChainWatch]:
    timeout = settings.request_timeout
    sources = {
        "ethereum": lambda: EtherscanClient(settings.etherscan_api_key, settings.etherscan_api, timeout=timeout),
        "solana": lambda: SolanaRpcClient(settings.solana_rpc_url, timeout=timeout),
        "bitcoin": lambda: BlockstreamClient(settings.bitcoin_api_url, timeout=timeout),
        "hyperliquid": lambda: HyperliquidClient(
            settings.hyperliquid_api_url, coins=settings.hyperliquid_coins, timeout=timeout
        ),
    }
    return [
        ChainWatch(chain=chain, source=sources[chain](), min_value=settings.min_values[chain])
        for chain in settings.chains
    ]


def build_monitor(settings: Settings, transport) -> WhaleMonitor:
    return WhaleMonitor(
        watches=build_watches(settings),
        transport=transport,
        channel_id=settings.telegram_chat_id,
        interval=settings.whale_monitor_interval,
        cooldown=settings.whale_monitor_cooldown,
        batch_size=settings.whale_monitor_batch_size,
        send_delay=settings.whale_monitor_send_delay,
        cache=SeenCache(max_size=settings.whale_cache_max_size),
    )


async def notify_channel(telegram, chat_id, text: str) -> None:
    if not chat_id:
        return
    try:
        await asyncio.to_thread(telegram.send, text, chat_id=chat_id, parse_mode="Markdown", silent=True)
    except Exception as e:
        logger.error("channel notice failed: %s", e)


async def check_price_alerts(alerts: PriceAlertBook, prices, telegram) -> int:
    fired = await asyncio.to_thread(alerts.check, prices.get_price)
    for alert, price in fired:
        try:
            await asyncio.to_thread(
                telegram.send, price_alert_text(alert, price), chat_id=alert.chat_id, parse_mode="Markdown"
            )
        except Exception as e:
            logger.error("price alert %s to chat %s failed: %s", alert.id, alert.chat_id, e)
    return len(fired)


async def price_alert_loop(alerts: PriceAlertBook, prices, telegram, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        if not alerts:
            continue
        try:
            await check_price_alerts(alerts, prices, telegram)
        except Exception:
            logger.exception("price alert check failed")


# ============================================================
# FASTAPI APP
# ============================================================

def create_app(
    settings: Optional[Settings] = None,
    telegram=None,
    monitor: Optional[WhaleMonitor] = None,
    prices=None,
    alerts: Optional[PriceAlertBook] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    if telegram is None:
        settings.validate()
        telegram = TelegramClient(settings.telegram_bot_token, settings.telegram_chat_id or None)
    if monitor is None:
        monitor = build_monitor(settings, telegram)
    if prices is None:
        prices = CoinGeckoClient(settings.coingecko_api, timeout=settings.request_timeout)
    if alerts is None:
        alerts = PriceAlertBook()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        monitor.init()
        if settings.whale_monitor_enabled:
            monitor.start()
        alert_task = asyncio.create_task(
            price_alert_loop(alerts, prices, telegram, settings.price_alert_interval)
        )
        await notify_channel(telegram, settings.telegram_chat_id, STARTUP_NOTICE)
        try:
            yield
        finally:
            alert_task.cancel()
            await monitor.shutdown()
            await notify_channel(telegram, settings.telegram_chat_id, SHUTDOWN_NOTICE)

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.telegram = telegram
    app.state.monitor = monitor
    app.state.alerts = alerts
    app.state.commands = CommandHandler(monitor, prices, alerts=alerts)

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.get("/status")
    def status():
        return {"ok": True, "monitor": monitor.status(), "summary": dict(monitor.summary)}

    @app.post("/trigger-whale-monitor")
    async def trigger_whale_monitor():
        if not settings.telegram_chat_id:
            return {"success": False, "message": "TELEGRAM_CHAT_ID is not configured"}
        ok = await monitor.run_once()
        return {"success": ok, "message": "monitor pass finished" if ok else "monitor pass skipped or failed"}

    @app.post("/check-price-alerts")
    async def check_alerts():
        fired = await check_price_alerts(alerts, prices, telegram)
        return {"success": True, "fired": fired, "pending": len(alerts)}

    @app.post("/start-monitor")
    async def start_monitor():
        ok = monitor.start()
        return {"success": ok, "message": "monitor started" if ok else "monitor already running"}

    @app.post("/stop-monitor")
    async def stop_monitor():
        ok = monitor.stop()
        return {"success": ok, "message": "monitor stopped" if ok else "monitor not running"}

    @app.post("/telegram")
    async def telegram_webhook(request: Request):
        # Telegram echoes the secret_token given to setWebhook in this header
        if settings.telegram_webhook_secret:
            got = request.headers.get("X-Telegram-Bot-Api-Secret-Token", "")
            if got != settings.telegram_webhook_secret:
                raise HTTPException(status_code=401, detail="Unauthorized")

        update: Dict[str, Any] = await request.json()
        reply = await app.state.commands.handle_update(update)
        if reply is None:
            return {"ok": True, "handled": False}

        try:
            if reply.callback_query_id:
                await asyncio.to_thread(telegram.answer_callback, reply.callback_query_id)
            await asyncio.to_thread(
                telegram.send,
                reply.text,
                chat_id=reply.chat_id,
                parse_mode=reply.parse_mode,
                reply_markup=reply.reply_markup,
            )
        except Exception as e:
            # Still 200 so Telegram doesn't redeliver the update
            logger.error("reply to chat %s failed: %s", reply.chat_id, e)
        return {"ok": True, "handled": True}

    return app


if __name__ == "__main__":
    settings = Settings.from_env()
    setup_logging(settings.log_level)
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
