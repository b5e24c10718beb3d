from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from core.dedupe import SeenCache
from core.models import ChainWatch, Transaction
from formatting import format_batch_summary, format_whale_alert

logger = logging.getLogger(__name__)


class WhaleMonitor:
    """
    Polls every configured chain on a fixed interval and pushes new large
    transactions to one Telegram channel.

    One instance owns all monitor state (running flag, last run, shutdown
    flag, seen cache). Ticks are kept non-reentrant by the cooldown check
    and by stamping `last_run` before any provider I/O.
    """

    MODE = "polling"

    def __init__(
        self,
        watches: Sequence[ChainWatch],
        transport,
        channel_id: Union[int, str, None],
        interval: float = 30.0,
        cooldown: float = 5.0,
        batch_size: int = 5,
        send_delay: float = 1.0,
        cache: Optional[SeenCache] = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.watches = list(watches)
        self.transport = transport
        self.channel_id = channel_id
        self.interval = float(interval)
        self.cooldown = float(cooldown)
        self.batch_size = max(1, int(batch_size))
        self.send_delay = float(send_delay)
        self.cache = cache if cache is not None else SeenCache()
        self._clock = clock
        self._sleep = sleep

        self.running = False
        self.shutting_down = False
        self.last_run = 0.0
        self._task: Optional[asyncio.Task] = None

        self.summary = {
            "ticks": 0,
            "skipped": 0,
            "sent": 0,
            "send_errors": 0,
            "provider_errors": 0,
        }

    # ------------------------------------------------------------------
    # control surface
    # ------------------------------------------------------------------

    def init(self) -> None:
        for w in self.watches:
            logger.info("whale monitor: %s >= %s (limit %d)", w.chain, w.min_value, w.limit)
        logger.info(
            "whale monitor ready: interval=%ss cooldown=%ss batch=%d channel=%s",
            self.interval, self.cooldown, self.batch_size, self.channel_id or "(unset)",
        )

    def start(self) -> bool:
        if self.running:
            return False
        if self.shutting_down:
            logger.warning("whale monitor is shutting down; refusing to start")
            return False

        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run_forever())
        self.running = True
        logger.info("whale monitor started (every %ss)", self.interval)
        return True

    def stop(self) -> bool:
        if not self.running:
            return False

        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        self.running = False
        logger.info("whale monitor stopped")
        return True

    async def shutdown(self) -> None:
        if self.shutting_down and not self.running:
            return
        logger.info("whale monitor shutting down")
        self.shutting_down = True
        self.stop()
        self.cache.clear()

    def status(self) -> Dict[str, Any]:
        last_run = None
        if self.last_run > 0:
            last_run = datetime.fromtimestamp(self.last_run, tz=timezone.utc)
        return {
            "active": self.running,
            "mode": self.MODE,
            "interval": f"{self.interval:g}s",
            "last_run": last_run,
            "chains": {w.chain: w.min_value for w in self.watches},
            "seen": len(self.cache),
        }

    # ------------------------------------------------------------------
    # tick
    # ------------------------------------------------------------------

    async def _run_forever(self) -> None:
        while True:
            await self._sleep(self.interval)
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("whale monitor tick failed")

    async def run_once(self) -> bool:
        """One monitoring pass. Returns False when skipped or aborted."""
        if self.shutting_down:
            logger.info("whale monitor shutting down, skipping tick")
            self.stop()
            return False

        if not self.channel_id:
            logger.error("TELEGRAM_CHAT_ID is not configured; cannot deliver whale alerts")
            return False

        if not self.watches:
            logger.warning("no chains configured for whale monitoring")
            return False

        now = self._clock()
        if now - self.last_run < self.cooldown:
            remaining = self.cooldown - (now - self.last_run)
            logger.info("whale alert on cooldown, %.1fs left", remaining)
            self.summary["skipped"] += 1
            return False

        self.last_run = now
        self.summary["ticks"] += 1

        results, errors = await self._fetch_all()
        if len(errors) == len(self.watches):
            logger.error("all chains failed: %s", ", ".join(errors))
            return False

        fresh: List[Transaction] = []
        batch_keys = set()
        for tx in results:
            key = tx.dedupe_key
            # a provider may repeat a hash within one poll
            if key in batch_keys or self.cache.contains(key):
                continue
            batch_keys.add(key)
            fresh.append(tx)
        if not fresh:
            logger.info("no new large transactions")
            if errors:
                logger.warning("some chains failed: %s", ", ".join(errors))
            return True

        logger.info("found %d new large transactions", len(fresh))

        batch = fresh[: self.batch_size]
        sent = 0
        for i, tx in enumerate(batch):
            if i:
                await self._sleep(self.send_delay)
            # shutdown may have landed during the delay
            if self.shutting_down:
                logger.info("shutdown requested, dropping %d queued alerts", len(batch) - i)
                break
            self.cache.insert(tx.dedupe_key)
            if await self._send(format_whale_alert(tx), link_preview=False):
                sent += 1

        rest = fresh[self.batch_size:]
        if rest and not self.shutting_down:
            await self._sleep(self.send_delay)
            if not self.shutting_down:
                await self._send(format_batch_summary(len(rest)))
                for tx in rest:
                    self.cache.insert(tx.dedupe_key)

        logger.info("pushed %d/%d new whale transactions", sent, len(fresh))
        if errors:
            logger.warning("some chains failed: %s", ", ".join(errors))
        return True

    async def _fetch_all(self):
        calls = [
            asyncio.to_thread(w.source.fetch_large_transactions, w.min_value, w.limit)
            for w in self.watches
        ]
        outcomes = await asyncio.gather(*calls, return_exceptions=True)

        results: List[Transaction] = []
        errors: List[str] = []
        for w, out in zip(self.watches, outcomes):
            if isinstance(out, BaseException):
                if isinstance(out, asyncio.CancelledError):
                    raise out
                logger.error("%s large transaction fetch failed: %s", w.chain, out)
                errors.append(f"{w.chain}: {out}")
                self.summary["provider_errors"] += 1
                continue
            for tx in out or []:
                results.append(tx if tx.chain == w.chain else replace(tx, chain=w.chain))
        return results, errors

    async def _send(self, text: str, link_preview: bool = False) -> bool:
        try:
            await asyncio.to_thread(
                self.transport.send,
                text,
                chat_id=self.channel_id,
                parse_mode="Markdown",
                link_preview=link_preview,
            )
        except Exception as e:
            self.summary["send_errors"] += 1
            logger.error("failed to send whale alert to %s: %s", self.channel_id, e)
            return False
        self.summary["sent"] += 1
        return True
