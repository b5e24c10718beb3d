"""
Runtime configuration, read once from the environment (and .env) at startup.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from dotenv import load_dotenv

from core.models import CHAINS


DEFAULT_MIN_VALUES = {
    "ethereum": 100.0,       # ETH
    "solana": 500.0,         # SOL
    "bitcoin": 10.0,         # BTC
    "hyperliquid": 100_000.0,  # USD
}

MIN_VALUE_VARS = {
    "ethereum": "WHALE_MIN_ETH",
    "solana": "WHALE_MIN_SOL",
    "bitcoin": "WHALE_MIN_BTC",
    "hyperliquid": "WHALE_MIN_HYPERLIQUID_USD",
}


def _get(env: Mapping[str, str], name: str, default: str = "") -> str:
    return (env.get(name) or default).strip()


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = _get(env, name)
    if not raw:
        return float(default)
    try:
        return float(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be a number (got {raw!r}).") from e


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = _get(env, name)
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer (got {raw!r}).") from e


def _bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = _get(env, name).lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _csv(env: Mapping[str, str], name: str, default: str) -> Tuple[str, ...]:
    raw = _get(env, name, default)
    return tuple(p for p in raw.replace(" ", "").split(",") if p)


@dataclass(frozen=True)
class Settings:
    telegram_bot_token: str = ""
    telegram_chat_id: str = ""
    telegram_webhook_secret: str = ""

    whale_monitor_enabled: bool = False
    whale_monitor_interval: float = 30.0
    whale_monitor_cooldown: float = 5.0
    whale_monitor_batch_size: int = 5
    whale_monitor_send_delay: float = 1.0
    whale_cache_max_size: int = 1000
    price_alert_interval: float = 60.0

    chains: Tuple[str, ...] = CHAINS
    min_values: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_MIN_VALUES))

    etherscan_api_key: str = ""
    etherscan_api: str = "https://api.etherscan.io/v2/api"
    solana_rpc_url: str = "https://api.mainnet-beta.solana.com"
    bitcoin_api_url: str = "https://blockstream.info/api"
    hyperliquid_api_url: str = "https://api.hyperliquid.xyz"
    hyperliquid_coins: Tuple[str, ...] = ("BTC", "ETH", "SOL")
    coingecko_api: str = "https://api.coingecko.com/api/v3"

    request_timeout: float = 15.0
    port: int = 3000
    log_level: str = "info"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        if env is None:
            load_dotenv()
            env = os.environ

        chains = tuple(c.lower() for c in _csv(env, "WHALE_CHAINS", ",".join(CHAINS)))
        unknown = [c for c in chains if c not in CHAINS]
        if unknown:
            raise RuntimeError(f"WHALE_CHAINS has unknown chain(s): {', '.join(unknown)}")

        min_values = {
            chain: _float(env, var, DEFAULT_MIN_VALUES[chain])
            for chain, var in MIN_VALUE_VARS.items()
        }

        return cls(
            telegram_bot_token=_get(env, "TELEGRAM_BOT_TOKEN"),
            telegram_chat_id=_get(env, "TELEGRAM_CHAT_ID"),
            telegram_webhook_secret=_get(env, "TELEGRAM_WEBHOOK_SECRET"),
            whale_monitor_enabled=_bool(env, "WHALE_MONITOR_ENABLED"),
            whale_monitor_interval=_float(env, "WHALE_MONITOR_INTERVAL", 30.0),
            whale_monitor_cooldown=_float(env, "WHALE_MONITOR_COOLDOWN", 5.0),
            whale_monitor_batch_size=_int(env, "WHALE_MONITOR_BATCH_SIZE", 5),
            whale_monitor_send_delay=_float(env, "WHALE_MONITOR_SEND_DELAY", 1.0),
            whale_cache_max_size=_int(env, "WHALE_CACHE_MAX_SIZE", 1000),
            price_alert_interval=_float(env, "PRICE_ALERT_INTERVAL", 60.0),
            chains=chains,
            min_values=min_values,
            etherscan_api_key=_get(env, "ETHERSCAN_API_KEY"),
            etherscan_api=_get(env, "ETHERSCAN_API", cls.etherscan_api),
            solana_rpc_url=_get(env, "SOLANA_RPC_URL", cls.solana_rpc_url),
            bitcoin_api_url=_get(env, "BITCOIN_API_URL", cls.bitcoin_api_url),
            hyperliquid_api_url=_get(env, "HYPERLIQUID_API_URL", cls.hyperliquid_api_url),
            hyperliquid_coins=tuple(c.upper() for c in _csv(env, "HYPERLIQUID_COINS", "BTC,ETH,SOL")),
            coingecko_api=_get(env, "COINGECKO_API", cls.coingecko_api),
            request_timeout=_float(env, "REQUEST_TIMEOUT", 15.0),
            port=_int(env, "PORT", 3000),
            log_level=_get(env, "LOG_LEVEL", "info").lower(),
        )

    def validate(self) -> None:
        if not self.telegram_bot_token:
            raise RuntimeError("Missing TELEGRAM_BOT_TOKEN.")
