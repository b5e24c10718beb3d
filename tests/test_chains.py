import pytest
import requests

from chains.bitcoin_blockstream import BlockstreamClient
from chains.ethereum_etherscan import EtherscanClient
from chains.hyperliquid import ZERO_HASH, HyperliquidClient, merge_fills, normalize_trade
from chains.solana_rpc import SolanaRpcClient, SolanaRpcError
from enrich.coingecko import CoinGeckoClient
from fakes import FakeResponse, FakeSession


# ---------------------------------------------------------------------------
# ethereum
# ---------------------------------------------------------------------------

def _eth_block(number, txs, ts=1700000000):
    return {"number": hex(number), "timestamp": hex(ts), "transactions": txs}


def _eth_tx(tx_hash, eth, to="0xto00000000000000000000000000000000000001"):
    return {
        "hash": tx_hash,
        "from": "0xfrom000000000000000000000000000000000001",
        "to": to,
        "value": hex(int(eth * 10**18)),
    }


def _etherscan(blocks, latest=100):
    def handler(method, url, kwargs):
        params = kwargs["params"]
        if params["action"] == "eth_blockNumber":
            return FakeResponse({"jsonrpc": "2.0", "id": 83, "result": hex(latest)})
        number = int(params["tag"], 16)
        return FakeResponse({"jsonrpc": "2.0", "id": 1, "result": blocks.get(number)})

    client = EtherscanClient(api_key="KEY", blocks=2)
    client.session = FakeSession(handler)
    return client


def test_etherscan_filters_by_value_across_blocks():
    client = _etherscan({
        100: _eth_block(100, [_eth_tx("0xa", 150), _eth_tx("0xb", 5)]),
        99: _eth_block(99, [_eth_tx("0xc", 100, to=None)]),
    })

    txs = client.fetch_large_transactions(min_value=100)

    assert [t.hash for t in txs] == ["0xa", "0xc"]
    assert txs[0].value == pytest.approx(150)
    assert txs[0].chain == "ethereum"
    assert txs[0].timestamp == 1700000000
    assert txs[0].block_number == 100
    assert txs[1].to_address == "Unknown"

    _, _, kwargs = client.session.requests[0]
    assert kwargs["params"]["apikey"] == "KEY"
    assert kwargs["params"]["module"] == "proxy"


def test_etherscan_respects_limit():
    client = _etherscan({100: _eth_block(100, [_eth_tx(f"0x{i}", 200) for i in range(5)])})
    assert len(client.fetch_large_transactions(min_value=100, limit=3)) == 3


def test_etherscan_requires_api_key():
    client = EtherscanClient(api_key="")
    with pytest.raises(RuntimeError, match="ETHERSCAN_API_KEY"):
        client.fetch_large_transactions()


def test_etherscan_error_payload_raises():
    client = EtherscanClient(api_key="KEY")
    client.session = FakeSession(
        lambda m, u, kw: FakeResponse({"status": "0", "message": "NOTOK", "result": "Invalid API Key"})
    )
    with pytest.raises(RuntimeError, match="Invalid API Key"):
        client.fetch_large_transactions()


def test_etherscan_http_error_propagates():
    client = EtherscanClient(api_key="KEY")
    client.session = FakeSession(lambda m, u, kw: FakeResponse({}, status_code=502))
    with pytest.raises(requests.HTTPError):
        client.fetch_large_transactions()


# ---------------------------------------------------------------------------
# solana
# ---------------------------------------------------------------------------

def _sol_entry(sig, lamports, err=None, program="system", kind="transfer"):
    return {
        "meta": {"err": err},
        "transaction": {
            "signatures": [sig],
            "message": {
                "instructions": [
                    {
                        "program": program,
                        "parsed": {
                            "type": kind,
                            "info": {"source": "SrcWallet111", "destination": "DstWallet222", "lamports": lamports},
                        },
                    }
                ]
            },
        },
    }


def _solana(blocks, slot=500, skipped=()):
    def handler(method, url, kwargs):
        body = kwargs["json"]
        if body["method"] == "getSlot":
            return FakeResponse({"jsonrpc": "2.0", "id": body["id"], "result": slot})
        wanted = body["params"][0]
        if wanted in skipped:
            return FakeResponse({
                "jsonrpc": "2.0", "id": body["id"],
                "error": {"code": -32007, "message": f"Slot {wanted} was skipped"},
            })
        return FakeResponse({"jsonrpc": "2.0", "id": body["id"], "result": blocks.get(wanted)})

    client = SolanaRpcClient("https://rpc.example", blocks=2)
    client.session = FakeSession(handler)
    return client


def test_solana_keeps_large_successful_transfers():
    client = _solana({
        500: {"blockTime": 1700000000, "transactions": [
            _sol_entry("big", 600 * 10**9),
            _sol_entry("small", 10 * 10**9),
            _sol_entry("failed", 900 * 10**9, err={"InstructionError": [0, "Custom"]}),
            _sol_entry("token", 900 * 10**9, program="spl-token"),
        ]},
        499: {"blockTime": 1699999999, "transactions": [_sol_entry("older", 700 * 10**9)]},
    })

    txs = client.fetch_large_transactions(min_value=500)

    assert [t.hash for t in txs] == ["big", "older"]
    assert txs[0].value == pytest.approx(600)
    assert txs[0].from_address == "SrcWallet111"
    assert txs[0].to_address == "DstWallet222"
    assert txs[0].timestamp == 1700000000
    assert txs[0].block_number == 500


def test_solana_skipped_slot_is_ignored():
    client = _solana({499: {"blockTime": 1, "transactions": [_sol_entry("x", 600 * 10**9)]}}, skipped={500})
    assert [t.hash for t in client.fetch_large_transactions(min_value=500)] == ["x"]


def test_solana_rpc_error_raises():
    client = SolanaRpcClient("https://rpc.example")
    client.session = FakeSession(
        lambda m, u, kw: FakeResponse({"jsonrpc": "2.0", "id": 1, "error": {"code": -32005, "message": "node is behind"}})
    )
    with pytest.raises(SolanaRpcError) as exc:
        client.fetch_large_transactions()
    assert exc.value.code == -32005


# ---------------------------------------------------------------------------
# bitcoin
# ---------------------------------------------------------------------------

def _btc_tx(txid, sats_out, from_addr="bc1qsender", to_addr="bc1qreceiver"):
    return {
        "txid": txid,
        "vin": [{"prevout": {"scriptpubkey_address": from_addr, "value": sum(sats_out) + 1000}}],
        "vout": [{"scriptpubkey_address": to_addr, "value": sats_out[0]}]
        + [{"scriptpubkey_address": "bc1qchange", "value": v} for v in sats_out[1:]],
        "status": {"confirmed": True, "block_height": 800000, "block_time": 1700000000},
    }


def _blockstream(blocks, tip=800000, broken=()):
    def handler(method, url, kwargs):
        path = url.replace("https://blockstream.info/api", "")
        if path == "/blocks/tip/height":
            return FakeResponse(text=str(tip))
        if path.startswith("/block-height/"):
            height = int(path.rsplit("/", 1)[1])
            if height in broken:
                return FakeResponse(status_code=503)
            return FakeResponse(text=f"hash{height}")
        height = int(path.split("/")[2].replace("hash", ""))
        return FakeResponse(blocks.get(height, []))

    client = BlockstreamClient(blocks=2)
    client.session = FakeSession(handler)
    return client


def test_bitcoin_sums_outputs_and_filters():
    client = _blockstream({
        800000: [_btc_tx("big", [8 * 10**8, 4 * 10**8]), _btc_tx("small", [10**8])],
        799999: [_btc_tx("older", [20 * 10**8])],
    })

    txs = client.fetch_large_transactions(min_value=10)

    assert [t.hash for t in txs] == ["big", "older"]
    assert txs[0].value == pytest.approx(12)
    assert txs[0].from_address == "bc1qsender"
    assert txs[0].to_address == "bc1qreceiver"
    assert txs[0].timestamp == 1700000000


def test_bitcoin_missing_addresses_become_unknown():
    tx = {"txid": "coinbase", "vin": [{"is_coinbase": True}], "vout": [{"value": 15 * 10**8}], "status": {}}
    client = _blockstream({800000: [tx]})

    out = client.fetch_large_transactions(min_value=10)

    assert out[0].from_address == "Unknown"
    assert out[0].to_address == "Unknown"
    assert out[0].timestamp > 0


def test_bitcoin_bad_block_is_skipped():
    client = _blockstream({799999: [_btc_tx("ok", [11 * 10**8])]}, broken={800000})
    assert [t.hash for t in client.fetch_large_transactions(min_value=10)] == ["ok"]


def test_bitcoin_tip_failure_raises():
    client = BlockstreamClient()
    client.session = FakeSession(lambda m, u, kw: FakeResponse(status_code=500))
    with pytest.raises(requests.HTTPError):
        client.fetch_large_transactions()


# ---------------------------------------------------------------------------
# hyperliquid
# ---------------------------------------------------------------------------

def _trade(coin, px, sz, side="B", tid=1, tx_hash=None, ts=1700000000123):
    return {
        "coin": coin,
        "side": side,
        "px": str(px),
        "sz": str(sz),
        "time": ts,
        "hash": tx_hash or ZERO_HASH,
        "tid": tid,
        "users": ["0xbuyer", "0xseller"],
    }


def test_normalize_trade():
    tx = normalize_trade(_trade("BTC", 60000, 2.5, side="A", tid=42))

    assert tx.chain == "hyperliquid"
    assert tx.hash == "BTC-42"
    assert tx.value == 150000
    assert tx.size == 2.5
    assert tx.price == 60000
    assert tx.side == "sell"
    assert tx.symbol == "BTC"
    assert tx.from_address == "0xbuyer"
    assert tx.to_address == "0xseller"
    assert tx.timestamp == 1700000000


def test_normalize_trade_keeps_real_hash_and_rejects_garbage():
    assert normalize_trade(_trade("ETH", 3000, 50, tx_hash="0xreal")).hash == "0xreal"
    assert normalize_trade({"px": "abc", "sz": "1"}) is None
    assert normalize_trade({"px": "0", "sz": "1"}) is None


def _hyperliquid(trades_by_coin, fail=()):
    def handler(method, url, kwargs):
        coin = kwargs["json"]["coin"]
        if coin in fail:
            return FakeResponse(status_code=500)
        return FakeResponse(trades_by_coin.get(coin, []))

    client = HyperliquidClient(coins=("BTC", "ETH"))
    client.session = FakeSession(handler)
    return client


def test_hyperliquid_sorts_by_value_and_limits():
    client = _hyperliquid({
        "BTC": [_trade("BTC", 60000, 2, tid=1), _trade("BTC", 60000, 0.1, tid=2)],
        "ETH": [_trade("ETH", 3000, 100, tid=3), _trade("ETH", 3000, 30, tid=4)],
    })

    txs = client.fetch_large_transactions(min_value=100_000, limit=2)

    assert [t.hash for t in txs] == ["ETH-3", "BTC-1"]
    method, url, kwargs = client.session.requests[0]
    assert (method, url) == ("POST", "https://api.hyperliquid.xyz/info")
    assert kwargs["json"] == {"type": "recentTrades", "coin": "BTC"}


def test_fills_sharing_a_hash_become_one_transaction():
    fills = [
        _trade("BTC", 60000, 1, tid=1, tx_hash="0xtaker"),
        _trade("BTC", 61000, 1, tid=2, tx_hash="0xtaker"),
        _trade("BTC", 60000, 0.5, tid=3, tx_hash="0xother"),
    ]

    merged = merge_fills(normalize_trade(f) for f in fills)

    assert [t.hash for t in merged] == ["0xtaker", "0xother"]
    assert merged[0].value == 121000
    assert merged[0].size == 2
    assert merged[0].price == pytest.approx(60500)


def test_hyperliquid_threshold_applies_to_the_whole_order():
    # two 60k fills of one order clear a 100k threshold together
    client = _hyperliquid({"BTC": [
        _trade("BTC", 60000, 1, tid=1, tx_hash="0xtaker"),
        _trade("BTC", 60000, 1, tid=2, tx_hash="0xtaker"),
    ]})

    txs = client.fetch_large_transactions(min_value=100_000)

    assert [(t.hash, t.value) for t in txs] == [("0xtaker", 120000)]


def test_hyperliquid_one_coin_failing_is_tolerated():
    client = _hyperliquid({"ETH": [_trade("ETH", 3000, 100)]}, fail={"BTC"})
    assert len(client.fetch_large_transactions(min_value=100_000)) == 1


def test_hyperliquid_all_coins_failing_raises():
    client = _hyperliquid({}, fail={"BTC", "ETH"})
    with pytest.raises(RuntimeError, match="recentTrades"):
        client.fetch_large_transactions()


# ---------------------------------------------------------------------------
# coingecko
# ---------------------------------------------------------------------------

def test_coingecko_price_is_cached():
    client = CoinGeckoClient()
    client.session = FakeSession(
        lambda m, u, kw: FakeResponse({"solana": {"usd": 150.0, "usd_24h_change": -2.5}})
    )

    first = client.get_price("sol")
    second = client.get_price("SOL")

    assert first == {"usd": 150.0, "usd_24h_change": -2.5}
    assert second == first
    assert len(client.session.requests) == 1
    assert client.session.requests[0][2]["params"]["ids"] == "solana"


def test_coingecko_rate_limit_and_unknown_coin_return_none():
    client = CoinGeckoClient()
    client.session = FakeSession(lambda m, u, kw: FakeResponse({}, status_code=429))
    assert client.get_price("BTC") is None

    client.session = FakeSession(lambda m, u, kw: FakeResponse({}))
    assert client.get_price("nosuchcoin") is None


def test_coin_id_mapping():
    assert CoinGeckoClient.coin_id("hype") == "hyperliquid"
    assert CoinGeckoClient.coin_id("Pepe") == "pepe"


def test_coingecko_quote_expires_after_ttl():
    now = [1000.0]
    client = CoinGeckoClient(ttl_seconds=60, clock=lambda: now[0])
    client.session = FakeSession(lambda m, u, kw: FakeResponse({"bitcoin": {"usd": 65000}}))

    client.get_price("BTC")
    now[0] += 30
    client.get_price("BTC")
    assert len(client.session.requests) == 1

    now[0] += 31
    client.get_price("BTC")
    assert len(client.session.requests) == 2
