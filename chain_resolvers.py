import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import base58
import httpx

import config
from models import (
    ACTIVITY_LIMIT,
    ActivityEntry,
    ActivityStatus,
    AddressKind,
    Chain,
    ErrorKind,
    ResolutionState,
    WalletResult,
)
from utils import (
    classify,
    fetch_json,
    format_timestamp,
    lamports_to_sol,
    lovelace_to_ada,
    normalize_address,
    satoshi_to_btc,
    wei_to_ether,
)

logger = logging.getLogger(__name__)


# ── Base Resolver ─────────────────────────────────────────────────────────────


class ChainResolver(ABC):
    """Resolves one chain's addresses into a WalletResult. Never raises."""

    chain: Chain

    async def resolve(self, address: str) -> WalletResult:
        try:
            return await self._resolve(address)
        except Exception:
            logger.exception(f"[!] {self.chain.value} resolution failed for {address}")
            return WalletResult.failed(self.chain.value, address, ErrorKind.RESOLUTION_FAILED)

    @abstractmethod
    async def _resolve(self, address: str) -> WalletResult:
        ...

    def _failed(self, address: str, error: ErrorKind) -> WalletResult:
        return WalletResult.failed(self.chain.value, address, error)


class HttpChainResolver(ChainResolver):
    """Resolver backed by plain JSON-over-HTTP provider endpoints."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        retries: Optional[int] = None,
        backoff: Optional[float] = None,
    ):
        self.client = client
        self.retries = config.PROVIDER_MAX_RETRIES if retries is None else retries
        self.backoff = config.PROVIDER_RETRY_BACKOFF_SEC if backoff is None else backoff

    async def _get(self, url: str, **kwargs) -> Any:
        return await fetch_json(
            self.client, "GET", url, retries=self.retries, backoff=self.backoff, **kwargs
        )

    async def _post(self, url: str, **kwargs) -> Any:
        return await fetch_json(
            self.client, "POST", url, retries=self.retries, backoff=self.backoff, **kwargs
        )


# ── Bitcoin (Blockstream for addresses, blockchain.info for xpubs) ────────────


def utxo_balance_sats(address_info: dict) -> int:
    """
    Spendable balance of a Blockstream address record, in satoshi.

    UTXO chains expose no balance field: lifetime funded minus lifetime spent,
    plus the same difference over the mempool so pending activity shows up.
    """
    confirmed = address_info["chain_stats"]
    pending = address_info["mempool_stats"]
    return (
        (confirmed["funded_txo_sum"] - confirmed["spent_txo_sum"])
        + (pending["funded_txo_sum"] - pending["spent_txo_sum"])
    )


class BitcoinResolver(HttpChainResolver):
    chain = Chain.BTC

    def __init__(
        self,
        client: httpx.AsyncClient,
        blockstream_url: Optional[str] = None,
        blockchain_info_url: Optional[str] = None,
        **kwargs,
    ):
        super().__init__(client, **kwargs)
        self.blockstream_url = blockstream_url or config.BLOCKSTREAM_API_URL
        self.blockchain_info_url = blockchain_info_url or config.BLOCKCHAIN_INFO_URL

    async def _resolve(self, raw_address: str) -> WalletResult:
        kind = classify(self.chain, raw_address)
        if kind == AddressKind.INVALID:
            return self._failed(raw_address, ErrorKind.INVALID_FORMAT)

        address = normalize_address(raw_address)
        try:
            if kind == AddressKind.EXTENDED_PUBLIC_KEY:
                balance, activity = await self._fetch_xpub(address)
            else:
                balance, activity = await self._fetch_address(address)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 400:
                return self._failed(address, ErrorKind.MALFORMED_ADDRESS)
            logger.warning(f"[!] BTC provider error for {address}: {e}")
            return self._failed(address, ErrorKind.PROVIDER_UNAVAILABLE)
        except Exception as e:
            logger.warning(f"[!] BTC provider error for {address}: {e}")
            return self._failed(address, ErrorKind.PROVIDER_UNAVAILABLE)

        return WalletResult.resolved(self.chain.value, address, balance, activity)

    async def _fetch_xpub(self, xpub: str) -> tuple[float, list[ActivityEntry]]:
        # blockchain.info derives the child addresses and sums them for us
        data = await self._get(
            f"{self.blockchain_info_url}/multiaddr",
            params={"active": xpub, "n": ACTIVITY_LIMIT},
        )
        balance = satoshi_to_btc(data["wallet"]["final_balance"])
        activity = [
            ActivityEntry(
                hash=tx.get("hash", ""),
                label="XPUB Activity",
                date=format_timestamp(tx.get("time"), "Pending"),
                status=ActivityStatus.MIXED,
            )
            for tx in (data.get("txs") or [])[:ACTIVITY_LIMIT]
        ]
        return balance, activity

    async def _fetch_address(self, address: str) -> tuple[float, list[ActivityEntry]]:
        info = await self._get(f"{self.blockstream_url}/address/{address}")
        txs = await self._get(f"{self.blockstream_url}/address/{address}/txs")

        balance = satoshi_to_btc(utxo_balance_sats(info))

        activity: list[ActivityEntry] = []
        for tx in (txs or [])[:ACTIVITY_LIMIT]:
            block_time = (tx.get("status") or {}).get("block_time")
            confirmed = bool(block_time)
            activity.append(ActivityEntry(
                hash=tx.get("txid", ""),
                label="Confirmed" if confirmed else "Pending",
                date=format_timestamp(block_time, "Mempool"),
                status=ActivityStatus.CONFIRMED if confirmed else ActivityStatus.PENDING,
            ))
        return balance, activity


# ── Ethereum (Blockscout, balance only) ───────────────────────────────────────


class EthereumResolver(HttpChainResolver):
    chain = Chain.ETH

    def __init__(self, client: httpx.AsyncClient, api_url: Optional[str] = None, **kwargs):
        super().__init__(client, **kwargs)
        self.api_url = api_url or config.BLOCKSCOUT_API_URL

    async def _resolve(self, raw_address: str) -> WalletResult:
        address = normalize_address(raw_address)
        try:
            data = await self._get(self.api_url, params={
                "module": "account",
                "action": "balance",
                "address": address,
            })
            balance = wei_to_ether(data["result"])
        except Exception as e:
            logger.warning(f"[!] ETH provider error for {address}: {e}")
            return self._failed(address, ErrorKind.PROVIDER_UNAVAILABLE)

        # Blockscout's balance action carries no history
        return WalletResult.resolved(self.chain.value, address, balance, [])


# ── Solana (JSON-RPC) ─────────────────────────────────────────────────────────


class SolanaRpcError(Exception):
    pass


class SolanaRpcClient:
    """
    Long-lived Solana JSON-RPC handle, created once per process.

    Holds no per-request state, so concurrent requests share it read-only.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        retries: Optional[int] = None,
        backoff: Optional[float] = None,
    ):
        self.url = url or config.SOLANA_RPC_URL
        self._client = client or httpx.AsyncClient(timeout=config.PROVIDER_TIMEOUT_SEC)
        self.retries = config.PROVIDER_MAX_RETRIES if retries is None else retries
        self.backoff = config.PROVIDER_RETRY_BACKOFF_SEC if backoff is None else backoff

    async def close(self):
        await self._client.aclose()

    async def _rpc(self, method: str, params: list) -> Any:
        data = await fetch_json(
            self._client,
            "POST",
            self.url,
            json={"jsonrpc": "2.0", "id": 1, "method": method, "params": params},
            retries=self.retries,
            backoff=self.backoff,
        )
        if data.get("error"):
            raise SolanaRpcError(data["error"].get("message", str(data["error"])))
        return data.get("result")

    async def get_balance(self, address: str) -> int:
        result = await self._rpc("getBalance", [address, {"commitment": "confirmed"}])
        return int(result["value"])

    async def get_signatures_for_address(
        self, address: str, limit: int = ACTIVITY_LIMIT
    ) -> list[dict]:
        result = await self._rpc(
            "getSignaturesForAddress",
            [address, {"limit": limit, "commitment": "confirmed"}],
        )
        return result or []


def is_valid_public_key(address: str) -> bool:
    """Solana public keys are 32 bytes, base58-encoded."""
    try:
        return len(base58.b58decode(address)) == 32
    except ValueError:
        return False


class SolanaResolver(ChainResolver):
    chain = Chain.SOL

    def __init__(self, rpc: SolanaRpcClient):
        self.rpc = rpc

    async def _resolve(self, raw_address: str) -> WalletResult:
        address = normalize_address(raw_address)
        if not is_valid_public_key(address):
            return self._failed(address, ErrorKind.INVALID_ADDRESS)

        try:
            lamports = await self.rpc.get_balance(address)
            signatures = await self.rpc.get_signatures_for_address(address, ACTIVITY_LIMIT)
        except Exception as e:
            logger.warning(f"[!] SOL provider error for {address}: {e}")
            return self._failed(address, ErrorKind.PROVIDER_UNAVAILABLE)

        activity = [
            ActivityEntry(
                hash=sig.get("signature", ""),
                label="Solana Action",
                date=format_timestamp(sig.get("blockTime"), "Unknown"),
                status=ActivityStatus.FAIL if sig.get("err") is not None else ActivityStatus.SUCCESS,
            )
            for sig in signatures[:ACTIVITY_LIMIT]
        ]
        return WalletResult.resolved(self.chain.value, address, lamports_to_sol(lamports), activity)


# ── Cardano (Koios) ───────────────────────────────────────────────────────────

# kind -> (info endpoint, txs endpoint, body key, balance field)
KOIOS_ENDPOINTS = {
    AddressKind.PAYMENT: ("address_info", "address_txs", "_addresses", "balance"),
    AddressKind.STAKE: ("account_info", "account_txs", "_stake_addresses", "total_balance"),
}

HISTORY_UNAVAILABLE = ActivityEntry(
    hash="",
    label="History temporarily unavailable",
    date="Info",
    status=ActivityStatus.INFO,
)


@dataclass
class FetchOutcome:
    """Result of one fault-isolated provider call."""

    value: Any = None
    error: Optional[Exception] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class CardanoResolver(HttpChainResolver):
    chain = Chain.ADA

    def __init__(self, client: httpx.AsyncClient, api_url: Optional[str] = None, **kwargs):
        super().__init__(client, **kwargs)
        self.api_url = api_url or config.KOIOS_API_URL

    async def _resolve(self, raw_address: str) -> WalletResult:
        address = normalize_address(raw_address)
        kind = classify(self.chain, address)

        balance, activity = await asyncio.gather(
            self._fetch_balance(address, kind),
            self._fetch_activity(address, kind),
        )

        if balance.failed and activity.failed:
            logger.error(f"[!] ADA balance and history both failed for {address}")
            return self._failed(address, ErrorKind.RESOLUTION_FAILED)

        state = ResolutionState.OK
        warnings: list[str] = []
        if balance.failed:
            state = ResolutionState.DEGRADED
            warnings.append("Balance temporarily unavailable, reported as 0")
        if activity.failed:
            state = ResolutionState.DEGRADED
            warnings.append("Transaction history temporarily unavailable")

        return WalletResult.resolved(
            self.chain.value,
            address,
            0.0 if balance.failed else balance.value,
            [HISTORY_UNAVAILABLE] if activity.failed else activity.value,
            state=state,
            warnings=warnings,
        )

    async def _fetch_balance(self, address: str, kind: AddressKind) -> FetchOutcome:
        info_endpoint, _, body_key, balance_field = KOIOS_ENDPOINTS[kind]
        try:
            rows = await self._post(
                f"{self.api_url}/{info_endpoint}", json={body_key: [address]}
            )
            lovelace = 0
            if rows:
                lovelace = rows[0].get(balance_field) or 0
            return FetchOutcome(value=lovelace_to_ada(lovelace))
        except Exception as e:
            logger.warning(f"[!] ADA balance fetch failed for {address}: {e}")
            return FetchOutcome(error=e)

    async def _fetch_activity(self, address: str, kind: AddressKind) -> FetchOutcome:
        _, txs_endpoint, body_key, _ = KOIOS_ENDPOINTS[kind]
        try:
            txs = await self._post(
                f"{self.api_url}/{txs_endpoint}", json={body_key: [address]}
            )
            entries = [
                ActivityEntry(
                    hash=tx.get("tx_hash", ""),
                    label="ADA Tx",
                    date=format_timestamp(tx.get("block_time"), "Pending"),
                    status=ActivityStatus.CONFIRMED if tx.get("block_time") else ActivityStatus.PENDING,
                )
                for tx in (txs or [])[:ACTIVITY_LIMIT]
            ]
            return FetchOutcome(value=entries)
        except Exception as e:
            logger.warning(f"[!] ADA history fetch failed for {address}: {e}")
            return FetchOutcome(error=e)


# ── Registry ──────────────────────────────────────────────────────────────────


class ResolverRegistry:
    """Maps chain identifiers to resolvers."""

    def __init__(self, resolvers: Iterable[ChainResolver] = ()):
        self._resolvers: dict[str, ChainResolver] = {}
        for resolver in resolvers:
            self.register(resolver)

    def register(self, resolver: ChainResolver):
        self._resolvers[resolver.chain.value] = resolver

    def get(self, chain: str) -> Optional[ChainResolver]:
        return self._resolvers.get(chain)

    @property
    def chains(self) -> list[str]:
        return list(self._resolvers)

    async def resolve(self, chain: str, address: str) -> WalletResult:
        resolver = self.get(chain)
        if resolver is None:
            return WalletResult.failed(chain, address, ErrorKind.UNSUPPORTED_CHAIN)
        return await resolver.resolve(address)


def build_registry(
    client: httpx.AsyncClient, solana_rpc: SolanaRpcClient
) -> ResolverRegistry:
    return ResolverRegistry([
        BitcoinResolver(client),
        EthereumResolver(client),
        SolanaResolver(solana_rpc),
        CardanoResolver(client),
    ])
