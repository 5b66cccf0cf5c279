import asyncio
import logging
from typing import Optional, Sequence

import httpx

import config
from chain_resolvers import ResolverRegistry
from models import (
    ErrorKind,
    FiatAmounts,
    PortfolioEntry,
    WalletRequest,
    WalletResult,
)
from prices import COINGECKO_IDS, fetch_price_quotes

logger = logging.getLogger(__name__)


class PortfolioAggregator:
    """Fans wallet requests out to their chain resolvers."""

    def __init__(self, registry: ResolverRegistry, max_concurrency: Optional[int] = None):
        self.registry = registry
        limit = config.MAX_CONCURRENT_RESOLUTIONS if max_concurrency is None else max_concurrency
        self._limit = limit if limit > 0 else None

    async def aggregate(self, requests: Sequence[WalletRequest]) -> list[WalletResult]:
        """Resolve every wallet concurrently. Output index i matches input index i."""
        semaphore = asyncio.Semaphore(self._limit) if self._limit else None

        async def resolve_one(req: WalletRequest) -> WalletResult:
            if semaphore is None:
                return await self.registry.resolve(req.chain, req.address)
            async with semaphore:
                return await self.registry.resolve(req.chain, req.address)

        results = await asyncio.gather(
            *(resolve_one(req) for req in requests), return_exceptions=True
        )

        collected: list[WalletResult] = []
        for req, r in zip(requests, results):
            if isinstance(r, WalletResult):
                collected.append(r)
            else:
                logger.error(f"[!] {req.chain} resolution escaped its boundary: {r!r}")
                collected.append(
                    WalletResult.failed(req.chain, req.address, ErrorKind.RESOLUTION_FAILED)
                )
        return collected

    @staticmethod
    def unique_chains(results: Sequence[WalletResult]) -> list[str]:
        """Distinct chains among successful results, in first-seen order."""
        return list(dict.fromkeys(r.chain for r in results if r.ok))


class PriceJoiner:
    """Enriches resolved wallets with fiat quotes from a single batched call."""

    def __init__(self, client: httpx.AsyncClient, api_url: Optional[str] = None):
        self.client = client
        self.api_url = api_url

    async def join(
        self, results: Sequence[WalletResult], unique_chains: Sequence[str]
    ) -> list[PortfolioEntry]:
        coingecko_ids = [COINGECKO_IDS[c] for c in unique_chains if c in COINGECKO_IDS]

        quotes: dict[str, FiatAmounts] = {}
        if coingecko_ids:
            try:
                quotes = await fetch_price_quotes(self.client, coingecko_ids, self.api_url)
            except Exception as e:
                logger.warning(f"[!] CoinGecko unavailable, pricing at zero: {e}")

        entries: list[PortfolioEntry] = []
        for r in results:
            if not r.ok:
                entries.append(PortfolioEntry(**r.model_dump()))
                continue

            price = quotes.get(COINGECKO_IDS.get(r.chain, "")) or FiatAmounts()
            entries.append(PortfolioEntry(
                **r.model_dump(),
                price=price,
                value=price.scaled(r.balance),
            ))
        return entries


class PortfolioService:
    """Resolve, then price. One call per inbound portfolio request."""

    def __init__(self, aggregator: PortfolioAggregator, joiner: PriceJoiner):
        self.aggregator = aggregator
        self.joiner = joiner

    async def build_portfolio(self, requests: Sequence[WalletRequest]) -> list[PortfolioEntry]:
        results = await self.aggregator.aggregate(requests)
        chains = self.aggregator.unique_chains(results)
        return await self.joiner.join(results, chains)
