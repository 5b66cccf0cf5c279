from typing import Optional

import httpx

import config
from models import Chain, FiatAmounts
from utils import fetch_json


# CoinGecko identifies assets by its own ids, not ticker symbols
COINGECKO_IDS: dict[str, str] = {
    Chain.BTC.value: "bitcoin",
    Chain.ETH.value: "ethereum",
    Chain.SOL.value: "solana",
    Chain.ADA.value: "cardano",
}

VS_CURRENCIES = ("usd", "eur", "chf")


async def fetch_price_quotes(
    client: httpx.AsyncClient,
    coingecko_ids: list[str],
    api_url: Optional[str] = None,
) -> dict[str, FiatAmounts]:
    """
    Fetch usd/eur/chf quotes for every id in one batched call.

    Raises on provider failure; callers decide how to degrade.
    """
    if not coingecko_ids:
        return {}

    data = await fetch_json(
        client,
        "GET",
        f"{api_url or config.COINGECKO_API_URL}/simple/price",
        params={"ids": ",".join(coingecko_ids), "vs_currencies": ",".join(VS_CURRENCIES)},
        timeout=config.PRICE_TIMEOUT_SEC,
        retries=config.PROVIDER_MAX_RETRIES,
        backoff=config.PROVIDER_RETRY_BACKOFF_SEC,
    )
    return {
        cid: FiatAmounts(**{cur: quote.get(cur) or 0 for cur in VS_CURRENCIES})
        for cid, quote in data.items()
        if isinstance(quote, dict)
    }
