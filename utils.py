import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from models import AddressKind, Chain

logger = logging.getLogger(__name__)


SATOSHIS_PER_BTC = 10**8
WEI_PER_ETHER = 10**18
LAMPORTS_PER_SOL = 10**9
LOVELACE_PER_ADA = 10**6

# Hardware wallets export a master public key instead of a single address
XPUB_PREFIXES = ("xpub", "ypub", "zpub", "vpub", "upub")
STAKE_PREFIX = "stake1"

_WHITESPACE = re.compile(r"\s")
_NON_ALPHANUMERIC = re.compile(r"[^a-zA-Z0-9]")


# ── Address classification ────────────────────────────────────────────────────


def normalize_address(raw: str) -> str:
    """Strip copy-paste artifacts (padding, newlines, inner spaces)."""
    return _WHITESPACE.sub("", raw.strip())


def classify(chain: str, raw_address: str) -> AddressKind:
    """Derive the address sub-kind from its shape. Never touches the network."""
    address = normalize_address(raw_address)

    if chain == Chain.BTC:
        # Rejected up front so a bad paste never costs a rate-limited call
        if not address or _NON_ALPHANUMERIC.search(address):
            return AddressKind.INVALID
        if address.lower().startswith(XPUB_PREFIXES):
            return AddressKind.EXTENDED_PUBLIC_KEY
        return AddressKind.STANDARD

    if chain == Chain.ADA:
        if address.startswith(STAKE_PREFIX):
            return AddressKind.STAKE
        return AddressKind.PAYMENT

    if chain in (Chain.ETH, Chain.SOL):
        return AddressKind.ACCOUNT

    raise ValueError(f"No address classifier for chain: {chain}")


# ── Unit conversion ───────────────────────────────────────────────────────────


def satoshi_to_btc(satoshi: int | str) -> float:
    return int(satoshi) / SATOSHIS_PER_BTC


def wei_to_ether(wei: int | str) -> float:
    return int(wei) / WEI_PER_ETHER


def lamports_to_sol(lamports: int | str) -> float:
    return int(lamports) / LAMPORTS_PER_SOL


def lovelace_to_ada(lovelace: int | str) -> float:
    return int(lovelace) / LOVELACE_PER_ADA


def format_timestamp(unix_seconds: Optional[int | float], sentinel: str) -> str:
    """UTC calendar date for a block time, or the sentinel when there is none."""
    if not unix_seconds:
        return sentinel
    try:
        return datetime.fromtimestamp(unix_seconds, tz=timezone.utc).strftime("%Y-%m-%d")
    except (ValueError, OSError, OverflowError):
        return sentinel


# ── Provider HTTP ─────────────────────────────────────────────────────────────


async def fetch_json(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    retries: int = 0,
    backoff: float = 1.0,
    **kwargs,
) -> Any:
    """
    Make one provider call and decode its JSON body.

    Only transport errors, 429 and 5xx are retried, and only when `retries`
    is positive. Other error statuses raise httpx.HTTPStatusError at once.
    """
    for attempt in range(retries + 1):
        try:
            resp = await client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            if attempt < retries:
                logger.warning(f"[!] {method} {url} failed ({e}), retrying")
                await asyncio.sleep(backoff * (2 ** attempt))
                continue
            raise

        if (resp.status_code == 429 or resp.status_code >= 500) and attempt < retries:
            logger.warning(f"[!] {method} {url} returned {resp.status_code}, retrying")
            await asyncio.sleep(backoff * (2 ** attempt))
            continue

        resp.raise_for_status()
        return resp.json()
