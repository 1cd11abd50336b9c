"""
Live BTC and SOL prices in USD.

Sources are tried in order (Kraken, Coinbase, CoinGecko), each bounded by a
timeout and checked against sanity bounds. The first valid answer wins. If
every source fails the oracle raises; it never invents a fallback price.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import httpx
import structlog

from communiclaw.config import get_settings
from communiclaw.errors import UpstreamUnavailableError

logger = structlog.get_logger()

BTC_BOUNDS = (Decimal("1000"), Decimal("10000000"))
SOL_BOUNDS = (Decimal("0.01"), Decimal("100000"))


@dataclass(frozen=True)
class CryptoPrices:
    btc: Decimal
    sol: Decimal
    source: str = ""


class PriceSourceError(Exception):
    """A source answered, but not with usable prices."""


class PriceSource(Protocol):
    name: str

    async def fetch(self, client: httpx.AsyncClient) -> CryptoPrices: ...


def _decimal(value: Any, field: str) -> Decimal:  # noqa: ANN401
    try:
        parsed = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise PriceSourceError(f"bad {field} value {value!r}") from e
    if not parsed.is_finite() or parsed <= 0:
        raise PriceSourceError(f"bad {field} value {value!r}")
    return parsed


async def _get_json(client: httpx.AsyncClient, url: str) -> dict[str, Any]:
    response = await client.get(url)
    if response.status_code != 200:
        raise PriceSourceError(f"HTTP {response.status_code}")
    payload = response.json()
    if not isinstance(payload, dict):
        raise PriceSourceError("unexpected payload shape")
    return payload


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise PriceSourceError(f"unexpected {key!r} shape")
    return value


class KrakenSource:
    name = "Kraken"
    url = "https://api.kraken.com/0/public/Ticker?pair=XBTUSD,SOLUSD"

    async def fetch(self, client: httpx.AsyncClient) -> CryptoPrices:
        data = await _get_json(client, self.url)
        if data.get("error"):
            raise PriceSourceError(str(data["error"][0]))
        result = _section(data, "result")
        # Kraken reports BTC as XXBTZUSD; "c" is [last trade price, lot volume].
        btc_data = result.get("XXBTZUSD") or result.get("XBTUSD")
        sol_data = result.get("SOLUSD")
        if not btc_data or not sol_data:
            raise PriceSourceError("missing pair data")
        return CryptoPrices(
            btc=_decimal(btc_data["c"][0], "BTC"),
            sol=_decimal(sol_data["c"][0], "SOL"),
            source=self.name,
        )


class CoinbaseSource:
    name = "Coinbase"
    btc_url = "https://api.coinbase.com/v2/prices/BTC-USD/spot"
    sol_url = "https://api.coinbase.com/v2/prices/SOL-USD/spot"

    async def fetch(self, client: httpx.AsyncClient) -> CryptoPrices:
        btc_data, sol_data = await asyncio.gather(
            _get_json(client, self.btc_url),
            _get_json(client, self.sol_url),
        )
        return CryptoPrices(
            btc=_decimal(_section(btc_data, "data").get("amount"), "BTC"),
            sol=_decimal(_section(sol_data, "data").get("amount"), "SOL"),
            source=self.name,
        )


class CoinGeckoSource:
    name = "CoinGecko"
    url = "https://api.coingecko.com/api/v3/simple/price?ids=bitcoin,solana&vs_currencies=usd"

    async def fetch(self, client: httpx.AsyncClient) -> CryptoPrices:
        data = await _get_json(client, self.url)
        return CryptoPrices(
            btc=_decimal(_section(data, "bitcoin").get("usd"), "BTC"),
            sol=_decimal(_section(data, "solana").get("usd"), "SOL"),
            source=self.name,
        )


DEFAULT_SOURCES: tuple[type, ...] = (KrakenSource, CoinbaseSource, CoinGeckoSource)


def validate(prices: CryptoPrices) -> CryptoPrices:
    """Reject obviously wrong quotes."""
    btc_lo, btc_hi = BTC_BOUNDS
    sol_lo, sol_hi = SOL_BOUNDS
    if not btc_lo <= prices.btc <= btc_hi:
        raise PriceSourceError(f"BTC price ${prices.btc} is out of range")
    if not sol_lo <= prices.sol <= sol_hi:
        raise PriceSourceError(f"SOL price ${prices.sol} is out of range")
    return prices


class PriceOracle:
    """Ordered fallback over price sources."""

    def __init__(
        self,
        sources: list[PriceSource] | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.sources: list[PriceSource] = sources if sources is not None else [cls() for cls in DEFAULT_SOURCES]
        self.timeout = timeout if timeout is not None else get_settings().price_source_timeout_seconds
        self._client = client

    async def _try(self, source: PriceSource, client: httpx.AsyncClient) -> CryptoPrices:
        try:
            prices = await asyncio.wait_for(source.fetch(client), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise PriceSourceError(f"timed out after {self.timeout}s") from e
        return validate(prices)

    async def _first_valid(self, client: httpx.AsyncClient) -> CryptoPrices:
        errors: list[str] = []
        for source in self.sources:
            try:
                prices = await self._try(source, client)
            except (PriceSourceError, httpx.HTTPError, ValueError, KeyError, TypeError, IndexError) as e:
                errors.append(f"{source.name}: {str(e) or type(e).__name__}")
                logger.warning("price_source_failed", source=source.name, error=str(e) or type(e).__name__)
                continue
            logger.info("price_source_used", source=source.name, btc=str(prices.btc), sol=str(prices.sol))
            return prices

        raise UpstreamUnavailableError(f"All price APIs failed: {' | '.join(errors)}")

    async def get_prices(self) -> CryptoPrices:
        if self._client is not None:
            return await self._first_valid(self._client)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._first_valid(client)


def get_price_oracle() -> PriceOracle:
    """FastAPI dependency."""
    return PriceOracle()
