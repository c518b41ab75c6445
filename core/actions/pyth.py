"""
Pyth price feeds - read-only price lookups over the Hermes HTTP API.
"""

import logging
from decimal import Decimal
from typing import Optional

import aiohttp
from pydantic import BaseModel, Field

from core.actions.base import ActionProvider, create_action

logger = logging.getLogger("merchant.actions.pyth")

HERMES_URL = "https://hermes.pyth.network"


class PriceFeedIdArgs(BaseModel):
    token_symbol: str = Field(..., min_length=1, description="Token symbol, e.g. 'BTC'")


class PriceArgs(BaseModel):
    price_feed_id: str = Field(..., min_length=1, description="Pyth price feed id (hex)")


class PythActionProvider(ActionProvider):
    def __init__(self, base_url: str = HERMES_URL):
        super().__init__("pyth")
        self._base_url = base_url.rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = aiohttp.ClientTimeout(total=30)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _get_json(self, path: str, params: dict):
        session = await self._get_session()
        async with session.get(f"{self._base_url}{path}", params=params) as resp:
            if resp.status != 200:
                raise RuntimeError(f"Hermes returned HTTP {resp.status} for {path}")
            return await resp.json(content_type=None)

    @create_action(
        name="fetch_price_feed_id",
        description="Look up the Pyth price feed id for a token symbol (priced in USD).",
        schema=PriceFeedIdArgs,
    )
    async def fetch_price_feed_id(self, wallet, args: PriceFeedIdArgs) -> str:
        symbol = args.token_symbol.upper()
        feeds = await self._get_json("/v2/price_feeds", {"query": symbol, "asset_type": "crypto"})
        target = f"Crypto.{symbol}/USD"
        for feed in feeds or []:
            if feed.get("attributes", {}).get("symbol") == target:
                return feed["id"]
        raise ValueError(f"No price feed found for {symbol}")

    @create_action(
        name="fetch_price",
        description="Fetch the latest USD price for a Pyth price feed id.",
        schema=PriceArgs,
    )
    async def fetch_price(self, wallet, args: PriceArgs) -> str:
        body = await self._get_json("/v2/updates/price/latest", {"ids[]": args.price_feed_id})
        parsed = (body or {}).get("parsed") or []
        if not parsed:
            raise ValueError(f"No price data for feed {args.price_feed_id}")

        price = parsed[0]["price"]
        value = Decimal(int(price["price"])).scaleb(int(price["expo"]))
        return format(value.normalize(), "f")

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
