"""Cryptocurrency price tool."""

from typing import Any

from pydantic import BaseModel, Field

from toolchat.tools.base import HttpTool, ToolContext, ToolError
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

PRICE_URL = "https://api.coingecko.com/api/v3/simple/price"

SYMBOL_IDS = {
    "btc": "bitcoin",
    "eth": "ethereum",
    "usdt": "tether",
    "bnb": "binancecoin",
    "sol": "solana",
    "xrp": "ripple",
    "usdc": "usd-coin",
    "ada": "cardano",
    "doge": "dogecoin",
    "trx": "tron",
    "dot": "polkadot",
    "matic": "matic-network",
    "ltc": "litecoin",
    "avax": "avalanche-2",
    "link": "chainlink",
    "xlm": "stellar",
    "atom": "cosmos",
}


def resolve_coin_id(symbol: str) -> str:
    """Map a ticker symbol to its price-feed id, case-insensitively.

    Unknown symbols are assumed to already be feed ids.
    """
    key = symbol.strip().lower()
    return SYMBOL_IDS.get(key, key)


class CryptoPriceInput(BaseModel):
    """Input schema for the crypto price tool."""

    symbol: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Cryptocurrency symbol or id (e.g., BTC, ETH, solana)",
    )


class CryptoPriceTool(HttpTool):
    name = "get_crypto_price"
    description = "Get the current price, 24h change and market cap of a cryptocurrency (e.g., BTC, ETH, SOL)"
    input_model = CryptoPriceInput

    async def run(self, params: CryptoPriceInput, context: ToolContext) -> dict[str, Any]:
        coin_id = resolve_coin_id(params.symbol)
        logger.info(f"Fetching crypto price for {params.symbol} ({coin_id})")

        data = await self.fetch_json(
            PRICE_URL,
            params={
                "ids": coin_id,
                "vs_currencies": "usd",
                "include_24hr_change": "true",
                "include_market_cap": "true",
            },
        )

        quote = data.get(coin_id) if isinstance(data, dict) else None
        if not quote or "usd" not in quote:
            raise ToolError(f"Cryptocurrency not found: {params.symbol}")

        change = quote.get("usd_24h_change")
        return {
            "symbol": params.symbol.strip().upper(),
            "id": coin_id,
            "price_usd": quote["usd"],
            "change_24h_percent": round(change, 2) if change is not None else None,
            "market_cap_usd": quote.get("usd_market_cap"),
        }
