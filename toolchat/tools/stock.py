"""Stock price tool."""

from typing import Any

from pydantic import BaseModel, Field

from toolchat.tools.base import HttpTool, ToolContext, ToolError
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"


class StockPriceInput(BaseModel):
    """Input schema for the stock price tool."""

    symbol: str = Field(
        ...,
        min_length=1,
        max_length=15,
        description="The stock symbol (e.g., AAPL for Apple)",
    )


class StockPriceTool(HttpTool):
    name = "get_stock_price"
    description = "Get the current stock price for a given symbol (e.g., AAPL, GOOGL, MSFT, TSLA)"
    input_model = StockPriceInput

    async def run(self, params: StockPriceInput, context: ToolContext) -> dict[str, Any]:
        symbol = params.symbol.strip().upper()
        logger.info(f"Fetching stock price for {symbol}")

        data = await self.fetch_json(CHART_URL.format(symbol=symbol), params={"interval": "1d", "range": "1d"})

        try:
            meta = data["chart"]["result"][0]["meta"]
            price = float(meta["regularMarketPrice"])
            previous_close = float(meta["chartPreviousClose"])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ToolError("Stock not found") from e

        change = price - previous_close
        change_percent = change / previous_close * 100 if previous_close else 0.0

        return {
            "symbol": symbol,
            "price": price,
            "currency": meta.get("currency"),
            "change": round(change, 2),
            "change_percent": round(change_percent, 2),
            "market_state": meta.get("marketState"),
        }
